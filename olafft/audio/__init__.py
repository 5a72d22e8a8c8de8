"""Live audio I/O for running a processor on a sound card."""
