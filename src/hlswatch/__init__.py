"""Watch a directory and convert settled video files to HLS."""

__version__ = "0.1.0"
