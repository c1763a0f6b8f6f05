"""AudioMuse all-in-one: service bootstrap and background task lifecycle."""

__version__ = "0.1.0"
