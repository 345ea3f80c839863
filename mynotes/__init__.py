"""Notes application core: authentication state machine and local notes store."""

__version__ = "1.0.0"
