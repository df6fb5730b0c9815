"""roomrelay: real-time multi-room message relay."""

__version__ = "0.1.0"
