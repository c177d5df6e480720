"""Task list synchronization engine."""

__version__ = "0.1.0"
