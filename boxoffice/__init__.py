"""Box office seat reservation service."""

__version__ = "1.0.0"
