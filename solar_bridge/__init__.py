"""Local HTTP bridge for Solar Analytics energy data."""

__version__ = "1.0.0"
