"""Voice mock-interview backend and real-time interview session controller."""

__version__ = "0.1.0"
