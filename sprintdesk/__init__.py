"""Agile delivery tracking for student teams."""

__version__ = "1.0.0"
