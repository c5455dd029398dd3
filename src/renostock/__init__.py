"""Renovation stock tracking for hotel fit-out projects."""

__version__ = "0.1.0"
