"""Persistent memory of past errors, their fixes and how well the fixes worked."""

__version__ = "0.1.0"
