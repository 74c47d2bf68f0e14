"""Meal image nutrition analysis service."""

__version__ = "1.0.0"
