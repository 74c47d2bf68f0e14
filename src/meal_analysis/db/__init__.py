"""Database module - MongoDB connection."""

from .mongo import MongoDB

__all__ = ["MongoDB"]
