"""API routes."""

from . import analysis, usage

__all__ = ["analysis", "usage"]
