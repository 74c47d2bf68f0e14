"""Utility functions."""

from .dates import date_key, utc_now

__all__ = ["date_key", "utc_now"]
