"""Mini README: Utility helpers shared by the CLI and the JSON API."""

from .formatting import date_iso, format_amount

__all__ = ["date_iso", "format_amount"]
