"""Utility helpers."""

from .clock import as_utc, minutes_between, round_half_up, utcnow

__all__ = ["as_utc", "minutes_between", "round_half_up", "utcnow"]
