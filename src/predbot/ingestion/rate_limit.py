"""Backoff and pacing helpers for upstream REST calls."""

from __future__ import annotations


def backoff_delay(attempt: int, base_delay: float = 0.5, max_delay: float = 5.0) -> float:
    """Delay in seconds before retry number attempt+1. Exponential, capped at max_delay."""
    if base_delay <= 0:
        return 0.0
    return min(max_delay, base_delay * (2 ** max(attempt, 0)))
