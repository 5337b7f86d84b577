"""Exponential reconnect backoff."""

from __future__ import annotations


def compute_backoff(retry_count: int, initial_ms: float, max_ms: float) -> float:
    """Delay in milliseconds before the ``retry_count``-th reconnect (1-based).

    Doubles from ``initial_ms`` and is clamped to ``max_ms``.
    """
    if retry_count < 1:
        raise ValueError(f"retry_count must be >= 1, got {retry_count}")
    # 2**64 ms already exceeds any usable max_ms
    exponent = min(retry_count - 1, 64)
    return min(initial_ms * 2**exponent, max_ms)
