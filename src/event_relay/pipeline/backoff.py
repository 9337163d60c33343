"""Exponential backoff for idle polling."""

from __future__ import annotations


class Backoff:
    """Growing delay between consecutive empty polls.

    ``next()`` returns ``min(max_delay, min_delay * factor**n)`` for the n-th
    consecutive call since the last ``reset()``. No jitter.
    """

    def __init__(
        self,
        min_delay: float = 1.0,
        max_delay: float = 5.0,
        factor: float = 2.0,
    ) -> None:
        if min_delay <= 0 or max_delay < min_delay:
            msg = f"Invalid backoff bounds: min={min_delay} max={max_delay}"
            raise ValueError(msg)
        if factor < 1:
            msg = f"Backoff factor must be >= 1, got {factor}"
            raise ValueError(msg)
        self._min = min_delay
        self._max = max_delay
        self._factor = factor
        self._attempt = 0

    def next(self) -> float:
        delay = self._min * self._factor**self._attempt
        if delay >= self._max:
            # attempt stays put once capped so the exponent cannot overflow
            return self._max
        self._attempt += 1
        return delay

    def reset(self) -> None:
        self._attempt = 0
