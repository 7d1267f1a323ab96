"""Split a frontier into contiguous chunks, one per worker."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def partition(items: Sequence[T], workers: int) -> list[list[T]]:
    """Split *items* into at most *workers* chunks of ``ceil(N / W)`` items.

    Chunks keep input order, so concatenating them gives back *items*.
    Fewer chunks than workers are returned when there are not enough items.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if not items:
        return []
    size = math.ceil(len(items) / workers)
    return [list(items[start : start + size]) for start in range(0, len(items), size)]
