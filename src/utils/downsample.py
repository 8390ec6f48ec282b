"""Uniform-stride downsampling of ordered series for chart display."""

import math
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

DEFAULT_MAX_POINTS = 500


def downsample(items: Sequence[T], max_points: int = DEFAULT_MAX_POINTS) -> list[T]:
    """Reduce an ordered series to roughly ``max_points`` elements.

    Indices are taken at a fractional stride of ``len(items) / max_points``
    and floored. The final element is always kept, so the result holds
    at most ``max_points + 1`` elements with the first and last of the
    input preserved.

    Args:
        items: Ordered sequence to reduce.
        max_points: Target point count.

    Returns:
        New list; a plain copy when the input already fits.

    Raises:
        ValueError: If ``max_points`` is less than 1.
    """
    if max_points < 1:
        raise ValueError(f"max_points must be at least 1, got {max_points}")

    total = len(items)
    if total <= max_points:
        return list(items)

    step = total / max_points
    indices: list[int] = []
    k = 0
    while k * step < total:
        indices.append(math.floor(k * step))
        k += 1

    if indices[-1] != total - 1:
        indices.append(total - 1)

    return [items[i] for i in indices]
