"""Histogram bucket helpers."""

from __future__ import annotations

import math
from typing import Iterable

DEF_BUCKETS: tuple[float, ...] = (
    0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
)


def linear_buckets(start: float, width: float, count: int) -> list[float]:
    """Return ``count`` buckets, the lowest at ``start``, each ``width`` apart."""
    if count < 1:
        raise ValueError("LinearBuckets needs a positive count")
    return [start + i * width for i in range(count)]


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return ``count`` buckets, the lowest at ``start``, each ``factor`` times the previous."""
    if count < 1:
        raise ValueError("ExponentialBuckets needs a positive count")
    if start <= 0:
        raise ValueError("ExponentialBuckets needs a positive start value")
    if factor <= 1:
        raise ValueError("ExponentialBuckets needs a factor greater than 1")
    buckets = []
    for _ in range(count):
        buckets.append(start)
        start *= factor
    return buckets


def _pow(base: float, exponent: float) -> float:
    try:
        return math.pow(base, exponent)
    except ValueError:
        return math.nan
    except OverflowError:
        return math.inf


def exponential_buckets_range(min_value: float, max_value: float, count: int) -> list[float]:
    """Return ``count`` exponentially spaced buckets from ``min_value`` to ``max_value``.

    The final +Inf bucket is not included.
    """
    if count < 1:
        raise ValueError("ExponentialBucketsRange count needs a positive count")
    if min_value <= 0:
        raise ValueError("ExponentialBucketsRange min needs to be greater than 0")
    exponent = math.inf if count == 1 else 1.0 / (count - 1)
    growth = _pow(max_value / min_value, exponent)
    return [min_value * _pow(growth, float(i)) for i in range(count)]


def merge_buckets(*args: Iterable[float]) -> list[float]:
    """Concatenate bucket lists, after a leading zero bucket."""
    result = [0.0]
    for buckets in args:
        result.extend(buckets)
    return result