"""
Statistical primitives over numeric sequences.

Pure functions; every one returns a finite float (non-finite intermediate results
collapse to 0.0 so NaN never leaks into feature vectors or quality scores).
"""
from __future__ import annotations

import math
from typing import Iterable, Sequence, Union

import numpy as np

ArrayLike = Union[Sequence[float], np.ndarray, Iterable[float]]


def _as_array(xs: ArrayLike) -> np.ndarray:
    return np.asarray(list(xs) if not isinstance(xs, np.ndarray) else xs, dtype=np.float64).ravel()


def _finite(v: float) -> float:
    v = float(v)
    return v if math.isfinite(v) else 0.0


def mean(xs: ArrayLike) -> float:
    a = _as_array(xs)
    if a.size == 0:
        return 0.0
    return _finite(a.mean())


def robust_mean(xs: ArrayLike) -> float:
    """
    IQR-trimmed mean.

    Quartiles are taken by index on the ascending-sorted data
    (``floor(n*0.25)``, ``floor(n*0.75)``), not interpolated. Values outside
    [Q1 - 1.5·IQR, Q3 + 1.5·IQR] are dropped; if nothing survives the plain mean
    is returned.
    """
    a = _as_array(xs)
    n = a.size
    if n == 0:
        return 0.0
    s = np.sort(a)
    q1 = s[int(math.floor(n * 0.25))]
    q3 = s[int(math.floor(n * 0.75))]
    iqr = q3 - q1
    lo, hi = q1 - 1.5 * iqr, q3 + 1.5 * iqr
    kept = a[(a >= lo) & (a <= hi)]
    if kept.size == 0:
        return mean(a)
    return _finite(kept.mean())


def trend(xs: ArrayLike) -> float:
    """Least-squares slope of value against index 0..n-1."""
    a = _as_array(xs)
    n = a.size
    if n < 2:
        return 0.0
    idx = np.arange(n, dtype=np.float64)
    sum_x = idx.sum()
    sum_y = a.sum()
    sum_xy = float(np.dot(idx, a))
    sum_xx = float(np.dot(idx, idx))
    denom = n * sum_xx - sum_x * sum_x
    if denom == 0:
        return 0.0
    return _finite((n * sum_xy - sum_x * sum_y) / denom)


def volatility(xs: ArrayLike) -> float:
    """Population standard deviation; 0 below two samples."""
    a = _as_array(xs)
    if a.size < 2:
        return 0.0
    return _finite(a.std())


def seasonality(xs: ArrayLike, period: int = 12) -> float:
    """Spread (max - min) of the per-bucket means when bucketing by ``index % period``."""
    a = _as_array(xs)
    if a.size < period:
        return 0.0
    buckets = np.arange(a.size) % period
    means = np.array([a[buckets == b].mean() for b in range(period)])
    return _finite(means.max() - means.min())


def extreme_ratio(xs: ArrayLike) -> float:
    """Fraction of values strictly above mean + 2·std (population std)."""
    a = _as_array(xs)
    if a.size == 0:
        return 0.0
    threshold = a.mean() + 2.0 * a.std()
    return _finite(np.count_nonzero(a > threshold) / a.size)
