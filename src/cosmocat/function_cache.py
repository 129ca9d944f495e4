"""Ordered memo of monotone integrals and the quadratures built on it.

A :class:`FunctionCache` stores ``(x, F(x))`` pairs sorted by ``x``. The
stored ``F`` is either a cumulative integral from a fixed origin or a tail
integral to infinity; in both cases additivity lets a new evaluation
integrate only the gap between ``x`` and the nearest cached point.
"""
from __future__ import annotations

from bisect import bisect_left, bisect_right
from typing import Callable, List, Optional, Tuple

import numpy as np
from scipy import integrate

from .constants import INTEGRAL_ABS_ERROR, INTEGRAL_ERROR

Integrand = Callable[[float], float]

__all__ = [
    "FunctionCache",
    "integrate_a_b",
    "integrate_a_inf",
]


def integrate_a_b(
    f: Integrand,
    a: float,
    b: float,
    *,
    abstol: float = 0.0,
    reltol: float = INTEGRAL_ERROR,
) -> float:
    """Adaptive quadrature of ``f`` over ``[a, b]``."""
    if a == b:
        return 0.0
    val, _err = integrate.quad(f, a, b, epsabs=abstol, epsrel=reltol, limit=200)
    return float(val)


def integrate_a_inf(
    f: Integrand,
    a: float,
    *,
    abstol: float = INTEGRAL_ABS_ERROR,
    reltol: float = INTEGRAL_ERROR,
) -> float:
    """Adaptive quadrature of ``f`` over ``[a, inf)``."""
    val, _err = integrate.quad(f, a, np.inf, epsabs=abstol, epsrel=reltol, limit=200)
    return float(val)


class FunctionCache:
    """Sorted ``(x, value)`` store with nearest-neighbour lookups.

    Lookups are O(log n) and O(1) when the query lies past the last entry,
    which is the usual pattern of evaluating at increasing redshifts.
    ``clear()`` only raises a flag; the entries are dropped on next use.
    """

    def __init__(
        self,
        *,
        abstol: float = INTEGRAL_ABS_ERROR,
        reltol: float = INTEGRAL_ERROR,
    ):
        self.abstol = float(abstol)
        self.reltol = float(reltol)
        self._x: List[float] = []
        self._y: List[float] = []
        self._cleared = False
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        self._flush_clear()
        return len(self._x)

    def __repr__(self) -> str:
        return f"FunctionCache(len={len(self)}, hits={self.hits}, misses={self.misses})"

    def _flush_clear(self) -> None:
        if self._cleared:
            del self._x[:]
            del self._y[:]
            self._cleared = False

    def clear(self) -> None:
        """Forget every entry (soft clear)."""
        self._cleared = True

    def insert(self, x: float, y: float) -> None:
        """Store ``(x, y)``, replacing any entry at the same ``x``."""
        self._flush_clear()
        x = float(x)
        y = float(y)
        if not self._x or x > self._x[-1]:
            self._x.append(x)
            self._y.append(y)
            return
        i = bisect_left(self._x, x)
        if i < len(self._x) and self._x[i] == x:
            self._y[i] = y
        else:
            self._x.insert(i, x)
            self._y.insert(i, y)

    def lookup_nearest_leq(self, x: float) -> Optional[Tuple[float, float]]:
        """Greatest cached ``(x_i, y_i)`` with ``x_i <= x``, or None."""
        self._flush_clear()
        if not self._x or x < self._x[0]:
            return None
        if x >= self._x[-1]:
            return self._x[-1], self._y[-1]
        i = bisect_right(self._x, x) - 1
        return self._x[i], self._y[i]

    def lookup_nearest_geq(self, x: float) -> Optional[Tuple[float, float]]:
        """Smallest cached ``(x_i, y_i)`` with ``x_i >= x``, or None."""
        self._flush_clear()
        if not self._x or x > self._x[-1]:
            return None
        i = bisect_left(self._x, x)
        return self._x[i], self._y[i]

    # ---- cached quadratures ----
    def integrate_0_x(self, f: Integrand, x: float) -> float:
        """``∫_0^x f``, reusing the closest cached point below ``x``."""
        start, acc = 0.0, 0.0
        hit = self.lookup_nearest_leq(x)
        if hit is not None and hit[0] >= 0.0:
            start, acc = hit
            self.hits += 1
            if start == x:
                return acc
        else:
            self.misses += 1
        val = acc + integrate_a_b(f, start, x, abstol=0.0, reltol=self.reltol)
        if np.isfinite(val):
            self.insert(x, val)
        return val

    def integrate_x_inf(self, f: Integrand, x: float) -> float:
        """``∫_x^∞ f``, reusing the closest cached point above ``x``."""
        hit = self.lookup_nearest_geq(x)
        if hit is not None:
            xi, acc = hit
            self.hits += 1
            if xi == x:
                return acc
            val = acc + integrate_a_b(f, x, xi, abstol=0.0, reltol=self.reltol)
        else:
            self.misses += 1
            val = integrate_a_inf(f, x, abstol=self.abstol, reltol=self.reltol)
        if np.isfinite(val):
            self.insert(x, val)
        return val
