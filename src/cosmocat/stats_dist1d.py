"""Empirical one-dimensional distributions built from a stream of draws."""
from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np
from scipy import special, stats

__all__ = ["EmpiricalDist1d"]


class EmpiricalDist1d:
    """Kernel-smoothed empirical PDF/CDF with a bounded memory footprint.

    Observations are kept as weighted points. Whenever more than
    ``max_obs`` points are held, sorted neighbours are merged pairwise into
    their weighted mean, which keeps the total weight and the mean exact.
    :meth:`prepare` evaluates a Gaussian-kernel CDF on a fixed grid of
    ``nodes`` points; the PDF and the inverse CDF are interpolated on it.
    """

    def __init__(self, max_obs: int = 1000, *, sd_min: float = 0.1):
        if max_obs < 2:
            raise ValueError(f"max_obs must be >= 2, got {max_obs}.")
        self.max_obs = int(max_obs)
        self.sd_min = float(sd_min)
        self.reset()

    def reset(self) -> None:
        self._x: List[float] = []
        self._w: List[float] = []
        self.n_obs = 0
        self._wsum = 0.0
        self._wx = 0.0
        self._wx2 = 0.0
        self._min = np.inf
        self._max = -np.inf
        self._grid: Optional[np.ndarray] = None
        self._cdf: Optional[np.ndarray] = None
        self._pdf: Optional[np.ndarray] = None

    def add_obs(self, x: float, w: float = 1.0) -> None:
        x = float(x)
        w = float(w)
        if not np.isfinite(x) or w <= 0.0:
            return
        self._x.append(x)
        self._w.append(w)
        self.n_obs += 1
        self._wsum += w
        self._wx += w * x
        self._wx2 += w * x * x
        self._min = min(self._min, x)
        self._max = max(self._max, x)
        self._grid = None
        if len(self._x) > self.max_obs:
            self._compress()

    def _compress(self) -> None:
        order = np.argsort(self._x)
        x = np.asarray(self._x)[order]
        w = np.asarray(self._w)[order]
        m = x.shape[0] // 2
        xa, xb = x[: 2 * m : 2], x[1 : 2 * m : 2]
        wa, wb = w[: 2 * m : 2], w[1 : 2 * m : 2]
        wm = wa + wb
        xm = (wa * xa + wb * xb) / wm
        if x.shape[0] % 2:
            xm = np.append(xm, x[-1])
            wm = np.append(wm, w[-1])
        self._x = xm.tolist()
        self._w = wm.tolist()

    # ---- moments ----
    @property
    def mean(self) -> float:
        if self._wsum == 0.0:
            return float("nan")
        return self._wx / self._wsum

    @property
    def sd(self) -> float:
        if self._wsum == 0.0:
            return float("nan")
        var = self._wx2 / self._wsum - self.mean ** 2
        return float(np.sqrt(max(var, 0.0)))

    @property
    def xi(self) -> float:
        self._ensure_prepared()
        return float(self._grid[0])  # type: ignore[index]

    @property
    def xf(self) -> float:
        self._ensure_prepared()
        return float(self._grid[-1])  # type: ignore[index]

    # ---- smoothing ----
    def _kde(self, x: np.ndarray, w: np.ndarray) -> Tuple[Optional[stats.gaussian_kde], float]:
        """Weighted Gaussian KDE with Silverman's bandwidth and its kernel width.

        The width is floored at a fraction of the mean point spacing. A
        sample with a single distinct value gets no KDE and a tiny width.
        """
        span = float(np.ptp(x))
        if x.shape[0] < 2 or span <= 0.0:
            return None, abs(self.mean) * 1e-8 or 1e-8
        kde = stats.gaussian_kde(x, bw_method="silverman", weights=w)
        h = float(np.sqrt(kde.covariance[0, 0]))
        h_min = self.sd_min * span / x.shape[0]
        if h < h_min:
            kde.set_bandwidth(kde.factor * h_min / h)
            h = h_min
        return kde, h

    def prepare(self, nodes: int = 1000) -> None:
        """Tabulate the smoothed CDF/PDF on ``nodes`` grid points."""
        if self.n_obs == 0:
            raise RuntimeError("EmpiricalDist1d.prepare called without observations.")
        nodes = max(int(nodes), 10)
        x = np.asarray(self._x)
        w = np.asarray(self._w) / self._wsum
        kde, h = self._kde(x, w)
        grid = np.linspace(self._min - 5.0 * h, self._max + 5.0 * h, nodes)
        if kde is not None:
            pdf = kde(grid)
        else:
            u = (grid - x[0]) / h
            pdf = np.exp(-0.5 * u * u) / (h * np.sqrt(2.0 * np.pi))
        cdf = np.zeros(nodes)
        for start in range(0, x.shape[0], 256):
            u = (grid[:, None] - x[None, start : start + 256]) / h
            cdf += special.ndtr(u) @ w[start : start + 256]
        cdf = np.maximum.accumulate(np.clip(cdf, 0.0, 1.0))
        self._grid, self._cdf, self._pdf = grid, cdf, pdf

    def _ensure_prepared(self) -> None:
        if self._grid is None:
            self.prepare()

    def eval_pdf(self, x: float) -> float:
        self._ensure_prepared()
        return float(np.interp(x, self._grid, self._pdf, left=0.0, right=0.0))  # type: ignore[arg-type]

    def eval_cdf(self, x: float) -> float:
        self._ensure_prepared()
        return float(np.interp(x, self._grid, self._cdf, left=0.0, right=1.0))  # type: ignore[arg-type]

    def eval_inv_cdf(self, u: float) -> float:
        """Quantile function; ``u`` is clipped to ``[0, 1]``."""
        self._ensure_prepared()
        u = min(max(float(u), 0.0), 1.0)
        cdf = self._cdf
        grid = self._grid
        # Drop flat stretches so the inverse is single valued.
        keep = np.concatenate(([True], np.diff(cdf) > 0.0))  # type: ignore[arg-type]
        return float(np.interp(u, cdf[keep], grid[keep]))  # type: ignore[index]
