"""Streaming statistics over fixed-length vectors."""
from __future__ import annotations

from typing import Iterable, List, Literal, Optional

import numpy as np

__all__ = ["StatsVec", "autocorrelation", "autocorr_tau_from_rho"]

StatsMode = Literal["mean", "var", "cov"]

# Window constant for the self-consistent autocorrelation cutoff.
AUTOCORR_WINDOW_C = 5.0


def autocorrelation(series: np.ndarray) -> np.ndarray:
    """Normalised autocorrelation function of a 1D series (FFT based).

    Returns ``rho`` with ``rho[0] == 1``. A constant series gives
    ``rho = [1, 0, 0, ...]``.
    """
    x = np.asarray(series, dtype=float)
    n = x.shape[0]
    if n == 0:
        return np.zeros(0)
    x = x - np.mean(x)
    nfft = 1 << int(np.ceil(np.log2(2 * n)))
    fx = np.fft.rfft(x, nfft)
    acf = np.fft.irfft(fx * np.conj(fx), nfft)[:n]
    if acf[0] <= 0.0:
        rho = np.zeros(n)
        rho[0] = 1.0
        return rho
    return acf / acf[0]


def autocorr_tau_from_rho(
    rho: np.ndarray, max_lag: int = 0, c: float = AUTOCORR_WINDOW_C
) -> float:
    """Integrated autocorrelation time with the self-consistent window.

    ``tau(M) = 1 + 2 sum_{t=1}^{M} rho(t)``; the sum stops at the first
    ``M`` with ``M >= c tau(M)``. ``max_lag = 0`` means no extra bound.
    """
    rho = np.asarray(rho, dtype=float)
    n = rho.shape[0]
    if max_lag <= 0 or max_lag > n:
        max_lag = n
    if max_lag < 2:
        return 1.0
    taus = 1.0 + 2.0 * np.cumsum(rho[1:max_lag])
    lags = np.arange(1, max_lag)
    stop = lags >= c * taus
    if np.any(stop):
        return float(taus[int(np.argmax(stop))])
    return float(taus[-1])


class StatsVec:
    """Online (Welford) mean, variance and covariance of vectors.

    Parameters
    ----------
    length : int
        Vector length.
    mode : {"mean", "var", "cov"}
        Which moments to track. ``"cov"`` also tracks the cross products.
    save_x : bool
        Retain every row added, enabling autocorrelation estimates,
        ``peek_row`` and recomputation through :meth:`reset_stats`.

    Notes
    -----
    Weighted updates follow the weighted incremental algorithm (West 1979);
    variances are debiased with ``bias_wt = W^2 / (W^2 - sum w^2)``, which
    reduces to ``n / (n - 1)`` for unit weights.
    """

    def __init__(self, length: int, *, mode: StatsMode = "cov", save_x: bool = False):
        if length < 1:
            raise ValueError(f"StatsVec length must be positive, got {length}.")
        if mode not in ("mean", "var", "cov"):
            raise ValueError(f"Unknown StatsVec mode {mode!r}.")
        self.length = int(length)
        self.mode = mode
        self.save_x = bool(save_x)
        self.x = np.zeros(self.length)
        self._rows: List[np.ndarray] = []
        self._row_w: List[float] = []
        self.reset(True)

    # ---- state ----
    def reset(self, clear_all: bool = False) -> None:
        """Zero the running statistics; with ``clear_all`` drop saved rows too."""
        self.nitens = 0
        self.weight = 0.0
        self.weight2 = 0.0
        self._mean = np.zeros(self.length)
        self._m2 = np.zeros(self.length)
        self._c = np.zeros((self.length, self.length)) if self.mode == "cov" else None
        if clear_all:
            self._rows = []
            self._row_w = []

    def reset_stats(self) -> None:
        """Recompute the statistics from the saved rows."""
        if not self.save_x:
            raise RuntimeError("StatsVec.reset_stats requires save_x=True.")
        self.reset(False)
        for row, w in zip(self._rows, self._row_w):
            self._update_stats(row, w)

    @property
    def nrows(self) -> int:
        return len(self._rows)

    @property
    def bias_wt(self) -> float:
        den = self.weight * self.weight - self.weight2
        if den <= 0.0:
            return float("inf")
        return self.weight * self.weight / den

    # ---- working vector ----
    def set(self, i: int, value: float) -> None:
        self.x[i] = value

    def get(self, i: int) -> float:
        return float(self.x[i])

    def update(self) -> None:
        """Add the working vector ``x`` with unit weight."""
        self.update_weight(1.0)

    def update_weight(self, w: float) -> None:
        """Add the working vector ``x`` with weight ``w``."""
        self.append(self.x, w)

    # ---- row insertion ----
    def _update_stats(self, x: np.ndarray, w: float) -> None:
        w = float(w)
        if w == 0.0:
            self.nitens += 1
            return
        wtot = self.weight + w
        delta = x - self._mean
        self._mean += delta * (w / wtot)
        if self.mode != "mean":
            self._m2 += w * delta * (x - self._mean)
        if self._c is not None:
            self._c += (w * self.weight / wtot) * np.outer(delta, delta)
        self.weight = wtot
        self.weight2 += w * w
        self.nitens += 1

    def append(self, x: Iterable[float], w: float = 1.0) -> None:
        """Add one row at the end of the retained buffer."""
        row = np.array(x, dtype=float)
        if row.shape != (self.length,):
            raise ValueError(
                f"Row of shape {row.shape} does not match StatsVec length {self.length}."
            )
        self._update_stats(row, w)
        if self.save_x:
            self._rows.append(row)
            self._row_w.append(float(w))

    def prepend(self, x: Iterable[float], w: float = 1.0) -> None:
        """Add one row at the beginning of the retained buffer."""
        row = np.array(x, dtype=float)
        if row.shape != (self.length,):
            raise ValueError(
                f"Row of shape {row.shape} does not match StatsVec length {self.length}."
            )
        self._update_stats(row, w)
        if self.save_x:
            self._rows.insert(0, row)
            self._row_w.insert(0, float(w))

    def append_data(self, rows: Iterable[Iterable[float]], weights: Optional[Iterable[float]] = None) -> None:
        rows = [np.asarray(r, dtype=float) for r in rows]
        ws = [1.0] * len(rows) if weights is None else [float(w) for w in weights]
        for row, w in zip(rows, ws):
            self.append(row, w)

    def prepend_data(self, rows: Iterable[Iterable[float]], weights: Optional[Iterable[float]] = None) -> None:
        """Prepend a block of rows keeping their relative order."""
        rows = [np.asarray(r, dtype=float) for r in rows]
        ws = [1.0] * len(rows) if weights is None else [float(w) for w in weights]
        for row, w in zip(reversed(rows), reversed(ws)):
            self.prepend(row, w)

    def peek_row(self, i: int) -> np.ndarray:
        """Read-only view of saved row ``i``."""
        if not self.save_x:
            raise RuntimeError("StatsVec.peek_row requires save_x=True.")
        view = self._rows[i].view()
        view.flags.writeable = False
        return view

    def peek_row_weight(self, i: int) -> float:
        return self._row_w[i]

    def rows_array(self, start: int = 0) -> np.ndarray:
        """Saved rows ``start:`` stacked as a ``(n, length)`` array."""
        if not self.save_x:
            raise RuntimeError("StatsVec.rows_array requires save_x=True.")
        if start >= len(self._rows):
            return np.zeros((0, self.length))
        return np.vstack(self._rows[start:])

    # ---- estimates ----
    def get_mean(self, i: int) -> float:
        return float(self._mean[i])

    def get_mean_vector(self) -> np.ndarray:
        return self._mean.copy()

    def get_var(self, i: int) -> float:
        if self.mode == "mean":
            raise RuntimeError("StatsVec in 'mean' mode does not track variances.")
        if self.weight == 0.0:
            return float("nan")
        b = self.bias_wt
        if not np.isfinite(b):
            return float("nan")
        return float(self._m2[i] / self.weight * b)

    def get_sd(self, i: int) -> float:
        return float(np.sqrt(self.get_var(i)))

    def get_var_vector(self) -> np.ndarray:
        return np.array([self.get_var(i) for i in range(self.length)])

    def get_sd_vector(self) -> np.ndarray:
        return np.sqrt(self.get_var_vector())

    def get_cov(self, i: int, j: int) -> float:
        return float(self.get_cov_matrix()[i, j])

    def get_cov_matrix(self, offset: int = 0) -> np.ndarray:
        """Debiased covariance of the components ``offset:``."""
        if self._c is None:
            raise RuntimeError("StatsVec covariance requires mode='cov'.")
        b = self.bias_wt
        if self.weight == 0.0 or not np.isfinite(b):
            n = self.length - offset
            return np.full((n, n), np.nan)
        return self._c[offset:, offset:] / self.weight * b

    def get_cor_matrix(self, offset: int = 0) -> np.ndarray:
        cov = self.get_cov_matrix(offset)
        sd = np.sqrt(np.diag(cov))
        return cov / np.outer(sd, sd)

    # ---- autocorrelation ----
    def _series(self, i: int) -> np.ndarray:
        if not self.save_x:
            raise RuntimeError("Autocorrelation estimates require save_x=True.")
        return np.array([row[i] for row in self._rows], dtype=float)

    def get_autocorr(self, i: int) -> np.ndarray:
        return autocorrelation(self._series(i))

    def get_autocorr_tau(self, i: int, max_lag: int = 0) -> float:
        """Integrated autocorrelation time of component ``i``."""
        series = self._series(i)
        if series.shape[0] < 2:
            return 1.0
        return autocorr_tau_from_rho(autocorrelation(series), max_lag)

    def get_subsample_autocorr_tau(self, i: int, subsample: int, max_lag: int = 0) -> float:
        """Autocorrelation time for ``subsample`` interleaved chains.

        Row ``k`` belongs to chain ``k % subsample``; the chains are cut to a
        common length and their autocorrelation functions averaged before
        applying the window.
        """
        if subsample < 1:
            raise ValueError("subsample must be >= 1.")
        series = self._series(i)
        size = series.shape[0] // subsample
        if size < 2:
            return 1.0
        chains = series[: size * subsample].reshape(size, subsample).T
        rho = np.mean([autocorrelation(c) for c in chains], axis=0)
        return autocorr_tau_from_rho(rho, max_lag)
