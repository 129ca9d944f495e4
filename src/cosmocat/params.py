from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

try:
    import uncertainties
    from uncertainties import unumpy as unp
except Exception:  # pragma: no cover - optional at import time
    uncertainties = None
    unp = None


__all__ = [
    "ParameterSpec",
    "ParamView",
    "ParamsView",
]


@dataclass(frozen=True)
class ParameterSpec:
    """Static description of one model parameter."""

    name: str
    symbol: str = ""
    default: float = 0.0
    fixed: bool = False
    bounds: Optional[Tuple[Optional[float], Optional[float]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "default": self.default,
            "fixed": self.fixed,
            "bounds": None if self.bounds is None else list(self.bounds),
        }

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "ParameterSpec":
        b = d.get("bounds")
        return ParameterSpec(
            name=str(d["name"]),
            symbol=str(d.get("symbol", "")),
            default=float(d.get("default", 0.0)),
            fixed=bool(d.get("fixed", False)),
            bounds=None if b is None else (b[0], b[1]),
        )


@dataclass
class _UncContext:
    """Lazily built correlated ``uncertainties`` values for a mean/cov pair."""

    names: Tuple[str, ...]
    mean: np.ndarray
    cov: Optional[np.ndarray]
    _cache: Optional[Dict[str, Any]] = field(default=None, init=False, repr=False)

    def _build(self) -> None:
        if self._cache is not None or uncertainties is None or self.cov is None:
            return
        cov = np.asarray(self.cov, dtype=float)
        if cov.shape != (len(self.names), len(self.names)):
            return
        if not np.all(np.isfinite(cov)):
            return
        try:
            corr = uncertainties.correlated_values([float(v) for v in self.mean], cov)
        except Exception:
            return
        self._cache = dict(zip(self.names, corr))

    def u_for(self, name: str) -> Optional[Any]:
        self._build()
        if self._cache is None:
            return None
        return self._cache.get(name)


@dataclass(frozen=True)
class ParamView:
    """Summary of one sampled quantity: mean and standard deviation."""

    name: str
    value: float
    stderr: Optional[float] = None
    symbol: str = ""
    _context: Optional[_UncContext] = field(default=None, repr=False, compare=False)

    @property
    def u(self):
        """Return an uncertainties ufloat, correlated with its siblings when possible."""
        if self.stderr is None or not np.isfinite(self.stderr):
            raise ValueError(f"No finite stderr available for {self.name!r}.")
        if unp is None:
            raise RuntimeError("uncertainties package is not available.")
        if self._context is not None:
            correlated = self._context.u_for(self.name)
            if correlated is not None:
                return correlated
        return uncertainties.ufloat(self.value, self.stderr)

    def __getitem__(self, key: str) -> Any:
        if key == "value":
            return self.value
        if key in ("error", "stderr"):
            return self.stderr
        if key == "symbol":
            return self.symbol
        raise KeyError(key)


class ParamsView(Mapping[str, ParamView]):
    """Mapping name -> ParamView, indexable by name or position."""

    def __init__(
        self,
        names: Sequence[str],
        mean: np.ndarray,
        cov: Optional[np.ndarray] = None,
        symbols: Optional[Sequence[str]] = None,
    ):
        names = tuple(names)
        mean = np.asarray(mean, dtype=float)
        if mean.shape != (len(names),):
            raise ValueError("ParamsView: mean length does not match names.")
        sd = None if cov is None else np.sqrt(np.diag(np.asarray(cov, dtype=float)))
        symbols = tuple(symbols) if symbols is not None else ("",) * len(names)
        ctx = _UncContext(names=names, mean=mean, cov=cov)
        self._names = names
        self._items = {
            n: ParamView(
                name=n,
                value=float(mean[i]),
                stderr=None if sd is None else float(sd[i]),
                symbol=symbols[i],
                _context=ctx,
            )
            for i, n in enumerate(names)
        }
        self.cov = None if cov is None else np.asarray(cov, dtype=float)

    def __getitem__(self, key):  # type: ignore[override]
        if isinstance(key, str):
            return self._items[key]
        if isinstance(key, int):
            return self._items[self._names[key]]
        raise KeyError(key)

    def __iter__(self):
        return iter(self._items)

    def __len__(self):
        return len(self._items)

    def as_dict(self) -> Dict[str, float]:
        """Return name->value (extracting .value)."""
        return {k: v.value for k, v in self._items.items()}
