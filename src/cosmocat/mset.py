"""Models, parameter sets and functions of a parameter set.

An :class:`MSet` composes models keyed by model id and exposes the flat
vector of *free* parameters that samplers move around. Free parameters
are addressed either by their position in that vector or by a stable
``(model id, parameter index)`` pair (:class:`PIndex`).
"""
from __future__ import annotations

import copy
import json
from dataclasses import dataclass, replace
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .params import ParameterSpec

__all__ = [
    "Model",
    "PIndex",
    "MSet",
    "MSetFunc",
    "register_model",
    "get_model_type",
]


_MODEL_TYPES: Dict[str, type] = {}


def register_model(cls: type) -> type:
    """Class decorator making a model type restorable by name."""
    _MODEL_TYPES[cls.__name__] = cls
    return cls


def get_model_type(name: str) -> type:
    """Return a registered model class by name."""
    try:
        return _MODEL_TYPES[name]
    except KeyError as e:
        raise ValueError(
            f"Unknown model type {name!r}. Available: {tuple(_MODEL_TYPES.keys())}"
        ) from e


@register_model
class Model:
    """A named vector of parameters with a generation counter.

    ``pkey`` increases on every parameter change; consumers caching
    derived quantities compare it against the value they last saw.
    """

    MID: ClassVar[str] = "Model"
    PARAMS: ClassVar[Tuple[ParameterSpec, ...]] = ()

    def __init__(
        self,
        params: Optional[Sequence[ParameterSpec]] = None,
        *,
        mid: Optional[str] = None,
        **values: float,
    ):
        specs = tuple(params) if params is not None else tuple(self.PARAMS)
        names = [p.name for p in specs]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate parameter names in {names}.")
        self.mid = mid or self.MID
        self.params = specs
        self._values = np.array([p.default for p in specs], dtype=float)
        self.pkey = 0
        for k, v in values.items():
            self[k] = v

    def __repr__(self) -> str:
        body = ", ".join(f"{p.name}={v:g}" for p, v in zip(self.params, self._values))
        return f"{type(self).__name__}[{self.mid}]({body})"

    # ---- access ----
    @property
    def param_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.params)

    def __len__(self) -> int:
        return len(self.params)

    def param_index(self, name: str) -> int:
        for i, p in enumerate(self.params):
            if p.name == name:
                return i
        raise KeyError(f"Model {self.mid!r} has no parameter {name!r}.")

    def get(self, i: int) -> float:
        return float(self._values[i])

    def set(self, i: int, value: float) -> None:
        self._values[i] = float(value)
        self.pkey += 1

    def __getitem__(self, name: str) -> float:
        return self.get(self.param_index(name))

    def __setitem__(self, name: str, value: float) -> None:
        self.set(self.param_index(name), value)

    def get_vector(self) -> np.ndarray:
        return self._values.copy()

    def set_vector(self, v: Sequence[float]) -> None:
        v = np.asarray(v, dtype=float)
        if v.shape != self._values.shape:
            raise ValueError(
                f"Model {self.mid!r} expects {self._values.shape[0]} values, got {v.shape}."
            )
        self._values[:] = v
        self.pkey += 1

    # ---- builders (pure; return new model) ----
    def _with_specs(self, specs: Sequence[ParameterSpec]) -> "Model":
        out = copy.copy(self)
        out.params = tuple(specs)
        out._values = self._values.copy()
        return out

    def fix(self, *names: str, **fixed: float) -> "Model":
        """Return a new Model with parameters fixed (optionally at new values)."""
        m = {p.name: p for p in self.params}
        for k in list(names) + list(fixed):
            if k not in m:
                raise KeyError(k)
            m[k] = replace(m[k], fixed=True)
        out = self._with_specs([m[n] for n in self.param_names])
        for k, v in fixed.items():
            out[k] = v
        return out

    def free(self, *names: str) -> "Model":
        """Return a new Model with the named parameters free."""
        m = {p.name: p for p in self.params}
        for k in names:
            if k not in m:
                raise KeyError(k)
            m[k] = replace(m[k], fixed=False)
        return self._with_specs([m[n] for n in self.param_names])

    # ---- serialization ----
    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "mid": self.mid,
            "params": [p.to_dict() for p in self.params],
            "values": self._values.tolist(),
        }

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "Model":
        cls = get_model_type(str(d["type"]))
        specs = [ParameterSpec.from_dict(p) for p in d["params"]]
        model = cls(params=specs, mid=str(d["mid"]))
        model.set_vector(d["values"])
        return model


@dataclass(frozen=True)
class PIndex:
    """Stable address of a parameter: model id plus parameter index."""

    mid: str
    pid: int


class MSet:
    """Ordered collection of models keyed by model id."""

    def __init__(self, *models: Model):
        self._models: Dict[str, Model] = {}
        self._fmap: Optional[List[PIndex]] = None
        for m in models:
            self.push(m)

    def __repr__(self) -> str:
        return f"MSet({', '.join(repr(m) for m in self._models.values())})"

    # ---- models ----
    def push(self, model: Model) -> None:
        """Add a model; its id must not be taken yet."""
        if model.mid in self._models:
            raise ValueError(f"MSet already holds a model with id {model.mid!r}.")
        self._models[model.mid] = model
        self._fmap = None

    def set(self, model: Model) -> None:
        """Add or replace the model with the same id."""
        self._models[model.mid] = model
        self._fmap = None

    def peek(self, mid: str) -> Model:
        try:
            return self._models[mid]
        except KeyError as e:
            raise KeyError(
                f"MSet has no model {mid!r}. Available: {tuple(self._models)}"
            ) from e

    def __getitem__(self, mid: str) -> Model:
        return self.peek(mid)

    def __contains__(self, mid: str) -> bool:
        return mid in self._models

    @property
    def models(self) -> Tuple[Model, ...]:
        return tuple(self._models.values())

    def total_len(self) -> int:
        return sum(len(m) for m in self._models.values())

    # ---- free parameters ----
    def prepare_fparam_map(self) -> None:
        """Rebuild the free-parameter map after models were fixed/freed."""
        fmap: List[PIndex] = []
        for m in self._models.values():
            for pid, p in enumerate(m.params):
                if not p.fixed:
                    fmap.append(PIndex(m.mid, pid))
        self._fmap = fmap

    def _free(self) -> List[PIndex]:
        if self._fmap is None:
            self.prepare_fparam_map()
        return self._fmap  # type: ignore[return-value]

    def free_parameter_count(self) -> int:
        return len(self._free())

    def fparam_get_pi(self, i: int) -> PIndex:
        return self._free()[i]

    def fparam_get_fpi(self, mid: str, pid: int) -> int:
        """Position of ``(mid, pid)`` in the free vector, or -1 if not free."""
        try:
            return self._free().index(PIndex(mid, pid))
        except ValueError:
            return -1

    def get_free_parameter_vector(self) -> np.ndarray:
        return np.array([self._models[pi.mid].get(pi.pid) for pi in self._free()])

    def set_free_parameter_vector(self, v: Sequence[float]) -> None:
        v = np.asarray(v, dtype=float)
        fmap = self._free()
        if v.shape != (len(fmap),):
            raise ValueError(
                f"Free parameter vector must have length {len(fmap)}, got shape {v.shape}."
            )
        touched = set()
        for pi, val in zip(fmap, v):
            m = self._models[pi.mid]
            m._values[pi.pid] = float(val)
            touched.add(pi.mid)
        for mid in touched:
            self._models[mid].pkey += 1

    def free_parameter_name(self, i: int) -> str:
        pi = self._free()[i]
        return self._models[pi.mid].params[pi.pid].name

    def free_parameter_full_name(self, i: int) -> str:
        pi = self._free()[i]
        return f"{pi.mid}:{self._models[pi.mid].params[pi.pid].name}"

    def free_parameter_symbol(self, i: int) -> str:
        pi = self._free()[i]
        spec = self._models[pi.mid].params[pi.pid]
        return spec.symbol or spec.name

    def free_parameter_full_names(self) -> Tuple[str, ...]:
        return tuple(self.free_parameter_full_name(i) for i in range(self.free_parameter_count()))

    def param_get(self, mid: str, pid: int) -> float:
        return self.peek(mid).get(pid)

    def param_set(self, mid: str, pid: int, value: float) -> None:
        self.peek(mid).set(pid, value)

    # ---- serialization ----
    def to_dict(self) -> Dict[str, Any]:
        return {"models": [m.to_dict() for m in self._models.values()]}

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "MSet":
        return MSet(*[Model.from_dict(md) for md in d["models"]])

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @staticmethod
    def from_json(s: str) -> "MSet":
        return MSet.from_dict(json.loads(s))

    def dup(self) -> "MSet":
        return MSet.from_dict(self.to_dict())


@dataclass(frozen=True)
class MSetFunc:
    """A vector-valued function of a parameter set (and optional arguments).

    ``func(mset, x)`` must return ``dim`` values; ``nvar`` is the number of
    extra arguments it reads from ``x``.
    """

    func: Callable[["MSet", np.ndarray], Any]
    dim: int = 1
    nvar: int = 0
    name: str = ""

    def eval(self, mset: MSet, x: Optional[Sequence[float]] = None) -> np.ndarray:
        xa = np.zeros(0) if x is None else np.atleast_1d(np.asarray(x, dtype=float))
        if xa.shape[0] != self.nvar:
            raise ValueError(
                f"MSetFunc {self.name!r} takes {self.nvar} arguments, got {xa.shape[0]}."
            )
        out = np.atleast_1d(np.asarray(self.func(mset, xa), dtype=float))
        if out.shape != (self.dim,):
            raise ValueError(
                f"MSetFunc {self.name!r} returned shape {out.shape}, expected ({self.dim},)."
            )
        return out

    def eval0(self, mset: MSet) -> float:
        return float(self.eval(mset)[0])

    def eval1(self, mset: MSet, x: float) -> float:
        return float(self.eval(mset, [x])[0])

    def eval_vector(self, mset: MSet, x_v: Optional[Sequence[float]] = None) -> np.ndarray:
        """Evaluate at every argument in ``x_v`` (one per call for ``nvar == 1``).

        Returns a flat vector of length ``dim * len(x_v)``, or ``dim`` when
        ``x_v`` is None.
        """
        if x_v is None:
            return self.eval(mset)
        xs = np.asarray(x_v, dtype=float).reshape(-1, max(self.nvar, 1))
        return np.concatenate([self.eval(mset, x) for x in xs])

    def out_len(self, x_v: Optional[Sequence[float]] = None) -> int:
        if x_v is None:
            return self.dim
        return self.dim * (len(np.asarray(x_v).ravel()) // max(self.nvar, 1))
