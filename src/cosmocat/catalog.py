"""Sampling catalog: an append-only log of parameter-set samples.

Each row holds ``nadd_vals`` additional values (log-likelihood, weight, ...)
followed by the free parameters of an :class:`~cosmocat.mset.MSet`. Rows are
identified by a contiguous integer range ``[first_id, cur_id]`` and are kept
in sync with an on-disk table (:class:`~cosmocat.catalog_file.CatalogFile`)
whose own range is ``[file_first_id, file_cur_id]``.
"""
from __future__ import annotations

import enum
import json
import os
import time
import warnings
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

import numpy as np
from scipy import linalg

from .catalog_file import CatalogFile
from .mset import MSet, MSetFunc
from .params import ParamsView
from .stats_dist1d import EmpiricalDist1d
from .stats_vec import StatsVec

__all__ = ["MSetCatalog", "SyncTransition", "FlushMode"]

FlushMode = Literal["disabled", "auto", "timed"]
_FLUSH_MODES = ("disabled", "auto", "timed")

WEIGHT_COLUMN = "Row-weights"


class SyncTransition(enum.Enum):
    """Row transfers needed to reconcile the memory and file ranges."""

    EXTEND_HEAD = "extend-head"
    RETRACT_HEAD = "retract-head"
    EXTEND_TAIL = "extend-tail"
    RETRACT_TAIL = "retract-tail"


def _json_default(o: Any) -> Any:
    if isinstance(o, np.ndarray):
        return o.tolist()
    if isinstance(o, np.integer):
        return int(o)
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def _rng_algo(rng: np.random.Generator) -> str:
    return type(rng.bit_generator).__name__


def _rng_get_state(rng: np.random.Generator) -> str:
    return json.dumps(rng.bit_generator.state, default=_json_default)


def _rng_set_state(rng: np.random.Generator, state: str) -> None:
    rng.bit_generator.state = json.loads(state)


def _rng_new(algo: str, state: str) -> np.random.Generator:
    bitgen = getattr(np.random, algo, None)
    if not (isinstance(bitgen, type) and issubclass(bitgen, np.random.BitGenerator)):
        raise ValueError(f"Unknown random bit generator {algo!r}.")
    rng = np.random.Generator(bitgen())
    _rng_set_state(rng, state)
    return rng


def _require_meta(f: CatalogFile, key: str) -> Any:
    value = f.get_meta(key)
    if value is None:
        raise ValueError(f"Catalog file {f.filename!r} has no {key} entry.")
    return value


class MSetCatalog:
    """Catalog of samples of a parameter set with online statistics.

    Parameters
    ----------
    mset : MSet
        Parameter set; its free parameters define the row layout.
    nadd_vals : int
        Number of additional values stored before the parameters.
    nchains : int
        Number of interleaved chains; row ``id`` belongs to chain
        ``id % nchains``.
    weighted : bool
        Append a ``Row-weights`` additional value used as the sample weight.
    add_val_names : sequence of str, optional
        Names of the additional values (default ``additional-param-<k>``).
    filename : str, optional
        Backend file, created or reopened through :meth:`set_file`.
    run_type : str
        Free-form label of the run that produced the samples.
    flush_mode : {"disabled", "auto", "timed"}
        When :meth:`sync` flushes the backend.
    flush_interval : float
        Minimum number of seconds between flushes in ``"timed"`` mode.
    rng, seed :
        Random generator tracked with the catalog. ``seed`` alone builds a
        ``np.random.default_rng(seed)``.

    Examples
    --------
    >>> cat = MSetCatalog(mset, nadd_vals=1, nchains=4)  # doctest: +SKIP
    >>> cat.add(-2.0 * loglike, params=theta)            # doctest: +SKIP
    >>> cat.get_shrink_factor()                          # doctest: +SKIP
    """

    def __init__(
        self,
        mset: MSet,
        *,
        nadd_vals: int = 1,
        nchains: int = 1,
        weighted: bool = False,
        add_val_names: Optional[Sequence[str]] = None,
        filename: Optional[Any] = None,
        run_type: str = "",
        flush_mode: FlushMode = "auto",
        flush_interval: float = 10.0,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        if nchains < 1:
            raise ValueError(f"nchains must be >= 1, got {nchains}.")
        if nadd_vals < 0:
            raise ValueError(f"nadd_vals must be >= 0, got {nadd_vals}.")
        if add_val_names is not None and len(add_val_names) != nadd_vals:
            raise ValueError(
                f"Number of additional value names does not match: "
                f"{len(add_val_names)} vs {nadd_vals}."
            )

        self.mset = mset
        self.nchains = int(nchains)
        self.weighted = bool(weighted)

        if add_val_names is None:
            add_val_names = [f"additional-param-{k + 1}" for k in range(nadd_vals)]
        self._add_val_names: List[str] = [str(n) for n in add_val_names]
        self._add_val_symbols: List[str] = list(self._add_val_names)
        if self.weighted:
            self._add_val_names.append(WEIGHT_COLUMN)
            self._add_val_symbols.append("w")
        self.nadd_vals = len(self._add_val_names)

        self.nfree = mset.free_parameter_count()
        total = self.nfree + self.nadd_vals
        if total == 0:
            raise ValueError("Catalog rows would be empty: no free parameters and no additional values.")

        self.pstats = StatsVec(total, mode="cov", save_x=True)
        self.chain_pstats: List[StatsVec] = []
        self.mean_pstats: Optional[StatsVec] = None
        if self.nchains > 1:
            self.chain_pstats = [StatsVec(total, mode="cov") for _ in range(self.nchains)]
            if self.nfree > 0:
                self.mean_pstats = StatsVec(self.nfree, mode="cov")
        self._params_max = np.full(total, -np.inf)
        self._params_min = np.full(total, np.inf)
        self.tau = np.ones(self.nfree)

        self.first_id = 0
        self.cur_id = -1
        self.file_first_id = 0
        self.file_cur_id = -1

        if flush_mode not in _FLUSH_MODES:
            raise ValueError(f"Unknown flush mode {flush_mode!r}. Available: {_FLUSH_MODES}")
        self.flush_mode: FlushMode = flush_mode
        self.flush_interval = float(flush_interval)
        self._flush_t0 = time.monotonic()
        self._first_flush = False

        self._run_type = str(run_type)
        self._filename: Optional[str] = None
        self._file: Optional[CatalogFile] = None
        self._porder: List[int] = list(range(total))

        self._rng: Optional[np.random.Generator] = None
        self._rng_seed: Optional[int] = None
        self._rng_inis: Optional[str] = None
        self._rng_stat: Optional[str] = None

        self._pdf_i = -1
        self._pdf_edges: Optional[np.ndarray] = None
        self._pdf_cdf: Optional[np.ndarray] = None

        if rng is None and seed is not None:
            rng = np.random.default_rng(seed)
        if rng is not None:
            self.set_rng(rng, seed=seed)
        if filename is not None:
            self.set_file(filename)

    @classmethod
    def from_file(
        cls,
        filename: Any,
        *,
        flush_mode: FlushMode = "auto",
        flush_interval: float = 10.0,
    ) -> "MSetCatalog":
        """Rebuild a catalog (parameter set included) from its backend file."""
        with CatalogFile(filename, readonly=True) as f:
            mset_json = _require_meta(f, "MSET")
            nadd = int(_require_meta(f, "NADDVAL"))
            nchains = int(_require_meta(f, "NCHAINS"))
            weighted = bool(_require_meta(f, "WEIGHTED"))
            run_type = str(_require_meta(f, "RTYPE"))
            if nadd > f.ncols:
                raise ValueError(
                    f"Catalog file {f.filename!r} declares {nadd} additional values "
                    f"but has {f.ncols} columns."
                )
            names = list(f.columns[:nadd])
        if weighted:
            if not names or names[-1] != WEIGHT_COLUMN:
                raise ValueError(f"Weighted catalog file {os.fspath(filename)!r} has no weight column.")
            names = names[:-1]
        return cls(
            MSet.from_json(mset_json),
            nadd_vals=len(names),
            nchains=nchains,
            weighted=weighted,
            add_val_names=names,
            filename=filename,
            run_type=run_type,
            flush_mode=flush_mode,
            flush_interval=flush_interval,
        )

    def __repr__(self) -> str:
        return (
            f"MSetCatalog(nfree={self.nfree}, nadd_vals={self.nadd_vals}, "
            f"nchains={self.nchains}, ids=[{self.first_id}, {self.cur_id}], "
            f"file={self._filename!r})"
        )

    def __enter__(self) -> "MSetCatalog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- simple accessors ----
    def __len__(self) -> int:
        return self.pstats.nitens

    def is_empty(self) -> bool:
        return self.cur_id < self.first_id

    def get_nchains(self) -> int:
        return self.nchains

    def get_weighted(self) -> bool:
        return self.weighted

    def get_first_id(self) -> int:
        return self.first_id

    def get_cur_id(self) -> int:
        return self.cur_id

    def get_mset(self) -> MSet:
        return self.mset

    def get_run_type(self) -> str:
        return self._run_type

    def peek_filename(self) -> Optional[str]:
        return self._filename

    def peek_pstats(self) -> StatsVec:
        return self.pstats

    @property
    def rng(self) -> Optional[np.random.Generator]:
        return self._rng

    def params_max(self) -> np.ndarray:
        return self._params_max.copy()

    def params_min(self) -> np.ndarray:
        return self._params_min.copy()

    def add_val_name(self, i: int) -> str:
        return self._add_val_names[i]

    def add_val_symbol(self, i: int) -> str:
        return self._add_val_symbols[i]

    def set_add_val_name(self, i: int, name: str, symbol: Optional[str] = None) -> None:
        if not 0 <= i < self.nadd_vals:
            raise IndexError(f"Additional value index {i} out of range [0, {self.nadd_vals}).")
        if self._file is not None:
            raise RuntimeError("Column names cannot change while a file is attached.")
        self._add_val_names[i] = str(name)
        self._add_val_symbols[i] = str(symbol) if symbol else str(name)

    def column_names(self) -> Tuple[str, ...]:
        """Row layout: additional values then free parameter full names."""
        return tuple(self._add_val_names) + self.mset.free_parameter_full_names()

    def _column_symbols(self) -> Tuple[str, ...]:
        fsymbs = tuple(self.mset.free_parameter_symbol(i) for i in range(self.nfree))
        return tuple(self._add_val_symbols) + fsymbs

    # ---- configuration ----
    def set_flush_mode(self, mode: FlushMode) -> None:
        if mode not in _FLUSH_MODES:
            raise ValueError(f"Unknown flush mode {mode!r}. Available: {_FLUSH_MODES}")
        self.flush_mode = mode

    def set_flush_interval(self, interval: float) -> None:
        self.flush_interval = float(interval)

    def set_run_type(self, rtype: str) -> None:
        """Label the run; immutable once the catalog holds rows."""
        rtype = str(rtype)
        if rtype == self._run_type:
            return
        if not self.is_empty():
            raise RuntimeError(
                f"Cannot change the run type of a non-empty catalog "
                f"({self._run_type!r} -> {rtype!r})."
            )
        self._run_type = rtype
        if self._file is not None:
            self._file.set_meta("RTYPE", rtype)

    def set_first_id(self, first_id: int) -> None:
        """Id of the first row; only allowed while the catalog is empty."""
        first_id = int(first_id)
        if first_id == self.first_id:
            return
        if not self.is_empty():
            raise RuntimeError(
                f"Cannot change first_id to {first_id} in a non-empty catalog, "
                f"ids [{self.first_id}, {self.cur_id}]."
            )
        self.first_id = first_id
        self.cur_id = first_id - 1
        self.file_first_id = first_id
        self.file_cur_id = first_id - 1
        if self._file is not None:
            self._file.set_meta("FIRST_ID", first_id)
            self.sync(True)

    def set_rng(self, rng: np.random.Generator, seed: Optional[int] = None) -> None:
        """Attach the random generator whose states are saved with the rows."""
        if self._rng is not None:
            raise RuntimeError("The catalog random generator is already set.")
        if not self.is_empty():
            warnings.warn(
                "Setting a random generator in a non-empty catalog; "
                "the stored rows were not produced with it.",
                UserWarning,
            )
        self._rng = rng
        self._rng_seed = None if seed is None else int(seed)
        self._rng_inis = _rng_get_state(rng)
        self._rng_stat = self._rng_inis
        if self._file is not None:
            self._write_rng_header()

    def _write_rng_header(self) -> None:
        f = self._file
        assert f is not None and self._rng is not None
        f.set_meta("RNG_ALGO", _rng_algo(self._rng))
        f.set_meta("RNG_SEED", -1 if self._rng_seed is None else self._rng_seed)
        f.set_meta("FIRST_ID", self.file_first_id)
        f.set_meta("RNG_INIS", self._rng_inis)

    # ---- backend file ----
    def set_file(self, filename: Optional[Any]) -> None:
        """Attach (or with ``None`` detach) the backend file and sync with it."""
        if filename is not None:
            filename = os.fspath(filename)
            if filename == self._filename and self._file is not None:
                return
        self._close_file()
        self._filename = filename
        if filename is None:
            return
        try:
            self._open_create_file()
            self.sync(True)
            self._flush_file()
        except Exception:
            self._close_file()
            self._filename = None
            raise
        self._first_flush = True

    def _open_create_file(self) -> None:
        assert self._filename is not None and self._file is None
        if os.path.exists(self._filename):
            f = CatalogFile(self._filename)
            self._file = f
            self._read_file_header(f)
        else:
            f = CatalogFile(self._filename, columns=self.column_names())
            self._file = f
            f.set_meta("RTYPE", self._run_type)
            f.set_meta("NCHAINS", self.nchains)
            f.set_meta("NADDVAL", self.nadd_vals)
            f.set_meta("WEIGHTED", self.weighted)
            for i in range(self.nfree):
                f.set_meta(f"FSYMB{i + 1}", self.mset.free_parameter_symbol(i))
            self._porder = list(range(self.nfree + self.nadd_vals))
            self.file_first_id = self.first_id
            self.file_cur_id = self.first_id - 1

        if f.has_meta("RNG_ALGO"):
            algo = str(f.get_meta("RNG_ALGO"))
            inis = str(_require_meta(f, "RNG_INIS"))
            if self._rng is not None:
                if _rng_algo(self._rng) != algo:
                    raise ValueError(
                        f"Catalog random generator {_rng_algo(self._rng)!r} does not "
                        f"match the file generator {algo!r}."
                    )
                if self._rng_inis != inis:
                    raise ValueError("Catalog and file random generators start from different states.")
            else:
                seed = f.get_meta("RNG_SEED", -1)
                self.set_rng(_rng_new(algo, inis), seed=None if seed < 0 else seed)
        elif self._rng is not None:
            self._write_rng_header()

        f.set_meta("FIRST_ID", self.file_first_id)
        f.set_meta("MSET", self.mset.to_json())

    def _read_file_header(self, f: CatalogFile) -> None:
        file_first_id = int(_require_meta(f, "FIRST_ID"))
        rtype = str(_require_meta(f, "RTYPE"))
        nchains = int(_require_meta(f, "NCHAINS"))
        nadd_vals = int(_require_meta(f, "NADDVAL"))
        weighted = bool(_require_meta(f, "WEIGHTED"))

        if rtype != self._run_type:
            raise ValueError(
                f"Incompatible run types, catalog: {self._run_type!r} file: {rtype!r}."
            )
        if nchains != self.nchains:
            raise ValueError(f"Catalog has {self.nchains} chains and file contains {nchains}.")
        if nadd_vals != self.nadd_vals:
            raise ValueError(
                f"Catalog has {self.nadd_vals} additional values and file contains {nadd_vals}."
            )
        if weighted != self.weighted:
            raise ValueError(
                f"Catalog {'is' if self.weighted else 'is not'} weighted and file "
                f"{'is' if weighted else 'is not'}."
            )

        nrows = f.nrows
        self.file_first_id = file_first_id
        if self.file_first_id != self.first_id:
            if nrows == 0:
                if self.file_first_id != 0:
                    warnings.warn(
                        f"Empty data file with FIRST_ID different from first_id: "
                        f"{self.file_first_id} != {self.first_id}. Setting to first_id.",
                        UserWarning,
                    )
                self.file_first_id = self.first_id
            elif self.is_empty():
                if self.first_id != 0:
                    warnings.warn(
                        f"Empty memory catalog with first_id different from FIRST_ID: "
                        f"{self.first_id} != {self.file_first_id}. Setting to FIRST_ID.",
                        UserWarning,
                    )
                self.first_id = self.file_first_id
                self.cur_id = self.file_first_id - 1
        self.file_cur_id = self.file_first_id + nrows - 1

        porder = []
        for i, name in enumerate(self._add_val_names):
            k = f.column_index(name)
            if k != i:
                raise ValueError(
                    f"Additional column {name!r} is not the {i}-th column [{k}], invalid catalog file."
                )
            porder.append(k)
        for name in self.mset.free_parameter_full_names():
            porder.append(f.column_index(name))
        self._porder = porder

    def _close_file(self) -> None:
        if self._file is not None:
            if not self._file.closed:
                self._file.close()
            self._file = None

    def _flush_file(self) -> None:
        f = self._file
        assert f is not None
        f.set_meta("NROWS", self.file_cur_id - self.file_first_id + 1)
        if self._rng is not None:
            self._rng_stat = _rng_get_state(self._rng)
            f.set_meta("RNG_STAT", self._rng_stat)
        if self._first_flush:
            f.flush_full()
            self._first_flush = False
        else:
            f.flush()

    def close(self) -> None:
        """Sync, flush and close the backend file (if any)."""
        if self._file is None:
            return
        self.sync(False)
        self._first_flush = True
        self._flush_file()
        self._close_file()

    def _read_rows(self, i: int, n: int) -> np.ndarray:
        assert self._file is not None
        return self._file.read_rows(i, n)[:, self._porder]

    def _write_rows(self, i: int, rows: np.ndarray) -> None:
        f = self._file
        assert f is not None
        out = np.full((rows.shape[0], f.ncols), np.nan)
        out[:, self._porder] = rows
        f.write_rows(i, out)

    # ---- synchronization ----
    def sync_plan(self) -> Tuple[SyncTransition, ...]:
        """Transitions :meth:`sync` would apply, head first."""
        if self._file is None:
            return ()
        plan = []
        if self.file_first_id > self.first_id:
            plan.append(SyncTransition.EXTEND_HEAD)
        elif self.file_first_id < self.first_id:
            plan.append(SyncTransition.RETRACT_HEAD)
        if self.file_cur_id < self.cur_id:
            plan.append(SyncTransition.EXTEND_TAIL)
        elif self.file_cur_id > self.cur_id:
            plan.append(SyncTransition.RETRACT_TAIL)
        return tuple(plan)

    def sync(self, check: bool = False) -> None:
        """Reconcile the memory range with the file range, then maybe flush.

        With ``check`` the file name and range overlap are validated first;
        disjoint ranges raise ``RuntimeError``.
        """
        f = self._file
        if f is None:
            return
        if check:
            if f.filename != self._filename:
                raise RuntimeError(
                    f"Catalog file name mismatch: {f.filename!r} != {self._filename!r}."
                )
            if self.file_cur_id < self.first_id - 1 or self.cur_id < self.file_first_id - 1:
                raise RuntimeError(
                    f"File data and catalog do not intersect each other: file data "
                    f"[{self.file_first_id}, {self.file_cur_id}] catalog "
                    f"[{self.first_id}, {self.cur_id}]."
                )

        # Head transitions only move first ids, so the tail decision stands.
        for transition in self.sync_plan():
            self._transitions[transition](self)

        if self.flush_mode == "auto":
            self._flush_file()
        elif self.flush_mode == "timed":
            now = time.monotonic()
            if now - self._flush_t0 > self.flush_interval:
                self._flush_t0 = now
                self._flush_file()

    def _sync_extend_head(self) -> None:
        """File starts later than memory: copy the older memory rows to the file head."""
        f = self._file
        assert f is not None
        delta = self.file_first_id - self.first_id
        f.insert_rows(1, delta)
        self._write_rows(1, self.pstats.rows_array()[:delta])
        self.file_first_id = self.first_id
        if self._rng is not None:
            f.set_meta("RNG_INIS", self._rng_inis)
        f.set_meta("FIRST_ID", self.file_first_id)

    def _sync_retract_head(self) -> None:
        """File starts earlier than memory: prepend the older file rows."""
        f = self._file
        assert f is not None
        delta = self.first_id - self.file_first_id
        rows = self._read_rows(1, delta)
        weights = self._row_weights(rows)
        self.pstats.prepend_data(rows, weights)
        if self.nchains > 1:
            for i in range(delta - 1, -1, -1):
                chain = (self.file_first_id + i) % self.nchains
                self.chain_pstats[chain].prepend(rows[i], weights[i])
        self._update_max_min(rows)
        self.first_id = self.file_first_id
        if self._rng is not None:
            self._rng_inis = str(_require_meta(f, "RNG_INIS"))

    def _sync_extend_tail(self) -> None:
        """Memory ends later than the file: write the new rows."""
        f = self._file
        assert f is not None
        n = self.cur_id - self.file_cur_id
        offset = self.file_cur_id + 1 - self.file_first_id
        self._write_rows(offset + 1, self.pstats.rows_array(offset)[:n])
        self.file_cur_id = self.cur_id
        if self._rng is not None:
            self._rng_stat = _rng_get_state(self._rng)
            f.set_meta("RNG_STAT", self._rng_stat)

    def _sync_retract_tail(self) -> None:
        """File ends later than memory: append the newer file rows."""
        f = self._file
        assert f is not None
        n = self.file_cur_id - self.cur_id
        offset = self.cur_id + 1 - self.first_id
        rows = self._read_rows(offset + 1, n)
        weights = self._row_weights(rows)
        self.pstats.append_data(rows, weights)
        if self.nchains > 1:
            for i in range(n):
                chain = (self.cur_id + 1 + i) % self.nchains
                self.chain_pstats[chain].append(rows[i], weights[i])
        self._update_max_min(rows)
        self.cur_id = self.file_cur_id
        if self._rng is not None:
            stat = f.get_meta("RNG_STAT")
            if stat is not None:
                self._rng_stat = str(stat)
                _rng_set_state(self._rng, self._rng_stat)

    _transitions = {
        SyncTransition.EXTEND_HEAD: _sync_extend_head,
        SyncTransition.RETRACT_HEAD: _sync_retract_head,
        SyncTransition.EXTEND_TAIL: _sync_extend_tail,
        SyncTransition.RETRACT_TAIL: _sync_retract_tail,
    }

    # ---- adding rows ----
    def _row_weights(self, rows: np.ndarray) -> List[float]:
        if self.weighted:
            return [float(w) for w in rows[:, self.nadd_vals - 1]]
        return [1.0] * rows.shape[0]

    def _update_max_min(self, rows: np.ndarray) -> None:
        if rows.shape[0] == 0:
            return
        self._params_max = np.fmax(self._params_max, np.max(rows, axis=0))
        self._params_min = np.fmin(self._params_min, np.min(rows, axis=0))

    def _post_update(self, row: np.ndarray) -> None:
        self._update_max_min(row[None, :])
        w = float(row[self.nadd_vals - 1]) if self.weighted else 1.0
        if self.nchains > 1:
            self.chain_pstats[(self.cur_id + 1) % self.nchains].append(row, w)
        self.pstats.append(row, w)
        self.cur_id += 1
        self.sync(False)

    def add(self, *add_vals: float, params: Optional[Sequence[float]] = None) -> None:
        """Add one row; ``params`` defaults to the catalog parameter set's free vector."""
        if len(add_vals) != self.nadd_vals:
            raise ValueError(f"Expected {self.nadd_vals} additional values, got {len(add_vals)}.")
        if params is None:
            params = self.mset.get_free_parameter_vector()
        self.add_from_vector(np.concatenate([np.asarray(add_vals, dtype=float), np.asarray(params, dtype=float)]))

    def add_from_mset(self, mset: MSet, *add_vals: float) -> None:
        """Add the free vector of ``mset`` with the given additional values."""
        self.add(*add_vals, params=mset.get_free_parameter_vector())

    def add_from_mset_array(self, mset: MSet, add_vals: Sequence[float]) -> None:
        self.add_from_mset(mset, *np.asarray(add_vals, dtype=float).ravel())

    def add_from_vector(self, row: Sequence[float]) -> None:
        """Add a full row (additional values followed by free parameters)."""
        row = np.array(row, dtype=float)
        expected = self.nadd_vals + self.nfree
        if row.shape != (expected,):
            raise ValueError(f"Catalog rows have length {expected}, got shape {row.shape}.")
        self._post_update(row)

    # ---- reset ----
    def erase_data(self) -> None:
        """Delete every row from the backend file."""
        if self._file is None:
            return
        nrows = self.file_cur_id - self.file_first_id + 1
        if nrows > 0:
            self._file.delete_rows(1, nrows)
            self.file_cur_id = self.file_first_id - 1
            self._flush_file()

    def reset_stats(self) -> None:
        """Recompute all accumulators and max/min vectors from the kept rows."""
        self.pstats.reset_stats()
        rows = self.pstats.rows_array()
        self._params_max[:] = -np.inf
        self._params_min[:] = np.inf
        self._update_max_min(rows)
        if self.nchains > 1:
            weights = self._row_weights(rows)
            for c in self.chain_pstats:
                c.reset(True)
            for k in range(rows.shape[0]):
                self.chain_pstats[(self.first_id + k) % self.nchains].append(rows[k], weights[k])

    def reset(self, hard: bool = False) -> None:
        """Drop every row, on disk and in memory.

        With ``hard`` the backend file is also detached; otherwise it stays
        open and receives the rows added afterwards.
        """
        self.erase_data()
        self.pstats.reset(True)
        for c in self.chain_pstats:
            c.reset(True)
        if self.mean_pstats is not None:
            self.mean_pstats.reset(True)
        self._params_max[:] = -np.inf
        self._params_min[:] = np.inf
        self.tau[:] = 1.0
        self.cur_id = self.first_id - 1
        if hard:
            self.set_file(None)

    # ---- rows and moments ----
    def peek_row(self, i: int) -> Optional[np.ndarray]:
        """Read-only row ``i`` (0-based position), or None when out of range."""
        if i < 0 or i >= self.pstats.nrows:
            return None
        return self.pstats.peek_row(i)

    def peek_current_row(self) -> Optional[np.ndarray]:
        if self.pstats.nrows == 0:
            return None
        return self.pstats.peek_row(self.pstats.nrows - 1)

    def get_mean(self) -> np.ndarray:
        """Mean of the free parameters."""
        return self.pstats.get_mean_vector()[self.nadd_vals :]

    def get_covar(self) -> np.ndarray:
        """Covariance matrix of the free parameters."""
        return self.pstats.get_cov_matrix(self.nadd_vals).copy()

    def estimate_autocorrelation_tau(self, force_single_chain: bool = False) -> np.ndarray:
        for p in range(self.nfree):
            col = self.nadd_vals + p
            if self.nchains == 1 or force_single_chain:
                self.tau[p] = self.pstats.get_autocorr_tau(col)
            else:
                self.tau[p] = self.pstats.get_subsample_autocorr_tau(col, self.nchains)
        return self.tau.copy()

    def peek_autocorrelation_tau(self) -> np.ndarray:
        view = self.tau.view()
        view.flags.writeable = False
        return view

    # ---- convergence ----
    def get_shrink_factor(self) -> float:
        """Multivariate Gelman-Rubin potential scale reduction factor."""
        if self.nchains == 1 or self.nfree == 0:
            return 1.0
        n_total = self.pstats.nitens
        if n_total % self.nchains != 0:
            warnings.warn(
                f"Not all chains have the same size [{n_total} {self.nchains}] "
                f"{n_total % self.nchains}.",
                UserWarning,
            )
        m = self.nchains
        n = n_total // m

        assert self.mean_pstats is not None
        self.mean_pstats.reset(True)
        W = np.zeros((self.nfree, self.nfree))
        for c in self.chain_pstats:
            self.mean_pstats.append(c.get_mean_vector()[self.nadd_vals :])
            W += c.get_cov_matrix(self.nadd_vals)
        W /= m
        B_n = self.mean_pstats.get_cov_matrix()

        if not np.isfinite(W[0, 0]) or n < 1:
            return 1.0e10
        try:
            cho = linalg.cho_factor(W, lower=True)
        except linalg.LinAlgError:
            warnings.warn(
                "Within-chain covariance is not positive definite, "
                "returning a diverged shrink factor.",
                UserWarning,
            )
            return 1.0e10
        W_inv = linalg.cho_solve(cho, np.eye(self.nfree))
        S = W_inv @ B_n
        ev = linalg.eigvals(S)
        if np.any(ev.imag != 0.0):
            warnings.warn(
                "Complex eigenvalue in the shrink factor matrix, unreliable "
                "shrink factor, try using more chains.",
                UserWarning,
            )
        lev = max(0.0, float(np.max(ev.real)))
        return float(np.sqrt((n - 1.0) / n + (m + 1.0) * lev / m))

    def get_param_shrink_factor(self, p: int) -> float:
        """Univariate shrink factor of free parameter ``p``."""
        if self.nchains == 1:
            return 1.0
        n_total = self.pstats.nitens
        if n_total % self.nchains != 0:
            warnings.warn(
                f"Not all chains have the same size [{n_total} {self.nchains}] "
                f"{n_total % self.nchains}.",
                UserWarning,
            )
        n = n_total // self.nchains
        col = self.nadd_vals + p
        means = np.array([c.get_mean(col) for c in self.chain_pstats])
        W = float(np.mean([c.get_var(col) for c in self.chain_pstats]))
        if n < 1 or not np.isfinite(W) or W <= 0.0:
            return 1.0e10
        B_n = float(np.var(means, ddof=1))
        return float(np.sqrt((n - 1.0) / n + B_n / W))

    def largest_error(self) -> float:
        """Largest relative error of the parameter means, inflated by ``sqrt(tau)``.

        For ``n >= 10`` a relative error that truncates to 1 is taken as a
        sign of a mean close to zero and replaced by the absolute error
        ``sd / sqrt(n)``. This is a heuristic, not a statistical test.
        """
        n = self.pstats.weight
        sqrt_n = np.sqrt(n)
        lerror = 0.0
        with np.errstate(divide="ignore", invalid="ignore"):
            for p in range(self.nfree):
                col = self.nadd_vals + p
                mu = self.pstats.get_mean(col)
                sd = self.pstats.get_sd(col)
                lerror_p = abs(sd / (mu * sqrt_n))
                if n >= 10 and np.isfinite(lerror_p) and int(lerror_p) == 1:
                    lerror_p = abs(sd / sqrt_n)
                lerror_p *= np.sqrt(self.tau[p])
                lerror = max(lerror, lerror_p)
        return float(lerror)

    # ---- reporting ----
    def _stats_table(self) -> List[Tuple[str, float, float, float, float, float]]:
        n = self.pstats.nitens
        rows = []
        for k, name in enumerate(self.column_names()):
            mean = self.pstats.get_mean(k)
            var = self.pstats.get_var(k)
            tau = float(self.tau[k - self.nadd_vals]) if k >= self.nadd_vals else 1.0
            msd = float(np.sqrt(var * tau / n)) if n > 0 else float("nan")
            rows.append((name, mean, msd, float(np.sqrt(var)), var, tau))
        return rows

    def log_current_stats(self, digits: int = 5) -> str:
        """Current mean, error of the mean, sd, variance and tau per column."""
        lines = [f"MSetCatalog: {len(self)} rows, ids [{self.first_id}, {self.cur_id}]"]
        header = f"  {'column':>24s} {'mean':>12s} {'msd':>12s} {'sd':>12s} {'var':>12s} {'tau':>12s}"
        lines.append(header)
        for name, mean, msd, sd, var, tau in self._stats_table():
            lines.append(
                f"  {name:>24s} {mean:>12.{digits}g} {msd:>12.{digits}g} "
                f"{sd:>12.{digits}g} {var:>12.{digits}g} {tau:>12.{digits}g}"
            )
        return "\n".join(lines)

    def log_current_chain_stats(self, digits: int = 5) -> str:
        """Per-chain parameter means and the shrink factor."""
        if self.nchains == 1:
            return "MSetCatalog: single chain"
        names = self.mset.free_parameter_full_names()
        lines = ["chain " + " ".join(f"{n:>14s}" for n in names)]
        for c, pstats in enumerate(self.chain_pstats):
            means = pstats.get_mean_vector()[self.nadd_vals :]
            lines.append(f"{c:>5d} " + " ".join(f"{v:>14.{digits}g}" for v in means))
        lines.append(f"Maximal shrink factor = {self.get_shrink_factor():.{digits + 5}g}")
        return "\n".join(lines)

    def summary(self, digits: int = 5) -> str:
        """Return a human-readable summary of the catalog."""
        lines = [
            f"MSetCatalog(run_type={self._run_type!r}, nchains={self.nchains}, "
            f"weighted={self.weighted}, file={self._filename!r})",
            self.log_current_stats(digits),
        ]
        if self.nchains > 1 and not self.is_empty():
            lines.append(self.log_current_chain_stats(digits))
        return "\n".join(lines)

    def params_view(self) -> ParamsView:
        """Catalog mean and covariance as correlated parameter views."""
        names = self.mset.free_parameter_full_names()
        symbols = [self.mset.free_parameter_symbol(i) for i in range(self.nfree)]
        return ParamsView(names, self.get_mean(), self.get_covar(), symbols=symbols)

    # ---- distributions ----
    def param_pdf(self, i: int) -> None:
        """Histogram column ``i`` with ``max(n/10, 10)`` bins between its min and max."""
        n = self.pstats.nitens
        if n == 0:
            raise RuntimeError("param_pdf needs a non-empty catalog.")
        nbins = max(n // 10, 10)
        lo, hi = float(self._params_min[i]), float(self._params_max[i])
        data = self.pstats.rows_array()[:, i]
        counts, edges = np.histogram(data, bins=nbins, range=(lo, hi))
        total = counts.sum()
        self._pdf_i = i
        self._pdf_edges = edges
        self._pdf_cdf = np.cumsum(counts) / total if total > 0 else np.zeros(nbins)

    def param_pdf_pvalue(self, value: float, both: bool = False) -> float:
        """Tail probability of ``value`` under the last :meth:`param_pdf` histogram."""
        if self._pdf_i < 0 or self._pdf_edges is None or self._pdf_cdf is None:
            raise RuntimeError("param_pdf must be called before param_pdf_pvalue.")
        lo = float(self._params_min[self._pdf_i])
        hi = float(self._params_max[self._pdf_i])
        if value < lo or value > hi:
            warnings.warn(
                f"Value {value:g} outside the sampled interval [{lo:g}, {hi:g}]. "
                f"Assuming 0 p-value.",
                UserWarning,
            )
            return 0.0
        nbins = self._pdf_cdf.shape[0]
        i = int(np.searchsorted(self._pdf_edges, value, side="right")) - 1
        i = min(max(i, 0), nbins - 1)
        upper = 1.0 if i == 0 else float(1.0 - self._pdf_cdf[i - 1])
        if not both:
            return upper
        lower = float(self._pdf_cdf[i])
        return min(1.0, 2.0 * min(upper, lower))

    def _check_burnin(self, burnin: int) -> None:
        if not 0 <= burnin < len(self):
            raise ValueError(f"burnin must be in [0, {len(self)}), got {burnin}.")

    @staticmethod
    def _check_p_val(p_val: Sequence[float]) -> np.ndarray:
        p = np.atleast_1d(np.asarray(p_val, dtype=float))
        if p.size == 0:
            raise ValueError("p_val must hold at least one probability.")
        if np.any(p <= 0.0) or np.any(p >= 1.0):
            raise ValueError(f"p_val entries must lie in (0, 1), got {p.tolist()}.")
        return p

    def _eval_rows(self, func: MSetFunc, x: Optional[Sequence[float]], burnin: int):
        """Yield ``func`` evaluated at every row from ``burnin``, restoring the free vector."""
        saved = self.mset.get_free_parameter_vector()
        try:
            for k in range(burnin, self.pstats.nrows):
                self.mset.set_free_parameter_vector(self.pstats.peek_row(k)[self.nadd_vals :])
                yield func.eval(self.mset, x)
        finally:
            self.mset.set_free_parameter_vector(saved)

    def calc_ci_direct(
        self,
        func: MSetFunc,
        x: Optional[Sequence[float]] = None,
        p_val: Sequence[float] = (0.6827, 0.9545),
        *,
        burnin: int = 0,
    ) -> np.ndarray:
        """Mean and central intervals of ``func`` from the sorted sample values.

        Returns a ``(func.dim, 1 + 2 len(p_val))`` array: the mean, then the
        lower/upper bounds at probabilities ``(1 -+ p) / 2`` for each ``p``.
        """
        self._check_burnin(burnin)
        p = self._check_p_val(p_val)
        values = np.array(list(self._eval_rows(func, x, burnin)))
        res = np.empty((func.dim, 1 + 2 * p.size))
        for i in range(func.dim):
            v = np.sort(values[:, i][np.isfinite(values[:, i])])
            if v.size == 0:
                res[i, :] = np.nan
                continue
            res[i, 0] = np.mean(v)
            res[i, 1::2] = np.quantile(v, (1.0 - p) / 2.0)
            res[i, 2::2] = np.quantile(v, (1.0 + p) / 2.0)
        return res

    def calc_ci_interp(
        self,
        func: MSetFunc,
        x: Optional[Sequence[float]] = None,
        p_val: Sequence[float] = (0.6827, 0.9545),
        nodes: int = 1000,
        *,
        burnin: int = 0,
    ) -> np.ndarray:
        """Like :meth:`calc_ci_direct` but inverting a smoothed empirical CDF."""
        self._check_burnin(burnin)
        p = self._check_p_val(p_val)
        epdfs = [EmpiricalDist1d(1000) for _ in range(func.dim)]
        for value in self._eval_rows(func, x, burnin):
            for epdf, v in zip(epdfs, value):
                epdf.add_obs(v)
        res = np.empty((func.dim, 1 + 2 * p.size))
        for i, epdf in enumerate(epdfs):
            if epdf.n_obs == 0:
                res[i, :] = np.nan
                continue
            epdf.prepare(nodes)
            res[i, 0] = epdf.mean
            for j, pj in enumerate(p):
                res[i, 1 + 2 * j] = epdf.eval_inv_cdf((1.0 - pj) / 2.0)
                res[i, 2 + 2 * j] = epdf.eval_inv_cdf((1.0 + pj) / 2.0)
        return res

    def calc_distrib(self, func: MSetFunc, burnin: int = 0) -> EmpiricalDist1d:
        """Empirical distribution of a scalar, argument-free ``func``."""
        if func.dim != 1 or func.nvar != 0:
            raise ValueError(
                f"calc_distrib needs a scalar function without arguments, got "
                f"dim={func.dim} nvar={func.nvar}."
            )
        self._check_burnin(burnin)
        epdf = EmpiricalDist1d(1000)
        for value in self._eval_rows(func, None, burnin):
            epdf.add_obs(value[0])
        epdf.prepare()
        return epdf

    def _column_distrib(self, col: int, burnin: int) -> EmpiricalDist1d:
        self._check_burnin(burnin)
        epdf = EmpiricalDist1d(1000)
        for v in self.pstats.rows_array(burnin)[:, col]:
            epdf.add_obs(v)
        epdf.prepare()
        return epdf

    def calc_param_distrib(self, fpi: int, burnin: int = 0) -> EmpiricalDist1d:
        """Empirical distribution of free parameter ``fpi``."""
        if not 0 <= fpi < self.nfree:
            raise IndexError(f"Free parameter index {fpi} out of range [0, {self.nfree}).")
        return self._column_distrib(self.nadd_vals + fpi, burnin)

    def calc_param_distrib_by_pi(self, mid: str, pid: int, burnin: int = 0) -> EmpiricalDist1d:
        """Empirical distribution of parameter ``(mid, pid)``, which must be free."""
        fpi = self.mset.fparam_get_fpi(mid, pid)
        if fpi < 0:
            raise ValueError(f"Parameter ({mid!r}, {pid}) is not free in this catalog.")
        return self.calc_param_distrib(fpi, burnin)

    def calc_add_param_distrib(self, add_param: int, burnin: int = 0) -> EmpiricalDist1d:
        """Empirical distribution of additional value ``add_param``."""
        if not 0 <= add_param < self.nadd_vals:
            raise IndexError(
                f"Additional value index {add_param} out of range [0, {self.nadd_vals})."
            )
        return self._column_distrib(add_param, burnin)

    def as_dict(self) -> Dict[str, np.ndarray]:
        """Column name -> column values for every kept row."""
        rows = self.pstats.rows_array()
        return {name: rows[:, k].copy() for k, name in enumerate(self.column_names())}
