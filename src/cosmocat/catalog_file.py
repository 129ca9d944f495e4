"""Column-oriented sample table stored in an HDF5 file.

Layout: one group ``catalog`` holding one resizable float64 dataset per
column (``col0``, ``col1``, ...). The group attribute ``columns`` records
the column names in order; every other group attribute is a metadata
key. Rows are addressed with 1-based indices.
"""
from __future__ import annotations

import os
from typing import Any, Optional, Sequence, Tuple

import h5py
import numpy as np

__all__ = ["CatalogFile"]

GROUP = "catalog"


class CatalogFile:
    """Row/column access to a catalog table.

    Parameters
    ----------
    filename : str or path-like
        HDF5 file. Created if missing (then ``columns`` is required).
    columns : sequence of str, optional
        Column names for a new table. Ignored when the table exists.
    readonly : bool
        Open an existing file without write access.
    """

    def __init__(
        self,
        filename: Any,
        *,
        columns: Optional[Sequence[str]] = None,
        readonly: bool = False,
    ):
        self.filename = os.fspath(filename)
        exists = os.path.exists(self.filename)
        if readonly and not exists:
            raise FileNotFoundError(f"Catalog file {self.filename!r} does not exist.")
        self._f = h5py.File(self.filename, "r" if readonly else "a")
        try:
            if GROUP in self._f:
                self._g = self._f[GROUP]
                if "columns" not in self._g.attrs:
                    raise ValueError(
                        f"Malformed catalog file {self.filename!r}: missing column list."
                    )
                self._columns = tuple(str(c) for c in self._g.attrs["columns"])
                for k in range(len(self._columns)):
                    if f"col{k}" not in self._g:
                        raise ValueError(
                            f"Malformed catalog file {self.filename!r}: missing column {k}."
                        )
            else:
                if columns is None:
                    raise ValueError(
                        f"File {self.filename!r} holds no catalog and no columns were given."
                    )
                if readonly:
                    raise ValueError(f"File {self.filename!r} holds no catalog.")
                self._create(columns)
        except Exception:
            self._f.close()
            raise

    def _create(self, columns: Sequence[str]) -> None:
        columns = tuple(str(c) for c in columns)
        if len(set(columns)) != len(columns):
            raise ValueError(f"Duplicate column names: {columns}.")
        self._g = self._f.create_group(GROUP)
        for k in range(len(columns)):
            self._g.create_dataset(
                f"col{k}", shape=(0,), maxshape=(None,), dtype="f8", chunks=(1024,)
            )
        self._g.attrs["columns"] = np.array(columns, dtype=h5py.string_dtype())
        self._g.attrs["NROWS"] = 0
        self._columns = columns

    def __repr__(self) -> str:
        return f"CatalogFile({self.filename!r}, nrows={self.nrows}, ncols={self.ncols})"

    def __enter__(self) -> "CatalogFile":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---- columns ----
    @property
    def columns(self) -> Tuple[str, ...]:
        return self._columns

    @property
    def ncols(self) -> int:
        return len(self._columns)

    def column_index(self, name: str) -> int:
        """Position of column ``name`` (case-sensitive)."""
        try:
            return self._columns.index(name)
        except ValueError as e:
            raise KeyError(f"Catalog file has no column {name!r}.") from e

    def _ds(self, k: int) -> "h5py.Dataset":
        return self._g[f"col{k}"]

    # ---- rows ----
    @property
    def nrows(self) -> int:
        return int(self._ds(0).shape[0]) if self._columns else 0

    def _check_range(self, i: int, n: int) -> None:
        if i < 1 or i + n - 1 > self.nrows:
            raise IndexError(
                f"Rows {i}..{i + n - 1} outside table of {self.nrows} rows."
            )

    def _resize(self, nrows: int) -> None:
        for k in range(self.ncols):
            self._ds(k).resize((nrows,))
        self._g.attrs["NROWS"] = nrows

    def read_row(self, i: int) -> np.ndarray:
        return self.read_rows(i, 1)[0]

    def read_rows(self, i: int, n: int) -> np.ndarray:
        """Rows ``i .. i+n-1`` as an ``(n, ncols)`` array."""
        if n == 0:
            return np.zeros((0, self.ncols))
        self._check_range(i, n)
        out = np.empty((n, self.ncols))
        for k in range(self.ncols):
            out[:, k] = self._ds(k)[i - 1 : i - 1 + n]
        return out

    def write_row(self, i: int, row: Sequence[float]) -> None:
        self.write_rows(i, np.asarray(row, dtype=float)[None, :])

    def write_rows(self, i: int, rows: np.ndarray) -> None:
        """Write ``rows`` starting at row ``i``, growing the table if needed."""
        rows = np.atleast_2d(np.asarray(rows, dtype=float))
        n = rows.shape[0]
        if n == 0:
            return
        if rows.shape[1] != self.ncols:
            raise ValueError(
                f"Rows have {rows.shape[1]} columns, table has {self.ncols}."
            )
        if i < 1 or i > self.nrows + 1:
            raise IndexError(f"Cannot write at row {i} of a {self.nrows}-row table.")
        if i - 1 + n > self.nrows:
            self._resize(i - 1 + n)
        for k in range(self.ncols):
            self._ds(k)[i - 1 : i - 1 + n] = rows[:, k]

    def insert_rows(self, at: int, count: int) -> None:
        """Insert ``count`` blank (nan) rows so that the first is row ``at``."""
        old = self.nrows
        if at < 1 or at > old + 1:
            raise IndexError(f"Cannot insert at row {at} of a {old}-row table.")
        if count <= 0:
            return
        self._resize(old + count)
        for k in range(self.ncols):
            ds = self._ds(k)
            if at <= old:
                ds[at - 1 + count : old + count] = ds[at - 1 : old]
            ds[at - 1 : at - 1 + count] = np.nan

    def delete_rows(self, at: int, count: int) -> None:
        """Remove rows ``at .. at+count-1``."""
        if count <= 0:
            return
        self._check_range(at, count)
        old = self.nrows
        for k in range(self.ncols):
            ds = self._ds(k)
            if at - 1 + count < old:
                ds[at - 1 : old - count] = ds[at - 1 + count : old]
        self._resize(old - count)

    # ---- metadata ----
    def get_meta(self, key: str, default: Any = None) -> Any:
        if key not in self._g.attrs:
            return default
        v = self._g.attrs[key]
        if isinstance(v, bytes):
            return v.decode("utf-8")
        if isinstance(v, np.generic):
            return v.item()
        return v

    def set_meta(self, key: str, value: Any) -> None:
        if key == "columns":
            raise ValueError("The column list cannot be changed.")
        self._g.attrs[key] = value

    def has_meta(self, key: str) -> bool:
        return key in self._g.attrs

    def del_meta(self, key: str) -> None:
        if key in self._g.attrs:
            del self._g.attrs[key]

    # ---- durability ----
    def flush(self) -> None:
        """Push HDF5 buffers to the operating system."""
        self._f.flush()

    def flush_full(self) -> None:
        """Flush and ask the operating system to commit to disk."""
        self._f.flush()
        handle = self._f.id.get_vfd_handle()
        if isinstance(handle, int):
            os.fsync(handle)

    @property
    def closed(self) -> bool:
        return not bool(self._f.id.valid)

    def close(self) -> None:
        if not self.closed:
            self._f.close()
