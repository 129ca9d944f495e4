from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Tuple

import numpy as np

from .util import uncertainty_to_string


def _column_index(catalog: Any, name: Any) -> int:
    if isinstance(name, (int, np.integer)):
        return int(name)
    try:
        return catalog.column_names().index(name)
    except ValueError as e:
        raise KeyError(f"Catalog has no column {name!r}.") from e


def plot_trace(
    catalog: Any,
    names: Optional[Sequence[Any]] = None,
    *,
    burnin: int = 0,
    axes: Optional[Sequence[Any]] = None,
    by_chain: bool = True,
    line_kwargs: Optional[Mapping[str, Any]] = None,
) -> Tuple[Any, Any]:
    """Trace plot of catalog columns, one panel per column.

    Parameters
    ----------
    catalog : MSetCatalog
        Source of the rows.
    names : sequence of str or int, optional
        Columns to draw (names or positions). Defaults to the free parameters.
    burnin : int
        Rows skipped at the start.
    axes : sequence of matplotlib Axes, optional
        One Axes per column; a new figure is created when None.
    by_chain : bool
        Colour the rows of each chain separately when the catalog has
        several chains.
    """
    import matplotlib.pyplot as plt

    line_kwargs = dict(line_kwargs or {})
    if names is None:
        cols = list(range(catalog.nadd_vals, catalog.nadd_vals + catalog.nfree))
    else:
        cols = [_column_index(catalog, n) for n in names]
    if not cols:
        raise ValueError("plot_trace: nothing to plot.")

    if axes is None:
        fig, axes = plt.subplots(len(cols), 1, sharex=True, squeeze=False)
        axes = list(axes[:, 0])
    else:
        axes = list(axes)
        if len(axes) != len(cols):
            raise ValueError("plot_trace requires one Axes per column.")
        fig = axes[0].figure

    rows = catalog.peek_pstats().rows_array(burnin)
    ids = catalog.get_first_id() + burnin + np.arange(rows.shape[0])
    labels = catalog.column_names()
    line_kwargs.setdefault("lw", 0.6)

    nchains = catalog.get_nchains()
    for ax, col in zip(axes, cols):
        if by_chain and nchains > 1:
            for c in range(nchains):
                sel = ids % nchains == c
                ax.plot(ids[sel], rows[sel, col], label=f"chain {c}", **line_kwargs)
        else:
            ax.plot(ids, rows[:, col], **line_kwargs)
        ax.set_ylabel(labels[col])
    axes[-1].set_xlabel("id")
    return fig, axes


def plot_param_distrib(
    catalog: Any,
    i: int,
    *,
    burnin: int = 0,
    ax: Optional[Any] = None,
    nodes: int = 400,
    hist: bool = True,
    show_stats: bool = True,
    param_digits: int | str | None = "auto",
    line_kwargs: Optional[Mapping[str, Any]] = None,
    hist_kwargs: Optional[Mapping[str, Any]] = None,
) -> Tuple[Any, Any]:
    """Marginal density of free parameter ``i`` with an optional histogram."""
    import matplotlib.pyplot as plt

    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    line_kwargs = dict(line_kwargs or {})
    hist_kwargs = dict(hist_kwargs or {})

    epdf = catalog.calc_param_distrib(i, burnin)
    xg = np.linspace(epdf.xi, epdf.xf, nodes)
    pdf = np.array([epdf.eval_pdf(x) for x in xg])

    if hist:
        values = catalog.peek_pstats().rows_array(burnin)[:, catalog.nadd_vals + i]
        hist_kwargs.setdefault("bins", "auto")
        hist_kwargs.setdefault("density", True)
        hist_kwargs.setdefault("alpha", 0.3)
        ax.hist(values[np.isfinite(values)], **hist_kwargs)

    line_kwargs.setdefault("label", "smoothed")
    ax.plot(xg, pdf, **line_kwargs)
    name = catalog.get_mset().free_parameter_full_name(i)
    ax.set_xlabel(name)
    ax.set_ylabel("pdf")

    if show_stats:
        text = f"{name}={uncertainty_to_string(epdf.mean, epdf.sd, precision=param_digits)}"
        ax.text(
            0.02,
            0.98,
            text,
            ha="left",
            va="top",
            fontsize=9,
            transform=ax.transAxes,
            bbox={"boxstyle": "round", "facecolor": "white", "alpha": 0.7, "edgecolor": "none"},
        )
    return fig, ax
