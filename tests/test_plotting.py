import numpy as np
import pytest

from cosmocat import MSet, MSetCatalog, Model, ParameterSpec


def _catalog(nchains: int = 2) -> MSetCatalog:
    rng = np.random.default_rng(0)
    cat = MSetCatalog(
        MSet(Model([ParameterSpec("a", symbol="a"), ParameterSpec("b")], mid="toy")),
        nchains=nchains,
        add_val_names=["m2lnL"],
    )
    for row in rng.normal(size=(200, 3)):
        cat.add(row[0], params=row[1:])
    return cat


def test_plot_trace_one_panel_per_column():
    matplotlib = pytest.importorskip("matplotlib")
    matplotlib.use("Agg", force=True)
    import matplotlib.pyplot as plt

    from cosmocat.plotting import plot_trace

    cat = _catalog()
    fig, axes = plot_trace(cat, burnin=10)
    assert len(axes) == 2
    assert axes[0].get_ylabel() == "toy:a"
    assert axes[-1].get_xlabel() == "id"
    assert len(axes[0].lines) == 2
    plt.close(fig)

    fig, axes = plot_trace(cat, ["m2lnL"], by_chain=False)
    assert axes[0].get_ylabel() == "m2lnL"
    assert len(axes[0].lines) == 1
    plt.close(fig)

    with pytest.raises(KeyError, match="no column"):
        plot_trace(cat, ["nope"])


def test_plot_param_distrib_uses_existing_axes():
    matplotlib = pytest.importorskip("matplotlib")
    matplotlib.use("Agg", force=True)
    import matplotlib.pyplot as plt

    from cosmocat.plotting import plot_param_distrib

    cat = _catalog(nchains=1)
    fig, ax = plt.subplots()
    out_fig, out_ax = plot_param_distrib(cat, 1, ax=ax)
    assert out_ax is ax and out_fig is fig
    assert ax.get_xlabel() == "toy:b"
    assert len(ax.lines) == 1
    assert ax.texts and ax.texts[0].get_text().startswith("toy:b=")
    plt.close(fig)
