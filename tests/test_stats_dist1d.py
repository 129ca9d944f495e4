import numpy as np
import pytest
from scipy import stats

from cosmocat.stats_dist1d import EmpiricalDist1d


def test_gaussian_quantiles():
    rng = np.random.default_rng(0)
    epdf = EmpiricalDist1d(max_obs=500)
    for x in rng.normal(2.0, 0.5, size=20_000):
        epdf.add_obs(x)
    epdf.prepare()

    assert epdf.n_obs == 20_000
    assert epdf.mean == pytest.approx(2.0, abs=0.02)
    assert epdf.sd == pytest.approx(0.5, rel=0.03)
    for u in (0.1587, 0.5, 0.8413):
        expected = stats.norm.ppf(u, loc=2.0, scale=0.5)
        assert epdf.eval_inv_cdf(u) == pytest.approx(expected, abs=0.05)
    assert epdf.eval_cdf(2.0) == pytest.approx(0.5, abs=0.02)
    assert epdf.eval_pdf(2.0) == pytest.approx(stats.norm.pdf(0.0) / 0.5, rel=0.1)


def test_compression_preserves_weight_and_mean():
    epdf = EmpiricalDist1d(max_obs=10)
    xs = np.linspace(-1.0, 3.0, 101)
    for x in xs:
        epdf.add_obs(x, 2.0)
    assert epdf.n_obs == 101
    assert len(epdf._x) <= 10
    assert sum(epdf._w) == pytest.approx(202.0)
    assert epdf.mean == pytest.approx(xs.mean())


def test_non_finite_and_non_positive_weights_are_ignored():
    epdf = EmpiricalDist1d()
    epdf.add_obs(np.nan)
    epdf.add_obs(np.inf)
    epdf.add_obs(1.0, 0.0)
    assert epdf.n_obs == 0
    assert np.isnan(epdf.mean)
    with pytest.raises(RuntimeError, match="without observations"):
        epdf.prepare()


def test_support_and_clipping():
    epdf = EmpiricalDist1d()
    for x in (0.0, 1.0, 2.0):
        epdf.add_obs(x)
    assert epdf.xi < 0.0 < 2.0 < epdf.xf
    assert epdf.eval_cdf(epdf.xi - 1.0) == 0.0
    assert epdf.eval_cdf(epdf.xf + 1.0) == 1.0
    assert epdf.eval_inv_cdf(-3.0) == pytest.approx(epdf.eval_inv_cdf(0.0))


def test_weighted_pdf_follows_kde():
    rng = np.random.default_rng(1)
    xs = rng.normal(size=300)
    ws = rng.uniform(0.5, 2.0, size=300)
    epdf = EmpiricalDist1d(max_obs=1000)
    for x, w in zip(xs, ws):
        epdf.add_obs(x, w)
    epdf.prepare(nodes=2000)

    kde = stats.gaussian_kde(xs, bw_method="silverman", weights=ws)
    for x in (-1.0, 0.0, 0.7):
        assert epdf.eval_pdf(x) == pytest.approx(kde(x)[0], rel=1e-3)
        assert epdf.eval_cdf(x) == pytest.approx(kde.integrate_box_1d(-np.inf, x), abs=1e-3)


def test_single_value_sample():
    epdf = EmpiricalDist1d()
    for _ in range(5):
        epdf.add_obs(3.0)
    epdf.prepare()
    assert epdf.mean == 3.0
    assert epdf.eval_inv_cdf(0.5) == pytest.approx(3.0)
    assert epdf.eval_cdf(2.9) == 0.0
