import numpy as np
import pytest

from cosmocat.stats_vec import StatsVec, autocorr_tau_from_rho, autocorrelation


@pytest.mark.parametrize("n", [2, 7, 500, 10_000])
def test_online_moments_match_batch(n):
    rng = np.random.default_rng(n)
    data = rng.normal(size=(n, 3)) @ np.array([[1.0, 0.3, 0.0], [0.0, 2.0, 0.5], [0.0, 0.0, 0.1]])
    data += np.array([1e3, -2.0, 0.5])

    sv = StatsVec(3, mode="cov")
    for row in data:
        sv.append(row)

    assert sv.nitens == n
    np.testing.assert_allclose(sv.get_mean_vector(), data.mean(axis=0), rtol=1e-9)
    np.testing.assert_allclose(sv.get_cov_matrix(), np.cov(data, rowvar=False), rtol=1e-9, atol=1e-12)
    np.testing.assert_allclose(sv.get_var_vector(), data.var(axis=0, ddof=1), rtol=1e-9)


def test_single_row_has_no_variance():
    sv = StatsVec(2)
    sv.append([1.0, 2.0])
    assert sv.get_mean(1) == 2.0
    assert np.isnan(sv.get_var(0))


def test_working_vector_update():
    sv = StatsVec(2, mode="var")
    for a, b in [(1.0, 2.0), (3.0, 6.0)]:
        sv.set(0, a)
        sv.set(1, b)
        sv.update()
    assert sv.get_mean_vector() == pytest.approx([2.0, 4.0])
    assert sv.get_var(1) == pytest.approx(8.0)


def test_weighted_matches_numpy():
    rng = np.random.default_rng(3)
    data = rng.normal(size=(200, 2))
    w = rng.uniform(0.1, 2.0, size=200)

    sv = StatsVec(2, mode="cov")
    sv.append_data(data, w)

    mean = np.average(data, axis=0, weights=w)
    np.testing.assert_allclose(sv.get_mean_vector(), mean, rtol=1e-10)
    cov = np.cov(data, rowvar=False, aweights=w, ddof=0)
    bias = w.sum() ** 2 / (w.sum() ** 2 - np.sum(w * w))
    np.testing.assert_allclose(sv.get_cov_matrix(), cov * bias, rtol=1e-9)
    assert sv.weight == pytest.approx(w.sum())
    assert sv.bias_wt == pytest.approx(bias)


def test_unit_weights_bias_is_n_over_n_minus_one():
    sv = StatsVec(1)
    sv.append_data([[1.0], [2.0], [4.0], [8.0]])
    assert sv.bias_wt == pytest.approx(4.0 / 3.0)


def test_prepend_keeps_order_and_stats():
    rows = np.arange(12, dtype=float).reshape(6, 2)
    sv = StatsVec(2, save_x=True)
    sv.append_data(rows[3:])
    sv.prepend_data(rows[:3])

    np.testing.assert_array_equal(sv.rows_array(), rows)
    np.testing.assert_allclose(sv.get_mean_vector(), rows.mean(axis=0))
    np.testing.assert_allclose(sv.get_cov_matrix(), np.cov(rows, rowvar=False))

    sv.prepend([-2.0, -1.0])
    assert sv.peek_row(0).tolist() == [-2.0, -1.0]
    assert sv.nrows == 7


def test_peek_row_is_read_only():
    sv = StatsVec(2, save_x=True)
    sv.append([1.0, 2.0])
    row = sv.peek_row(0)
    with pytest.raises(ValueError):
        row[0] = 5.0


def test_reset_and_reset_stats():
    sv = StatsVec(1, save_x=True)
    sv.append_data([[1.0], [3.0]])
    sv.reset(False)
    assert sv.nitens == 0
    assert sv.nrows == 2
    sv.reset_stats()
    assert sv.get_mean(0) == pytest.approx(2.0)
    sv.reset(True)
    assert sv.nrows == 0

    plain = StatsVec(1)
    with pytest.raises(RuntimeError, match="save_x"):
        plain.reset_stats()


def test_row_length_is_checked():
    sv = StatsVec(3)
    with pytest.raises(ValueError, match="length 3"):
        sv.append([1.0, 2.0])


def test_autocorrelation_of_constant_series():
    rho = autocorrelation(np.ones(16))
    assert rho[0] == 1.0
    assert np.all(rho[1:] == 0.0)
    assert autocorr_tau_from_rho(rho) == 1.0


def test_autocorr_tau_white_noise_and_ar1():
    rng = np.random.default_rng(11)
    n = 50_000
    sv = StatsVec(2, save_x=True)
    phi = 0.8
    y = 0.0
    for _ in range(n):
        y = phi * y + rng.normal()
        sv.append([rng.normal(), y])

    assert sv.get_autocorr_tau(0) == pytest.approx(1.0, abs=0.2)
    # AR(1): tau = (1 + phi) / (1 - phi) = 9
    assert sv.get_autocorr_tau(1) == pytest.approx(9.0, rel=0.2)


def test_subsample_tau_interleaved_chains():
    rng = np.random.default_rng(5)
    sv = StatsVec(1, save_x=True)
    for _ in range(4000):
        sv.append([rng.normal()])
    assert sv.get_subsample_autocorr_tau(0, 4) == pytest.approx(1.0, abs=0.3)
    with pytest.raises(ValueError):
        sv.get_subsample_autocorr_tau(0, 0)
