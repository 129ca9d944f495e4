import numpy as np
import pytest

from cosmocat import MSet, MSetCatalog, Model, ParameterSpec

uncertainties = pytest.importorskip("uncertainties")


def test_u_uses_catalog_covariance():
    rng = np.random.default_rng(0)
    cov = np.array([[1.0, 0.8], [0.8, 2.0]])
    draws = rng.multivariate_normal([1.0, -1.0], cov, size=3000)

    cat = MSetCatalog(MSet(Model([ParameterSpec("m"), ParameterSpec("b")], mid="line")))
    for row in draws:
        cat.add(0.0, params=row)

    pv = cat.params_view()
    m_u = pv["line:m"].u
    b_u = pv["line:b"].u
    u_cov = np.array(uncertainties.covariance_matrix([m_u, b_u]), dtype=float)
    np.testing.assert_allclose(u_cov, cat.get_covar(), rtol=1e-6, atol=1e-6)
    assert (m_u - b_u).std_dev == pytest.approx(
        np.sqrt(cov[0, 0] + cov[1, 1] - 2 * cov[0, 1]), rel=0.1
    )


def test_u_requires_finite_stderr():
    cat = MSetCatalog(MSet(Model([ParameterSpec("m")], mid="line")))
    cat.add(0.0, params=[1.0])
    with pytest.raises(ValueError, match="finite stderr"):
        cat.params_view()["line:m"].u
