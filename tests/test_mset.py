import numpy as np
import pytest

from cosmocat import LCDM, MSet, MSetFunc, Model, ParameterSpec
from cosmocat.mset import get_model_type


def _toy(mid: str = "toy") -> Model:
    return Model(
        [ParameterSpec("a", symbol="\\alpha", default=1.0), ParameterSpec("b", default=2.0, fixed=True), ParameterSpec("c")],
        mid=mid,
    )


def test_free_parameter_vector_roundtrip():
    mset = MSet(_toy(), _toy("other"))
    assert mset.free_parameter_count() == 4
    assert mset.free_parameter_full_names() == ("toy:a", "toy:c", "other:a", "other:c")
    assert mset.free_parameter_symbol(0) == "\\alpha"
    assert mset.free_parameter_symbol(1) == "c"

    pkey = mset["toy"].pkey
    mset.set_free_parameter_vector([5.0, 6.0, 7.0, 8.0])
    assert mset["toy"].get_vector().tolist() == [5.0, 2.0, 6.0]
    assert mset["toy"].pkey > pkey
    np.testing.assert_array_equal(mset.get_free_parameter_vector(), [5.0, 6.0, 7.0, 8.0])

    with pytest.raises(ValueError, match="length 4"):
        mset.set_free_parameter_vector([1.0])


def test_fparam_lookup():
    mset = MSet(_toy())
    assert mset.fparam_get_pi(1).pid == 2
    assert mset.fparam_get_fpi("toy", 2) == 1
    assert mset.fparam_get_fpi("toy", 1) == -1


def test_fix_and_free_are_pure():
    m = _toy()
    fixed = m.fix("a", c=3.0)
    assert not m.params[0].fixed
    assert fixed.params[0].fixed and fixed["c"] == 3.0
    assert MSet(fixed).free_parameter_count() == 0
    assert MSet(fixed.free("b")).free_parameter_full_names() == ("toy:b",)
    with pytest.raises(KeyError):
        m.fix("zzz")


def test_duplicate_model_rejected():
    mset = MSet(_toy())
    with pytest.raises(ValueError, match="already holds"):
        mset.push(_toy())
    with pytest.raises(KeyError, match="Available"):
        mset.peek("missing")


def test_json_roundtrip_restores_types():
    mset = MSet(LCDM(H0=68.0), _toy())
    dup = MSet.from_json(mset.to_json())
    assert isinstance(dup["HICosmo"], LCDM)
    assert dup["HICosmo"]["H0"] == 68.0
    assert dup.free_parameter_full_names() == mset.free_parameter_full_names()


def test_unknown_model_type():
    with pytest.raises(ValueError, match="Unknown model type"):
        get_model_type("NoSuchModel")


def test_mset_func_shapes():
    mset = MSet(_toy())
    f = MSetFunc(lambda ms, x: ms["toy"]["a"] * x[0], dim=1, nvar=1, name="ax")
    assert f.eval1(mset, 3.0) == 3.0
    np.testing.assert_array_equal(f.eval_vector(mset, [1.0, 2.0]), [1.0, 2.0])
    assert f.out_len([1.0, 2.0, 3.0]) == 3
    with pytest.raises(ValueError, match="takes 1 arguments"):
        f.eval(mset)

    bad = MSetFunc(lambda ms, x: [1.0, 2.0], dim=1, name="bad")
    with pytest.raises(ValueError, match="expected"):
        bad.eval0(mset)
