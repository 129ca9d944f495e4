import h5py
import numpy as np
import pytest

from cosmocat import CatalogFile


def test_create_write_read(tmp_path):
    fn = tmp_path / "cat.h5"
    with CatalogFile(fn, columns=["a", "b"]) as cf:
        assert cf.columns == ("a", "b")
        assert cf.nrows == 0
        cf.write_rows(1, np.array([[1.0, 2.0], [3.0, 4.0]]))
        cf.write_row(3, [5.0, 6.0])
        assert cf.nrows == 3
        assert cf.get_meta("NROWS") == 3

    with CatalogFile(fn, readonly=True) as cf:
        np.testing.assert_array_equal(cf.read_rows(1, 3), [[1, 2], [3, 4], [5, 6]])
        assert cf.read_row(2).tolist() == [3.0, 4.0]
        assert cf.read_rows(1, 0).shape == (0, 2)
        assert cf.column_index("b") == 1
        with pytest.raises(KeyError, match="no column"):
            cf.column_index("B")


def test_insert_and_delete_rows(tmp_path):
    cf = CatalogFile(tmp_path / "cat.h5", columns=["x"])
    cf.write_rows(1, np.arange(1.0, 6.0)[:, None])

    cf.insert_rows(1, 2)
    rows = cf.read_rows(1, cf.nrows)[:, 0]
    assert np.isnan(rows[:2]).all()
    assert rows[2:].tolist() == [1.0, 2.0, 3.0, 4.0, 5.0]

    cf.delete_rows(1, 2)
    cf.delete_rows(4, 2)
    assert cf.read_rows(1, cf.nrows)[:, 0].tolist() == [1.0, 2.0, 3.0]

    cf.insert_rows(4, 1)
    assert cf.nrows == 4
    assert np.isnan(cf.read_row(4)[0])
    cf.close()
    assert cf.closed


def test_range_errors(tmp_path):
    cf = CatalogFile(tmp_path / "cat.h5", columns=["x", "y"])
    cf.write_row(1, [0.0, 0.0])
    with pytest.raises(IndexError):
        cf.read_rows(1, 2)
    with pytest.raises(IndexError):
        cf.write_row(3, [0.0, 0.0])
    with pytest.raises(IndexError):
        cf.insert_rows(5, 1)
    with pytest.raises(ValueError, match="columns"):
        cf.write_row(1, [0.0])
    cf.close()


def test_metadata(tmp_path):
    with CatalogFile(tmp_path / "cat.h5", columns=["x"]) as cf:
        cf.set_meta("RTYPE", "mcmc")
        cf.set_meta("NCHAINS", 4)
        assert cf.get_meta("RTYPE") == "mcmc"
        assert cf.get_meta("NCHAINS") == 4
        assert cf.has_meta("RTYPE")
        cf.del_meta("RTYPE")
        assert not cf.has_meta("RTYPE")
        assert cf.get_meta("RTYPE", "none") == "none"
        with pytest.raises(ValueError, match="column list"):
            cf.set_meta("columns", "z")
        cf.flush()
        cf.flush_full()


def test_missing_and_malformed_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        CatalogFile(tmp_path / "missing.h5", readonly=True)

    fn = tmp_path / "empty.h5"
    with pytest.raises(ValueError, match="no columns were given"):
        CatalogFile(fn)

    bad = tmp_path / "bad.h5"
    with h5py.File(bad, "w") as f:
        f.create_group("catalog")
    with pytest.raises(ValueError, match="Malformed"):
        CatalogFile(bad)

    with pytest.raises(ValueError, match="Duplicate"):
        CatalogFile(tmp_path / "dup.h5", columns=["a", "a"])
