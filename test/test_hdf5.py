# test/test_hdf5.py
import logging
from datetime import datetime, timezone

import h5py
import numpy as np
import pytest

from structarchive.core import (
    ArchiveConfig,
    ArchiveExists,
    ArchiveIOError,
    ArchiveNotFound,
    Container,
    CorruptArchive,
    Dataset,
    Layout,
    NotFinalized,
    SealedContainer,
    validate_tree,
)
from structarchive.io.hdf5 import OpenMode, open_container, save_container

pytestmark = pytest.mark.integration

PROJECT_ATTRS = {
    "name": "Demo",
    "contact": "x",
    "description": "y",
    "location": "z",
    "coordinate-system": "c",
}


def _sensor_attrs(name: str) -> dict:
    return {
        "name": name,
        "coordinate": (1.0, 2.0, 0.5),
        "orientation": (0.0, 0.0, 1.0),
        "description": f"strain gauge {name}",
        "unit": "µm/m",
        "conversion": 0.1,
    }


def _author(c: Container, n_trials=2, n_sensors=3, length=250) -> Container:
    """Fill `c` with N trials x M sensors; odd trials use a shared time vector."""
    rng = np.random.default_rng(7)
    c.root.attrs.update(PROJECT_ATTRS)
    c.root.attrs.set("created", datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc))
    for t in range(1, n_trials + 1):
        trial = c.add_group("/", f"trial {t}")
        trial.attrs.update({"name": f"trial {t}", "description": "ambient"})
        shared = t % 2 == 1
        if shared:
            trial.add_dataset("time").finalize(np.arange(length) / 100.0)
        for s in range(1, n_sensors + 1):
            ds = trial.add_dataset(f"S{s}")
            ds.finalize(rng.normal(size=length))
            ds.attrs.update(_sensor_attrs(f"S{s}"))
            if not shared:
                ds.attrs.update({"start-time": datetime(2024, 5, 1, 9, 0), "sampling-interval": 0.01})
    return c


def _assert_same_tree(a: Container, b: Container) -> None:
    nodes_a, nodes_b = list(a.walk()), list(b.walk())
    assert [n.path for n in nodes_a] == [n.path for n in nodes_b]
    for na, nb in zip(nodes_a, nodes_b):
        assert type(na) is type(nb)
        assert na.attrs == nb.attrs
        if isinstance(na, Dataset):
            assert na.dtype == nb.dtype
            assert na.shape == nb.shape
            assert np.array_equal(na.read(), nb.read(), equal_nan=True)


def test_round_trip_is_lossless(tmp_path):
    path = tmp_path / "demo.h5"
    original = _author(Container())
    extra = original.add_dataset("/trial 2", "counts", np.int16)
    extra.finalize(np.array([-3, 0, 7], dtype=np.int16))
    extra.attrs.update({"note": "raw ADC counts"})
    matrix = original.add_dataset("/trial 2", "rosette", np.float32)
    matrix.finalize(np.array([[0.1, np.nan], [np.inf, -0.0]], dtype=np.float32))

    save_container(original, path)
    assert original.sealed

    with open_container(path) as handle:
        reopened = handle.container
        assert reopened.sealed
        assert reopened.layout is Layout.SINGLE_PROJECT
        _assert_same_tree(original, reopened)
        assert reopened.get_attribute("/", "created") == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
        assert reopened.get_attribute("/trial 2/S1", "start-time") == datetime(2024, 5, 1, 9, 0)
        assert reopened.get_attribute("/trial 1/S1", "unit") == "µm/m"


def test_write_handle_commits_on_close(tmp_path):
    path = tmp_path / "authored.h5"
    with open_container(path, "w") as handle:
        assert handle.mode is OpenMode.READ_WRITE
        _author(handle.container, n_trials=1, n_sensors=2, length=10)

    assert handle.closed
    with open_container(path) as handle:
        c = handle.container
        assert [name for name, _ in c.children("/trial 1")] == ["time", "S1", "S2"]
        assert validate_tree(c, check_time_basis=True).ok


def test_reopened_container_is_read_only_and_lazy(tmp_path):
    path = tmp_path / "demo.h5"
    save_container(_author(Container(), n_trials=1, length=1000), path)

    handle = open_container(path)
    c = handle.container
    ds = c.resolve("/trial 1/S2")
    assert ds.get_slice(100, 5).shape == (5,)
    with pytest.raises(SealedContainer):
        c.add_group("/", "trial 9")
    with pytest.raises(SealedContainer):
        c.set_attribute("/trial 1", "name", "renamed")

    handle.close()
    handle.close()  # idempotent
    with pytest.raises(ArchiveIOError):
        ds.get_slice(0, 1)
    with pytest.raises(ArchiveIOError):
        _ = handle.container


def test_time_basis_of_reopened_archive(tmp_path):
    path = tmp_path / "demo.h5"
    save_container(_author(Container(), n_trials=2, length=100), path)

    with open_container(path) as handle:
        resolver = handle.container.time_base()
        shared = resolver.timestamps("/trial 1/S1")
        np.testing.assert_array_equal(shared.to_numpy(), np.arange(100) / 100.0)
        regular = resolver.timestamps("/trial 2/S1")
        assert len(regular) == 100
        assert regular[1] - regular[0] == pytest.approx(0.01, abs=1e-6)


def test_multi_project_layout_round_trip(tmp_path):
    path = tmp_path / "multi.h5"
    c = Container(layout=Layout.MULTI_PROJECT)
    c.add_group("/", "bridge A").attrs.update(PROJECT_ATTRS)
    c.add_group("/bridge A", "trial 1").attrs.update({"name": "t", "description": "d"})
    save_container(c, path)

    with open_container(path) as handle:
        assert handle.container.layout is Layout.MULTI_PROJECT
        assert validate_tree(handle.container).ok


def test_empty_datasets_and_compression(tmp_path):
    path = tmp_path / "compressed.h5"
    config = ArchiveConfig(compression="gzip", compression_opts=4, chunk_size=64)
    c = Container(config=config)
    c.add_dataset("/", "empty").finalize(np.empty(0))
    c.add_dataset("/", "ramp").finalize(np.arange(1000, dtype=np.float64))
    save_container(c, path)

    with open_container(path) as handle:
        assert handle.container.resolve("/empty").length == 0
        np.testing.assert_array_equal(handle.container.resolve("/ramp").read(), np.arange(1000))

    with h5py.File(path, "r") as f:
        assert f["ramp"].compression == "gzip"


def test_open_missing_archive(tmp_path):
    with pytest.raises(ArchiveNotFound):
        open_container(tmp_path / "missing.h5")
    with pytest.raises(FileNotFoundError):
        open_container(tmp_path / "missing.h5")


def test_open_non_hdf5_file_is_corrupt(tmp_path):
    path = tmp_path / "notes.h5"
    path.write_text("not an archive")
    with pytest.raises(CorruptArchive):
        open_container(path)


def test_create_refuses_to_overwrite(tmp_path):
    path = tmp_path / "demo.h5"
    save_container(_author(Container(), n_trials=1, length=5), path)
    with pytest.raises(ArchiveExists):
        open_container(path, "w")
    with pytest.raises(ArchiveExists):
        save_container(Container(), path)
    with open_container(path) as handle:
        assert "trial 1" in handle.container.root


def test_exception_in_write_block_discards_archive(tmp_path):
    path = tmp_path / "aborted.h5"
    with pytest.raises(RuntimeError):
        with open_container(path, "w") as handle:
            handle.container.add_group("/", "trial 1")
            raise RuntimeError("acquisition failed")
    assert handle.closed
    assert not path.exists()


def test_unfinalized_dataset_aborts_commit(tmp_path, caplog):
    path = tmp_path / "pending.h5"
    handle = open_container(path, "w")
    handle.container.add_dataset("/", "A1")
    with caplog.at_level(logging.WARNING, logger="structarchive"):
        with pytest.raises(NotFinalized):
            handle.close()
    assert handle.closed
    assert not path.exists()
    assert "discarded" in caplog.text


def test_failed_write_leaves_container_unsealed(tmp_path):
    path = tmp_path / "failed.h5"
    c = _author(Container(), n_trials=1, length=20)
    with pytest.raises(ValueError):
        save_container(c, path, config=ArchiveConfig(compression="gzip", compression_opts=42))
    assert not path.exists()
    assert not c.sealed

    c.root.attrs.set("description", "retried")
    save_container(c, path)
    assert c.sealed
    with open_container(path) as handle:
        assert handle.container.root.attrs["description"] == "retried"


def test_commit_warns_about_invalid_metadata(tmp_path, caplog):
    path = tmp_path / "incomplete.h5"
    c = Container()
    c.add_group("/", "trial 1")
    with caplog.at_level(logging.WARNING, logger="structarchive"):
        save_container(c, path)
    assert path.exists()
    assert "invalid node" in caplog.text


def test_foreign_hdf5_file_is_readable(tmp_path):
    path = tmp_path / "legacy.h5"
    with h5py.File(path, "w") as f:
        f.attrs["name"] = np.bytes_(b"Legacy")
        f.attrs["count"] = np.int32(3)
        g = f.create_group("run 1")
        g.create_dataset("A1", data=np.arange(4, dtype=np.int16))
        g["A1"].attrs["coordinate"] = [1, 2, 3]

    with open_container(path) as handle:
        c = handle.container
        assert c.get_attribute("/", "name") == "Legacy"
        assert c.get_attribute("/", "count") == 3.0
        assert c.get_attribute("/run 1/A1", "coordinate") == (1.0, 2.0, 3.0)
        assert c.resolve("/run 1/A1").read().tolist() == [0, 1, 2, 3]


def test_unsupported_hdf5_content_is_corrupt(tmp_path):
    path = tmp_path / "labels.h5"
    with h5py.File(path, "w") as f:
        f.create_dataset("labels", data=np.array([b"a", b"b"]))
    with pytest.raises(CorruptArchive):
        open_container(path)
