# test/test_tree.py
import numpy as np
import pytest

from structarchive.core import (
    AlreadyFinalized,
    AttributeStore,
    Container,
    Dataset,
    DuplicateName,
    Group,
    InvalidName,
    InvalidParent,
    Layout,
    NotFinalized,
    OutOfBounds,
    PathNotFound,
    SealedContainer,
    as_path,
    format_path,
)


def _container_with_trial() -> Container:
    c = Container()
    c.add_group("/", "trial 1")
    a1 = c.add_dataset("/trial 1", "A1")
    a1.finalize(np.arange(10, dtype=np.float64))
    return c


def test_paths_normalize():
    assert as_path("/") == ()
    assert as_path("") == ()
    assert as_path("/trial 1/A1") == ("trial 1", "A1")
    assert as_path("trial 1/A1") == ("trial 1", "A1")
    assert as_path(["trial 1", "A1"]) == ("trial 1", "A1")
    assert format_path(("trial 1", "A1")) == "/trial 1/A1"
    with pytest.raises(InvalidName):
        as_path(["trial/1"])
    with pytest.raises(InvalidName):
        as_path("/trial 1/../A1")


def test_add_group_and_dataset_resolve():
    c = _container_with_trial()
    trial = c.resolve("/trial 1")
    a1 = c.resolve("/trial 1/A1")

    assert isinstance(trial, Group)
    assert isinstance(a1, Dataset)
    assert a1.parent is trial
    assert a1.path == "/trial 1/A1"
    assert a1.depth == 2
    assert c.resolve("/") is c.root
    assert trial["A1"] is a1


def test_resolve_missing_raises_path_not_found():
    c = _container_with_trial()
    with pytest.raises(PathNotFound):
        c.resolve("/trial 2")
    with pytest.raises(PathNotFound):
        c.resolve("/trial 1/A1/deeper")
    with pytest.raises(KeyError):
        _ = c.root["nope"]


def test_duplicate_dataset_name_keeps_first():
    c = _container_with_trial()
    first = c.resolve("/trial 1/A1")

    with pytest.raises(DuplicateName):
        c.add_dataset("/trial 1", "A1")
    with pytest.raises(DuplicateName):
        c.add_group("/trial 1", "A1")

    assert c.resolve("/trial 1/A1") is first
    assert list(c.resolve("/trial 1")) == ["A1"]


def test_children_below_dataset_are_refused():
    c = _container_with_trial()
    with pytest.raises(InvalidParent):
        c.add_group("/trial 1/A1", "x")
    with pytest.raises(InvalidParent):
        c.add_dataset("/trial 1/A1", "x")


@pytest.mark.parametrize("name", ["", "   ", "a/b", ".", "..", "a\x00b"])
def test_invalid_names_are_refused(name):
    c = Container()
    with pytest.raises(InvalidName):
        c.add_group("/", name)
    assert len(c.root) == 0


def test_children_preserve_insertion_order_and_restart():
    c = Container()
    for name in ("trial 3", "trial 1", "trial 2"):
        c.add_group("/", name)
    view = c.children("/")
    assert [name for name, _ in view] == ["trial 3", "trial 1", "trial 2"]
    assert [name for name, _ in view] == ["trial 3", "trial 1", "trial 2"]


def test_children_of_dataset_is_empty():
    c = _container_with_trial()
    assert list(c.children("/trial 1/A1")) == []


def test_walk_is_preorder_and_visits_each_node_once():
    c = Container()
    c.add_group("/", "t1")
    c.add_dataset("/t1", "A1")
    c.add_dataset("/t1", "A2")
    c.add_group("/", "t2")
    c.add_dataset("/t2", "B1")

    paths = [n.path for n in c.walk()]
    assert paths == ["/", "/t1", "/t1/A1", "/t1/A2", "/t2", "/t2/B1"]
    assert [d.path for d in c.datasets()] == ["/t1/A1", "/t1/A2", "/t2/B1"]


def test_attributes_through_container():
    c = _container_with_trial()
    c.set_attribute("/trial 1/A1", "unit", "g")
    assert c.get_attribute("/trial 1/A1", "unit") == "g"
    with pytest.raises(PathNotFound):
        c.set_attribute("/trial 9", "name", "x")


def test_dataset_finalize_once_and_slices():
    c = Container()
    ds = c.add_dataset("/", "A1", np.float32)

    with pytest.raises(NotFinalized):
        ds.get_slice(0, 1)
    with pytest.raises(NotFinalized):
        _ = ds.shape

    ds.finalize([0.0, 1.0, 2.0, 3.0])
    assert ds.is_finalized
    assert ds.dtype == np.dtype(np.float32)
    assert ds.length == 4
    assert ds.get_slice(1, 2).tolist() == [1.0, 2.0]
    assert ds.get_slice(4, 0).size == 0
    assert ds.read().tolist() == [0.0, 1.0, 2.0, 3.0]

    with pytest.raises(AlreadyFinalized):
        ds.finalize([9.0])
    with pytest.raises(OutOfBounds):
        ds.get_slice(3, 2)


def test_dataset_rejects_non_numeric_dtype():
    c = Container()
    with pytest.raises(TypeError):
        c.add_dataset("/", "labels", "U8")
    assert "labels" not in c.root


def test_seal_requires_finalized_datasets():
    c = Container()
    c.add_group("/", "trial 1")
    pending = c.add_dataset("/trial 1", "A1")

    with pytest.raises(NotFinalized):
        c.seal()
    assert not c.sealed

    pending.finalize([1.0])
    c.seal()
    assert c.sealed


def test_sealed_container_is_immutable():
    c = _container_with_trial()
    c.seal()
    c.seal()  # second seal is a no-op

    with pytest.raises(SealedContainer):
        c.add_group("/", "trial 2")
    with pytest.raises(SealedContainer):
        c.add_dataset("/trial 1", "A2")
    with pytest.raises(SealedContainer):
        c.set_attribute("/trial 1", "name", "x")
    with pytest.raises(SealedContainer):
        c.resolve("/trial 1/A1").attrs.update({"unit": "g"})

    assert c.resolve("/trial 1/A1").read().tolist() == list(range(10))


def test_sealed_attribute_store_cannot_be_replaced():
    c = _container_with_trial()
    c.seal()
    node = c.resolve("/trial 1/A1")
    with pytest.raises(AttributeError):
        node.attrs = AttributeStore()
    with pytest.raises(AttributeError):
        c.root.attrs = AttributeStore()
    with pytest.raises(SealedContainer):
        c.root.attrs.set("name", "x")
    assert "name" not in c.root.attrs


def test_seal_twice_leaves_identical_state():
    c = _container_with_trial()
    c.set_attribute("/trial 1", "name", "t")
    c.seal()
    before = [(n.path, n.attrs.to_dict()) for n in c.walk()]
    c.seal()
    after = [(n.path, n.attrs.to_dict()) for n in c.walk()]
    assert before == after


def test_multi_project_layout():
    c = Container(layout=Layout.MULTI_PROJECT)
    c.add_group("/", "bridge A")
    c.add_group("/bridge A", "trial 1")
    assert c.layout is Layout.MULTI_PROJECT
    assert c.resolve("/bridge A/trial 1").depth == 2
