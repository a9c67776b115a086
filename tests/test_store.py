import random

import pytest
from sqlalchemy.exc import OperationalError

import models
from store import TreeRepository
from tree import InvalidTreeError, NodeNotFoundError, NodeRecord, RootExistsError


@pytest.fixture
def repo(db):
    return TreeRepository(db, rng=random.Random(3))


def test_create_root_is_persisted(repo, db):
    root = repo.create_root()

    row = db.query(models.Node).filter(models.Node.id == root.id).one()
    assert row.name == "Root"
    assert row.is_root is True
    assert row.parent_id is None
    assert repo.saved


def test_create_root_twice(repo):
    repo.create_root()

    with pytest.raises(RootExistsError):
        repo.create_root()
    assert repo.count() == 1


def test_add_child_is_persisted(repo):
    root = repo.create_root()

    child = repo.add_child(root.id)

    tree = repo.load()
    assert [c.id for c in tree.children(root.id)] == [child.id]
    assert tree.get(root.id).is_root


def test_add_child_unknown_parent(repo):
    with pytest.raises(NodeNotFoundError):
        repo.add_child("nope")
    assert repo.count() == 0


def test_promote_is_persisted(repo, db):
    old = repo.create_root()

    new = repo.promote_to_root(old.id)

    tree = repo.load()
    assert tree.root().id == new.id
    assert tree.get(old.id).parent_id == new.id
    assert tree.get(old.id).name == "oot"
    assert not tree.get(old.id).is_root
    assert db.query(models.Node).filter(models.Node.is_root.is_(True)).count() == 1


def test_orm_relationship_sees_persisted_links(repo, db):
    old = repo.create_root()
    new = repo.promote_to_root(old.id)
    db.expire_all()

    row = db.query(models.Node).filter(models.Node.id == new.id).one()
    assert [c.id for c in row.children] == [old.id]
    assert row.children[0].parent is row


def test_promote_non_root_changes_nothing(repo):
    root = repo.create_root()
    child = repo.add_child(root.id)

    assert repo.promote_to_root(child.id) is None
    assert repo.count() == 2


def test_delete_cascades_subtree(repo):
    root = repo.create_root()
    node = repo.add_child(root.id)
    repo.add_child(node.id)
    repo.add_child(node.id)
    assert repo.count() == 4

    removed = repo.delete_node(node.id)

    assert len(removed) == 3
    assert repo.count() == 1


def test_restart_wipes_everything(repo):
    root = repo.create_root()
    repo.add_child(repo.add_child(root.id).id)
    repo.promote_to_root(root.id)

    assert repo.restart() == 4
    assert repo.count() == 0
    assert repo.load().root() is None


def test_rename_is_persisted(repo):
    root = repo.create_root()

    repo.rename(root.id, "Top")

    assert repo.load().get(root.id).name == "Top"


def test_failed_commit_is_discarded(repo, db, monkeypatch):
    root = repo.create_root()

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", broken_commit)
    child = repo.add_child(root.id)

    assert child.parent_id == root.id
    assert repo.saved is False
    assert repo.count() == 1

    monkeypatch.undo()
    repo.add_child(root.id)
    assert repo.saved is True
    assert repo.count() == 2


def test_replace_all(repo):
    repo.create_root()
    records = [
        NodeRecord(id="b", name="child", parent_id="a"),
        NodeRecord(id="a", name="top", is_root=True),
        NodeRecord(id="c", name="leaf", parent_id="b"),
    ]

    assert repo.replace_all(records) == 3

    tree = repo.load()
    assert tree.root().id == "a"
    assert tree.subtree_ids("a") == ["a", "b", "c"]


def test_replace_all_rejects_invalid_snapshot(repo):
    root = repo.create_root()

    with pytest.raises(InvalidTreeError):
        repo.replace_all([NodeRecord(id="x", is_root=True), NodeRecord(id="y", is_root=True)])

    assert [r.id for r in repo.load().walk()] == [root.id]


def test_replace_all_rejects_duplicate_ids(repo):
    root = repo.create_root()
    records = [
        NodeRecord(id="a", name="A", is_root=True),
        NodeRecord(id="b", name="B1", parent_id="a"),
        NodeRecord(id="b", name="B2", parent_id="a"),
    ]

    with pytest.raises(InvalidTreeError, match="Duplicate id: b"):
        repo.replace_all(records)

    assert [r.id for r in repo.load().walk()] == [root.id]


def test_random_operations_keep_stored_tree_consistent(repo, db):
    rng = random.Random(99)
    for _ in range(120):
        ids = [row.id for row in db.query(models.Node.id)]
        op = rng.choice(["root", "child", "child", "promote", "delete"])
        if op == "root" and not ids:
            repo.create_root()
        elif op == "child" and ids:
            repo.add_child(rng.choice(ids))
        elif op == "promote" and ids:
            repo.promote_to_root(rng.choice(ids))
        elif op == "delete" and ids and rng.random() < 0.3:
            repo.delete_node(rng.choice(ids))
        assert repo.saved

        db.expire_all()
        rows = db.query(models.Node).all()
        assert db.query(models.Node).filter(models.Node.is_root.is_(True)).count() <= 1
        for row in rows:
            if row.parent_id is None:
                assert row.parent is None
            else:
                assert row.parent.id == row.parent_id
                assert row in row.parent.children
            for child in row.children:
                assert child.parent_id == row.id
        assert len(repo.load()) == len(rows)
        repo.load().check()
