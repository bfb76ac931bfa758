"""Folder tree: closure-table lookups, path materialisation, delete cascades and stats."""

import pytest
from sqlalchemy import func, select

from filevault.core.exceptions import (
    AlreadyDeletedError,
    BackendOperationError,
    ConflictError,
    CycleError,
    FolderNotEmptyError,
    FolderNotFoundError,
    ValidationError,
)
from filevault.models.file_record import FileRecord
from filevault.models.folder import Folder, FolderClosure
from filevault.schemas.files import FileUploadOptions
from filevault.schemas.folders import FolderCreate, FolderUpdate
from filevault.services.storage_backends import DeleteResult


def _mk(tree, db, name, parent=None):
    return tree.create(db, FolderCreate(name=name, parent_id=parent.id if parent else None))


def _upload(file_service, db, folder, size, name="f.bin"):
    return file_service.upload_file(db, b"x" * size, name, FileUploadOptions(folder_id=folder.id if folder else None))


def _closure_rows(db):
    return {
        (row.ancestor_id, row.descendant_id, row.depth)
        for row in db.execute(select(FolderClosure)).scalars()
    }


def test_docs_reports_scenario(folder_tree, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    reports = _mk(folder_tree, db, "Reports", docs)

    assert docs.path == "/Docs"
    assert reports.path == "/Docs/Reports"
    assert [f.name for f in folder_tree.get_ancestors(db, reports.id)] == ["Docs"]
    assert folder_tree.get_ancestors(db, docs.id) == []


def test_create_writes_reflexive_and_ancestor_closure_rows(folder_tree, db_session_fixture):
    db = db_session_fixture
    a = _mk(folder_tree, db, "a")
    b = _mk(folder_tree, db, "b", a)
    c = _mk(folder_tree, db, "c", b)

    assert _closure_rows(db) == {
        (a.id, a.id, 0),
        (b.id, b.id, 0),
        (c.id, c.id, 0),
        (a.id, b.id, 1),
        (b.id, c.id, 1),
        (a.id, c.id, 2),
    }
    assert [f.name for f in folder_tree.get_ancestors(db, c.id)] == ["a", "b"]


def test_create_under_missing_parent_fails(folder_tree, db_session_fixture):
    with pytest.raises(FolderNotFoundError):
        folder_tree.create(db_session_fixture, FolderCreate(name="orphan", parent_id="does-not-exist"))
    assert db_session_fixture.query(Folder).count() == 0


@pytest.mark.parametrize("name", ["a/b", "   "])
def test_create_rejects_bad_names(folder_tree, db_session_fixture, name):
    with pytest.raises(ValidationError):
        folder_tree.create(db_session_fixture, FolderCreate(name=name))


def test_children_versus_all_descendants(folder_tree, db_session_fixture):
    db = db_session_fixture
    root = _mk(folder_tree, db, "root")
    left = _mk(folder_tree, db, "left", root)
    right = _mk(folder_tree, db, "right", root)
    _mk(folder_tree, db, "deep", left)

    assert [f.name for f in folder_tree.get_children(db, root.id)] == ["left", "right"]
    assert [f.name for f in folder_tree.get_all_descendants(db, root.id)] == ["left", "right", "deep"]
    assert folder_tree.get_children(db, right.id) == []


def test_move_recomputes_paths_and_closure(folder_tree, db_session_fixture):
    db = db_session_fixture
    a = _mk(folder_tree, db, "A")
    b = _mk(folder_tree, db, "B", a)
    c = _mk(folder_tree, db, "C", b)
    d = _mk(folder_tree, db, "D")

    folder_tree.move(db, b.id, d.id)

    db.refresh(c)
    assert folder_tree.find_by_id(db, b.id).path == "/D/B"
    assert c.path == "/D/B/C"
    assert [f.name for f in folder_tree.get_ancestors(db, c.id)] == ["D", "B"]
    assert folder_tree.get_all_descendants(db, a.id) == []
    assert {f.name for f in folder_tree.get_all_descendants(db, d.id)} == {"B", "C"}


def test_move_to_root_level(folder_tree, db_session_fixture):
    db = db_session_fixture
    a = _mk(folder_tree, db, "A")
    b = _mk(folder_tree, db, "B", a)
    c = _mk(folder_tree, db, "C", b)

    moved = folder_tree.move(db, b.id, None)

    db.refresh(c)
    assert moved.parent_id is None
    assert moved.path == "/B"
    assert c.path == "/B/C"
    assert [f.name for f in folder_tree.get_ancestors(db, c.id)] == ["B"]


def test_move_into_descendant_is_a_cycle_and_changes_nothing(folder_tree, db_session_fixture):
    db = db_session_fixture
    a = _mk(folder_tree, db, "A")
    b = _mk(folder_tree, db, "B", a)
    c = _mk(folder_tree, db, "C", b)
    before = _closure_rows(db)

    with pytest.raises(CycleError) as exc_info:
        folder_tree.move(db, a.id, c.id)
    with pytest.raises(CycleError):
        folder_tree.move(db, a.id, a.id)

    assert isinstance(exc_info.value, ConflictError)
    assert exc_info.value.data["target_parent_id"] == c.id
    assert _closure_rows(db) == before
    db.refresh(a)
    assert a.parent_id is None
    assert a.path == "/A"


def test_move_to_missing_parent_fails(folder_tree, db_session_fixture):
    a = _mk(folder_tree, db_session_fixture, "A")

    with pytest.raises(FolderNotFoundError):
        folder_tree.move(db_session_fixture, a.id, "missing")


def test_rename_updates_subtree_paths(folder_tree, db_session_fixture):
    db = db_session_fixture
    a = _mk(folder_tree, db, "A")
    b = _mk(folder_tree, db, "B", a)
    c = _mk(folder_tree, db, "C", b)

    updated = folder_tree.update(db, a.id, FolderUpdate(name="Archive", description="old stuff"))

    db.refresh(b)
    db.refresh(c)
    assert updated.path == "/Archive"
    assert updated.description == "old stuff"
    assert b.path == "/Archive/B"
    assert c.path == "/Archive/B/C"


def test_get_tree_builds_nested_forest(folder_tree, db_session_fixture):
    db = db_session_fixture
    a = _mk(folder_tree, db, "A")
    _mk(folder_tree, db, "B", a)
    _mk(folder_tree, db, "Z")

    roots = folder_tree.get_tree(db)

    assert [node.folder.name for node in roots] == ["A", "Z"]
    assert [child.folder.name for child in roots[0].children] == ["B"]
    assert roots[1].children == []


def test_stats_scenario(folder_tree, file_service, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    f1 = _upload(file_service, db, docs, 1000, "f1.bin")
    _upload(file_service, db, docs, 2000, "f2.bin")

    stats = folder_tree.get_stats(db, docs.id)
    assert (stats.count, stats.total_size) == (2, 3000)

    file_service.soft_delete(db, f1.id)

    stats = folder_tree.get_stats(db, docs.id)
    assert (stats.count, stats.total_size) == (1, 2000)
    cached = folder_tree.find_by_id(db, docs.id)
    assert (cached.file_count, cached.total_size) == (1, 2000)


def test_live_stats_match_direct_enumeration(folder_tree, file_service, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    records = [_upload(file_service, db, docs, size, f"{size}.bin") for size in (10, 20, 30, 40)]
    file_service.soft_delete(db, records[1].id)
    file_service.hard_delete(db, records[2].id)
    file_service.restore(db, records[1].id)

    live = (
        db.query(func.count(FileRecord.id), func.coalesce(func.sum(FileRecord.size), 0))
        .filter(FileRecord.folder_id == docs.id, FileRecord.deleted_at.is_(None))
        .one()
    )
    stats = folder_tree.get_stats(db, docs.id)

    assert (stats.count, stats.total_size) == (live[0], live[1]) == (3, 70)


def test_soft_delete_cascades_to_files_and_restore_reverses(folder_tree, file_service, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    f1 = _upload(file_service, db, docs, 5)
    f2 = _upload(file_service, db, docs, 7)

    deleted = folder_tree.soft_delete(db, docs.id, deleted_by="alice")

    assert deleted.is_deleted
    assert deleted.deleted_by == "alice"
    assert deleted.file_count == 0
    for record in (f1, f2):
        db.refresh(record)
        assert record.is_deleted
        assert record.deleted_by == "alice"
    with pytest.raises(FolderNotFoundError):
        folder_tree.find_by_id(db, docs.id)
    with pytest.raises(AlreadyDeletedError):
        folder_tree.soft_delete(db, docs.id)

    restored = folder_tree.restore(db, docs.id)

    assert not restored.is_deleted
    assert (restored.file_count, restored.total_size) == (2, 12)
    db.refresh(f1)
    assert not f1.is_deleted


def test_hard_delete_refuses_non_empty_folder(folder_tree, file_service, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    record = _upload(file_service, db, docs, 3)
    # a soft-deleted file still blocks the delete
    file_service.soft_delete(db, record.id)

    with pytest.raises(FolderNotEmptyError) as exc_info:
        folder_tree.hard_delete(db, docs.id)

    assert isinstance(exc_info.value, ConflictError)
    assert exc_info.value.code == 409
    assert folder_tree.find_by_id(db, docs.id) is not None


def test_hard_delete_refuses_folder_with_children(folder_tree, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    _mk(folder_tree, db, "Sub", docs)

    with pytest.raises(FolderNotEmptyError):
        folder_tree.hard_delete(db, docs.id)


def test_hard_delete_empty_folder(folder_tree, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")

    folder_tree.hard_delete(db, docs.id)

    assert db.query(Folder).count() == 0
    assert _closure_rows(db) == set()


def test_forced_hard_delete_removes_subtree_and_objects(folder_tree, file_service, registry, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    sub = _mk(folder_tree, db, "Sub", docs)
    deep = _mk(folder_tree, db, "Deep", sub)
    keep = _mk(folder_tree, db, "Keep")
    top_file = _upload(file_service, db, docs, 4)
    deep_file = _upload(file_service, db, deep, 6)
    kept_file = _upload(file_service, db, keep, 8)
    top_key, deep_key, kept_key = top_file.storage_key, deep_file.storage_key, kept_file.storage_key
    file_service.soft_delete(db, deep_file.id)
    local = registry.get_strategy("local")

    folder_tree.hard_delete(db, docs.id, force=True)

    assert {f.id for f in db.query(Folder).all()} == {keep.id}
    assert {r.id for r in db.query(FileRecord).all()} == {kept_file.id}
    assert _closure_rows(db) == {(keep.id, keep.id, 0)}
    assert not local.exists(top_key)
    assert not local.exists(deep_key)
    assert local.exists(kept_key)


def test_forced_hard_delete_stops_when_backend_delete_fails(
    folder_tree, file_service, registry, db_session_fixture, monkeypatch
):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    record = _upload(file_service, db, docs, 4)
    local = registry.get_strategy("local")
    monkeypatch.setattr(local, "delete", lambda path: DeleteResult(success=False, message="disk busy"))

    with pytest.raises(BackendOperationError):
        folder_tree.hard_delete(db, docs.id, force=True)

    assert file_service.find_by_id(db, record.id) is not None
    assert folder_tree.find_by_id(db, docs.id) is not None
    assert local.exists(record.storage_key)


def test_refresh_stats_repairs_cached_counts(folder_tree, file_service, db_session_fixture):
    db = db_session_fixture
    docs = _mk(folder_tree, db, "Docs")
    _upload(file_service, db, docs, 9)
    docs = folder_tree.find_by_id(db, docs.id)
    docs.file_count = 42
    db.commit()

    refreshed = folder_tree.refresh_stats(db, docs.id)

    assert (refreshed.file_count, refreshed.total_size) == (1, 9)
