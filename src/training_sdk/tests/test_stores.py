"""Tests for the in-memory and filesystem store implementations."""

import json
import pytest
from datetime import datetime, timezone
from pathlib import Path

from training_sdk.core.errors import BlobNotFoundError, NotFoundError
from training_sdk.persistence.filesystem import FileBlobStore, JsonIndexStore, open_file_stores
from training_sdk.persistence.memory import InMemoryBlobStore, InMemoryIndexStore
from training_sdk.persistence.stores import INDEX_COLUMNS, BlobStore, IndexRow

NOW = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def _row(project_id: str, title: str = "T") -> dict:
    return IndexRow(
        project_id=project_id,
        project_title=title,
        folder_locator=f"folder-{project_id}",
        status="Draft",
        blob_locator=f"folder-{project_id}/project_data.json",
        last_modified=NOW,
        created_date=NOW,
    ).to_row()


@pytest.fixture(params=["memory", "file"])
def blobs(request, tmp_path) -> BlobStore:
    if request.param == "memory":
        return InMemoryBlobStore()
    return FileBlobStore(tmp_path / "blobs")


@pytest.fixture(params=["memory", "file"])
def index(request, tmp_path):
    if request.param == "memory":
        return InMemoryIndexStore()
    return JsonIndexStore(tmp_path / "index.json")


# ── IndexRow ───────────────────────────────────────────────────────────

class TestIndexRow:
    def test_columns_are_aliases(self):
        assert tuple(_row("p1")) == INDEX_COLUMNS

    def test_from_row(self):
        row = IndexRow.from_row(_row("p1", "Intro"))
        assert row.project_id == "p1"
        assert row.project_title == "Intro"
        assert row.last_modified == NOW

    def test_naive_dates_assumed_utc(self):
        raw = _row("p1")
        raw["LastModified"] = "2024-05-01T09:30:00"
        assert IndexRow.from_row(raw).last_modified == NOW


# ── Locators ───────────────────────────────────────────────────────────

class TestLocators:
    def test_blob_locator(self):
        assert BlobStore.blob_locator("c1") == "c1/project_data.json"

    def test_split_locator(self):
        assert BlobStore.split_locator("a/b/file.json") == ("a/b", "file.json")


# ── BlobStore contract ─────────────────────────────────────────────────

class TestBlobStore:
    def test_write_then_read(self, blobs):
        folder = blobs.create_container("Intro [1234abcd]")
        locator = blobs.blob_locator(folder)
        blobs.write_blob(locator, '{"a": "ü"}')
        assert blobs.read_blob(locator) == '{"a": "ü"}'

    def test_overwrite(self, blobs):
        locator = blobs.blob_locator(blobs.create_container("x"))
        blobs.write_blob(locator, "one")
        blobs.write_blob(locator, "two")
        assert blobs.read_blob(locator) == "two"

    def test_read_missing(self, blobs):
        folder = blobs.create_container("x")
        with pytest.raises(BlobNotFoundError):
            blobs.read_blob(blobs.blob_locator(folder))

    def test_write_into_missing_container(self, blobs):
        with pytest.raises(BlobNotFoundError):
            blobs.write_blob("no-such-container/project_data.json", "x")

    def test_delete_is_recursive_and_idempotent(self, blobs):
        folder = blobs.create_container("x")
        locator = blobs.blob_locator(folder)
        blobs.write_blob(locator, "data")
        blobs.delete_container_recursive(folder)
        blobs.delete_container_recursive(folder)
        with pytest.raises(BlobNotFoundError):
            blobs.read_blob(locator)

    def test_containers_are_distinct(self, blobs):
        assert blobs.create_container("same") != blobs.create_container("same")


# ── TabularStore contract ──────────────────────────────────────────────

class TestIndexStore:
    def test_append_and_find(self, index):
        index.append_row(_row("p1"))
        index.append_row(_row("p2"))
        assert index.find_row_by_key("p2") == 1
        assert index.find_row_by_key("p3") is None

    def test_read_and_update(self, index):
        index.append_row(_row("p1"))
        row = index.read_row(0)
        row["Status"] = "Active"
        assert index.read_row(0)["Status"] == "Draft"
        index.update_row(0, row)
        assert index.read_row(0)["Status"] == "Active"

    def test_delete_shifts_positions(self, index):
        for pid in ("p1", "p2", "p3"):
            index.append_row(_row(pid))
        index.delete_row(0)
        assert index.find_row_by_key("p3") == 1
        assert [r["ProjectID"] for r in index.read_all()] == ["p2", "p3"]

    def test_out_of_range(self, index):
        with pytest.raises(NotFoundError):
            index.read_row(0)
        with pytest.raises(NotFoundError):
            index.delete_row(-1)

    def test_empty(self, index):
        assert index.read_all() == []


# ── Filesystem specifics ───────────────────────────────────────────────

class TestFileStores:
    def test_container_is_directory(self, tmp_path):
        store = FileBlobStore(tmp_path)
        folder = store.create_container("Safety Basics [abcd1234]")
        assert (tmp_path / folder).is_dir()
        assert folder.startswith("Safety-Basics-abcd1234-")

    def test_atomic_write_leaves_no_temp(self, tmp_path):
        store = FileBlobStore(tmp_path)
        folder = store.create_container("x")
        store.write_blob(store.blob_locator(folder), "{}")
        assert [p.name for p in (tmp_path / folder).iterdir()] == ["project_data.json"]

    def test_locator_cannot_escape_root(self, tmp_path):
        store = FileBlobStore(tmp_path / "root")
        with pytest.raises(BlobNotFoundError):
            store.read_blob("../outside.json")

    def test_index_file_layout(self, tmp_path):
        path = tmp_path / "idx.json"
        JsonIndexStore(path).append_row(_row("p1"))
        data = json.loads(path.read_text())
        assert data["columns"] == list(INDEX_COLUMNS)
        assert data["rows"][0]["ProjectID"] == "p1"

    def test_index_persists_across_instances(self, tmp_path):
        JsonIndexStore(tmp_path / "idx.json").append_row(_row("p1"))
        assert JsonIndexStore(tmp_path / "idx.json").find_row_by_key("p1") == 0

    def test_open_file_stores(self, tmp_path):
        blobs, index = open_file_stores(tmp_path)
        assert blobs.root == tmp_path / "projects"
        assert index.path == tmp_path / "project_index.json"
