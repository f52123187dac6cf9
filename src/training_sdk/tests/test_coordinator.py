"""Tests for training_sdk.persistence.coordinator: write ordering and failure handling."""

import json
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from training_sdk.core.document import parse, serialize
from training_sdk.core.errors import (
    BlobNotFoundError,
    ConsistencyWarning,
    InvalidStatusError,
    MalformedIndexRowError,
    NotFoundError,
    OrphanedProjectError,
    ParseError,
    ProjectNotPublishedError,
    StoreWriteError,
    ValidationError,
)
from training_sdk.persistence.coordinator import PersistenceCoordinator
from training_sdk.persistence.filesystem import open_file_stores
from training_sdk.persistence.memory import InMemoryBlobStore, InMemoryIndexStore

T0 = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


class TickingClock:
    """Each call is one minute after the previous one."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(minutes=1)
        return current


@pytest.fixture
def index():
    return InMemoryIndexStore()


@pytest.fixture
def blobs():
    return InMemoryBlobStore()


@pytest.fixture
def coordinator(index, blobs):
    return PersistenceCoordinator(index, blobs, clock=TickingClock())


# ── create_project ─────────────────────────────────────────────────────

class TestCreateProject:
    def test_creates_blob_and_row(self, coordinator, index, blobs):
        row = coordinator.create_project("  Intro ")
        assert row.project_title == "Intro"
        assert row.status == "Draft"
        assert row.created_date == row.last_modified == T0
        assert blobs.names[row.folder_locator] == f"Intro [{row.project_id[:8]}]"
        assert row.blob_locator == f"{row.folder_locator}/project_data.json"
        assert len(index.rows) == 1

        project = parse(blobs.read_blob(row.blob_locator))
        assert project.project_id == row.project_id
        assert project.status == "Draft"
        assert project.slides == [] and project.elements == []
        assert project.blob_locator == row.blob_locator

    def test_empty_title(self, coordinator, index, blobs):
        with pytest.raises(ValidationError):
            coordinator.create_project("   ")
        assert index.rows == [] and blobs.containers == {}

    def test_container_failure(self, coordinator, index, blobs):
        with patch.object(blobs, "create_container", side_effect=StoreWriteError("quota")):
            with pytest.raises(StoreWriteError):
                coordinator.create_project("Intro")
        assert index.rows == []

    def test_blob_failure_leaves_no_row(self, coordinator, index, blobs):
        with patch.object(blobs, "write_blob", side_effect=StoreWriteError("disk full")):
            with pytest.raises(StoreWriteError):
                coordinator.create_project("Intro")
        assert index.rows == []
        assert blobs.containers == {}

    def test_index_failure_leaves_orphan_blob(self, coordinator, index, blobs):
        with patch.object(index, "append_row", side_effect=StoreWriteError("sheet locked")):
            with pytest.raises(StoreWriteError):
                coordinator.create_project("Intro")
        assert index.rows == []
        assert len(blobs.containers) == 1

    def test_ids_unique(self, coordinator):
        a = coordinator.create_project("A")
        b = coordinator.create_project("A")
        assert a.project_id != b.project_id


# ── load / list ────────────────────────────────────────────────────────

class TestLoad:
    def test_load_document(self, coordinator, blobs):
        row = coordinator.create_project("Intro")
        assert coordinator.load_document(row.project_id) == blobs.read_blob(row.blob_locator)
        assert coordinator.load_project(row.project_id).title == "Intro"

    def test_missing_row(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.load_document("nope")

    def test_orphaned(self, coordinator, blobs):
        row = coordinator.create_project("Intro")
        blobs.delete_container_recursive(row.folder_locator)
        with pytest.raises(OrphanedProjectError) as exc:
            coordinator.load_document(row.project_id)
        assert exc.value.project_id == row.project_id
        assert isinstance(exc.value, NotFoundError)

    def test_malformed_row(self, coordinator, index):
        row = coordinator.create_project("Intro")
        index.rows[0]["LastModified"] = ""
        with pytest.raises(MalformedIndexRowError) as exc:
            coordinator.load_document(row.project_id)
        assert isinstance(exc.value, NotFoundError)

    def test_list_projects(self, coordinator, index):
        a = coordinator.create_project("A")
        coordinator.create_project("B")
        coordinator.set_status(a.project_id, "Active")
        index.rows.append({"ProjectID": "", "ProjectTitle": "blank row"})
        index.rows.append({"ProjectID": "broken"})

        assert len(coordinator.list_projects()) == 2
        assert [r.project_id for r in coordinator.list_projects(status="Active")] == [a.project_id]
        assert [r.project_id for r in coordinator.list_active_projects()] == [a.project_id]

    def test_published_document(self, coordinator):
        row = coordinator.create_project("A")
        with pytest.raises(ProjectNotPublishedError, match="Draft"):
            coordinator.load_published_document(row.project_id)
        coordinator.set_status(row.project_id, "Active")
        assert parse(coordinator.load_published_document(row.project_id)).status == "Active"


# ── save_document ──────────────────────────────────────────────────────

class TestSaveDocument:
    def test_blob_then_index(self, coordinator, blobs):
        row = coordinator.create_project("Intro")
        project = coordinator.load_project(row.project_id)
        project.title = "Intro v2"
        text = serialize(project, for_save=True, now=T0 + timedelta(hours=1))

        updated = coordinator.save_document(row.project_id, text)
        assert blobs.read_blob(row.blob_locator) == text
        assert updated.project_title == "Intro v2"
        assert updated.last_modified == T0 + timedelta(hours=1)
        assert coordinator.get_index_row(row.project_id) == updated

    def test_bad_text_touches_nothing(self, coordinator, blobs):
        row = coordinator.create_project("Intro")
        before = blobs.read_blob(row.blob_locator)
        with pytest.raises(ParseError):
            coordinator.save_document(row.project_id, "{oops")
        assert blobs.read_blob(row.blob_locator) == before

    def test_mismatched_id(self, coordinator):
        row = coordinator.create_project("Intro")
        text = json.dumps({"projectId": "other", "title": "X"})
        with pytest.raises(ValidationError):
            coordinator.save_document(row.project_id, text)

    def test_unknown_project(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.save_document("p", json.dumps({"projectId": "p", "title": "X"}))

    def test_missing_container_is_write_error(self, coordinator, blobs, index):
        row = coordinator.create_project("Intro")
        text = coordinator.load_document(row.project_id)
        blobs.delete_container_recursive(row.folder_locator)
        with pytest.raises(StoreWriteError):
            coordinator.save_document(row.project_id, text)
        assert blobs.containers == {}
        assert index.read_row(0) == row.to_row()

    def test_last_modified_never_moves_back(self, coordinator):
        row = coordinator.create_project("Intro")
        project = coordinator.load_project(row.project_id)
        project.last_modified = T0 - timedelta(days=3)
        assert coordinator.save_document(row.project_id, serialize(project)).last_modified == T0

    def test_index_failure_after_blob_write(self, coordinator, blobs, index, caplog):
        row = coordinator.create_project("Intro")
        project = coordinator.load_project(row.project_id)
        project.title = "Renamed"
        text = serialize(project)
        with patch.object(index, "update_row", side_effect=StoreWriteError("locked")):
            with pytest.raises(StoreWriteError):
                coordinator.save_document(row.project_id, text)
        assert blobs.read_blob(row.blob_locator) == text
        assert coordinator.get_index_row(row.project_id).project_title == "Intro"
        assert "ConsistencyWarning" in caplog.text

    def test_last_write_wins(self, coordinator):
        row = coordinator.create_project("Intro")
        a = coordinator.load_project(row.project_id)
        b = coordinator.load_project(row.project_id)
        a.title = "From A"
        b.title = "From B"
        coordinator.save_document(row.project_id, serialize(a, for_save=True))
        coordinator.save_document(row.project_id, serialize(b, for_save=True))
        assert coordinator.load_project(row.project_id).title == "From B"


# ── set_status ─────────────────────────────────────────────────────────

class TestSetStatus:
    def test_updates_blob_and_row(self, coordinator):
        row = coordinator.create_project("Intro")
        updated = coordinator.set_status(row.project_id, "Active")
        assert updated.status == "Active"
        assert updated.last_modified > row.last_modified
        project = coordinator.load_project(row.project_id)
        assert project.status == "Active"
        assert project.last_modified == updated.last_modified

    def test_invalid_status(self, coordinator, blobs):
        row = coordinator.create_project("Intro")
        before = blobs.read_blob(row.blob_locator)
        with pytest.raises(InvalidStatusError):
            coordinator.set_status(row.project_id, "Published")
        assert blobs.read_blob(row.blob_locator) == before

    def test_blob_failure_leaves_row_unchanged(self, coordinator, blobs, index):
        row = coordinator.create_project("Intro")
        before = index.read_row(0)
        with patch.object(blobs, "write_blob", side_effect=StoreWriteError("offline")):
            with pytest.raises(StoreWriteError):
                coordinator.set_status(row.project_id, "Active")
        assert index.read_row(0) == before
        assert coordinator.load_project(row.project_id).status == "Draft"

    def test_unparseable_blob_aborts(self, coordinator, blobs, index):
        row = coordinator.create_project("Intro")
        blobs.write_blob(row.blob_locator, "garbage")
        before = index.read_row(0)
        with pytest.raises(ParseError):
            coordinator.set_status(row.project_id, "Inactive")
        assert index.read_row(0) == before

    def test_orphaned(self, coordinator, blobs):
        row = coordinator.create_project("Intro")
        blobs.delete_container_recursive(row.folder_locator)
        with pytest.raises(OrphanedProjectError):
            coordinator.set_status(row.project_id, "Active")


# ── delete_project ─────────────────────────────────────────────────────

class TestDeleteProject:
    def test_removes_row_then_blobs(self, coordinator, index, blobs):
        row = coordinator.create_project("Intro")
        result = coordinator.delete_project(row.project_id)
        assert result.index_row_removed and result.blob_removed
        assert not result.partial
        assert index.rows == [] and blobs.containers == {}

    def test_idempotent(self, coordinator):
        row = coordinator.create_project("Intro")
        coordinator.delete_project(row.project_id)
        again = coordinator.delete_project(row.project_id)
        assert not again.index_row_removed
        assert again.warnings == []

    def test_blob_cleanup_failure_is_partial(self, coordinator, index, blobs):
        row = coordinator.create_project("Intro")
        with patch.object(blobs, "delete_container_recursive",
                          side_effect=StoreWriteError("permission denied")):
            result = coordinator.delete_project(row.project_id)
        assert result.index_row_removed
        assert not result.blob_removed
        assert result.partial
        assert isinstance(result.warnings[0], ConsistencyWarning)
        assert index.rows == []
        with pytest.raises(NotFoundError):
            coordinator.load_document(row.project_id)

    def test_index_failure_keeps_everything(self, coordinator, index, blobs):
        row = coordinator.create_project("Intro")
        with patch.object(index, "delete_row", side_effect=StoreWriteError("locked")):
            with pytest.raises(StoreWriteError):
                coordinator.delete_project(row.project_id)
        assert coordinator.load_project(row.project_id).title == "Intro"

    def test_only_target_removed(self, coordinator):
        a = coordinator.create_project("A")
        b = coordinator.create_project("B")
        coordinator.delete_project(a.project_id)
        assert [r.project_id for r in coordinator.list_projects()] == [b.project_id]


# ── End to end on the filesystem ───────────────────────────────────────

class TestFilesystemBackend:
    def test_full_lifecycle(self, tmp_path):
        blobs, index = open_file_stores(tmp_path)
        coordinator = PersistenceCoordinator(index, blobs)
        row = coordinator.create_project("Intro")
        assert (tmp_path / "projects" / row.folder_locator / "project_data.json").exists()

        coordinator.set_status(row.project_id, "Active")
        assert coordinator.list_active_projects()[0].project_id == row.project_id

        result = coordinator.delete_project(row.project_id)
        assert not result.partial
        assert not (tmp_path / "projects" / row.folder_locator).exists()
        with pytest.raises(BlobNotFoundError):
            blobs.read_blob(row.blob_locator)
