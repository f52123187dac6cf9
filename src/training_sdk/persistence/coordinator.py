"""Keeps the project index and the document blobs consistent.

There is no transaction across the two stores, so every operation relies on
write ordering:

* create: blob first, index second. The index never points at a blob that
  was not written; a failed index append leaves an unreferenced blob.
* save / set_status: blob first, index second. A blob-side failure aborts
  before the index is touched. Between the two writes a reader can see a
  stale index row; that window is accepted.
* delete: index first, blob second. Once the row is gone the project no
  longer exists, so a failed blob cleanup is only a warning.

Writes are last-write-wins; nothing checks versions before an overwrite.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from pydantic import ValidationError as PydanticValidationError

from ..core.document import PROJECT_STATUSES, Project, parse, save_timestamp, serialize, utc_now
from ..core.errors import (
    BlobNotFoundError,
    ConsistencyWarning,
    InvalidStatusError,
    MalformedIndexRowError,
    NotFoundError,
    OrphanedProjectError,
    ProjectNotPublishedError,
    StoreWriteError,
    TrainingStudioError,
    ValidationError,
)
from .stores import BlobStore, IndexRow, TabularStore

logger = logging.getLogger("TrainingStudio.persistence.coordinator")


@dataclass
class DeleteResult:
    """Outcome of delete_project. ``warnings`` non-empty means partial success."""
    project_id: str
    index_row_removed: bool = False
    blob_removed: bool = False
    warnings: list[ConsistencyWarning] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.warnings)


class PersistenceCoordinator:
    """Sequences reads and writes across an index store and a blob store."""

    def __init__(self, index: TabularStore, blobs: BlobStore,
                 clock: Callable[[], datetime] = utc_now):
        self.index = index
        self.blobs = blobs
        self.clock = clock

    # ── Create ─────────────────────────────────────────────────────────

    def create_project(self, title: str) -> IndexRow:
        """Create a Draft project with no slides and return its index row."""
        if not title or not title.strip():
            raise ValidationError("Project title cannot be empty")
        title = title.strip()
        project_id = str(uuid.uuid4())
        now = self.clock()
        logger.info(f"Creating project '{title}' ({project_id})")

        try:
            folder = self.blobs.create_container(f"{title} [{project_id[:8]}]")
        except TrainingStudioError as e:
            logger.error(f"Container creation failed for {project_id}: {e}")
            raise StoreWriteError(f"Failed to create project folder: {e}") from e

        blob_locator = self.blobs.blob_locator(folder)
        project = Project.new(title, project_id=project_id,
                              blob_locator=blob_locator, now=now)
        try:
            self.blobs.write_blob(blob_locator, serialize(project))
        except TrainingStudioError as e:
            logger.error(f"Initial document write failed for {project_id}: {e}")
            self._discard_container(folder)
            raise StoreWriteError(f"Failed to create project data file: {e}") from e

        row = IndexRow(
            project_id=project_id,
            project_title=title,
            folder_locator=folder,
            status="Draft",
            blob_locator=blob_locator,
            last_modified=now,
            created_date=now,
        )
        try:
            self.index.append_row(row.to_row())
        except TrainingStudioError as e:
            logger.error(
                f"Index append failed for {project_id}; blob at {blob_locator} "
                f"is left unreferenced: {e}"
            )
            raise StoreWriteError(f"Failed to add project to index: {e}") from e

        logger.info(f"Created project {project_id} at {blob_locator}")
        return row

    def _discard_container(self, folder: str):
        try:
            self.blobs.delete_container_recursive(folder)
        except TrainingStudioError as e:
            logger.warning(f"Could not clean up container {folder}: {e}")

    # ── Read ───────────────────────────────────────────────────────────

    def _find_row(self, project_id: str) -> tuple[int, IndexRow]:
        position = self.index.find_row_by_key(project_id)
        if position is None:
            raise NotFoundError(f"Project not found in index: {project_id}")
        try:
            return position, IndexRow.from_row(self.index.read_row(position))
        except PydanticValidationError as e:
            logger.error(f"Index row for {project_id} is malformed: {e}")
            raise MalformedIndexRowError(
                f"Index row for project {project_id} cannot be read: {e}"
            ) from e

    def get_index_row(self, project_id: str) -> IndexRow:
        return self._find_row(project_id)[1]

    def _read_blob(self, row: IndexRow) -> str:
        try:
            return self.blobs.read_blob(row.blob_locator)
        except BlobNotFoundError as e:
            logger.warning(
                f"Project {row.project_id} is indexed but has no blob at {row.blob_locator}"
            )
            raise OrphanedProjectError(row.project_id, row.blob_locator) from e

    def load_document(self, project_id: str) -> str:
        """Raw document text for a project."""
        _, row = self._find_row(project_id)
        return self._read_blob(row)

    def load_project(self, project_id: str) -> Project:
        return parse(self.load_document(project_id))

    def list_projects(self, status: Optional[str] = None) -> list[IndexRow]:
        """Index rows, optionally filtered by status. Unreadable rows are skipped."""
        rows = []
        for raw in self.index.read_all():
            if not raw.get(self.index.key_column):
                continue
            try:
                row = IndexRow.from_row(raw)
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed index row {raw.get('ProjectID')}: {e}")
                continue
            if status is None or row.status == status:
                rows.append(row)
        return rows

    def list_active_projects(self) -> list[IndexRow]:
        return self.list_projects(status="Active")

    def load_published_document(self, project_id: str) -> str:
        """Document text for viewers; only Active projects are served."""
        _, row = self._find_row(project_id)
        if row.status != "Active":
            raise ProjectNotPublishedError(
                f"Project {project_id} is not currently active (status: {row.status})"
            )
        return self._read_blob(row)

    # ── Update ─────────────────────────────────────────────────────────

    def save_document(self, project_id: str, text: str) -> IndexRow:
        """Overwrite the project's blob, then refresh its index row."""
        project = parse(text)
        if project.project_id != project_id:
            raise ValidationError(
                f"Document belongs to {project.project_id}, not {project_id}"
            )

        position, row = self._find_row(project_id)
        try:
            self.blobs.write_blob(row.blob_locator, text)
        except TrainingStudioError as e:
            logger.error(f"Blob write failed for {project_id} at {row.blob_locator}: {e}")
            raise StoreWriteError(f"Failed to save project {project_id}: {e}") from e

        last_modified = project.last_modified or self.clock()
        if last_modified < row.last_modified:
            last_modified = row.last_modified
        updated = row.model_copy(update={
            "project_title": project.title,
            "status": project.status,
            "last_modified": last_modified,
        })
        self._update_index(position, updated)
        logger.info(f"Saved project {project_id}")
        return updated

    def set_status(self, project_id: str, status: str) -> IndexRow:
        """Change a project's status in its document, then in the index."""
        if status not in PROJECT_STATUSES:
            raise InvalidStatusError(
                f"Invalid status '{status}'; expected one of {', '.join(PROJECT_STATUSES)}"
            )

        position, row = self._find_row(project_id)
        project = parse(self._read_blob(row))

        now = self.clock()
        if row.last_modified > now:
            now = row.last_modified
        stamp = save_timestamp(project, now)
        text = serialize(project.model_copy(update={"status": status}),
                         for_save=True, now=stamp)
        try:
            self.blobs.write_blob(row.blob_locator, text)
        except TrainingStudioError as e:
            logger.error(f"Status change aborted for {project_id}; index untouched: {e}")
            raise StoreWriteError(f"Failed to update status of {project_id}: {e}") from e

        updated = row.model_copy(update={"status": status, "last_modified": stamp})
        self._update_index(position, updated)
        logger.info(f"Project {project_id} status set to {status}")
        return updated

    def _update_index(self, position: int, row: IndexRow):
        try:
            self.index.update_row(position, row.to_row())
        except TrainingStudioError as e:
            logger.warning(
                f"{ConsistencyWarning.__name__}: blob for {row.project_id} was written "
                f"but the index row is stale: {e}"
            )
            raise StoreWriteError(
                f"Document saved but index update failed for {row.project_id}: {e}"
            ) from e

    # ── Delete ─────────────────────────────────────────────────────────

    def delete_project(self, project_id: str) -> DeleteResult:
        """Remove the index row, then make a best-effort attempt at the blobs.

        Deleting a project that is not indexed succeeds and does nothing.
        """
        result = DeleteResult(project_id=project_id)
        position = self.index.find_row_by_key(project_id)
        if position is None:
            logger.info(f"Project {project_id} not in index; nothing to delete")
            return result

        folder = self.index.read_row(position).get("ProjectFolderLocator")
        try:
            self.index.delete_row(position)
        except TrainingStudioError as e:
            logger.error(f"Index delete failed for {project_id}: {e}")
            raise StoreWriteError(f"Failed to delete project {project_id}: {e}") from e
        result.index_row_removed = True

        if not folder:
            result.warnings.append(ConsistencyWarning(
                f"Project {project_id} had no folder locator; blobs not cleaned up"))
        else:
            try:
                self.blobs.delete_container_recursive(folder)
                result.blob_removed = True
            except TrainingStudioError as e:
                result.warnings.append(ConsistencyWarning(
                    f"Project {project_id} removed from index but folder {folder} "
                    f"could not be deleted: {e}"))

        for warning in result.warnings:
            logger.warning(str(warning))
        logger.info(f"Deleted project {project_id}")
        return result
