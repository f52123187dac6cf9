"""Collaborator contracts for the two stores a project lives in.

The INDEX store holds one lightweight row per project; the BLOB store holds
the full document. Nothing spans both stores, so callers must order writes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_DATA_FILENAME = "project_data.json"

INDEX_COLUMNS = (
    "ProjectID",
    "ProjectTitle",
    "ProjectFolderLocator",
    "Status",
    "ProjectDataBlobLocator",
    "LastModified",
    "CreatedDate",
)


class IndexRow(BaseModel):
    """One row of the project index. Aliases are the index column names."""
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="ProjectID")
    project_title: str = Field(alias="ProjectTitle")
    folder_locator: str = Field(alias="ProjectFolderLocator")
    status: str = Field(alias="Status")
    blob_locator: str = Field(alias="ProjectDataBlobLocator")
    last_modified: datetime = Field(alias="LastModified")
    created_date: datetime = Field(alias="CreatedDate")

    @field_validator("last_modified", "created_date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_row(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_row(cls, row: dict) -> "IndexRow":
        return cls.model_validate(row)


class BlobStore(ABC):
    """Document storage addressed by opaque locators."""

    @abstractmethod
    def create_container(self, name: str) -> str:
        """Create a container and return its locator."""

    @abstractmethod
    def write_blob(self, locator: str, text: str) -> None:
        """Create or overwrite the blob at ``locator``.

        Raises BlobNotFoundError when the locator's container does not exist;
        implementations never relocate a write.
        """

    @abstractmethod
    def read_blob(self, locator: str) -> str:
        """Return blob text. Raises BlobNotFoundError when absent."""

    @abstractmethod
    def delete_container_recursive(self, locator: str) -> None:
        """Delete a container and everything in it. Absent is not an error."""

    @staticmethod
    def blob_locator(container: str, filename: str = PROJECT_DATA_FILENAME) -> str:
        return f"{container}/{filename}"

    @staticmethod
    def split_locator(locator: str) -> tuple[str, str]:
        container, _, filename = locator.rpartition("/")
        return container, filename


class TabularStore(ABC):
    """Row storage keyed by the first index column.

    Row positions are 0-based and only valid until the next delete.
    """

    key_column = "ProjectID"

    @abstractmethod
    def append_row(self, row: dict) -> None: ...

    @abstractmethod
    def find_row_by_key(self, key: str) -> Optional[int]: ...

    @abstractmethod
    def read_row(self, position: int) -> dict: ...

    @abstractmethod
    def update_row(self, position: int, row: dict) -> None: ...

    @abstractmethod
    def delete_row(self, position: int) -> None: ...

    @abstractmethod
    def read_all(self) -> list[dict]: ...
