"""In-process stores, used by tests and the ``memory`` server backend."""

import copy
import uuid
from typing import Optional

from ..core.errors import BlobNotFoundError, NotFoundError
from .stores import BlobStore, TabularStore


class InMemoryBlobStore(BlobStore):
    def __init__(self):
        self.containers: dict[str, dict[str, str]] = {}
        self.names: dict[str, str] = {}

    def create_container(self, name: str) -> str:
        locator = uuid.uuid4().hex[:12]
        self.containers[locator] = {}
        self.names[locator] = name
        return locator

    def write_blob(self, locator: str, text: str) -> None:
        container, filename = self.split_locator(locator)
        if container not in self.containers:
            raise BlobNotFoundError(f"Container not found for {locator}")
        self.containers[container][filename] = text

    def read_blob(self, locator: str) -> str:
        container, filename = self.split_locator(locator)
        try:
            return self.containers[container][filename]
        except KeyError:
            raise BlobNotFoundError(f"No blob at {locator}") from None

    def delete_container_recursive(self, locator: str) -> None:
        self.containers.pop(locator, None)
        self.names.pop(locator, None)


class InMemoryIndexStore(TabularStore):
    def __init__(self):
        self.rows: list[dict] = []

    def append_row(self, row: dict) -> None:
        self.rows.append(copy.deepcopy(row))

    def find_row_by_key(self, key: str) -> Optional[int]:
        for i, row in enumerate(self.rows):
            if row.get(self.key_column) == key:
                return i
        return None

    def read_row(self, position: int) -> dict:
        self._check(position)
        return copy.deepcopy(self.rows[position])

    def update_row(self, position: int, row: dict) -> None:
        self._check(position)
        self.rows[position] = copy.deepcopy(row)

    def delete_row(self, position: int) -> None:
        self._check(position)
        del self.rows[position]

    def read_all(self) -> list[dict]:
        return copy.deepcopy(self.rows)

    def _check(self, position: int):
        if not 0 <= position < len(self.rows):
            raise NotFoundError(f"Row {position} out of range ({len(self.rows)} rows)")
