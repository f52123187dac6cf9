"""Directory-backed stores: one folder per project, one JSON file for the index."""

import json
import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import Optional

from ..core.errors import BlobNotFoundError, NotFoundError, StoreWriteError
from .stores import INDEX_COLUMNS, BlobStore, TabularStore

logger = logging.getLogger("TrainingStudio.persistence.filesystem")

INDEX_FILENAME = "project_index.json"


def _slug(name: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "-", name).strip("-")
    return slug[:60] or "project"


class FileBlobStore(BlobStore):
    """Containers are directories under ``root``; locators are relative paths."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def create_container(self, name: str) -> str:
        locator = f"{_slug(name)}-{uuid.uuid4().hex[:8]}"
        try:
            (self.root / locator).mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise StoreWriteError(f"Cannot create container {locator}: {e}") from e
        logger.info(f"Created container {locator}")
        return locator

    def write_blob(self, locator: str, text: str) -> None:
        container, filename = self.split_locator(locator)
        folder = self._path(container)
        if not container or not folder.is_dir():
            raise BlobNotFoundError(f"Container not found for {locator}")

        path = folder / filename
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_text(text, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise StoreWriteError(f"Cannot write {locator}: {e}") from e

    def read_blob(self, locator: str) -> str:
        try:
            return self._path(locator).read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise BlobNotFoundError(f"No blob at {locator}") from e

    def delete_container_recursive(self, locator: str) -> None:
        folder = self._path(locator)
        if not folder.exists():
            return
        try:
            shutil.rmtree(folder)
        except OSError as e:
            raise StoreWriteError(f"Cannot delete container {locator}: {e}") from e
        logger.info(f"Deleted container {locator}")

    def _path(self, locator: str) -> Path:
        path = (self.root / locator).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise BlobNotFoundError(f"Locator escapes store root: {locator}")
        return path


class JsonIndexStore(TabularStore):
    """The whole index in one JSON file, rewritten on every change."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def append_row(self, row: dict) -> None:
        rows = self._load()
        rows.append(row)
        self._save(rows)

    def find_row_by_key(self, key: str) -> Optional[int]:
        for i, row in enumerate(self._load()):
            if row.get(self.key_column) == key:
                return i
        return None

    def read_row(self, position: int) -> dict:
        rows = self._load()
        self._check(rows, position)
        return rows[position]

    def update_row(self, position: int, row: dict) -> None:
        rows = self._load()
        self._check(rows, position)
        rows[position] = row
        self._save(rows)

    def delete_row(self, position: int) -> None:
        rows = self._load()
        self._check(rows, position)
        del rows[position]
        self._save(rows)

    def read_all(self) -> list[dict]:
        return self._load()

    def _load(self) -> list[dict]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StoreWriteError(f"Index file {self.path} is corrupt: {e}") from e
        return data.get("rows", [])

    def _save(self, rows: list[dict]):
        data = {"columns": list(INDEX_COLUMNS), "rows": rows}
        tmp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            raise StoreWriteError(f"Cannot write index {self.path}: {e}") from e

    @staticmethod
    def _check(rows: list[dict], position: int):
        if not 0 <= position < len(rows):
            raise NotFoundError(f"Row {position} out of range ({len(rows)} rows)")


def open_file_stores(root: Path) -> tuple[FileBlobStore, JsonIndexStore]:
    """Blob and index stores sharing one root directory."""
    root = Path(root)
    return FileBlobStore(root / "projects"), JsonIndexStore(root / INDEX_FILENAME)
