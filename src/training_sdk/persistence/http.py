"""Blob store client for a REST document service.

Wire contract:
    POST   {base}/containers            {"name": ...} -> {"locator": ...}
    PUT    {base}/blobs/{locator}       body = text   (404 if container gone)
    GET    {base}/blobs/{locator}       -> text        (404 if absent)
    DELETE {base}/containers/{locator}  (404 treated as already deleted)
"""

import logging
from typing import Optional
from urllib.parse import quote

import requests

from ..core.errors import BlobNotFoundError, StoreWriteError
from .stores import BlobStore

logger = logging.getLogger("TrainingStudio.persistence.http")

REQUEST_TIMEOUT = 30


class HttpBlobStore(BlobStore):
    """BlobStore over HTTP with an optional bearer token."""

    def __init__(self, base_url: str, token: Optional[str] = None,
                 timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.token = token or ""
        self.timeout = timeout

    def _headers(self, content_type: Optional[str] = None) -> dict[str, str]:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def _url(self, kind: str, locator: str = "") -> str:
        url = f"{self.base_url}/{kind}"
        if locator:
            url += "/" + quote(locator, safe="/")
        return url

    def create_container(self, name: str) -> str:
        try:
            resp = requests.post(
                self._url("containers"),
                json={"name": name},
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            locator = resp.json()["locator"]
        except (requests.RequestException, KeyError, ValueError) as e:
            raise StoreWriteError(f"Cannot create container '{name}': {e}") from e
        logger.info(f"Created remote container {locator}")
        return locator

    def write_blob(self, locator: str, text: str) -> None:
        try:
            resp = requests.put(
                self._url("blobs", locator),
                data=text.encode("utf-8"),
                headers=self._headers("application/json; charset=utf-8"),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreWriteError(f"Cannot write {locator}: {e}") from e

        if resp.status_code == 404:
            raise BlobNotFoundError(f"Container not found for {locator}")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise StoreWriteError(f"Cannot write {locator}: {e}") from e

    def read_blob(self, locator: str) -> str:
        try:
            resp = requests.get(
                self._url("blobs", locator),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreWriteError(f"Cannot read {locator}: {e}") from e

        if resp.status_code == 404:
            raise BlobNotFoundError(f"No blob at {locator}")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise StoreWriteError(f"Cannot read {locator}: {e}") from e
        resp.encoding = "utf-8"
        return resp.text

    def delete_container_recursive(self, locator: str) -> None:
        try:
            resp = requests.delete(
                self._url("containers", locator),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreWriteError(f"Cannot delete container {locator}: {e}") from e

        if resp.status_code == 404:
            return
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise StoreWriteError(f"Cannot delete container {locator}: {e}") from e
        logger.info(f"Deleted remote container {locator}")
