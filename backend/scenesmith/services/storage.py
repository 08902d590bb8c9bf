from __future__ import annotations
"""Object store on the media volume.

Artifacts are addressed by object keys (``{project_id}/{kind}/{filename}``)
and exposed through public URLs under ``MEDIA_BASE_URL`` (the FastAPI app
mounts the volume at ``/media``). Writes go through a temp file and
``os.replace`` so a key is always either the old or the new object.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass

import httpx

from scenesmith.config import get_settings
from scenesmith.errors import DownloadFailed, UploadFailed

logger = logging.getLogger(__name__)
settings = get_settings()

TRANSIENT_PREFIX = "transient"


@dataclass(frozen=True)
class StoredObject:
    """A persisted artifact: object key plus its public URL."""
    key: str
    url: str


class MediaStore:
    """Filesystem-backed object store rooted at the media volume."""

    def __init__(
        self,
        root: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.root = root or settings.MEDIA_VOLUME
        self.base_url = (base_url if base_url is not None else settings.MEDIA_BASE_URL).rstrip("/")
        self._http_client = http_client

    # -- addressing ----------------------------------------------------------

    @staticmethod
    def object_key(project_id: str | None, kind: str, filename: str) -> str:
        safe_name = "".join(c if c.isalnum() or c in "._-" else "_" for c in filename)
        return f"{project_id or TRANSIENT_PREFIX}/{kind}/{safe_name}"

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def key_from_url(self, url: str) -> str | None:
        """Return the object key for a URL served from this store, else None."""
        prefix = f"{self.base_url}/"
        if url.startswith(prefix):
            return url[len(prefix):]
        return None

    def local_path(self, key: str) -> str:
        return os.path.join(self.root, *key.split("/"))

    def exists(self, key: str) -> bool:
        return os.path.isfile(self.local_path(key))

    # -- writes --------------------------------------------------------------

    def save_bytes(self, key: str, data: bytes) -> StoredObject:
        """Write bytes under key, replacing any previous object."""
        if not data:
            raise UploadFailed(f"Refusing to store empty object {key}")
        path = self.local_path(key)
        tmp_path = None
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), suffix=".part")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError as e:
            _discard(tmp_path)
            raise UploadFailed(f"Upload of {key} failed: {e}") from e
        logger.debug("Stored %s (%d bytes)", key, len(data))
        return StoredObject(key=key, url=self.public_url(key))

    def save_file(self, key: str, src_path: str) -> StoredObject:
        """Copy a local file under key, replacing any previous object."""
        path = self.local_path(key)
        tmp_path = None
        try:
            if os.path.getsize(src_path) == 0:
                raise UploadFailed(f"Refusing to store empty file for {key}")
            os.makedirs(os.path.dirname(path), exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), suffix=".part")
            os.close(fd)
            shutil.copyfile(src_path, tmp_path)
            os.replace(tmp_path, path)
        except OSError as e:
            _discard(tmp_path)
            raise UploadFailed(f"Upload of {key} failed: {e}") from e
        return StoredObject(key=key, url=self.public_url(key))

    def delete(self, key: str) -> None:
        try:
            os.remove(self.local_path(key))
        except FileNotFoundError:
            pass

    # -- reads ---------------------------------------------------------------

    async def fetch_to_file(self, url: str, dest_path: str) -> str:
        """Download an artifact (local key or remote URL) to dest_path."""
        key = self.key_from_url(url)
        if key is not None:
            try:
                shutil.copyfile(self.local_path(key), dest_path)
            except OSError as e:
                raise DownloadFailed(f"Local object {key} unreadable: {e}") from e
            return dest_path

        client = self._http_client or httpx.AsyncClient(timeout=120.0)
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(dest_path, "wb") as f:
                    async for chunk in response.aiter_bytes(chunk_size=8192):
                        f.write(chunk)
        except (httpx.HTTPError, OSError) as e:
            raise DownloadFailed(f"Download of {url[:120]} failed: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        if os.path.getsize(dest_path) == 0:
            raise DownloadFailed(f"Download of {url[:120]} returned no data")
        return dest_path

    async def fetch_bytes(self, url: str) -> bytes:
        """Download an artifact into memory."""
        key = self.key_from_url(url)
        if key is not None:
            try:
                with open(self.local_path(key), "rb") as f:
                    return f.read()
            except OSError as e:
                raise DownloadFailed(f"Local object {key} unreadable: {e}") from e

        client = self._http_client or httpx.AsyncClient(timeout=60.0)
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DownloadFailed(f"Download of {url[:120]} failed: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()
        if not response.content:
            raise DownloadFailed(f"Download of {url[:120]} returned no data")
        return response.content


def _discard(tmp_path: str | None) -> None:
    if tmp_path is None:
        return
    try:
        os.remove(tmp_path)
    except FileNotFoundError:
        pass


_media_store: MediaStore | None = None


def get_media_store() -> MediaStore:
    """Return the module-level MediaStore singleton."""
    global _media_store
    if _media_store is None:
        _media_store = MediaStore()
    return _media_store
