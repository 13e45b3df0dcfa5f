"""Local filesystem blob store.

Objects live under a root directory at their logical path; custom metadata
(content type, download tokens, ...) is kept in a ``<path>.meta.json``
sidecar.  File I/O runs in a worker thread so the event loop never blocks
on disk.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from urllib.parse import quote

import structlog

from notemind.interfaces.blob_store import IBlobStore
from notemind.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_META_SUFFIX = ".meta.json"


class LocalBlobStore(IBlobStore):
    """Blob store rooted at a local directory.

    Parameters
    ----------
    root_dir:
        Directory holding all objects.
    public_base_url:
        Base URL under which :meth:`public_url` exposes objects.
    """

    def __init__(self, root_dir: str | Path, public_base_url: str = "http://localhost:8000/files") -> None:
        self._root = Path(root_dir).resolve()
        self._public_base_url = public_base_url.rstrip("/")

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as exc:
            raise StorageError(
                message=f"Cannot read blob {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        target = self._resolve(path)
        meta = {"contentType": content_type, **(metadata or {})}
        try:
            await asyncio.to_thread(self._write, target, data, meta)
        except OSError as exc:
            raise StorageError(
                message=f"Cannot write blob {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("blob_uploaded", path=path, bytes=len(data), content_type=content_type)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).is_file)

    async def get_metadata(self, path: str) -> dict[str, str]:
        target = self._resolve(path)
        if not await asyncio.to_thread(target.is_file):
            raise StorageError(message=f"Blob not found: {path}", provider_name=self.get_provider_name())
        return await asyncio.to_thread(self._read_meta, target)

    async def set_metadata(self, path: str, metadata: dict[str, str]) -> None:
        target = self._resolve(path)
        if not await asyncio.to_thread(target.is_file):
            raise StorageError(message=f"Blob not found: {path}", provider_name=self.get_provider_name())
        current = await asyncio.to_thread(self._read_meta, target)
        current.update(metadata)
        await asyncio.to_thread(self._meta_path(target).write_text, json.dumps(current), "utf-8")

    def public_url(self, path: str, token: str | None = None) -> str:
        url = f"{self._public_base_url}/{quote(path.lstrip('/'))}"
        return f"{url}?token={quote(token)}" if token else url

    def get_provider_name(self) -> str:
        return "local_blob"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        target = (self._root / path.lstrip("/")).resolve()
        if target != self._root and self._root not in target.parents:
            raise StorageError(message=f"Blob path escapes store root: {path}", provider_name=self.get_provider_name())
        return target

    @staticmethod
    def _meta_path(target: Path) -> Path:
        return target.with_name(target.name + _META_SUFFIX)

    def _write(self, target: Path, data: bytes, meta: dict[str, str]) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        self._meta_path(target).write_text(json.dumps(meta), encoding="utf-8")

    def _read_meta(self, target: Path) -> dict[str, str]:
        meta_path = self._meta_path(target)
        if not meta_path.is_file():
            return {}
        return json.loads(meta_path.read_text(encoding="utf-8"))
