"""Abstract base class for the object (blob) store.

Source uploads are read from here by ingestion; generated audio is
written back with a download token in its custom metadata.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: LocalBlobStore (notemind/providers/blob/)
class IBlobStore(ABC):
    """Contract for reading and writing binary objects by path."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the bytes stored at *path*.

        Raises
        ------
        notemind.utils.errors.StorageError
            If the object does not exist or cannot be read.
        """

    @abstractmethod
    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Store *data* at *path*, replacing any existing object."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Return ``True`` if an object is stored at *path*."""

    @abstractmethod
    async def get_metadata(self, path: str) -> dict[str, str]:
        """Return the custom metadata of the object at *path*."""

    @abstractmethod
    async def set_metadata(self, path: str, metadata: dict[str, str]) -> None:
        """Merge *metadata* into the object's custom metadata."""

    @abstractmethod
    def public_url(self, path: str, token: str | None = None) -> str:
        """Return a URL under which the object can be downloaded."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
