from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mailnotes.models import Document

logger = logging.getLogger(__name__)

MARKDOWN = "text/markdown; charset=utf-8"

T = TypeVar("T")


class StorageError(Exception):
    pass


class StorageTimeout(StorageError):
    """Storage did not answer in time; safe to retry the whole capture."""


class DocumentStore(Protocol):
    async def get(self, key: str) -> bytes | None: ...

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = MARKDOWN,
        metadata: dict | None = None,
    ) -> None: ...

    async def exists(self, key: str) -> bool: ...


async def with_timeout(operation: Awaitable[T], timeout: float | None, key: str) -> T:
    try:
        return await asyncio.wait_for(operation, timeout)
    except asyncio.TimeoutError as exc:
        raise StorageTimeout(f"storage timed out after {timeout}s on {key}") from exc


class SqlDocumentStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> bytes | None:
        result = await self.db.execute(select(Document.body).where(Document.key == key))
        return result.scalar_one_or_none()

    async def exists(self, key: str) -> bool:
        result = await self.db.execute(select(Document.key).where(Document.key == key))
        return result.scalar_one_or_none() is not None

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = MARKDOWN,
        metadata: dict | None = None,
    ) -> None:
        document = await self.db.get(Document, key)
        if document is None:
            document = Document(key=key, body=body, content_type=content_type, metadata_=metadata or {})
            self.db.add(document)
        else:
            document.body = body
            document.content_type = content_type
            document.metadata_ = metadata or {}
        await self.db.flush()


class FileDocumentStore:
    """Documents as files under a vault directory, keyed by relative path."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageError(f"key escapes the vault: {key}")
        return path

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).exists)

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = MARKDOWN,
        metadata: dict | None = None,
    ) -> None:
        path = self._path(key)

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)

        await asyncio.to_thread(write)
        logger.debug("Wrote %s (%d bytes)", path, len(body))
