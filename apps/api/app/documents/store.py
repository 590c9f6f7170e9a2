from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from app.documents.errors import StorageError


logger = logging.getLogger("app.documents")


class DocumentStore(Protocol):
    async def save(self, path: str, content: bytes) -> None: ...

    async def read(self, path: str) -> bytes: ...

    def url_for(self, path: str) -> str: ...


class LocalDocumentStore:
    """Filesystem-backed store; ``save`` replaces existing content atomically."""

    def __init__(self, base_dir: str | Path, base_url: str = "/uploads") -> None:
        self.base_dir = Path(base_dir)
        self.base_url = base_url.rstrip("/")

    async def save(self, path: str, content: bytes) -> None:
        await run_in_threadpool(self._write, path, content)
        logger.info("document.stored", extra={"storage_path": path})

    async def read(self, path: str) -> bytes:
        return await run_in_threadpool(self._read, path)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{self._relative(path).as_posix()}"

    def _relative(self, path: str) -> PurePosixPath:
        relative = PurePosixPath(path)
        if not path or relative.is_absolute() or ".." in relative.parts:
            raise StorageError(path, "path must be relative to the document root")
        return relative

    def _resolve(self, path: str) -> Path:
        return self.base_dir.joinpath(*self._relative(path).parts)

    def _write(self, path: str, content: bytes) -> None:
        target = self._resolve(path)
        tmp_name: str | None = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=target.parent, prefix=f".{target.name}.", delete=False) as handle:
                tmp_name = handle.name
                handle.write(content)
            os.replace(tmp_name, target)
        except OSError as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(path, str(exc)) from exc

    def _read(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise StorageError(path, "document not found") from exc
        except OSError as exc:
            raise StorageError(path, str(exc)) from exc
