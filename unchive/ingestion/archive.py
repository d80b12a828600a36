from __future__ import annotations

import asyncio
import logging
import os
import zipfile
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Iterable, List, Optional, Union

import httpx

from .errors import IngestionIOError

logger = logging.getLogger(__name__)

ArchiveSource = Union[bytes, bytearray, memoryview, str, os.PathLike]


@dataclass(frozen=True)
class ArchiveEntry:
    filename: str
    size: int = 0

    @property
    def parts(self) -> List[str]:
        return self.filename.split("/")

    @property
    def basename(self) -> str:
        return self.parts[-1]

    @property
    def stem(self) -> str:
        # "Screen1.scm" -> "Screen1", "component_build_infos.json" -> "component_build_infos"
        return self.basename.split(".")[0]

    @property
    def file_type(self) -> str:
        if "." not in self.basename:
            return ""
        return self.basename.rsplit(".", 1)[-1]


@dataclass
class ClassifiedEntries:
    extension_json: List[ArchiveEntry] = field(default_factory=list)
    schemes: List[ArchiveEntry] = field(default_factory=list)
    blocks: List[ArchiveEntry] = field(default_factory=list)
    assets: List[ArchiveEntry] = field(default_factory=list)


class ArchiveHandle:
    """
    Read access to an opened container. Decompression runs in a worker
    thread so reads never block the event loop.
    """

    def __init__(self, archive: zipfile.ZipFile, source_name: str = ""):
        self._archive = archive
        self.source_name = source_name
        self.entries: List[ArchiveEntry] = [
            ArchiveEntry(filename=info.filename, size=info.file_size)
            for info in archive.infolist()
            if not info.is_dir()
        ]

    async def read_bytes(self, entry: ArchiveEntry) -> bytes:
        try:
            return await asyncio.to_thread(self._archive.read, entry.filename)
        except (zipfile.BadZipFile, KeyError, OSError) as exc:
            raise IngestionIOError(f"Failed to read {entry.filename}: {exc}") from exc

    async def read_text(self, entry: ArchiveEntry) -> str:
        data = await self.read_bytes(entry)
        return data.decode("utf-8-sig", errors="replace")

    def close(self) -> None:
        self._archive.close()

    def __enter__(self) -> "ArchiveHandle":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def _is_url(source: object) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


class ArchiveIngestor:
    """
    Opens project (.aia) and extension (.aix) containers from memory, disk
    or a remote URL and sorts their entries into the groups the rest of the
    pipeline consumes.
    """

    def __init__(self, http_timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.http_timeout = http_timeout
        self._client = client

    async def open(self, source: ArchiveSource) -> ArchiveHandle:
        if _is_url(source):
            data = await self._download(source)
            source_name = str(source)
        elif isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
            source_name = "<memory>"
        else:
            path = Path(source)
            try:
                data = await asyncio.to_thread(path.read_bytes)
            except OSError as exc:
                raise IngestionIOError(f"Cannot read archive {path}: {exc}") from exc
            source_name = str(path)

        try:
            archive = zipfile.ZipFile(BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise IngestionIOError(f"Cannot open archive {source_name}: {exc}") from exc

        handle = ArchiveHandle(archive, source_name=source_name)
        if not handle.entries:
            handle.close()
            raise IngestionIOError(f"Archive {source_name} has no entries")
        logger.debug("Opened %s with %d entries", source_name, len(handle.entries))
        return handle

    async def _download(self, url: str) -> bytes:
        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.http_timeout, follow_redirects=True) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IngestionIOError(f"Cannot download archive {url}: {exc}") from exc
        return response.content

    @staticmethod
    def classify(entries: Iterable[ArchiveEntry]) -> ClassifiedEntries:
        classified = ClassifiedEntries()
        for entry in entries:
            file_type = entry.file_type
            if file_type.lower() == "json":
                classified.extension_json.append(entry)
            elif file_type == "scm":
                classified.schemes.append(entry)
            elif file_type == "bky":
                classified.blocks.append(entry)
            # Only direct children of assets/ are project assets.
            parts = entry.parts
            if parts[0] == "assets" and len(parts) == 2:
                classified.assets.append(entry)
        return classified
