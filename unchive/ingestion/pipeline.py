from __future__ import annotations

import asyncio
import logging
import os
from pathlib import PurePosixPath
from typing import Dict, List, Optional
from urllib.parse import urlparse

from ..config import IngestionConfig
from .archive import ArchiveEntry, ArchiveHandle, ArchiveIngestor, ArchiveSource, ClassifiedEntries
from .catalog import DescriptorCatalog, get_default_catalog
from .errors import ValidationError
from .extensions import ExtensionRegistry
from .models import AssetRecord, ProjectModel, ScreenModel
from .properties import PropertyResolverPool
from .scheme import ComponentTreeBuilder

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "Project"


def derive_project_name(source: ArchiveSource) -> str:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return DEFAULT_PROJECT_NAME
    text = os.fspath(source)
    if text.lower().startswith(("http://", "https://")):
        text = urlparse(text).path
    stem = PurePosixPath(text.replace("\\", "/")).stem
    return stem or DEFAULT_PROJECT_NAME


class ProjectIngestor:
    """
    Turns a project container into a ProjectModel.

    open -> classify -> descriptor catalog -> extensions -> screens (built
    concurrently, kept in archive order) -> assets. The resolver pool is
    shared by every screen and every ingestion run by this instance.
    """

    def __init__(
        self,
        catalog: Optional[DescriptorCatalog] = None,
        archive_ingestor: Optional[ArchiveIngestor] = None,
        pool: Optional[PropertyResolverPool] = None,
        config: Optional[IngestionConfig] = None,
    ):
        self.config = config or IngestionConfig.from_env()
        self.catalog = catalog or get_default_catalog()
        self.archive_ingestor = archive_ingestor or ArchiveIngestor(http_timeout=self.config.http_timeout)
        self._owns_pool = pool is None
        self.pool = pool or PropertyResolverPool(
            max_workers=self.config.resolver_workers, mode=self.config.resolver_mode
        )

    async def ingest(self, source: ArchiveSource, name: Optional[str] = None) -> ProjectModel:
        project_name = name or derive_project_name(source)
        logger.info("Ingesting project %s", project_name)

        with await self.archive_ingestor.open(source) as handle:
            classified = self.archive_ingestor.classify(handle.entries)
            pairs = self._pair_screen_files(classified)

            await self.catalog.get()
            registry = await ExtensionRegistry.build(handle, classified.extension_json)
            logger.info("Project %s: %d extensions", project_name, len(registry))

            builder = ComponentTreeBuilder(
                self.catalog,
                registry,
                self.pool,
                header_length=self.config.scheme_header_length,
                footer_length=self.config.scheme_footer_length,
            )
            screens = await self._build_screens(handle, pairs, builder)
            logger.info("Project %s: %d screens", project_name, len(screens))

            assets = await self._read_assets(handle, classified.assets)
            logger.info("Project %s: %d assets", project_name, len(assets))

        project = ProjectModel(
            name=project_name,
            screens=screens,
            extensions=list(registry.extensions),
            assets=assets,
            diagnostics=registry.diagnostics + builder.diagnostics,
        )
        faulty = sum(1 for s in screens for node in s.form.walk() if node.faulty)
        if faulty:
            logger.warning("Project %s loaded with %d faulty components", project_name, faulty)
        return project

    def _pair_screen_files(self, classified: ClassifiedEntries) -> List[tuple]:
        blocks: Dict[str, ArchiveEntry] = {}
        for entry in classified.blocks:
            blocks.setdefault(entry.stem, entry)

        pairs = []
        seen = set()
        for scheme in classified.schemes:
            name = scheme.stem
            if name in seen:
                raise ValidationError(f"Duplicate screen name {name}")
            seen.add(name)
            block = blocks.get(name)
            if block is None:
                raise ValidationError(f"Screen {name} has no matching .bky file")
            pairs.append((name, scheme, block))
        return pairs

    async def _build_screens(
        self, handle: ArchiveHandle, pairs: List[tuple], builder: ComponentTreeBuilder
    ) -> List[ScreenModel]:
        async def build(name: str, scheme: ArchiveEntry, block: ArchiveEntry) -> ScreenModel:
            scheme_text, block_text = await asyncio.gather(handle.read_text(scheme), handle.read_text(block))
            return await builder.build_screen(scheme_text, block_text, name)

        tasks = [asyncio.ensure_future(build(*pair)) for pair in pairs]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # One failed screen aborts the rest before the handle closes.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _read_assets(self, handle: ArchiveHandle, entries: List[ArchiveEntry]) -> List[AssetRecord]:
        payloads = await asyncio.gather(*(handle.read_bytes(entry) for entry in entries))
        return [
            AssetRecord(name=entry.basename, type=entry.file_type, payload=payload)
            for entry, payload in zip(entries, payloads)
        ]

    def close(self) -> None:
        if self._owns_pool:
            self.pool.shutdown()

    def __enter__(self) -> "ProjectIngestor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
