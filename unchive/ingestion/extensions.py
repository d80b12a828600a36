from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .archive import ArchiveEntry, ArchiveHandle, ArchiveIngestor, ArchiveSource
from .errors import FormatError
from .models import Diagnostic, DiagnosticLevel, ExtensionDescriptor

logger = logging.getLogger(__name__)

BUILD_INFO_STEMS = ("component_build_info", "component_build_infos")
DESCRIPTOR_STEMS = ("component", "components")
DEFAULT_EXTENSION_TYPE = "Extension"


def extension_folder(entry: ArchiveEntry) -> str:
    """
    Name of the extension package folder an entry belongs to.

    ``com.example.Ext/files/component_build_infos.json`` and
    ``com.example.Ext/components.json`` both map to ``com.example.Ext``.
    """
    folders = entry.parts[:-1]
    if len(folders) >= 2 and folders[-1] == "files":
        return folders[-2]
    return folders[-1] if folders else ""


def _descriptor_type(descriptor: Any) -> str:
    if isinstance(descriptor, dict):
        value = descriptor.get("type") or descriptor.get("name")
        return str(value) if value else DEFAULT_EXTENSION_TYPE
    return DEFAULT_EXTENSION_TYPE


class ExtensionRegistry:
    """
    Extensions bundled with a project (or a standalone .aix), built from the
    build-info and descriptor JSON files of each extension package.
    """

    def __init__(
        self,
        extensions: Optional[List[ExtensionDescriptor]] = None,
        diagnostics: Optional[List[Diagnostic]] = None,
    ):
        self.extensions: List[ExtensionDescriptor] = list(extensions or [])
        self.diagnostics: List[Diagnostic] = list(diagnostics or [])

    def __len__(self) -> int:
        return len(self.extensions)

    def __iter__(self):
        return iter(self.extensions)

    @classmethod
    async def build(cls, handle: ArchiveHandle, entries: Iterable[ArchiveEntry]) -> "ExtensionRegistry":
        relevant = [e for e in entries if e.stem in BUILD_INFO_STEMS + DESCRIPTOR_STEMS]
        texts = await asyncio.gather(*(handle.read_text(e) for e in relevant))
        return cls.from_documents(list(zip(relevant, texts)))

    @classmethod
    def from_documents(cls, documents: Sequence[Tuple[ArchiveEntry, str]]) -> "ExtensionRegistry":
        registry = cls()
        build_infos: List[Tuple[str, Any]] = []
        descriptors: List[Tuple[str, Any]] = []

        for entry, text in documents:
            stem = entry.stem
            if stem not in BUILD_INFO_STEMS and stem not in DESCRIPTOR_STEMS:
                continue
            try:
                payload = cls._parse(entry, text)
            except FormatError as exc:
                logger.warning("Skipping extension entry %s: %s", entry.filename, exc)
                registry._diagnose(DiagnosticLevel.ERROR, entry.filename, str(exc))
                continue
            folder = extension_folder(entry)
            if stem in BUILD_INFO_STEMS:
                build_infos.append((folder, payload))
            else:
                descriptors.append((folder, payload))

        for folder, info in build_infos:
            registry._pair(folder, info, descriptors)

        if not registry.extensions and descriptors:
            logger.info("No build info paired, using %d descriptor entries directly", len(descriptors))
            for _, payload in descriptors:
                items = payload if isinstance(payload, list) else [payload]
                for item in items:
                    registry.extensions.append(ExtensionDescriptor(_descriptor_type(item), item))

        registry._check_ambiguous_names()
        logger.debug("Registered %d extensions", len(registry.extensions))
        return registry

    @staticmethod
    def _parse(entry: ArchiveEntry, text: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise FormatError(f"{entry.filename} is not valid JSON: {exc}") from exc

    def _pair(self, folder: str, info: Any, descriptors: List[Tuple[str, Any]]) -> None:
        descriptor = next((payload for name, payload in descriptors if name == folder), None)
        if descriptor is None:
            self._diagnose(DiagnosticLevel.WARNING, folder, "build info has no matching components.json")
            return

        if isinstance(info, list):
            for index, item in enumerate(info):
                if isinstance(descriptor, list):
                    if index >= len(descriptor):
                        self._diagnose(
                            DiagnosticLevel.WARNING, folder, f"no descriptor at position {index} for build info"
                        )
                        continue
                    desc = descriptor[index]
                else:
                    desc = descriptor
                self.extensions.append(ExtensionDescriptor(self._info_type(item, desc), desc))
        else:
            desc = descriptor[0] if isinstance(descriptor, list) and descriptor else descriptor
            self.extensions.append(ExtensionDescriptor(self._info_type(info, desc), desc))

    @staticmethod
    def _info_type(info: Any, descriptor: Any) -> str:
        if isinstance(info, dict) and info.get("type"):
            return str(info["type"])
        return _descriptor_type(descriptor)

    def _check_ambiguous_names(self) -> None:
        counts = Counter(ext.short_name for ext in self.extensions)
        for short_name, count in counts.items():
            if count > 1:
                self._diagnose(
                    DiagnosticLevel.WARNING,
                    short_name,
                    f"{count} extensions share the component name, the first one is used",
                )

    def _diagnose(self, level: DiagnosticLevel, source: str, message: str) -> None:
        self.diagnostics.append(Diagnostic(level=level, source=source, message=message))

    def match(self, component_type: str) -> Optional[ExtensionDescriptor]:
        for extension in self.extensions:
            if extension.short_name == component_type:
                return extension
        return None


async def read_extension_archive(
    source: ArchiveSource, ingestor: Optional[ArchiveIngestor] = None
) -> List[ExtensionDescriptor]:
    """
    Read a standalone extension container (.aix) and return its extensions.
    """
    ingestor = ingestor or ArchiveIngestor()
    with await ingestor.open(source) as handle:
        json_entries = ingestor.classify(handle.entries).extension_json
        registry = await ExtensionRegistry.build(handle, json_entries)
    if not registry.extensions:
        raise FormatError("No extension found. Make sure the .aix contains components.json")
    return registry.extensions
