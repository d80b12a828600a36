from __future__ import annotations

import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class ComponentOrigin(str, Enum):
    BUILT_IN = "BUILT_IN"
    EXTENSION = "EXTENSION"


class DiagnosticLevel(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ProjectStatus(str, Enum):
    UPLOADED = "uploaded"
    INGESTING = "ingesting"
    INGESTED = "ingested"
    FAILED = "failed"


class IngestJobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestJobPhase(str, Enum):
    PRECHECK = "precheck"
    ARCHIVE_INGESTION = "archive_ingestion"
    DB_INGESTION = "db_ingestion"
    INDEXING = "indexing"


@dataclass
class Diagnostic:
    level: DiagnosticLevel
    source: str
    message: str

    def __str__(self) -> str:
        return f"{self.level.value}: {self.source}: {self.message}"


@dataclass(frozen=True)
class PropertyValue:
    name: str
    value: Any
    editor_type: Optional[str] = None


@dataclass(frozen=True)
class ComponentNode:
    name: str
    type: str
    uid: Union[str, int] = 0
    origin: ComponentOrigin = ComponentOrigin.BUILT_IN
    properties: List[PropertyValue] = field(default_factory=list)
    children: List["ComponentNode"] = field(default_factory=list)
    faulty: bool = False

    def walk(self):
        """
        Depth-first pre-order iteration over this node and its descendants.
        """
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class ScreenModel:
    name: str
    form: ComponentNode
    blocks: str


_TAG_RE = re.compile(r"<[^>]*>")


@dataclass
class ExtensionInfo:
    name: str
    type: str
    version: Any
    version_name: str
    description: str
    date_built: Optional[str]
    author: str
    events: List[Dict[str, Any]] = field(default_factory=list)
    methods: List[Dict[str, Any]] = field(default_factory=list)
    properties: List[Dict[str, Any]] = field(default_factory=list)
    block_properties: List[Dict[str, Any]] = field(default_factory=list)


def clean_description(text: Optional[str]) -> str:
    if not text:
        return "No description available"
    cleaned = _TAG_RE.sub("", text).replace("&nbsp;", " ").strip()
    return cleaned or "No description available"


@dataclass(frozen=True)
class ExtensionDescriptor:
    type: str
    descriptor: Any

    @property
    def short_name(self) -> str:
        return str(self.type).split(".")[-1]

    def info(self) -> ExtensionInfo:
        desc = self.descriptor if isinstance(self.descriptor, dict) else {}
        version = desc.get("version") or 1
        return ExtensionInfo(
            name=desc.get("name") or "Unknown Extension",
            type=self.type or desc.get("type") or "Unknown",
            version=version,
            version_name=str(desc.get("versionName") or version),
            description=clean_description(desc.get("helpString") or desc.get("helpUrl")),
            date_built=desc.get("dateBuilt"),
            author=desc.get("author") or "Unknown",
            events=list(desc.get("events") or []),
            methods=list(desc.get("methods") or []),
            properties=list(desc.get("properties") or []),
            block_properties=list(desc.get("blockProperties") or []),
        )


class AssetRecord:
    """
    A file from the archive's top-level ``assets/`` folder.

    The payload is owned by the record. ``get_url`` materializes it to a
    temporary file on first use and hands out a ``file://`` URI; the owner
    must call ``revoke_url`` to delete that file again.
    """

    def __init__(self, name: str, type: str, payload: bytes):
        self.name = name
        self.type = type
        self.payload = payload
        self.size = len(payload)
        self._url_path: Optional[Path] = None

    def __repr__(self) -> str:
        return f"AssetRecord(name={self.name!r}, type={self.type!r}, size={self.size})"

    @property
    def url(self) -> str:
        return self._url_path.as_uri() if self._url_path else ""

    def get_url(self) -> str:
        if self._url_path is None:
            suffix = f".{self.type}" if self.type else ""
            with tempfile.NamedTemporaryFile(prefix="unchive-asset-", suffix=suffix, delete=False) as handle:
                handle.write(self.payload)
            self._url_path = Path(handle.name)
        return self._url_path.as_uri()

    def revoke_url(self) -> None:
        if self._url_path is None:
            return
        self._url_path.unlink(missing_ok=True)
        self._url_path = None


@dataclass
class ProjectModel:
    name: str
    screens: List[ScreenModel] = field(default_factory=list)
    extensions: List[ExtensionDescriptor] = field(default_factory=list)
    assets: List[AssetRecord] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def get_screen(self, name: str) -> Optional[ScreenModel]:
        return next((s for s in self.screens if s.name == name), None)

    def release_assets(self) -> None:
        for asset in self.assets:
            asset.revoke_url()


def component_to_dict(node: ComponentNode) -> Dict[str, Any]:
    return {
        "name": node.name,
        "type": node.type,
        "uid": node.uid,
        "origin": node.origin.value,
        "faulty": node.faulty,
        "properties": [
            {"name": p.name, "value": p.value, "editor_type": p.editor_type} for p in node.properties
        ],
        "children": [component_to_dict(child) for child in node.children],
    }


def project_to_dict(project: ProjectModel) -> Dict[str, Any]:
    """
    JSON-ready view of a project. Asset payloads are left out, only their
    metadata is kept.
    """
    return {
        "name": project.name,
        "screens": [
            {"name": s.name, "form": component_to_dict(s.form), "blocks": s.blocks} for s in project.screens
        ],
        "extensions": [{"type": e.type, "descriptor": e.descriptor} for e in project.extensions],
        "assets": [{"name": a.name, "type": a.type, "size": a.size} for a in project.assets],
        "diagnostics": [
            {"level": d.level.value, "source": d.source, "message": d.message} for d in project.diagnostics
        ],
    }


@dataclass
class ProjectRecord:
    id: str
    name: str
    file_md5: str
    source: str
    original_file_path: str
    status: ProjectStatus = ProjectStatus.UPLOADED
    screen_count: Optional[int] = None
    extension_count: Optional[int] = None
    asset_count: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class IngestJobRecord:
    id: str
    project_id: str
    state: IngestJobState
    phase: IngestJobPhase
    error_message: Optional[str] = None
    diagnostic_count: int = 0
    started_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class ComponentRecord:
    id: str
    project_id: str
    screen_name: str
    parent_id: Optional[str]
    order_index: int
    depth: int
    name: str
    component_type: str
    uid: str
    origin: ComponentOrigin
    faulty: bool
    properties: List[Dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
