"""
Ingestion subsystem exports.
"""

from .archive import ArchiveEntry, ArchiveHandle, ArchiveIngestor, ClassifiedEntries
from .catalog import DescriptorCatalog, build_catalog, get_default_catalog
from .errors import (
    ComponentResolutionFailure,
    FormatError,
    IngestionError,
    IngestionIOError,
    ValidationError,
)
from .extensions import ExtensionRegistry, read_extension_archive
from .indexing import Indexer, NoopIndexer, WhooshIndexer
from .job_queue import RQJobQueue, WorkerConfig, run_ingest_job
from .models import (
    AssetRecord,
    ComponentNode,
    ComponentOrigin,
    ComponentRecord,
    Diagnostic,
    DiagnosticLevel,
    ExtensionDescriptor,
    ExtensionInfo,
    IngestJobPhase,
    IngestJobRecord,
    IngestJobState,
    ProjectModel,
    ProjectRecord,
    ProjectStatus,
    PropertyValue,
    ScreenModel,
    project_to_dict,
)
from .pipeline import ProjectIngestor
from .properties import PropertyResolverPool, resolve_properties
from .repository import InMemoryProjectRepository, ProjectRepository, SqlAlchemyProjectRepository
from .scheme import ComponentTreeBuilder, parse_scheme
from .storage import LocalProjectStorage, StoragePaths
from .summary import ProjectSummary, summarize
from .worker import IngestionWorker

__all__ = [
    "ArchiveEntry",
    "ArchiveHandle",
    "ArchiveIngestor",
    "AssetRecord",
    "ClassifiedEntries",
    "ComponentNode",
    "ComponentOrigin",
    "ComponentRecord",
    "ComponentResolutionFailure",
    "ComponentTreeBuilder",
    "DescriptorCatalog",
    "Diagnostic",
    "DiagnosticLevel",
    "ExtensionDescriptor",
    "ExtensionInfo",
    "ExtensionRegistry",
    "FormatError",
    "Indexer",
    "IngestJobPhase",
    "IngestJobRecord",
    "IngestJobState",
    "IngestionError",
    "IngestionIOError",
    "IngestionWorker",
    "InMemoryProjectRepository",
    "LocalProjectStorage",
    "NoopIndexer",
    "ProjectIngestor",
    "ProjectModel",
    "ProjectRecord",
    "ProjectRepository",
    "ProjectStatus",
    "ProjectSummary",
    "PropertyResolverPool",
    "PropertyValue",
    "RQJobQueue",
    "ScreenModel",
    "SqlAlchemyProjectRepository",
    "StoragePaths",
    "ValidationError",
    "WhooshIndexer",
    "WorkerConfig",
    "build_catalog",
    "get_default_catalog",
    "parse_scheme",
    "project_to_dict",
    "read_extension_archive",
    "resolve_properties",
    "run_ingest_job",
    "summarize",
]
