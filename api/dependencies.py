from __future__ import annotations

import hashlib
import os
from functools import lru_cache
from pathlib import Path

from unchive.config import IngestionConfig
from unchive.ingestion import (
    IngestionWorker,
    LocalProjectStorage,
    ProjectIngestor,
    ProjectRepository,
    SqlAlchemyProjectRepository,
    StoragePaths,
    WhooshIndexer,
    get_default_catalog,
)


@lru_cache(maxsize=1)
def get_repo() -> ProjectRepository:
    db_url = os.getenv("DATABASE_URL", "sqlite+pysqlite:///./data/unchive.db")
    return SqlAlchemyProjectRepository(db_url)


@lru_cache(maxsize=1)
def get_storage() -> LocalProjectStorage:
    root = Path(os.getenv("PROJECT_STORAGE_ROOT", "./data"))
    return LocalProjectStorage(StoragePaths(root))


@lru_cache(maxsize=1)
def get_indexer() -> WhooshIndexer:
    whoosh_dir = Path(os.getenv("WHOOSH_DIR", "./data/whoosh"))
    return WhooshIndexer(whoosh_dir)


@lru_cache(maxsize=1)
def get_ingestor() -> ProjectIngestor:
    return ProjectIngestor(catalog=get_default_catalog(), config=IngestionConfig.from_env())


def build_worker() -> IngestionWorker:
    return IngestionWorker(
        repository=get_repo(),
        storage=get_storage(),
        ingestor=get_ingestor(),
        indexer=get_indexer(),
        persist_model_output=True,
        export_assets=os.getenv("EXPORT_ASSETS", "0") == "1",
    )


def build_project_id(name: str, payload: bytes) -> str:
    normalized = name.strip().lower()
    slug = "".join(ch if ch.isalnum() else "-" for ch in normalized).strip("-") or "project"
    digest = hashlib.md5(payload).hexdigest()[:8]
    return f"{slug}-{digest}"


def compute_md5_bytes(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()
