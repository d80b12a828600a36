from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from redis import Redis
from rq import Queue, Worker

from ..config import IngestionConfig
from .catalog import build_catalog
from .indexing import WhooshIndexer
from .pipeline import ProjectIngestor
from .repository import SqlAlchemyProjectRepository
from .storage import LocalProjectStorage, StoragePaths
from .worker import IngestionWorker


@dataclass
class WorkerConfig:
    database_url: str
    project_storage_root: str
    whoosh_index_dir: str
    descriptor_url: Optional[str] = None
    resolver_workers: int = 4
    resolver_mode: str = "thread"
    persist_model_output: bool = True
    export_assets: bool = False


async def _run(job_id: str, config: WorkerConfig) -> None:
    ingestion_config = IngestionConfig.from_env()
    ingestion_config.descriptor_url = config.descriptor_url or ingestion_config.descriptor_url
    ingestion_config.resolver_workers = config.resolver_workers
    ingestion_config.resolver_mode = config.resolver_mode

    repo = SqlAlchemyProjectRepository(config.database_url)
    storage = LocalProjectStorage(StoragePaths(Path(config.project_storage_root)))
    indexer = WhooshIndexer(Path(config.whoosh_index_dir))
    with ProjectIngestor(catalog=build_catalog(ingestion_config), config=ingestion_config) as ingestor:
        worker = IngestionWorker(
            repository=repo,
            storage=storage,
            ingestor=ingestor,
            indexer=indexer,
            persist_model_output=config.persist_model_output,
            export_assets=config.export_assets,
        )
        await worker.run_job(job_id)


def run_ingest_job(job_id: str, config: WorkerConfig) -> None:
    """
    RQ task entrypoint. Creates all required components and executes an ingest job.
    """
    asyncio.run(_run(job_id, config))


class RQJobQueue:
    """
    Redis-backed job queue using RQ. The queue pushes jobs to Redis and workers
    can be started by calling `work()` in a dedicated process.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", queue_name: str = "ingest-jobs"):
        self.redis = Redis.from_url(redis_url)
        self.queue = Queue(queue_name, connection=self.redis)

    def enqueue_ingest_job(self, job_id: str, config: WorkerConfig):
        """
        Enqueue an ingest job. RQ job_id is set to the ingest job id for idempotency.
        """
        return self.queue.enqueue(run_ingest_job, job_id, config, job_id=job_id, retry=None)

    def work(self):
        worker = Worker([self.queue], connection=self.redis)
        worker.work(with_scheduler=True)
