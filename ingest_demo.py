"""
Example: run the full ingestion pipeline on a real .aia project using SQLite + Whoosh.

Usage:
    python3 ingest_demo.py --aia /path/to/MyApp.aia --project-id my-app
"""

import argparse
import asyncio
import hashlib
import logging
from datetime import datetime
from pathlib import Path

from unchive.config import IngestionConfig
from unchive.ingestion import (
    IngestJobPhase,
    IngestJobRecord,
    IngestJobState,
    IngestionWorker,
    LocalProjectStorage,
    ProjectIngestor,
    ProjectRecord,
    ProjectStatus,
    SqlAlchemyProjectRepository,
    StoragePaths,
    WhooshIndexer,
    build_catalog,
    summarize,
)


def setup_logging(level: int = logging.INFO):
    log_dir = Path("./logs")
    log_dir.mkdir(exist_ok=True)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "ingest.log", encoding="utf-8"),
        ],
        force=True,
    )


def compute_md5(path: Path) -> str:
    digest = hashlib.md5()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


async def run(args) -> None:
    config = IngestionConfig.from_env()
    if args.descriptor_url:
        config.descriptor_url = args.descriptor_url

    storage = LocalProjectStorage(StoragePaths(args.storage_root))
    original_path = storage.save_original_archive(args.project_id, args.aia.read_bytes())

    args.db.parent.mkdir(parents=True, exist_ok=True)
    repo = SqlAlchemyProjectRepository(f"sqlite+pysqlite:///{args.db}")
    indexer = WhooshIndexer(args.whoosh_dir)

    project = ProjectRecord(
        id=args.project_id,
        name=args.name or args.aia.stem,
        file_md5=compute_md5(args.aia),
        source="upload",
        original_file_path=str(original_path),
        status=ProjectStatus.UPLOADED,
    )
    repo.save_project(project)

    job_id = f"job-{args.project_id}"
    repo.save_job(
        IngestJobRecord(
            id=job_id,
            project_id=args.project_id,
            state=IngestJobState.QUEUED,
            phase=IngestJobPhase.PRECHECK,
            started_at=datetime.utcnow(),
        )
    )

    print(f"Starting ingest job {job_id} for {args.aia}")
    with ProjectIngestor(catalog=build_catalog(config), config=config) as ingestor:
        worker = IngestionWorker(
            repository=repo,
            storage=storage,
            ingestor=ingestor,
            indexer=indexer,
            export_assets=args.export_assets,
        )
        model = await worker.run_job(job_id)

    final_job = repo.get_job(job_id)
    print(f"Job finished with state={final_job.state}, diagnostics={final_job.diagnostic_count}")

    summary = summarize(model)
    print(f"Screens: {summary.screen_count}  Extensions: {summary.extension_count}  Blocks: {summary.block_count}")
    print(f"Assets: {summary.asset_count} ({summary.total_asset_size_label})")
    for component_type, count in summary.most_used_components:
        print(f"  {component_type}: {count}")
    for diagnostic in model.diagnostics:
        print(f"[{diagnostic.level.value}] {diagnostic.source}: {diagnostic.message}")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--aia", required=True, type=Path, help="Path to input .aia project")
    parser.add_argument("--name", default=None, help="Project name (defaults to the file stem)")
    parser.add_argument("--project-id", default="project-demo", help="Project id (for DB/paths)")
    parser.add_argument("--db", default=Path("./data/unchive.db"), type=Path, help="SQLite DB path")
    parser.add_argument("--storage-root", default=Path("./data"), type=Path, help="Storage root for projects")
    parser.add_argument("--whoosh-dir", default=Path("./data/whoosh"), type=Path, help="Whoosh index directory")
    parser.add_argument("--descriptor-url", default=None, help="Fetch the component catalog from this URL")
    parser.add_argument("--export-assets", action="store_true", help="Write assets to the storage root")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()

    if not args.aia.exists():
        raise FileNotFoundError(f"Project not found: {args.aia}")

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
