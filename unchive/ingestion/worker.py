from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from .indexing import Indexer
from .models import (
    ComponentNode,
    ComponentRecord,
    IngestJobPhase,
    IngestJobState,
    ProjectModel,
    ProjectStatus,
    project_to_dict,
)
from .pipeline import ProjectIngestor
from .repository import ProjectRepository
from .storage import LocalProjectStorage

logger = logging.getLogger(__name__)


class IngestionWorker:
    """
    Drives an ingest job through precheck -> archive ingestion -> DB
    ingestion -> indexing. The worker is stateless and relies on the
    repository for job/project state and on the storage adapter for
    filesystem operations.
    """

    def __init__(
        self,
        repository: ProjectRepository,
        storage: LocalProjectStorage,
        ingestor: ProjectIngestor,
        indexer: Indexer,
        persist_model_output: bool = True,
        export_assets: bool = False,
    ):
        self.repo = repository
        self.storage = storage
        self.ingestor = ingestor
        self.indexer = indexer
        self.persist_model_output = persist_model_output
        self.export_assets = export_assets

    async def run_job(self, job_id: str) -> ProjectModel:
        job = self.repo.get_job(job_id)
        if not job:
            raise ValueError(f"Ingest job {job_id} not found")
        project = self.repo.get_project(job.project_id)
        if not project:
            raise ValueError(f"Project {job.project_id} not found for job {job_id}")

        try:
            self.repo.update_job_state_phase(job_id, state=IngestJobState.RUNNING, phase=IngestJobPhase.PRECHECK)
            self.repo.update_project_status(project.id, ProjectStatus.INGESTING)
            archive_path = self._locate_archive(project.original_file_path, project.id)

            self.repo.update_job_state_phase(job_id, phase=IngestJobPhase.ARCHIVE_INGESTION)
            model = await self.ingestor.ingest(archive_path, name=project.name)
            try:
                if self.persist_model_output:
                    self.storage.write_model_output(project.id, project_to_dict(model))
                if self.export_assets:
                    self.storage.write_assets(project.id, model.assets)

                self.repo.update_job_state_phase(job_id, phase=IngestJobPhase.DB_INGESTION)
                components = self.flatten_components(project.id, model)
                self.repo.upsert_components(components)

                self.repo.update_job_state_phase(job_id, phase=IngestJobPhase.INDEXING)
                self.indexer.index_project(project.id, components)
            finally:
                model.release_assets()

            self.repo.update_job_state_phase(
                job_id, state=IngestJobState.COMPLETED, diagnostic_count=len(model.diagnostics)
            )
            self.repo.update_project_status(
                project.id,
                ProjectStatus.INGESTED,
                screen_count=len(model.screens),
                extension_count=len(model.extensions),
                asset_count=len(model.assets),
            )
            logger.info("Ingest job %s completed for project %s", job_id, project.id)
            return model
        except Exception as exc:  # noqa: BLE001
            logger.error("Ingest job %s failed: %s", job_id, exc)
            self.repo.update_job_state_phase(job_id, state=IngestJobState.FAILED, error_message=str(exc))
            self.repo.update_project_status(project.id, ProjectStatus.FAILED)
            raise

    def _locate_archive(self, original_path: str, project_id: str) -> Path:
        stored = self.storage.find_original_archive(project_id)
        candidate = stored if stored else Path(original_path)
        if not candidate.exists():
            raise FileNotFoundError(f"Archive not found at {candidate}")
        return candidate

    @staticmethod
    def flatten_components(project_id: str, model: ProjectModel) -> List[ComponentRecord]:
        """
        One row per tree node, in depth-first pre-order per screen.
        """
        records: List[ComponentRecord] = []

        def visit(screen_name: str, node: ComponentNode, parent_id: Optional[str], depth: int, order: List[int]) -> None:
            order_index = order[0]
            order[0] += 1
            record_id = f"{project_id}-{screen_name}-{order_index}"
            records.append(
                ComponentRecord(
                    id=record_id,
                    project_id=project_id,
                    screen_name=screen_name,
                    parent_id=parent_id,
                    order_index=order_index,
                    depth=depth,
                    name=node.name,
                    component_type=node.type,
                    uid=str(node.uid),
                    origin=node.origin,
                    faulty=node.faulty,
                    properties=[
                        {"name": p.name, "value": p.value, "editor_type": p.editor_type} for p in node.properties
                    ],
                )
            )
            for child in node.children:
                visit(screen_name, child, record_id, depth + 1, order)

        for screen in model.screens:
            visit(screen.name, screen.form, None, 0, [0])
        return records
