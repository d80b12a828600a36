from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, UploadFile

from unchive.ingestion import (
    IngestJobPhase,
    IngestJobRecord,
    IngestJobState,
    ProjectRecord,
    ProjectStatus,
)

from api.dependencies import (
    build_project_id,
    build_worker,
    compute_md5_bytes,
    get_indexer,
    get_repo,
    get_storage,
)

router = APIRouter(prefix="/projects", tags=["projects"])


def _project_or_404(project_id: str) -> ProjectRecord:
    project = get_repo().get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail=f"Project not found: {project_id}")
    return project


def _project_payload(project: ProjectRecord) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "status": project.status,
        "screen_count": project.screen_count,
        "extension_count": project.extension_count,
        "asset_count": project.asset_count,
    }


@router.get("")
def list_projects():
    return [_project_payload(p) for p in get_repo().list_projects()]


@router.get("/{project_id}")
def get_project(project_id: str):
    return _project_payload(_project_or_404(project_id))


@router.get("/{project_id}/model")
def get_project_model(project_id: str):
    _project_or_404(project_id)
    model = get_storage().read_model_output(project_id)
    if model is None:
        raise HTTPException(status_code=404, detail=f"No ingested model for {project_id}")
    return model


@router.get("/{project_id}/screens/{screen_name}/components")
def list_screen_components(project_id: str, screen_name: str):
    _project_or_404(project_id)
    components = get_repo().list_components_for_screen(project_id, screen_name)
    if not components:
        raise HTTPException(status_code=404, detail=f"No components found for {project_id} screen {screen_name}")
    return {
        "screen": screen_name,
        "components": [
            {
                "id": c.id,
                "parent_id": c.parent_id,
                "order_index": c.order_index,
                "depth": c.depth,
                "name": c.name,
                "type": c.component_type,
                "uid": c.uid,
                "origin": c.origin,
                "faulty": c.faulty,
                "properties": c.properties,
            }
            for c in components
        ],
    }


@router.get("/{project_id}/search")
def search_project(project_id: str, query: str, limit: int = 20):
    if not query or not query.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")
    _project_or_404(project_id)
    return {"hits": get_indexer().search(query, project_id=project_id, limit=limit)}


@router.post("/upload")
async def upload_project(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
):
    payload = await file.read()
    if not payload:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    project_name = name or Path(file.filename or "").stem or "Project"
    repo = get_repo()
    storage = get_storage()
    project_id = build_project_id(project_name, payload)
    if repo.get_project(project_id):
        raise HTTPException(status_code=409, detail=f"Project already exists: {project_id}")

    original_path = storage.save_original_archive(project_id, payload)
    project = ProjectRecord(
        id=project_id,
        name=project_name,
        file_md5=compute_md5_bytes(payload),
        source="upload",
        original_file_path=str(original_path),
        status=ProjectStatus.UPLOADED,
    )
    repo.save_project(project)

    job_id = f"job-{project_id}"
    repo.save_job(
        IngestJobRecord(
            id=job_id,
            project_id=project_id,
            state=IngestJobState.QUEUED,
            phase=IngestJobPhase.PRECHECK,
        )
    )

    background_tasks.add_task(_run_job, job_id)
    return {"project_id": project_id, "job_id": job_id}


async def _run_job(job_id: str) -> None:
    await build_worker().run_job(job_id)
