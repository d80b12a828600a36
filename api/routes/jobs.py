from __future__ import annotations

from fastapi import APIRouter, HTTPException

from unchive.ingestion import IngestJobState, ProjectStatus
from api.dependencies import get_indexer, get_repo, get_storage

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}")
def get_job(job_id: str):
    repo = get_repo()
    job = repo.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return {
        "id": job.id,
        "project_id": job.project_id,
        "state": job.state,
        "phase": job.phase,
        "diagnostic_count": job.diagnostic_count,
        "error_message": job.error_message,
    }


@router.post("/{job_id}/cancel")
def cancel_job(job_id: str):
    repo = get_repo()
    job = repo.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    project = repo.get_project(job.project_id)
    if not project:
        raise HTTPException(status_code=404, detail=f"Project not found for job: {job.project_id}")

    repo.update_job_state_phase(job_id, state=IngestJobState.FAILED, error_message="Cancelled by user")
    repo.update_project_status(project.id, ProjectStatus.FAILED)
    # Clean up storage, index, and DB records.
    get_storage().delete_project(project.id)
    get_indexer().delete_project(project.id)
    repo.delete_project(project.id)
    return {"status": "cancelled", "job_id": job_id, "project_id": project.id}
