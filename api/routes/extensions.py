from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, File, HTTPException, UploadFile

from unchive.ingestion import IngestionError, read_extension_archive

router = APIRouter(prefix="/extensions", tags=["extensions"])


@router.post("/inspect")
async def inspect_extension(file: UploadFile = File(...)):
    payload = await file.read()
    if not payload:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    try:
        extensions = await read_extension_archive(payload)
    except IngestionError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return [asdict(ext.info()) for ext in extensions]
