from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse, Response

from imagebatch.application import get_job_service
from imagebatch.core.errors import JobNotFound, StorageError
from imagebatch.core.storage import artifact_key
from imagebatch.domain import JobState
from imagebatch.infrastructure import LocalObjectStorage
from imagebatch.workers.pipeline import get_pipeline_worker

router = APIRouter(tags=["jobs"])


@router.get("/status/{job_id}")
async def get_status(job_id: str) -> dict:
    service = get_job_service()
    try:
        record = service.get_status(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail="Request not found") from exc

    payload = record.to_dict()
    if record.state is JobState.COMPLETED:
        payload["output_url"] = get_pipeline_worker().storage.public_url(artifact_key(job_id))
    return payload


@router.get("/jobs/{job_id}/items")
async def list_job_items(job_id: str) -> dict:
    service = get_job_service()
    try:
        records = service.list_items(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail="Request not found") from exc
    return {"request_id": job_id, "items": [record.model_dump(mode="json") for record in records]}


@router.get("/jobs/{job_id}/output")
async def download_output(job_id: str) -> Response:
    storage = get_pipeline_worker().storage
    key = artifact_key(job_id)
    try:
        if not storage.exists(key):
            raise HTTPException(status_code=404, detail="output not available")
        content = storage.read(key)
    except StorageError as exc:
        raise HTTPException(status_code=404, detail="output not available") from exc
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{job_id}_output.csv"'},
    )


@router.get("/files/{key:path}")
async def get_stored_file(key: str) -> FileResponse:
    storage = get_pipeline_worker().storage
    if not isinstance(storage, LocalObjectStorage):
        raise HTTPException(status_code=404, detail="file serving is only available for local storage")
    try:
        candidate = storage.path_for(key)
    except StorageError as exc:
        raise HTTPException(status_code=400, detail="invalid file path") from exc
    if not candidate.is_file():
        raise HTTPException(status_code=404, detail="file not found")
    return FileResponse(candidate)
