from __future__ import annotations

import asyncio

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, Request, UploadFile

from imagebatch.core.errors import FormatError
from imagebatch.core.schema import UploadAccepted
from imagebatch.workers.pipeline import PipelineRequest, get_pipeline_worker

router = APIRouter(tags=["upload"])


@router.post("/upload", response_model=UploadAccepted)
async def upload_batch(
    request: Request,
    background_tasks: BackgroundTasks,
    csv: UploadFile | None = File(default=None),
    callback_url: str | None = Form(default=None),
) -> UploadAccepted:
    """Accept a batch table and start processing it in the background."""
    if csv is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    try:
        table = await csv.read()
    finally:
        await csv.close()

    callback = (callback_url or "").strip() or request.app.state.settings.default_callback_url
    if not callback:
        raise HTTPException(status_code=400, detail="callback_url is required")

    worker = get_pipeline_worker()
    try:
        job = await asyncio.to_thread(worker.submit, PipelineRequest(table=table, callback_url=callback))
    except FormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    background_tasks.add_task(worker.run, job)
    return UploadAccepted(request_id=job.job_id)
