from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from imagebatch.application import get_job_service
from imagebatch.core.settings import DEFAULT_PUBLIC_BASE_URL, Settings, load_settings
from imagebatch.infrastructure import (
    CallbackNotifier,
    LocalObjectStorage,
    ObjectStorage,
    S3ObjectStorage,
    SourceFetcher,
)
from imagebatch.routes import jobs, upload
from imagebatch.workers.pipeline import PipelineWorker, configure_pipeline_worker
from imagebatch.workers.pool import ExecutorFactory, TransformPool, process_executor

logger = logging.getLogger(__name__)


def build_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise RuntimeError("S3_BUCKET is required when STORAGE_BACKEND=s3")
        return S3ObjectStorage(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            public_base_url=settings.public_base_url,
        )
    settings.storage_root.mkdir(parents=True, exist_ok=True)
    return LocalObjectStorage(settings.storage_root, settings.public_base_url or DEFAULT_PUBLIC_BASE_URL)


def create_app(
    settings: Settings | None = None,
    *,
    executor_factory: ExecutorFactory = process_executor,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        storage = build_storage(settings)
        pool = TransformPool(
            storage,
            max_workers=settings.pool_workers,
            quality=settings.transform_quality,
            executor_factory=executor_factory,
        )
        worker = PipelineWorker(
            service=get_job_service(),
            storage=storage,
            fetcher=SourceFetcher(
                storage,
                timeout=settings.request_timeout_seconds,
                max_concurrency=settings.fetch_concurrency,
                http_client=http_client,
            ),
            pool=pool,
            notifier=CallbackNotifier(timeout=settings.request_timeout_seconds, http_client=http_client),
        )
        configure_pipeline_worker(worker)
        logger.info("Transform pool ready with %d worker(s)", pool.max_workers)
        try:
            yield
        finally:
            configure_pipeline_worker(None)
            pool.shutdown()

    app = FastAPI(title="Image Batch Compression API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    origins = settings.cors_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(upload.router, prefix="/api")
    app.include_router(jobs.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Image Batch Compression API",
                "docs": "/docs",
                "upload": "/api/upload",
            }
        )

    return app


app = create_app()
