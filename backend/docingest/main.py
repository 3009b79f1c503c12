"""
docingest HTTP service.

    POST /api/v1/projects/{project_id}/documents         one file
    POST /api/v1/projects/{project_id}/documents/batch   several files, in order
    GET  /health                                         liveness
    GET  /ready                                          PostgreSQL reachable

Uploads run the whole pipeline inside the request:

    S3 upload → text extraction → paragraph / sentence segmentation → PostgreSQL

Every request gets an X-Request-ID (client-supplied or generated) that is
echoed on the response and attached to error bodies.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from docingest import __version__
from docingest.api.v1.documents import router as documents_router
from docingest.core.config import settings
from docingest.db.session import check_db_health, engine
from docingest.schemas.documents import ErrorDetail, UploadErrors

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "docingest starting | env=%s bucket=%s max_file_mb=%d retries=%d",
        settings.app_env, settings.s3_bucket,
        settings.max_file_size_mb, settings.ingest_max_retries,
    )

    db = await check_db_health()
    if db["status"] != "ok":
        logger.critical("PostgreSQL unreachable at startup | detail=%s", db.get("detail"))
        raise RuntimeError("PostgreSQL unreachable at startup")
    logger.info("PostgreSQL reachable | latency_ms=%s", db["latency_ms"])

    yield

    await engine.dispose()
    logger.info("docingest stopped")


# ---------------------------------------------------------------------------
# Request id + access log
# ---------------------------------------------------------------------------

def _request_id(request: Request) -> str:
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get("X-Request-ID")
        or str(uuid.uuid4())
    )


async def _tag_and_log(request: Request, call_next):
    request.state.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    t0 = time.perf_counter()

    response = await call_next(request)

    response.headers["X-Request-ID"] = request.state.request_id
    logger.info(
        "%s %s → %d | request_id=%s elapsed_ms=%.1f",
        request.method, request.url.path, response.status_code,
        request.state.request_id, (time.perf_counter() - t0) * 1000,
    )
    return response


# ---------------------------------------------------------------------------
# Error bodies
# ---------------------------------------------------------------------------

async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        ErrorDetail(
            field=".".join(str(part) for part in err["loc"]),
            message=err["msg"],
            code="VALIDATION_ERROR",
        )
        for err in exc.errors()
    ]
    body = UploadErrors.validation_error(details, _request_id(request))
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=body.model_dump(mode="json"))


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    request_id = _request_id(request)
    logger.exception("Unhandled error | path=%s request_id=%s", request.url.path, request_id)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=UploadErrors.internal_error(request_id).model_dump(mode="json"),
        headers={"X-Request-ID": request_id},
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    show_docs = not settings.is_production

    app = FastAPI(
        title="docingest",
        description="Splits uploaded documents into ordered paragraphs and sentences.",
        version=__version__,
        docs_url="/api/docs" if show_docs else None,
        openapi_url="/api/openapi.json" if show_docs else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    # last added runs first
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins or (["*"] if settings.app_env == "development" else []),
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-Document-ID"],
    )
    app.middleware("http")(_tag_and_log)

    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(Exception, _on_unhandled)

    app.include_router(documents_router, prefix="/api/v1")

    @app.get("/health", tags=["Operations"], summary="Liveness probe")
    async def health() -> dict:
        return {"status": "ok", "service": "docingest-api", "version": __version__}

    @app.get("/ready", tags=["Operations"], summary="Readiness probe")
    async def ready() -> JSONResponse:
        db = await check_db_health()
        ok = db["status"] == "ok"
        return JSONResponse(
            status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "ready" if ok else "not_ready", "database": db},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docingest.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
    )
