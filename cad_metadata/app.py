"""FastAPI entry point for the CAD metadata service.

Endpoints:
- POST /v1/extract: Upload a CAD file, translate it, return its metadata
- GET  /v1/jobs/{urn}/metadata: Metadata for an already submitted translation job
- GET  /liveness: Health check
- GET  /readiness: APS credentials check
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from typing import Annotated, TypeVar, cast

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from cad_metadata.aps.client import ApsClient
from cad_metadata.config import (
    CAD_CORS_ALLOW_CREDENTIALS,
    CAD_CORS_ALLOW_HEADERS,
    CAD_CORS_ALLOW_METHODS,
    CAD_CORS_ALLOW_ORIGINS,
    CAD_LOG_JSON,
    CAD_LOG_LEVEL,
    CAD_MAX_UPLOAD_BYTES,
    CAD_REQUEST_TIMEOUT_SECONDS,
    IS_CLOUD_RUN,
    aps_credentials_configured,
)
from cad_metadata.errors import TranslationFailed, TranslationTimeout, TransportError
from cad_metadata.extraction.service import (
    ExtractionPipeline,
    MetadataExtractor,
    create_extractor,
    create_pipeline,
)
from cad_metadata.logging_config import bind_request_id, generate_request_id, setup_logging
from cad_metadata.models import ExtractResponse, HealthResponse, MetadataDocument

logger = logging.getLogger(__name__)

T = TypeVar("T")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: open the shared APS client on startup, close on shutdown."""
    setup_logging(level=CAD_LOG_LEVEL, json_logs=CAD_LOG_JSON or IS_CLOUD_RUN)
    if not aps_credentials_configured():
        logger.warning("APS_CLIENT_ID / APS_CLIENT_SECRET not set; extraction requests will fail")
    app.state.aps = ApsClient()
    logger.info("CAD metadata service started")
    yield
    await app.state.aps.aclose()
    logger.info("CAD metadata service stopped")


app = FastAPI(
    title="CAD Metadata API",
    version="0.1.0",
    lifespan=lifespan,
)

# -- Rate limiting ------------------------------------------------------------

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})


# -- Extraction errors --------------------------------------------------------


@app.exception_handler(TranslationFailed)
async def _translation_failed_handler(request: Request, exc: TranslationFailed) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "error": "translation_failed", "status": exc.status},
    )


@app.exception_handler(TranslationTimeout)
async def _translation_timeout_handler(request: Request, exc: TranslationTimeout) -> JSONResponse:
    return JSONResponse(
        status_code=504,
        content={
            "detail": str(exc),
            "error": "translation_timeout",
            "status": exc.last_status,
            "urn": exc.job_id,
        },
    )


@app.exception_handler(TransportError)
async def _transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
    logger.warning("Upstream failure: %s", exc)
    return JSONResponse(
        status_code=502,
        content={"detail": "The translation service request failed", "error": "transport_error"},
    )


if CAD_CORS_ALLOW_CREDENTIALS and "*" in CAD_CORS_ALLOW_ORIGINS:
    raise RuntimeError("Invalid CORS config: wildcard origin cannot be combined with credentials=true")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CAD_CORS_ALLOW_ORIGINS,
    allow_credentials=CAD_CORS_ALLOW_CREDENTIALS,
    allow_methods=CAD_CORS_ALLOW_METHODS,
    allow_headers=CAD_CORS_ALLOW_HEADERS,
)


# -- Body size limit ----------------------------------------------------------


@app.middleware("http")
async def body_size_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Reject requests with bodies exceeding the upload limit."""
    content_length = request.headers.get("content-length")
    if content_length is not None and int(content_length) > CAD_MAX_UPLOAD_BYTES:
        return JSONResponse(status_code=413, content={"detail": "Request body too large"})
    return await call_next(request)


# -- Request ID middleware ----------------------------------------------------


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Attach a unique request ID for trace correlation."""
    request_id = request.headers.get("x-request-id") or generate_request_id()
    request.state.request_id = request_id
    bind_request_id(request_id)
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


# -- Dependencies -------------------------------------------------------------


def _aps_client(request: Request) -> ApsClient:
    client = getattr(request.app.state, "aps", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return cast(ApsClient, client)


def get_extractor(request: Request) -> MetadataExtractor:
    return create_extractor(_aps_client(request))


def get_pipeline(request: Request) -> ExtractionPipeline:
    return create_pipeline(_aps_client(request))


async def _with_ceiling(work: Awaitable[T]) -> T:
    """Abandon the extraction once the request-wide wall-clock ceiling passes."""
    try:
        return await asyncio.wait_for(work, timeout=CAD_REQUEST_TIMEOUT_SECONDS)
    except TimeoutError as e:
        logger.warning("Extraction exceeded %.0fs ceiling", CAD_REQUEST_TIMEOUT_SECONDS)
        raise HTTPException(status_code=504, detail="Extraction timed out") from e


# -- Health -------------------------------------------------------------------


@app.get("/liveness", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/readiness", response_model=HealthResponse)
async def readiness() -> HealthResponse:
    if not aps_credentials_configured():
        return HealthResponse(status="degraded", error="APS credentials not configured")
    return HealthResponse(status="ok")


# -- Extraction ---------------------------------------------------------------


@app.post("/v1/extract", response_model=ExtractResponse)
@limiter.limit("10/minute")
async def extract(
    request: Request,
    pipeline: Annotated[ExtractionPipeline, Depends(get_pipeline)],
    file: Annotated[UploadFile | None, File()] = None,
) -> ExtractResponse:
    """Upload -> translate -> poll -> enrich views -> metadata document."""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="File is empty")

    logger.info("Processing file %s (%d bytes)", file.filename, len(data))
    try:
        document: MetadataDocument = await _with_ceiling(pipeline.run(file.filename, data))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return ExtractResponse(metadata=document)


@app.get("/v1/jobs/{urn}/metadata", response_model=ExtractResponse)
@limiter.limit("30/minute")
async def job_metadata(
    request: Request,
    urn: str,
    extractor: Annotated[MetadataExtractor, Depends(get_extractor)],
) -> ExtractResponse:
    """Metadata for a translation job submitted earlier (by URN)."""
    urn = urn.strip()
    if not urn:
        raise HTTPException(status_code=400, detail="URN must not be blank")

    document = await _with_ceiling(extractor.extract_metadata(urn))
    return ExtractResponse(metadata=document)
