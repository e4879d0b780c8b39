"""Unit tests for the FastAPI endpoints of the CAD metadata service.

Tests cover:
- GET /liveness and GET /readiness
- POST /v1/extract (success, missing/empty file, error mapping, ceiling)
- GET /v1/jobs/{urn}/metadata
- Body size middleware (oversized content-length returns 413)
- Request ID middleware (echo and auto-generate)

Uses httpx.AsyncClient with ASGITransport. The extraction pipeline and
extractor are replaced through FastAPI dependency overrides.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from cad_metadata.app import app, get_extractor, get_pipeline
from cad_metadata.errors import TranslationFailed, TranslationTimeout, TransportError
from cad_metadata.extraction.types import EnrichmentStatus
from cad_metadata.models import (
    Derivative,
    MetadataDocument,
    ModelView,
    ObjectTreeSummary,
    Resource,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _document() -> MetadataDocument:
    return MetadataDocument(
        urn="dXJuOnRlc3Q",
        status="success",
        progress="complete",
        region="US",
        has_thumbnail=True,
        derivatives=[
            Derivative(
                output_type="svf",
                resources=[Resource(guid="G1", viewable_id="vid-model", urn="urn:adsk.viewing:fs.file:abc")],
            )
        ],
        model_views=[
            ModelView(
                guid="G1",
                name="Model",
                role="2d",
                object_tree_status=EnrichmentStatus.COMPLETE,
                object_tree=ObjectTreeSummary(node_count=4, max_depth=3),
                properties_status=EnrichmentStatus.PROCESSING,
            )
        ],
        file_name="floor-plan.dwg",
        bucket_key="dwg-extractor-bucket",
        object_key="1712-floor-plan.dwg",
    )


@pytest.fixture()
def pipeline() -> MagicMock:
    mock = MagicMock()
    mock.run = AsyncMock(return_value=_document())
    return mock


@pytest.fixture()
def extractor() -> MagicMock:
    mock = MagicMock()
    mock.extract_metadata = AsyncMock(return_value=_document())
    return mock


@pytest.fixture()
async def client(pipeline: MagicMock, extractor: MagicMock):
    """Async httpx client wired to the FastAPI app with mocked extraction."""
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_extractor] = lambda: extractor
    # Reset rate limiter state between tests to avoid cross-test interference
    app.state.limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def _upload(name: str = "floor-plan.dwg", data: bytes = b"AC1032") -> dict:
    return {"file": (name, data, "application/octet-stream")}


# ---------------------------------------------------------------------------
# Health endpoints
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_liveness_returns_ok(self, client: AsyncClient):
        resp = await client.get("/liveness")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    @patch("cad_metadata.app.aps_credentials_configured", return_value=True)
    async def test_readiness_ok(self, mock_creds, client: AsyncClient):
        resp = await client.get("/readiness")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    @patch("cad_metadata.app.aps_credentials_configured", return_value=False)
    async def test_readiness_degraded_without_credentials(self, mock_creds, client: AsyncClient):
        resp = await client.get("/readiness")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert "APS credentials" in body["error"]


# ---------------------------------------------------------------------------
# POST /v1/extract
# ---------------------------------------------------------------------------


class TestExtract:
    async def test_success_returns_camel_case_document(self, client: AsyncClient, pipeline: MagicMock):
        resp = await client.post("/v1/extract", files=_upload())

        assert resp.status_code == 200
        metadata = resp.json()["metadata"]
        assert metadata["status"] == "success"
        assert metadata["hasThumbnail"] is True
        assert metadata["fileName"] == "floor-plan.dwg"
        assert metadata["derivatives"][0]["outputType"] == "svf"
        assert metadata["derivatives"][0]["resources"][0]["viewableID"] == "vid-model"
        view = metadata["modelViews"][0]
        assert view["objectTreeStatus"] == "complete"
        assert view["objectTree"] == {"nodeCount": 4, "maxDepth": 3}
        assert view["propertiesStatus"] == "processing"
        assert view["properties"] is None

        pipeline.run.assert_awaited_once_with("floor-plan.dwg", b"AC1032")

    async def test_no_file_returns_400(self, client: AsyncClient, pipeline: MagicMock):
        resp = await client.post("/v1/extract")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No file provided"
        pipeline.run.assert_not_awaited()

    async def test_empty_file_returns_400(self, client: AsyncClient, pipeline: MagicMock):
        resp = await client.post("/v1/extract", files=_upload(data=b""))
        assert resp.status_code == 400
        assert resp.json()["detail"] == "File is empty"
        pipeline.run.assert_not_awaited()

    async def test_value_error_returns_400(self, client: AsyncClient, pipeline: MagicMock):
        pipeline.run.side_effect = ValueError("file name must not be empty")
        resp = await client.post("/v1/extract", files=_upload())
        assert resp.status_code == 400
        assert "file name" in resp.json()["detail"]

    async def test_translation_failed_returns_422(self, client: AsyncClient, pipeline: MagicMock):
        pipeline.run.side_effect = TranslationFailed("urn-1", "E01: Unrecoverable exit code")
        resp = await client.post("/v1/extract", files=_upload())

        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "translation_failed"
        assert body["detail"] == "E01: Unrecoverable exit code"
        assert body["status"] == "failed"

    async def test_translation_timeout_returns_504(self, client: AsyncClient, pipeline: MagicMock):
        pipeline.run.side_effect = TranslationTimeout(
            "urn-1", last_status="inprogress", elapsed_seconds=118, attempts=60
        )
        resp = await client.post("/v1/extract", files=_upload())

        assert resp.status_code == 504
        body = resp.json()
        assert body["error"] == "translation_timeout"
        assert body["status"] == "inprogress"
        assert body["urn"] == "urn-1"
        assert "try again later" in body["detail"]

    async def test_transport_error_returns_502_without_detail_leak(
        self, client: AsyncClient, pipeline: MagicMock
    ):
        pipeline.run.side_effect = TransportError("Failed to upload: 500 - secret internals")
        resp = await client.post("/v1/extract", files=_upload())

        assert resp.status_code == 502
        body = resp.json()
        assert body["error"] == "transport_error"
        assert "secret internals" not in body["detail"]

    @patch("cad_metadata.app.CAD_REQUEST_TIMEOUT_SECONDS", 0.05)
    async def test_request_ceiling_returns_504(self, client: AsyncClient, pipeline: MagicMock):
        async def _slow(*args, **kwargs):
            await asyncio.sleep(5)

        pipeline.run.side_effect = _slow
        resp = await client.post("/v1/extract", files=_upload())

        assert resp.status_code == 504
        assert resp.json()["detail"] == "Extraction timed out"


# ---------------------------------------------------------------------------
# GET /v1/jobs/{urn}/metadata
# ---------------------------------------------------------------------------


class TestJobMetadata:
    async def test_returns_document_for_urn(self, client: AsyncClient, extractor: MagicMock):
        resp = await client.get("/v1/jobs/dXJuOnRlc3Q/metadata")

        assert resp.status_code == 200
        assert resp.json()["metadata"]["urn"] == "dXJuOnRlc3Q"
        extractor.extract_metadata.assert_awaited_once_with("dXJuOnRlc3Q")

    async def test_failed_job_returns_422(self, client: AsyncClient, extractor: MagicMock):
        extractor.extract_metadata.side_effect = TranslationFailed("urn-1", "", status="timeout")
        resp = await client.get("/v1/jobs/urn-1/metadata")

        assert resp.status_code == 422
        assert resp.json()["status"] == "timeout"


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


class TestBodySizeMiddleware:
    async def test_oversized_content_length_returns_413(self, client: AsyncClient):
        headers = {"Content-Length": str(200 * 1024 * 1024)}
        resp = await client.post("/v1/extract", content=b"x", headers=headers)
        assert resp.status_code == 413


class TestRequestId:
    async def test_generated_when_absent(self, client: AsyncClient):
        resp = await client.get("/liveness")
        assert resp.headers.get("x-request-id")

    async def test_echoed_when_supplied(self, client: AsyncClient):
        resp = await client.get("/liveness", headers={"x-request-id": "custom-trace-123"})
        assert resp.headers["x-request-id"] == "custom-trace-123"
