"""HTTP client for the APS Object Storage and Model Derivative APIs.

Implements every collaborator the extraction core depends on. Transient
failures (connection errors, read timeouts, 502/503/504) are retried here
with exponential backoff; whatever still fails surfaces as TransportError.
"Not ready yet" answers (404 manifest, 202 tree/properties) are returned
as values, never raised.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

from cad_metadata.aps.auth import get_access_token
from cad_metadata.config import (
    APS_BASE_URL,
    APS_BUCKET_POLICY,
    APS_HTTP_MAX_RETRIES,
    APS_HTTP_RETRY_BASE_SECONDS,
    APS_HTTP_TIMEOUT_SECONDS,
)
from cad_metadata.errors import TransportError
from cad_metadata.extraction.types import ManifestSnapshot, ViewDataResponse, ViewInfo

logger = logging.getLogger(__name__)

_OSS = "/oss/v2"
_MD = "/modelderivative/v2/designdata"
_RETRYABLE_STATUS = {502, 503, 504}


def encode_urn(object_reference: str) -> str:
    """URL-safe, unpadded base64 form of an object id, as Model Derivative expects."""
    return base64.urlsafe_b64encode(object_reference.encode("utf-8")).decode("ascii").rstrip("=")


class ApsClient:
    def __init__(
        self,
        http: httpx.AsyncClient | None = None,
        *,
        base_url: str = APS_BASE_URL,
        bucket_policy: str = APS_BUCKET_POLICY,
        max_retries: int = APS_HTTP_MAX_RETRIES,
        retry_base_seconds: float = APS_HTTP_RETRY_BASE_SECONDS,
    ) -> None:
        self._http = http or httpx.AsyncClient(timeout=APS_HTTP_TIMEOUT_SECONDS)
        self._owns_http = http is None
        self._base_url = base_url.rstrip("/")
        self._bucket_policy = bucket_policy
        self._max_retries = max(0, max_retries)
        self._retry_base_seconds = retry_base_seconds

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> ApsClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Object storage -------------------------------------------------------

    async def ensure_container_exists(self, container_id: str) -> None:
        resp = await self._request(
            "POST",
            f"{_OSS}/buckets",
            json={"bucketKey": container_id, "policyKey": self._bucket_policy},
        )
        if resp.status_code == 409:
            logger.debug("Bucket %s already exists", container_id)
            return
        _raise_for_status(resp, f"create bucket {container_id}")
        logger.info("Created bucket %s", container_id)

    async def put_object(self, container_id: str, object_id: str, data: bytes) -> None:
        resp = await self._request(
            "PUT",
            f"{_OSS}/buckets/{container_id}/objects/{quote(object_id, safe='')}",
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        _raise_for_status(resp, f"upload {object_id}")
        logger.info("Uploaded %s (%d bytes)", object_id, len(data))

    # -- Model Derivative -----------------------------------------------------

    async def submit_job(
        self, input_object_reference: str, output_formats: list[dict[str, Any]]
    ) -> str:
        urn = encode_urn(input_object_reference)
        resp = await self._request(
            "POST",
            f"{_MD}/job",
            json={"input": {"urn": urn}, "output": {"formats": output_formats}},
        )
        _raise_for_status(resp, "submit translation job")
        body = _json(resp)
        return str(body.get("urn") or urn) if isinstance(body, dict) else urn

    async def get_manifest(self, job_id: str) -> ManifestSnapshot | None:
        resp = await self._request("GET", f"{_MD}/{job_id}/manifest")
        if resp.status_code == 404:
            return None
        _raise_for_status(resp, "read manifest")
        body = _json(resp)
        if not isinstance(body, dict):
            raise TransportError("Manifest response was not a JSON object")
        return ManifestSnapshot.from_payload(body, job_id=job_id)

    async def get_view_list(self, job_id: str) -> list[ViewInfo] | None:
        resp = await self._request("GET", f"{_MD}/{job_id}/metadata")
        if resp.status_code in (202, 404):
            return None
        _raise_for_status(resp, "list model views")
        body = _json(resp)
        data = body.get("data") if isinstance(body, dict) else None
        entries = data.get("metadata") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            return None
        return [
            ViewInfo(
                guid=str(e["guid"]),
                name=e.get("name"),
                role=e.get("role"),
            )
            for e in entries
            if isinstance(e, dict) and e.get("guid")
        ]

    async def get_object_tree(self, job_id: str, view_guid: str) -> ViewDataResponse:
        return await self._read_view_data(f"{_MD}/{job_id}/metadata/{view_guid}", "objects")

    async def get_properties(self, job_id: str, view_guid: str) -> ViewDataResponse:
        return await self._read_view_data(
            f"{_MD}/{job_id}/metadata/{view_guid}/properties", "collection"
        )

    async def _read_view_data(self, path: str, key: str) -> ViewDataResponse:
        resp = await self._request("GET", path)
        if resp.status_code == 202:
            return ViewDataResponse(is_still_processing=True)
        if resp.status_code == 404:
            return ViewDataResponse(is_still_processing=False)
        _raise_for_status(resp, f"read {key}")

        body = _json(resp)
        data = body.get("data") if isinstance(body, dict) else None
        if isinstance(data, dict) and isinstance(data.get(key), list):
            return ViewDataResponse(is_still_processing=False, data=data)
        # A bare {"result": "success"} means the extraction was accepted but is not done
        if isinstance(body, dict) and body.get("result") == "success":
            return ViewDataResponse(is_still_processing=True)
        return ViewDataResponse(is_still_processing=False)

    # -- HTTP -----------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an authenticated request with retry on transient failures."""
        url = f"{self._base_url}{path}"
        for attempt in range(self._max_retries + 1):
            token = await get_access_token(self._http)
            req_headers = {"Authorization": f"Bearer {token}", **(headers or {})}
            try:
                resp = await self._http.request(
                    method, url, headers=req_headers, json=json, content=content
                )
                if resp.status_code not in _RETRYABLE_STATUS or attempt >= self._max_retries:
                    return resp
                logger.warning(
                    "%s %s returned %d (attempt %d/%d)",
                    method,
                    path,
                    resp.status_code,
                    attempt + 1,
                    self._max_retries + 1,
                )
            except (httpx.ConnectError, httpx.ReadTimeout) as e:
                if attempt >= self._max_retries:
                    raise TransportError(f"{method} {path} failed: {e}") from e
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s",
                    method,
                    path,
                    attempt + 1,
                    self._max_retries + 1,
                    e,
                )
            except httpx.HTTPError as e:
                raise TransportError(f"{method} {path} failed: {e}") from e
            await asyncio.sleep(self._retry_base_seconds * (2**attempt))
        raise RuntimeError("Unreachable retry path")


def _raise_for_status(resp: httpx.Response, action: str) -> None:
    if resp.is_success:
        return
    detail = resp.text[:300]
    logger.warning("APS %s failed: %d %s", action, resp.status_code, detail)
    raise TransportError(
        f"Failed to {action}: {resp.status_code} - {detail}",
        status_code=resp.status_code,
    )


def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise TransportError(f"Malformed JSON response ({resp.status_code})") from e
