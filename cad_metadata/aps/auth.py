"""Two-legged APS access tokens with a process-wide cache.

The cache is a single token/expiry pair shared by all requests. Whichever
request first finds it missing or inside the refresh margin fetches a new
token; concurrent refreshes are not deduplicated since issuing a client
credentials token twice is harmless.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

from cad_metadata.config import (
    APS_BASE_URL,
    APS_CLIENT_ID,
    APS_CLIENT_SECRET,
    APS_SCOPES,
    APS_TOKEN_REFRESH_MARGIN_SECONDS,
)
from cad_metadata.errors import ApsAuthError

logger = logging.getLogger(__name__)

_TOKEN_PATH = "/authentication/v2/token"


@dataclass
class _CachedToken:
    token: str
    expires_at: float  # unix timestamp


_cache: _CachedToken | None = None


async def get_access_token(http: httpx.AsyncClient) -> str:
    """Return a cached APS token, fetching a new one when missing or near expiry."""
    global _cache  # noqa: PLW0603

    if not APS_CLIENT_ID or not APS_CLIENT_SECRET:
        raise RuntimeError("Missing APS_CLIENT_ID or APS_CLIENT_SECRET environment variables")

    now = time.time()
    cached = _cache
    if cached is not None and now < cached.expires_at - APS_TOKEN_REFRESH_MARGIN_SECONDS:
        return cached.token

    token, expires_in = await _fetch_token(http)
    _cache = _CachedToken(token=token, expires_at=now + expires_in)
    logger.info("Obtained APS access token (expires in %ds)", expires_in)
    return token


async def _fetch_token(http: httpx.AsyncClient) -> tuple[str, int]:
    try:
        resp = await http.post(
            f"{APS_BASE_URL}{_TOKEN_PATH}",
            data={
                "client_id": APS_CLIENT_ID or "",
                "client_secret": APS_CLIENT_SECRET or "",
                "grant_type": "client_credentials",
                "scope": APS_SCOPES,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.HTTPError as e:
        raise ApsAuthError(f"Failed to reach APS authentication: {e}") from e

    if resp.status_code != 200:
        logger.warning("APS authentication failed: %d %s", resp.status_code, resp.text[:300])
        raise ApsAuthError(
            f"Failed to authenticate with APS ({resp.status_code})",
            status_code=resp.status_code,
        )

    try:
        body = resp.json()
        token = str(body["access_token"])
        expires_in = int(body.get("expires_in", 3600))
    except (ValueError, KeyError, TypeError) as e:
        raise ApsAuthError("APS authentication returned an unexpected response") from e
    return token, expires_in


def clear_cache() -> None:
    """Clear the cached token. Exposed for tests."""
    global _cache  # noqa: PLW0603
    _cache = None
