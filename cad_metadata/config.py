"""Environment-variable-driven configuration for the CAD metadata service.

APS_* variables configure the Autodesk Platform Services collaborators,
CAD_* variables configure polling budgets and the HTTP surface.
"""

from __future__ import annotations

import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# -- APS credentials ----------------------------------------------------------
APS_CLIENT_ID: str | None = os.getenv("APS_CLIENT_ID")
APS_CLIENT_SECRET: str | None = os.getenv("APS_CLIENT_SECRET")
APS_BASE_URL: str = os.getenv("APS_BASE_URL", "https://developer.api.autodesk.com").rstrip("/")
APS_SCOPES: str = os.getenv("APS_SCOPES", "data:read data:create bucket:read bucket:create")
APS_TOKEN_REFRESH_MARGIN_SECONDS: int = int(os.getenv("APS_TOKEN_REFRESH_MARGIN_SECONDS", "60"))

# -- APS storage / translation ------------------------------------------------
APS_BUCKET_KEY: str = os.getenv("APS_BUCKET_KEY", "dwg-extractor-bucket")
APS_BUCKET_POLICY: str = os.getenv("APS_BUCKET_POLICY", "transient")
APS_OUTPUT_FORMAT: str = os.getenv("APS_OUTPUT_FORMAT", "svf")
APS_OUTPUT_VIEWS: list[str] = _env_csv("APS_OUTPUT_VIEWS", "2d,3d")

# -- APS HTTP -----------------------------------------------------------------
APS_HTTP_TIMEOUT_SECONDS: float = float(os.getenv("APS_HTTP_TIMEOUT_SECONDS", "30"))
APS_HTTP_MAX_RETRIES: int = int(os.getenv("APS_HTTP_MAX_RETRIES", "2"))
APS_HTTP_RETRY_BASE_SECONDS: float = float(os.getenv("APS_HTTP_RETRY_BASE_SECONDS", "0.5"))

# -- Polling ------------------------------------------------------------------
CAD_JOB_POLL_MAX_ATTEMPTS: int = int(os.getenv("CAD_JOB_POLL_MAX_ATTEMPTS", "60"))
CAD_JOB_POLL_DELAY_SECONDS: float = float(os.getenv("CAD_JOB_POLL_DELAY_SECONDS", "2.0"))
CAD_VIEW_POLL_MAX_ATTEMPTS: int = int(os.getenv("CAD_VIEW_POLL_MAX_ATTEMPTS", "10"))
CAD_VIEW_POLL_DELAY_SECONDS: float = float(os.getenv("CAD_VIEW_POLL_DELAY_SECONDS", "2.0"))

# Outer wall-clock ceiling for one extraction request.
CAD_REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("CAD_REQUEST_TIMEOUT_SECONDS", "300"))

# -- HTTP surface -------------------------------------------------------------
CAD_MAX_UPLOAD_BYTES: int = int(os.getenv("CAD_MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)))

CAD_CORS_ALLOW_ORIGINS: list[str] = _env_csv(
    "CAD_CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
)
CAD_CORS_ALLOW_METHODS: list[str] = _env_csv("CAD_CORS_ALLOW_METHODS", "GET,POST,OPTIONS")
CAD_CORS_ALLOW_HEADERS: list[str] = _env_csv(
    "CAD_CORS_ALLOW_HEADERS",
    "Authorization,Content-Type,X-Request-ID",
)
CAD_CORS_ALLOW_CREDENTIALS: bool = _env_bool("CAD_CORS_ALLOW_CREDENTIALS", False)

# -- Logging ------------------------------------------------------------------
CAD_LOG_LEVEL: str = os.getenv("CAD_LOG_LEVEL", "INFO")
CAD_LOG_JSON: bool = _env_bool("CAD_LOG_JSON", False)

# -- Server -------------------------------------------------------------------
IS_CLOUD_RUN: bool = bool(os.getenv("K_SERVICE"))


def aps_credentials_configured() -> bool:
    return bool(APS_CLIENT_ID and APS_CLIENT_SECRET)
