from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class JobStatus(str, Enum):
    PENDING = "pending"
    INPROGRESS = "inprogress"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"

    def __str__(self) -> str:
        return self.value


TERMINAL_JOB_STATUSES = frozenset({JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.TIMEOUT})


class EnrichmentStatus(str, Enum):
    """Sub-state of one view enrichment (object tree or properties)."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    UNAVAILABLE = "unavailable"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


def coerce_bool(value: Any) -> bool:
    """APS sends some flags as JSON booleans and some as "true"/"false" strings."""
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


@dataclass(frozen=True)
class ManifestSnapshot:
    urn: str
    status: str  # raw remote status; see JobStatus
    progress: str | None
    region: str | None
    has_thumbnail: bool
    derivatives: list[dict[str, Any]] = field(default_factory=list)
    messages: list[Any] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, job_id: str = "") -> ManifestSnapshot:
        derivatives = payload.get("derivatives") or []
        messages = payload.get("messages") or []
        return cls(
            urn=str(payload.get("urn") or job_id),
            status=str(payload.get("status") or JobStatus.PENDING.value).lower(),
            progress=payload.get("progress"),
            region=payload.get("region"),
            has_thumbnail=coerce_bool(payload.get("hasThumbnail", False)),
            derivatives=[d for d in derivatives if isinstance(d, dict)],
            messages=list(messages) if isinstance(messages, list) else [messages],
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in {s.value for s in TERMINAL_JOB_STATUSES}


@dataclass(frozen=True)
class ViewInfo:
    guid: str
    name: str | None = None
    role: str | None = None


@dataclass(frozen=True)
class ViewDataResponse:
    """One read of a view's object tree or property collection."""

    is_still_processing: bool
    data: Any | None = None


@dataclass(frozen=True)
class Provenance:
    file_name: str | None = None
    bucket_key: str | None = None
    object_key: str | None = None


# -- Collaborators ------------------------------------------------------------


class ObjectStore(Protocol):
    async def ensure_container_exists(self, container_id: str) -> None: ...

    async def put_object(self, container_id: str, object_id: str, data: bytes) -> None: ...


class JobSubmitter(Protocol):
    async def submit_job(
        self, input_object_reference: str, output_formats: list[dict[str, Any]]
    ) -> str: ...


class ManifestReader(Protocol):
    async def get_manifest(self, job_id: str) -> ManifestSnapshot | None: ...


class ViewLister(Protocol):
    async def get_view_list(self, job_id: str) -> list[ViewInfo] | None: ...


class ObjectTreeReader(Protocol):
    async def get_object_tree(self, job_id: str, view_guid: str) -> ViewDataResponse: ...


class PropertiesReader(Protocol):
    async def get_properties(self, job_id: str, view_guid: str) -> ViewDataResponse: ...
