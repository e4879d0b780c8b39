"""Pydantic schemas for the metadata document and the HTTP API.

Field names serialize as camelCase (``outputType``, ``modelViews``,
``viewableID``) to match what front ends of the translation service expect.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cad_metadata.extraction.types import EnrichmentStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        protected_namespaces=(),
    )


# -- Manifest content ---------------------------------------------------------


class Resource(_CamelModel):
    guid: str
    type: str | None = None
    role: str | None = None
    name: str | None = None
    status: str | None = None
    progress: str | None = None
    mime: str | None = None
    viewable_id: str | None = Field(None, alias="viewableID")
    urn: str | None = None
    has_thumbnail: bool = False
    parent_guid: str | None = None


class Derivative(_CamelModel):
    name: str | None = None
    output_type: str | None = None
    role: str | None = None
    status: str | None = None
    progress: str | None = None
    has_thumbnail: bool = False
    resources: list[Resource] = Field(default_factory=list)


# -- Views --------------------------------------------------------------------


class ObjectTreeSummary(_CamelModel):
    node_count: int
    max_depth: int


class PropertiesSummary(_CamelModel):
    object_count: int
    category_count: int
    property_count: int


class ModelView(_CamelModel):
    guid: str
    name: str | None = None
    role: str | None = None
    urn: str | None = None
    viewable_id: str | None = Field(None, alias="viewableID")

    object_tree_status: EnrichmentStatus = EnrichmentStatus.PENDING
    object_tree_error: str | None = None
    object_tree: ObjectTreeSummary | None = None

    properties_status: EnrichmentStatus = EnrichmentStatus.PENDING
    properties_error: str | None = None
    properties: PropertiesSummary | None = None


# -- Document -----------------------------------------------------------------


class MetadataDocument(_CamelModel):
    urn: str
    status: str
    progress: str | None = None
    region: str | None = None
    has_thumbnail: bool = False
    derivatives: list[Derivative] = Field(default_factory=list)
    model_views: list[ModelView] = Field(default_factory=list)

    # Provenance
    file_name: str | None = None
    bucket_key: str | None = None
    object_key: str | None = None

    # Document-level gaps, e.g. the view listing could not be read
    warnings: list[str] = Field(default_factory=list)


# -- HTTP ---------------------------------------------------------------------


class ExtractResponse(BaseModel):
    metadata: MetadataDocument


class HealthResponse(BaseModel):
    status: str
    error: str | None = None
