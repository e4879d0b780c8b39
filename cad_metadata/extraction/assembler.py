"""Builds the metadata document from manifest, view listing and enrichment results."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from cad_metadata.extraction.enricher import ViewEnrichment
from cad_metadata.extraction.types import ManifestSnapshot, Provenance, ViewInfo, coerce_bool
from cad_metadata.models import Derivative, MetadataDocument, ModelView, Resource

logger = logging.getLogger(__name__)


class MetadataAssembler:
    def build_derivatives(self, manifest: ManifestSnapshot) -> list[Derivative]:
        """Derivatives in manifest order, each with its flattened resource list."""
        out: list[Derivative] = []
        for d in manifest.derivatives:
            out.append(
                Derivative(
                    name=_opt_str(d.get("name")),
                    output_type=_opt_str(d.get("outputType")),
                    role=_opt_str(d.get("role")),
                    status=_opt_str(d.get("status")),
                    progress=_opt_str(d.get("progress")),
                    has_thumbnail=coerce_bool(d.get("hasThumbnail", False)),
                    resources=flatten_resources(d.get("children")),
                )
            )
        return out

    def resource_lookup(self, derivatives: Iterable[Derivative]) -> dict[str, Resource]:
        lookup: dict[str, Resource] = {}
        for d in derivatives:
            for r in d.resources:
                # guids are unique within a job; keep the first if not
                lookup.setdefault(r.guid, r)
        return lookup

    def build_views(self, views: Sequence[ViewInfo], lookup: Mapping[str, Resource]) -> list[ModelView]:
        """Base views with urn/viewableID resolved by guid; enrichment still pending."""
        out: list[ModelView] = []
        for v in views:
            resource = lookup.get(v.guid)
            if resource is None:
                logger.debug("View %s has no matching resource", v.guid)
            out.append(
                ModelView(
                    guid=v.guid,
                    name=v.name,
                    role=v.role,
                    urn=resource.urn if resource else None,
                    viewable_id=resource.viewable_id if resource else None,
                )
            )
        return out

    def apply_enrichment(self, view: ModelView, enrichment: ViewEnrichment) -> ModelView:
        tree = enrichment.object_tree
        props = enrichment.properties
        return view.model_copy(
            update={
                "object_tree_status": tree.status,
                "object_tree_error": tree.error,
                "object_tree": tree.summary,
                "properties_status": props.status,
                "properties_error": props.error,
                "properties": props.summary,
            }
        )

    def assemble(
        self,
        manifest: ManifestSnapshot,
        *,
        derivatives: Sequence[Derivative],
        views: Sequence[ModelView],
        provenance: Provenance,
        warnings: Sequence[str] = (),
    ) -> MetadataDocument:
        return MetadataDocument(
            urn=manifest.urn,
            status=manifest.status,
            progress=manifest.progress,
            region=manifest.region,
            has_thumbnail=manifest.has_thumbnail,
            derivatives=list(derivatives),
            model_views=list(views),
            file_name=provenance.file_name,
            bucket_key=provenance.bucket_key,
            object_key=provenance.object_key,
            warnings=list(warnings),
        )


def flatten_resources(children: Any) -> list[Resource]:
    """Depth-first, pre-order flattening of a derivative's resource tree."""
    out: list[Resource] = []
    if not isinstance(children, list):
        return out

    stack: list[tuple[Any, str | None]] = [(c, None) for c in reversed(children)]
    while stack:
        node, parent_guid = stack.pop()
        if not isinstance(node, Mapping):
            continue
        guid = _opt_str(node.get("guid"))
        if guid:
            out.append(
                Resource(
                    guid=guid,
                    type=_opt_str(node.get("type")),
                    role=_opt_str(node.get("role")),
                    name=_opt_str(node.get("name")),
                    status=_opt_str(node.get("status")),
                    progress=_opt_str(node.get("progress")),
                    mime=_opt_str(node.get("mime")),
                    viewable_id=_opt_str(node.get("viewableID")),
                    urn=_opt_str(node.get("urn")),
                    has_thumbnail=coerce_bool(node.get("hasThumbnail", False)),
                    parent_guid=parent_guid,
                )
            )
        grandchildren = node.get("children")
        if isinstance(grandchildren, list):
            stack.extend((c, guid or parent_guid) for c in reversed(grandchildren))
    return out


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
