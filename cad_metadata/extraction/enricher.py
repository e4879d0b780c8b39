"""Per-view object-tree and property enrichment.

Each view gets two independent bounded polls (tree, then properties), and
views are processed one after another. The worst case for a file with N
views is therefore N x (tree budget + properties budget); with the default
10 attempts at 2s intervals that is about 36s per view. An extraction
has at most one outstanding view read at a time.

Nothing here raises to the caller: every failure is recorded as a status
(plus message) on the enrichment outcome.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from cad_metadata.config import CAD_VIEW_POLL_DELAY_SECONDS, CAD_VIEW_POLL_MAX_ATTEMPTS
from cad_metadata.errors import TransportError
from cad_metadata.extraction.poll import PollLoop
from cad_metadata.extraction.types import (
    EnrichmentStatus,
    ObjectTreeReader,
    PropertiesReader,
    ViewDataResponse,
)
from cad_metadata.models import ModelView, ObjectTreeSummary, PropertiesSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrichmentOutcome:
    status: EnrichmentStatus
    error: str | None = None
    summary: ObjectTreeSummary | PropertiesSummary | None = None


@dataclass(frozen=True)
class ViewEnrichment:
    object_tree: EnrichmentOutcome
    properties: EnrichmentOutcome


class ViewEnricher:
    def __init__(
        self,
        *,
        trees: ObjectTreeReader,
        properties: PropertiesReader,
        max_attempts: int = CAD_VIEW_POLL_MAX_ATTEMPTS,
        delay_seconds: float = CAD_VIEW_POLL_DELAY_SECONDS,
    ) -> None:
        self._trees = trees
        self._properties = properties
        self._max_attempts = max_attempts
        self._delay_seconds = delay_seconds

    def worst_case_seconds(self, view_count: int) -> float:
        """Upper bound on time spent sleeping while enriching ``view_count`` views."""
        return view_count * 2 * self._loop("bound").budget_seconds

    async def enrich_all(self, job_id: str, views: Sequence[ModelView]) -> list[ViewEnrichment]:
        """Enrich views sequentially; the result list is aligned with ``views``."""
        out: list[ViewEnrichment] = []
        for i, view in enumerate(views, 1):
            logger.info("Enriching view %d/%d guid=%s (%s)", i, len(views), view.guid, view.name)
            out.append(await self.enrich(job_id, view.guid))
        return out

    async def enrich(self, job_id: str, view_guid: str) -> ViewEnrichment:
        tree = await self._poll(
            "object tree",
            view_guid,
            lambda: self._trees.get_object_tree(job_id, view_guid),
            summarize_object_tree,
        )
        props = await self._poll(
            "properties",
            view_guid,
            lambda: self._properties.get_properties(job_id, view_guid),
            summarize_properties,
        )
        return ViewEnrichment(object_tree=tree, properties=props)

    def _loop(self, name: str) -> PollLoop[ViewDataResponse]:
        return PollLoop(
            max_attempts=self._max_attempts,
            delay_seconds=self._delay_seconds,
            name=name,
        )

    async def _poll(
        self,
        kind: str,
        view_guid: str,
        fetch: Callable[[], Awaitable[ViewDataResponse]],
        summarize: Callable[[Any], ObjectTreeSummary | PropertiesSummary],
    ) -> EnrichmentOutcome:
        loop = self._loop(f"{kind}:{view_guid}")
        try:
            result = await loop.run(fetch, _is_settled)
            if not result.ready or result.value.data is None:
                status = (
                    EnrichmentStatus.PROCESSING
                    if result.value.is_still_processing
                    else EnrichmentStatus.UNAVAILABLE
                )
                logger.info(
                    "View %s %s %s after %d attempt(s)",
                    view_guid,
                    kind,
                    status.value,
                    result.attempts,
                )
                return EnrichmentOutcome(status=status)
            summary = summarize(result.value.data)
        except TransportError as e:
            logger.warning("View %s %s fetch failed: %s", view_guid, kind, e)
            return EnrichmentOutcome(status=EnrichmentStatus.ERROR, error=str(e) or type(e).__name__)
        except Exception as e:
            logger.warning("View %s %s could not be read", view_guid, kind, exc_info=True)
            return EnrichmentOutcome(status=EnrichmentStatus.ERROR, error=f"{type(e).__name__}: {e}")

        logger.info("View %s %s complete: %s", view_guid, kind, summary.model_dump(by_alias=True))
        return EnrichmentOutcome(status=EnrichmentStatus.COMPLETE, summary=summary)


def _is_settled(resp: ViewDataResponse) -> bool:
    # Only a still-processing response is polled again
    return not resp.is_still_processing


# -- Summaries ----------------------------------------------------------------


def summarize_object_tree(data: Any) -> ObjectTreeSummary:
    """Count nodes and the longest root-to-leaf chain (root is depth 1)."""
    roots = _tree_roots(data)
    node_count = 0
    max_depth = 0
    stack: list[tuple[Any, int]] = [(node, 1) for node in roots]
    while stack:
        node, depth = stack.pop()
        node_count += 1
        max_depth = max(max_depth, depth)
        children = node.get("objects") if isinstance(node, Mapping) else None
        if isinstance(children, list):
            stack.extend((child, depth + 1) for child in children)
    return ObjectTreeSummary(node_count=node_count, max_depth=max_depth)


def _tree_roots(data: Any) -> list[Any]:
    # Accepts the raw response body, its "data" member, or the node list itself.
    if isinstance(data, Mapping):
        if "data" in data and isinstance(data["data"], Mapping):
            return _tree_roots(data["data"])
        if "objectid" in data:
            return [data]
        objects = data.get("objects")
        if isinstance(objects, list):
            return objects
        raise ValueError("object tree has no 'objects' list")
    if isinstance(data, list):
        return data
    raise ValueError(f"unexpected object tree payload: {type(data).__name__}")


def summarize_properties(data: Any) -> PropertiesSummary:
    """Summarise a property collection.

    ``categoryCount`` is the number of distinct category names across all
    objects; ``propertyCount`` sums the keys of every category of every
    object, so a property shared by two objects counts twice.
    """
    collection = _property_collection(data)
    categories: set[str] = set()
    property_count = 0
    for obj in collection:
        props = obj.get("properties") if isinstance(obj, Mapping) else None
        if not isinstance(props, Mapping):
            continue
        for category, values in props.items():
            categories.add(str(category))
            if isinstance(values, Mapping):
                property_count += len(values)
    return PropertiesSummary(
        object_count=len(collection),
        category_count=len(categories),
        property_count=property_count,
    )


def _property_collection(data: Any) -> list[Any]:
    if isinstance(data, Mapping):
        if "data" in data and isinstance(data["data"], Mapping):
            return _property_collection(data["data"])
        collection = data.get("collection")
        if isinstance(collection, list):
            return collection
        raise ValueError("properties payload has no 'collection' list")
    if isinstance(data, list):
        return data
    raise ValueError(f"unexpected properties payload: {type(data).__name__}")
