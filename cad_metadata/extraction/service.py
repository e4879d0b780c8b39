"""Metadata extraction entry points.

``MetadataExtractor.extract_metadata`` is the core operation: wait for a
submitted translation job, then build and enrich its metadata document.
``ExtractionPipeline`` adds the upload and submission steps in front of it.
"""

from __future__ import annotations

import logging
import time
from pathlib import PurePosixPath
from typing import Any

from cad_metadata.aps.client import ApsClient
from cad_metadata.config import (
    APS_BUCKET_KEY,
    APS_OUTPUT_FORMAT,
    APS_OUTPUT_VIEWS,
    CAD_JOB_POLL_DELAY_SECONDS,
    CAD_JOB_POLL_MAX_ATTEMPTS,
    CAD_VIEW_POLL_DELAY_SECONDS,
    CAD_VIEW_POLL_MAX_ATTEMPTS,
)
from cad_metadata.errors import TransportError
from cad_metadata.extraction.assembler import MetadataAssembler
from cad_metadata.extraction.enricher import ViewEnricher
from cad_metadata.extraction.tracker import JobStatusTracker
from cad_metadata.extraction.types import (
    JobSubmitter,
    ManifestReader,
    ObjectStore,
    ObjectTreeReader,
    PropertiesReader,
    Provenance,
    ViewInfo,
    ViewLister,
)
from cad_metadata.models import MetadataDocument

logger = logging.getLogger(__name__)


class MetadataExtractor:
    def __init__(
        self,
        *,
        manifests: ManifestReader,
        views: ViewLister,
        trees: ObjectTreeReader,
        properties: PropertiesReader,
        job_max_attempts: int = CAD_JOB_POLL_MAX_ATTEMPTS,
        job_delay_seconds: float = CAD_JOB_POLL_DELAY_SECONDS,
        view_max_attempts: int = CAD_VIEW_POLL_MAX_ATTEMPTS,
        view_delay_seconds: float = CAD_VIEW_POLL_DELAY_SECONDS,
    ) -> None:
        self._views = views
        self._tracker = JobStatusTracker(
            manifests,
            max_attempts=job_max_attempts,
            delay_seconds=job_delay_seconds,
        )
        self._enricher = ViewEnricher(
            trees=trees,
            properties=properties,
            max_attempts=view_max_attempts,
            delay_seconds=view_delay_seconds,
        )
        self._assembler = MetadataAssembler()

    async def extract_metadata(
        self, job_id: str, provenance: Provenance | None = None
    ) -> MetadataDocument:
        """Wait for ``job_id`` to finish and return its metadata document.

        Job-level problems raise (TranslationFailed, TranslationTimeout,
        TransportError). Once the job has succeeded a document is always
        returned; view-level gaps are recorded on the views or in
        ``warnings``.
        """
        provenance = provenance or Provenance()
        manifest = await self._tracker.wait_for_completion(job_id)

        derivatives = self._assembler.build_derivatives(manifest)
        if not derivatives:
            logger.info("Job %s succeeded without derivatives; returning empty document", job_id)
            return self._assembler.assemble(
                manifest, derivatives=[], views=[], provenance=provenance
            )

        warnings: list[str] = []
        listing = await self._list_views(job_id, warnings)

        lookup = self._assembler.resource_lookup(derivatives)
        base_views = self._assembler.build_views(listing, lookup)
        if base_views:
            logger.info(
                "Job %s: enriching %d view(s), worst case %.0fs",
                job_id,
                len(base_views),
                self._enricher.worst_case_seconds(len(base_views)),
            )
        enrichments = await self._enricher.enrich_all(job_id, base_views)
        views = [
            self._assembler.apply_enrichment(view, enrichment)
            for view, enrichment in zip(base_views, enrichments, strict=True)
        ]

        return self._assembler.assemble(
            manifest,
            derivatives=derivatives,
            views=views,
            provenance=provenance,
            warnings=warnings,
        )

    async def _list_views(self, job_id: str, warnings: list[str]) -> list[ViewInfo]:
        try:
            listing = await self._views.get_view_list(job_id)
        except TransportError as e:
            logger.warning("Job %s: view listing failed: %s", job_id, e)
            warnings.append(f"Model views could not be listed: {e}")
            return []
        if listing is None:
            logger.info("Job %s: no view listing available", job_id)
            warnings.append("Model views are not available for this file")
            return []
        return listing


def default_output_formats() -> list[dict[str, Any]]:
    fmt: dict[str, Any] = {"type": APS_OUTPUT_FORMAT}
    if APS_OUTPUT_VIEWS:
        fmt["views"] = list(APS_OUTPUT_VIEWS)
    return [fmt]


def object_reference(bucket_key: str, object_key: str) -> str:
    return f"urn:adsk.objects:os.object:{bucket_key}/{object_key}"


class ExtractionPipeline:
    """Upload a file, submit its translation and extract the metadata."""

    def __init__(
        self,
        *,
        store: ObjectStore,
        submitter: JobSubmitter,
        extractor: MetadataExtractor,
        bucket_key: str = APS_BUCKET_KEY,
        output_formats: list[dict[str, Any]] | None = None,
    ) -> None:
        self._store = store
        self._submitter = submitter
        self._extractor = extractor
        self._bucket_key = bucket_key
        self._output_formats = output_formats or default_output_formats()

    async def run(self, file_name: str, data: bytes) -> MetadataDocument:
        normalized = (file_name or "").strip().replace("\\", "/")
        # A trailing separator names a directory, not a file
        base_name = "" if normalized.endswith("/") else PurePosixPath(normalized).name
        if not base_name:
            raise ValueError("file name must not be empty")
        if not data:
            raise ValueError("file is empty")

        object_key = f"{int(time.time() * 1000)}-{base_name}"
        logger.info("Processing %s (%d bytes) as %s/%s", base_name, len(data), self._bucket_key, object_key)

        await self._store.ensure_container_exists(self._bucket_key)
        await self._store.put_object(self._bucket_key, object_key, data)

        job_id = await self._submitter.submit_job(
            object_reference(self._bucket_key, object_key), self._output_formats
        )
        logger.info("Submitted translation job %s", job_id)

        return await self._extractor.extract_metadata(
            job_id,
            Provenance(file_name=base_name, bucket_key=self._bucket_key, object_key=object_key),
        )


def create_extractor(client: ApsClient) -> MetadataExtractor:
    return MetadataExtractor(
        manifests=client,
        views=client,
        trees=client,
        properties=client,
    )


def create_pipeline(client: ApsClient) -> ExtractionPipeline:
    return ExtractionPipeline(
        store=client,
        submitter=client,
        extractor=create_extractor(client),
    )
