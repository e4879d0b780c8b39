"""End-to-end tests of metadata extraction and the upload pipeline, using fakes."""

from __future__ import annotations

import pytest
from fakes import (
    PROCESSING,
    FakeManifests,
    FakeStore,
    FakeSubmitter,
    FakeViewSource,
    manifest,
    ready,
)

from cad_metadata.errors import TranslationFailed, TranslationTimeout, TransportError
from cad_metadata.extraction.service import (
    ExtractionPipeline,
    MetadataExtractor,
    default_output_formats,
    object_reference,
)
from cad_metadata.extraction.types import EnrichmentStatus, Provenance, ViewInfo


def _extractor(manifests: FakeManifests, views: FakeViewSource, *, job_attempts: int = 5) -> MetadataExtractor:
    return MetadataExtractor(
        manifests=manifests,
        views=views,
        trees=views,
        properties=views,
        job_max_attempts=job_attempts,
        job_delay_seconds=0,
        view_max_attempts=3,
        view_delay_seconds=0,
    )


class TestExtractMetadata:
    async def test_full_document(self, sample_derivatives, sample_tree, sample_properties):
        manifests = FakeManifests(None, manifest("inprogress"), manifest("success", derivatives=sample_derivatives))
        views = FakeViewSource(
            [ViewInfo(guid="G1", name="Model", role="2d"), ViewInfo(guid="missing", name="Layout1", role="2d")],
            trees={"G1": [PROCESSING, ready(sample_tree)], "missing": [PROCESSING]},
            properties={"G1": [ready(sample_properties)], "missing": [TransportError("413 too large")]},
        )

        doc = await _extractor(manifests, views).extract_metadata(
            "urn-1", Provenance(file_name="floor-plan.dwg", bucket_key="bucket", object_key="1-floor-plan.dwg")
        )

        assert doc.status == "success"
        assert doc.has_thumbnail is True
        assert doc.file_name == "floor-plan.dwg"
        assert [d.output_type for d in doc.derivatives] == ["svf", "thumbnail"]

        g1, missing = doc.model_views
        assert g1.urn is not None and g1.viewable_id == "vid-model"
        assert g1.object_tree_status == EnrichmentStatus.COMPLETE
        assert g1.object_tree is not None and g1.object_tree.node_count == 4
        assert g1.properties_status == EnrichmentStatus.COMPLETE
        assert g1.properties is not None and g1.properties.category_count == 2

        assert missing.urn is None and missing.viewable_id is None
        assert missing.object_tree_status == EnrichmentStatus.PROCESSING
        assert missing.properties_status == EnrichmentStatus.ERROR
        assert missing.properties_error == "413 too large"
        assert doc.warnings == []

    async def test_empty_success_returns_minimal_document(self):
        views = FakeViewSource([ViewInfo(guid="G1")])
        doc = await _extractor(FakeManifests(manifest("success")), views).extract_metadata("urn-1")

        assert doc.status == "success"
        assert doc.derivatives == []
        assert doc.model_views == []
        assert views.log == []

    async def test_failed_job_raises(self):
        manifests = FakeManifests(manifest("inprogress"), manifest("failed"))
        with pytest.raises(TranslationFailed) as exc_info:
            await _extractor(manifests, FakeViewSource()).extract_metadata("urn-1")
        assert str(exc_info.value)

    async def test_timeout_raises_with_last_status(self):
        manifests = FakeManifests(manifest("pending"), manifest("inprogress"))
        with pytest.raises(TranslationTimeout) as exc_info:
            await _extractor(manifests, FakeViewSource(), job_attempts=3).extract_metadata("urn-1")
        assert exc_info.value.last_status == "inprogress"

    async def test_manifest_transport_error_aborts(self):
        manifests = FakeManifests(TransportError("Manifest error: 500"))
        with pytest.raises(TransportError):
            await _extractor(manifests, FakeViewSource()).extract_metadata("urn-1")

    async def test_view_listing_unavailable_adds_warning(self, sample_derivatives):
        manifests = FakeManifests(manifest("success", derivatives=sample_derivatives))
        doc = await _extractor(manifests, FakeViewSource(None)).extract_metadata("urn-1")

        assert doc.model_views == []
        assert len(doc.derivatives) == 2
        assert doc.warnings == ["Model views are not available for this file"]

    async def test_view_listing_error_is_recovered(self, sample_derivatives):
        manifests = FakeManifests(manifest("success", derivatives=sample_derivatives))
        doc = await _extractor(manifests, FakeViewSource(TransportError("502 bad gateway"))).extract_metadata("urn-1")

        assert doc.model_views == []
        assert doc.warnings and "502 bad gateway" in doc.warnings[0]


class TestExtractionPipeline:
    async def test_uploads_submits_and_extracts(self, sample_derivatives):
        store = FakeStore()
        submitter = FakeSubmitter(job_id="urn-1")
        manifests = FakeManifests(manifest("success", derivatives=sample_derivatives))
        pipeline = ExtractionPipeline(
            store=store,
            submitter=submitter,
            extractor=_extractor(manifests, FakeViewSource([])),
            bucket_key="test-bucket",
        )

        doc = await pipeline.run("drawings/floor-plan.dwg", b"AC1032...")

        assert store.containers == ["test-bucket"]
        ((bucket, object_key),) = store.objects.keys()
        assert bucket == "test-bucket"
        assert object_key.endswith("-floor-plan.dwg")
        assert store.objects[(bucket, object_key)] == b"AC1032..."

        ((reference, formats),) = submitter.submitted
        assert reference == f"urn:adsk.objects:os.object:test-bucket/{object_key}"
        assert formats == default_output_formats()
        assert manifests.job_ids == ["urn-1"]

        assert doc.file_name == "floor-plan.dwg"
        assert doc.bucket_key == "test-bucket"
        assert doc.object_key == object_key

    @pytest.mark.parametrize(
        "name,data",
        [("", b"x"), ("   ", b"x"), ("a.dwg", b""), ("dir/", b"x"), ("C:\\drawings\\", b"x")],
    )
    async def test_rejects_empty_input(self, name, data):
        pipeline = ExtractionPipeline(
            store=FakeStore(),
            submitter=FakeSubmitter(),
            extractor=_extractor(FakeManifests(manifest("success")), FakeViewSource()),
        )
        with pytest.raises(ValueError):
            await pipeline.run(name, data)


def test_object_reference_format():
    assert object_reference("b", "1-o.dwg") == "urn:adsk.objects:os.object:b/1-o.dwg"
