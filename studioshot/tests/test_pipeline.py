"""End-to-end tests for the StudioShot pipeline."""

import asyncio

import pytest
from PIL import Image

from studioshot.app.composition import Compositor
from studioshot.app.constants import MIB
from studioshot.app.enums import ImageStatus, JobState, PipelineStage
from studioshot.app.exceptions import HardServiceError, TransientError, ValidationError
from studioshot.app.jobs.cache import ResultCache
from studioshot.app.models import (
    CancellationToken,
    ImageDescriptor,
    PreProcessedSubject,
    RawSubject,
    RenderRules,
    ShadowParams,
)
from studioshot.app.pipeline import StudioShotPipeline
from studioshot.app.state import PipelineState


@pytest.fixture
def make_pipeline(blob_store, instant_sleep):
    def _make(service, **kwargs):
        return StudioShotPipeline(
            service,
            blob_store=blob_store,
            poll_interval=0,
            base_delay=0,
            sleep=instant_sleep,
            **kwargs,
        )

    return _make


@pytest.fixture
def subjects(make_png):
    return [RawSubject(f"product{i}.png", make_png((100, 200), (20, 40 * i, 200, 255))) for i in range(4)]


class TestPipelineRun:
    def test_composites_every_image_in_input_order(self, make_pipeline, fake_service, subjects):
        state = PipelineState()
        result = asyncio.run(make_pipeline(fake_service).run(subjects, RenderRules(), state=state))

        assert not result.cancelled
        assert result.failed == []
        assert [r.name for r in result.composited] == [s.name for s in subjects]
        for composed in result.composited:
            assert composed.image.size == (275, 275)
            assert composed.image.mode == "RGB"
            assert result.encoded[composed.name].startswith(b"\x89PNG")
        assert len(fake_service.submitted) == 4
        assert state.stage == PipelineStage.DONE
        assert state.progress == 1.0
        assert all(state.status_of(s.name) == ImageStatus.COMPLETE for s in subjects)

    def test_shadows_are_kept_in_blob_store(self, make_pipeline, fake_service, subjects, blob_store):
        asyncio.run(make_pipeline(fake_service).run(subjects[:2]))
        # two uploads plus two downloaded shadows
        assert len(blob_store) == 4
        assert len(fake_service.fetched) == 2

    def test_failed_job_is_isolated(self, make_pipeline, fake_service, subjects):
        fake_service.scripts["job-2"] = [JobState.PROCESSING, JobState.FAILED]
        result = asyncio.run(make_pipeline(fake_service).run(subjects[:2]))

        assert len(result.composited) == 1
        assert len(result.failed) == 1
        assert result.failed[0].error == "Shadow rendering failed"
        assert result.failed[0].name != result.composited[0].name

    def test_rejected_submission_is_isolated(self, make_pipeline, make_service, subjects):
        service = make_service(submit_errors=[HardServiceError("unsupported image")])
        result = asyncio.run(make_pipeline(service).run(subjects[:3]))

        assert len(result.composited) == 2
        assert [f.error for f in result.failed] == ["unsupported image"]

    def test_transient_submit_errors_are_retried(self, make_pipeline, make_service, subjects):
        service = make_service(submit_errors=[TransientError("connection reset")])
        result = asyncio.run(make_pipeline(service).run(subjects[:2]))
        assert len(result.composited) == 2
        assert result.failed == []

    def test_polling_survives_transient_errors(self, make_pipeline, make_service, subjects):
        errors = [TransientError("reset")] * 5
        service = make_service(script=[JobState.PROCESSING, *errors, JobState.COMPLETED])
        state = PipelineState()
        result = asyncio.run(make_pipeline(service).run(subjects[:1], state=state))
        assert len(result.composited) == 1
        assert any("Reconnecting" in w for w in state.warnings)

    def test_small_batches(self, make_pipeline, fake_service, subjects):
        pipeline = make_pipeline(fake_service, max_items_per_batch=1, parallel_batches=1)
        result = asyncio.run(pipeline.run(subjects))
        assert len(result.composited) == 4

    def test_empty_caller_store_is_used(self, make_pipeline, fake_service, subjects, blob_store):
        assert len(blob_store) == 0
        pipeline = make_pipeline(fake_service)
        assert pipeline.blob_store is blob_store
        asyncio.run(pipeline.run(subjects[:1]))
        assert len(blob_store) == 2

    def test_oversized_decode_is_isolated(self, make_pipeline, fake_service, make_png, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 40000)
        subjects = [
            RawSubject("small.png", make_png((100, 200))),
            RawSubject("huge.png", make_png((400, 400))),
        ]
        result = asyncio.run(make_pipeline(fake_service).run(subjects))
        assert [r.name for r in result.composited] == ["small.png"]
        assert [f.name for f in result.failed] == ["huge.png"]
        assert "exceeds limit" in result.failed[0].error

    def test_unexpected_render_error_is_isolated(self, make_pipeline, fake_service, subjects):
        class BrokenCompositor(Compositor):
            def compose(self, shadowed, rules, **kwargs):
                if kwargs["name"] == "product1.png":
                    raise RuntimeError("kernel size mismatch")
                return super().compose(shadowed, rules, **kwargs)

        state = PipelineState()
        pipeline = make_pipeline(fake_service, compositor=BrokenCompositor())
        result = asyncio.run(pipeline.run(subjects[:3], state=state))
        assert [r.name for r in result.composited] == ["product0.png", "product2.png"]
        assert [(f.name, f.error) for f in result.failed] == [("product1.png", "kernel size mismatch")]
        assert state.status_of("product1.png") == ImageStatus.ERROR
        assert state.stage == PipelineStage.DONE


class TestCachedShadows:
    def test_fresh_pre_processed_shadow_skips_service(
        self, make_pipeline, fake_service, blob_store, make_png
    ):
        async def scenario():
            clean_id = await blob_store.create_blob({}, make_png((100, 200)))
            shadow_id = await blob_store.create_blob({}, make_png((120, 220), (0, 0, 0, 80)))
            subject = PreProcessedSubject(
                descriptor=ImageDescriptor(name="vase.png", reference=clean_id),
                shadow_ref=shadow_id,
                shadow_params=ShadowParams(),
            )
            return await make_pipeline(fake_service).run([subject])

        result = asyncio.run(scenario())
        assert fake_service.submitted == []
        assert fake_service.fetched == []
        assert [r.name for r in result.composited] == ["vase.png"]

    def test_stale_shadow_is_regenerated(self, make_pipeline, fake_service, blob_store, make_png):
        async def scenario():
            clean_id = await blob_store.create_blob({}, make_png((100, 200)))
            subject = PreProcessedSubject(
                descriptor=ImageDescriptor(name="vase.png", reference=clean_id),
                shadow_ref="old-shadow",
                shadow_params=ShadowParams(spread=20),
            )
            return await make_pipeline(fake_service).run([subject])

        result = asyncio.run(scenario())
        assert len(fake_service.submitted) == 1
        assert len(result.composited) == 1

    def test_result_cache_is_shared_between_runs(self, make_pipeline, fake_service, blob_store, make_png):
        async def scenario():
            clean_id = await blob_store.create_blob({}, make_png((100, 200)))
            subject = PreProcessedSubject(ImageDescriptor(name="cup.png", reference=clean_id))
            pipeline = make_pipeline(fake_service, cache=ResultCache())
            await pipeline.run([subject])
            return await pipeline.run([subject])

        result = asyncio.run(scenario())
        assert len(fake_service.submitted) == 1
        assert len(result.composited) == 1


class TestCancellationAndLimits:
    def test_cancel_before_start(self, make_pipeline, fake_service, subjects):
        cancel = CancellationToken()
        cancel.cancel()
        state = PipelineState()
        result = asyncio.run(make_pipeline(fake_service).run(subjects, state=state, cancel=cancel))
        assert result.cancelled
        assert fake_service.submitted == []
        assert state.stage == PipelineStage.CANCELLED

    def test_cancel_while_polling(self, make_pipeline, fake_service, subjects):
        cancel = CancellationToken()
        state = PipelineState()
        state.subscribe(
            lambda snap: cancel.cancel() if snap.stage == PipelineStage.POLLING else None
        )
        result = asyncio.run(
            make_pipeline(fake_service).run(subjects[:2], state=state, cancel=cancel)
        )
        assert result.cancelled
        assert len(fake_service.submitted) == 2
        assert result.composited == []

    def test_declared_size_above_ceiling(self, make_pipeline, fake_service):
        subject = PreProcessedSubject(
            ImageDescriptor(name="huge.tif", reference="blob-huge", size_bytes=350 * MIB)
        )
        with pytest.raises(ValidationError):
            asyncio.run(make_pipeline(fake_service).run([subject]))
        assert fake_service.submitted == []

    def test_item_ceiling_is_configurable(self, make_pipeline, fake_service, subjects):
        with pytest.raises(ValidationError, match="too large"):
            asyncio.run(make_pipeline(fake_service, max_item_bytes=10).run(subjects))
        assert fake_service.submitted == []

    def test_raised_ceiling_accepts_large_declared_size(
        self, make_pipeline, fake_service, blob_store, make_png
    ):
        async def scenario():
            clean_id = await blob_store.create_blob({}, make_png((100, 200)))
            subject = PreProcessedSubject(
                ImageDescriptor(name="poster.tif", reference=clean_id, size_bytes=350 * MIB)
            )
            return await make_pipeline(fake_service, max_item_bytes=400 * MIB).run([subject])

        result = asyncio.run(scenario())
        assert len(fake_service.submitted) == 1
        assert [r.name for r in result.composited] == ["poster.tif"]

    def test_invalid_rules(self, make_pipeline, fake_service, subjects):
        with pytest.raises(ValidationError):
            asyncio.run(make_pipeline(fake_service).run(subjects, RenderRules(padding_fraction=0.5)))
