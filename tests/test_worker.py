"""Tests for the processing worker and its job handlers."""

import asyncio
import io
from datetime import datetime, timedelta, timezone

import fitz
import pytest
from PIL import Image
from sqlalchemy import update

from damworks.db.models import Asset, AssetVersion, JobStatus, ProcessingJob
from damworks.lib.derivatives import DerivativeKind, DerivativeOutput, PdfStrategy, default_strategies
from damworks.lib.derivatives.base import THUMBNAIL_ERROR
from damworks.lib.exceptions import ValidationError
from damworks.lib.hooks import AFTER_VERSION_FAILED, AFTER_VERSION_PROCESSED
from damworks.lib.queue.base import PROCESS_VERSION_JOB
from damworks.lib.tempfiles import TEMP_PREFIX
from damworks.worker import Worker
from damworks.worker.jobs import parse_payload


def _make_pdf():
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), "Launch brief")
    data = doc.tobytes()
    doc.close()
    return data


class ExplodingStrategy:
    kind = DerivativeKind.IMAGE

    def __init__(self):
        self.calls = 0

    async def process(self, data, ctx):
        self.calls += 1
        raise RuntimeError("decoder crashed")


class RecordingStrategy:
    kind = DerivativeKind.UNSUPPORTED

    def __init__(self, output):
        self.output = output

    async def process(self, data, ctx):
        return self.output


@pytest.fixture
def make_worker(session_maker, storage, queue, settings):
    def _make(**kwargs):
        return Worker(session_maker, storage, queue, settings, **kwargs)

    return _make


@pytest.fixture
def seed_version(session_maker, backend, queue):
    async def _seed(data, mime_type="image/png", meta=None, max_attempts=None):
        async with session_maker() as session:
            asset = Asset(title="Seed", asset_type="image")
            session.add(asset)
            await session.flush()
            version = AssetVersion(
                asset_id=asset.id,
                version_number=1,
                storage_path=f"{asset.id}/1-seed",
                mime_type=mime_type,
                meta=meta or {"originalFileName": "seed"},
            )
            session.add(version)
            await session.commit()
        await backend.put_object(version.storage_path, data, mime_type)
        job_id = await queue.enqueue(
            PROCESS_VERSION_JOB,
            {"assetId": str(asset.id), "versionId": str(version.id)},
            max_attempts=max_attempts,
        )
        return version, job_id

    return _seed


async def _version(session_maker, version_id):
    async with session_maker() as session:
        return await session.get(AssetVersion, version_id)


class TestParsePayload:
    def test_camel_case_keys(self):
        payload = parse_payload({
            "assetId": "6f1c1f4e-8f55-4c1c-9b7e-6a1d7c4b2a10",
            "versionId": "0b6ac7a4-4d0e-4d8a-9a51-1cbe3f4f9b52",
        })
        assert str(payload.version_id) == "0b6ac7a4-4d0e-4d8a-9a51-1cbe3f4f9b52"

    def test_invalid(self):
        with pytest.raises(ValidationError):
            parse_payload({"versionId": "nope"})


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_idle_queue(self, make_worker):
        assert await make_worker().run_once() is False

    @pytest.mark.asyncio
    async def test_image_end_to_end(
        self, make_worker, seed_version, session_maker, queue, backend, image_factory, clean_hooks, settings
    ):
        processed = []
        clean_hooks.add_action(AFTER_VERSION_PROCESSED, lambda v: processed.append(v.id))
        version, job_id = await seed_version(image_factory(640, 480))

        assert await make_worker().run_once() is True

        stored = await _version(session_maker, version.id)
        assert stored.processing_status == "complete"
        assert (stored.width, stored.height) == (640, 480)
        assert stored.thumbnail_path == f"{version.asset_id}/thumbnails/{version.id}.jpg"
        assert await backend.exists(stored.thumbnail_path)
        assert stored.meta["workerId"] == settings.worker.worker_id
        assert "processingStartedAt" in stored.meta
        assert "processingCompletedAt" in stored.meta
        assert stored.meta["originalFileName"] == "seed"
        assert (await queue.get(job_id)).status == JobStatus.COMPLETE.value
        assert processed == [version.id]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, make_worker, seed_version, session_maker, queue, backend, image_factory):
        version, _ = await seed_version(image_factory(300, 200))
        worker = make_worker()
        await worker.run_once()
        first = await _version(session_maker, version.id)

        await queue.enqueue(
            PROCESS_VERSION_JOB,
            {"assetId": str(version.asset_id), "versionId": str(version.id)},
        )
        await worker.run_once()

        second = await _version(session_maker, version.id)
        assert second.thumbnail_path == first.thumbnail_path
        assert (second.width, second.height) == (300, 200)
        assert [o.path for o in await backend.list_objects(f"{version.asset_id}/thumbnails/")] == [
            first.thumbnail_path
        ]

    @pytest.mark.asyncio
    async def test_stale_errors_cleared_on_success(self, make_worker, seed_version, session_maker, image_factory):
        version, _ = await seed_version(
            image_factory(),
            meta={"originalFileName": "seed", THUMBNAIL_ERROR: "old", "failureReason": "old"},
        )

        await make_worker().run_once()

        meta = (await _version(session_maker, version.id)).meta
        assert THUMBNAIL_ERROR not in meta
        assert "failureReason" not in meta

    @pytest.mark.asyncio
    async def test_strategy_errors_recorded_but_complete(self, make_worker, seed_version, session_maker):
        version, job_id = await seed_version(b"corrupt", mime_type="image/png")

        await make_worker().run_once()

        stored = await _version(session_maker, version.id)
        assert stored.processing_status == "complete"
        assert THUMBNAIL_ERROR in stored.meta

    @pytest.mark.asyncio
    async def test_large_jpeg_gets_small_thumbnail(self, make_worker, seed_version, session_maker, backend):
        buf = io.BytesIO()
        Image.effect_noise((2000, 2000), 64).convert("RGB").save(buf, format="JPEG", quality=90)
        original = buf.getvalue()
        version, _ = await seed_version(original, mime_type="image/jpeg")

        await make_worker().run_once()

        stored = await _version(session_maker, version.id)
        assert stored.processing_status == "complete"
        assert (stored.width, stored.height) == (2000, 2000)
        thumb_bytes = await backend.get_object(stored.thumbnail_path)
        thumb = Image.open(io.BytesIO(thumb_bytes))
        assert thumb.width <= 400 and thumb.height <= 400
        assert len(thumb_bytes) < len(original)

    @pytest.mark.asyncio
    async def test_pdf_preview_failure_keeps_text(self, make_worker, seed_version, session_maker):
        def broken(data):
            raise RuntimeError("rasterizer crashed")

        strategies = default_strategies()
        strategies[DerivativeKind.PDF] = PdfStrategy(rasterizer=broken)
        version, _ = await seed_version(_make_pdf(), mime_type="application/pdf")

        await make_worker(strategies=strategies).run_once()

        stored = await _version(session_maker, version.id)
        assert stored.processing_status == "complete"
        assert "Launch brief" in stored.extracted_text
        assert stored.page_count == 1
        assert stored.meta[THUMBNAIL_ERROR] == "rasterizer crashed"
        assert stored.thumbnail_path is None

    @pytest.mark.asyncio
    async def test_unsupported_type_note(self, make_worker, seed_version, session_maker):
        version, _ = await seed_version(b"PK\x03\x04", mime_type="application/zip")

        await make_worker().run_once()

        stored = await _version(session_maker, version.id)
        assert stored.processing_status == "complete"
        assert stored.meta["processingNote"] == "File type application/zip does not require processing"

    @pytest.mark.asyncio
    async def test_only_derivative_fields_written(self, make_worker, seed_version, session_maker):
        strategies = default_strategies()
        strategies[DerivativeKind.UNSUPPORTED] = RecordingStrategy(
            DerivativeOutput(fields={"page_count": 3, "storage_path": "hijack"})
        )
        version, _ = await seed_version(b"x", mime_type="text/plain")

        await make_worker(strategies=strategies).run_once()

        stored = await _version(session_maker, version.id)
        assert stored.page_count == 3
        assert stored.storage_path == version.storage_path

    @pytest.mark.asyncio
    async def test_failure_retries_and_keeps_processing(
        self, make_worker, seed_version, session_maker, queue, image_factory
    ):
        strategies = default_strategies()
        strategies[DerivativeKind.IMAGE] = ExplodingStrategy()
        version, job_id = await seed_version(image_factory(), max_attempts=3)

        assert await make_worker(strategies=strategies).run_once() is True

        job = await queue.get(job_id)
        assert job.status == JobStatus.PENDING.value
        assert job.last_error == "RuntimeError: decoder crashed"
        assert (await _version(session_maker, version.id)).processing_status == "processing"

    @pytest.mark.asyncio
    async def test_exhaustion_marks_version_failed(
        self, make_worker, seed_version, session_maker, queue, image_factory, clean_hooks
    ):
        failed = []
        clean_hooks.add_action(AFTER_VERSION_FAILED, lambda v: failed.append(v.id))
        strategies = default_strategies()
        exploding = ExplodingStrategy()
        strategies[DerivativeKind.IMAGE] = exploding
        version, job_id = await seed_version(image_factory(), max_attempts=2)
        worker = make_worker(strategies=strategies)

        await worker.run_once()
        await worker.run_once()

        assert exploding.calls == 2
        assert (await queue.get(job_id)).status == JobStatus.FAILED.value
        stored = await _version(session_maker, version.id)
        assert stored.processing_status == "failed"
        assert stored.meta["failureReason"] == "RuntimeError: decoder crashed"
        assert "failedAt" in stored.meta
        assert failed == [version.id]

    @pytest.mark.asyncio
    async def test_missing_original_fails_job(self, make_worker, seed_version, backend, queue, image_factory):
        version, job_id = await seed_version(image_factory())
        await backend.delete_object(version.storage_path)

        await make_worker().run_once()

        job = await queue.get(job_id)
        assert job.status == JobStatus.PENDING.value
        assert "ObjectNotFoundError" in job.last_error

    @pytest.mark.asyncio
    async def test_unknown_job_name(self, make_worker, queue):
        job_id = await queue.enqueue("dam.mystery", {}, max_attempts=1)

        assert await make_worker().run_once() is True

        job = await queue.get(job_id)
        assert job.status == JobStatus.FAILED.value
        assert "UnknownJobError" in job.last_error

    @pytest.mark.asyncio
    async def test_temp_files_removed(self, make_worker, seed_version, tmp_path):
        await seed_version(b"\x00\x00 ftyp", mime_type="video/mp4")
        worker = make_worker()

        await worker.run_once()

        assert list(worker.temp_root.glob(f"{TEMP_PREFIX}*")) == []


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_reclaim_fails_exhausted_versions(
        self, make_worker, seed_version, session_maker, queue, image_factory
    ):
        version, job_id = await seed_version(image_factory(), max_attempts=1)
        await queue.claim_next("crashed-worker")
        async with session_maker() as session:
            await session.execute(
                update(ProcessingJob)
                .where(ProcessingJob.id == job_id)
                .values(locked_at=datetime.now(timezone.utc) - timedelta(hours=2))
            )
            await session.commit()

        result = await make_worker().reclaim_stale()

        assert len(result.exhausted) == 1
        stored = await _version(session_maker, version.id)
        assert stored.processing_status == "failed"
        assert "crashed-worker" in stored.meta["failureReason"]

    @pytest.mark.asyncio
    async def test_run_stops_on_shutdown(self, make_worker, seed_version, session_maker, image_factory):
        version, _ = await seed_version(image_factory())
        worker = make_worker()
        shutdown = asyncio.Event()

        task = asyncio.create_task(worker.run(shutdown))
        for _ in range(100):
            if (await _version(session_maker, version.id)).processing_status == "complete":
                break
            await asyncio.sleep(0.05)
        shutdown.set()
        await asyncio.wait_for(task, timeout=5)

        assert (await _version(session_maker, version.id)).processing_status == "complete"
