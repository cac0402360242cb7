"""Tests for asset ingestion, versioning, listing and deletion."""

import base64
import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from damworks.db.models import (
    Asset,
    AssetVersion,
    Audience,
    JobStatus,
    ProcessingJob,
    Tag,
    asset_audience_map,
    asset_locale_map,
    asset_region_map,
    asset_tag_map,
)
from damworks.db.services import asset_service
from damworks.db.services.asset_service import (
    CompleteUpload,
    PlacedBytes,
    complete_upload,
    create_or_update_version,
    decode_thumbnail,
    delete_asset,
    init_upload,
    list_versions,
    original_file_name,
    parse_complete,
    parse_metadata,
    upload_asset,
)
from damworks.lib.exceptions import AssetNotFoundError, UploadTooLargeError, ValidationError
from damworks.lib.hooks import AFTER_VERSION_CREATED, BEFORE_ASSET_DELETE
from damworks.lib.queue.base import PROCESS_VERSION_JOB


def _metadata(**overrides):
    raw = {
        "title": "Product shot",
        "assetType": "image",
        "fileName": "shot.png",
        "contentType": "image/png",
    }
    raw.update(overrides)
    return parse_metadata(raw)


async def _jobs(session_maker):
    async with session_maker() as session:
        return (await session.scalars(select(ProcessingJob))).all()


async def _count(session_maker, table):
    async with session_maker() as session:
        return await session.scalar(select(func.count()).select_from(table))


class TestParsing:
    def test_metadata_requires_title(self):
        with pytest.raises(ValidationError, match="title"):
            parse_metadata({"assetType": "image", "fileName": "a.png", "contentType": "image/png"})

    def test_metadata_rejects_unknown_type(self):
        with pytest.raises(ValidationError, match="assetType"):
            _metadata(assetType="hologram")

    def test_metadata_must_be_object(self):
        with pytest.raises(ValidationError):
            parse_metadata(["title"])

    def test_blank_and_duplicate_tags_dropped(self):
        meta = _metadata(tags=["hero", " ", "hero", "spring "])
        assert meta.tags == ["hero", "spring"]

    def test_complete_requires_storage_path(self):
        with pytest.raises(ValidationError, match="storagePath"):
            parse_complete({"fileSize": 3})

    def test_original_file_name(self):
        assert original_file_name("a1/1700000000000-report-final.pdf") == "report-final.pdf"
        assert original_file_name("a1/report.pdf") == "report.pdf"

    def test_decode_thumbnail_accepts_data_url(self, image_factory):
        png = image_factory(10, 10)
        encoded = "data:image/png;base64," + base64.b64encode(png).decode()
        assert decode_thumbnail(encoded) == png

    def test_decode_thumbnail_rejects_non_image(self):
        with pytest.raises(ValidationError, match="JPEG or PNG"):
            decode_thumbnail(base64.b64encode(b"GIF89a....").decode())

    def test_decode_thumbnail_rejects_bad_base64(self):
        with pytest.raises(ValidationError, match="base64"):
            decode_thumbnail("***")


class TestInitUpload:
    @pytest.mark.asyncio
    async def test_creates_asset_and_returns_path(self, db_session, storage, caller):
        result = await init_upload(db_session, storage, _metadata(), caller)

        assert result.store == "default"
        assert result.storage_path.startswith(f"{result.asset_id}/")
        assert result.storage_path.endswith("-shot.png")
        asset = await db_session.get(Asset, result.asset_id)
        assert asset.title == "Product shot"
        assert asset.created_by == caller.id

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self, db_session, storage, caller):
        with pytest.raises(UploadTooLargeError):
            await init_upload(db_session, storage, _metadata(fileSize=10 * 1024 * 1024), caller)

    @pytest.mark.asyncio
    async def test_update_unknown_asset(self, db_session, storage, caller):
        with pytest.raises(AssetNotFoundError):
            await init_upload(db_session, storage, _metadata(assetId=str(uuid.uuid4())), caller)

    @pytest.mark.asyncio
    async def test_associations_replaced(self, db_session, session_maker, storage, caller):
        db_session.add_all([
            Tag(slug="hero", name="Hero"),
            Tag(slug="spring", name="Spring"),
            Audience(code="dealers", name="Dealers"),
        ])
        await db_session.commit()

        first = await init_upload(
            db_session,
            storage,
            _metadata(
                tags=["hero", "spring", "unknown"],
                audiences=["dealers"],
                locales=[{"code": "en-US", "primary": True}, {"code": "fr-CA"}],
                regions=["NA"],
            ),
            caller,
        )
        assert await _count(session_maker, asset_tag_map) == 2
        assert await _count(session_maker, asset_locale_map) == 2

        await init_upload(
            db_session,
            storage,
            _metadata(assetId=str(first.asset_id), title="Renamed", tags=["spring"]),
            caller,
        )

        assert await _count(session_maker, asset_tag_map) == 1
        assert await _count(session_maker, asset_audience_map) == 0
        assert await _count(session_maker, asset_locale_map) == 0
        assert await _count(session_maker, asset_region_map) == 0
        async with session_maker() as session:
            asset = await session.get(Asset, first.asset_id)
            assert asset.title == "Renamed"
            assert asset.search_tags == ["spring"]


class TestCompleteUpload:
    @pytest.mark.asyncio
    async def test_enqueues_processing(self, db_session, session_maker, storage, backend, queue, caller):
        init = await init_upload(db_session, storage, _metadata(), caller)
        await backend.put_object(init.storage_path, b"bytes", "image/png")

        result = await complete_upload(
            db_session,
            storage,
            queue,
            init.asset_id,
            CompleteUpload(storage_path=init.storage_path, checksum="abc"),
            caller,
        )

        assert result.version_number == 1
        assert result.processing_status == "pending"
        version = await db_session.get(AssetVersion, result.version_id)
        assert version.file_size == 5
        assert version.checksum == "abc"
        assert version.mime_type == "image/png"
        assert version.meta["originalFileName"] == "shot.png"
        assert version.meta["uploadedBy"] == caller.id

        jobs = await _jobs(session_maker)
        assert len(jobs) == 1
        assert jobs[0].job_name == PROCESS_VERSION_JOB
        assert jobs[0].payload == {"assetId": str(init.asset_id), "versionId": str(result.version_id)}
        assert jobs[0].status == JobStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_client_thumbnail_completes_immediately(
        self, db_session, session_maker, storage, backend, queue, caller, image_factory
    ):
        init = await init_upload(db_session, storage, _metadata(), caller)
        thumb = base64.b64encode(image_factory(50, 50, fmt="JPEG")).decode()

        result = await complete_upload(
            db_session,
            storage,
            queue,
            init.asset_id,
            CompleteUpload(storage_path=init.storage_path, file_size=9, thumbnail_data=thumb),
            caller,
        )

        assert result.processing_status == "complete"
        version = await db_session.get(AssetVersion, result.version_id)
        assert version.thumbnail_path == f"{init.asset_id}/thumbnails/{result.version_id}.jpg"
        assert version.meta["thumbnailSource"] == "client"
        assert "processingCompletedAt" in version.meta
        assert await backend.exists(version.thumbnail_path)
        assert await _jobs(session_maker) == []

    @pytest.mark.asyncio
    async def test_missing_object_without_size(self, db_session, storage, queue, caller):
        init = await init_upload(db_session, storage, _metadata(), caller)

        with pytest.raises(ValidationError, match="No uploaded object"):
            await complete_upload(
                db_session, storage, queue, init.asset_id,
                CompleteUpload(storage_path=init.storage_path), caller,
            )

    @pytest.mark.asyncio
    async def test_foreign_storage_path(self, db_session, storage, queue, caller):
        init = await init_upload(db_session, storage, _metadata(), caller)

        with pytest.raises(ValidationError, match="does not belong"):
            await complete_upload(
                db_session, storage, queue, init.asset_id,
                CompleteUpload(storage_path=f"{uuid.uuid4()}/1-x.png", file_size=1), caller,
            )

    @pytest.mark.asyncio
    async def test_unknown_asset(self, db_session, storage, queue, caller):
        with pytest.raises(AssetNotFoundError):
            await complete_upload(
                db_session, storage, queue, uuid.uuid4(),
                CompleteUpload(storage_path="x/1-a.png", file_size=1), caller,
            )


class TestUploadAsset:
    @pytest.mark.asyncio
    async def test_single_phase(self, db_session, session_maker, storage, backend, queue, caller, clean_hooks):
        created = []
        clean_hooks.add_action(AFTER_VERSION_CREATED, created.append)
        data = b"%PDF-1.7 fake"

        result = await upload_asset(
            db_session, storage, queue,
            _metadata(fileName="spec.pdf", contentType="application/pdf", assetType="document"),
            data, caller,
        )

        version = await db_session.get(AssetVersion, result.version_id)
        assert await backend.get_object(version.storage_path) == data
        assert version.file_size == len(data)
        assert len(version.checksum) == 64
        assert version.storage_bucket == "default"
        assert len(await _jobs(session_maker)) == 1
        assert [v.id for v in created] == [result.version_id]

    @pytest.mark.asyncio
    async def test_too_large_writes_nothing(self, db_session, session_maker, storage, backend, queue, caller):
        with pytest.raises(UploadTooLargeError):
            await upload_asset(db_session, storage, queue, _metadata(), b"x" * (1024 * 1024 + 1), caller)

        assert await _count(session_maker, Asset.__table__) == 0
        assert await backend.list_objects("") == []

    @pytest.mark.asyncio
    async def test_versions_increment(self, db_session, storage, queue, caller):
        first = await upload_asset(db_session, storage, queue, _metadata(), b"one", caller)
        second = await create_or_update_version(
            db_session, storage, queue, first.asset_id,
            asset_service.SuppliedBytes(b"two"),
            mime_type="image/png", file_name="shot-v2.png", caller=caller,
        )

        assert (first.version_number, second.version_number) == (1, 2)

    @pytest.mark.asyncio
    async def test_version_number_collision_retried(self, db_session, storage, queue, caller, monkeypatch):
        first = await upload_asset(db_session, storage, queue, _metadata(), b"one", caller)

        real = asset_service.next_version_number
        calls = []

        async def stale_first(session, asset_id):
            calls.append(asset_id)
            if len(calls) == 1:
                return 1
            return await real(session, asset_id)

        monkeypatch.setattr(asset_service, "next_version_number", stale_first)

        second = await create_or_update_version(
            db_session, storage, queue, first.asset_id,
            PlacedBytes(f"{first.asset_id}/1-other.png", file_size=3),
            mime_type="image/png", file_name="other.png", caller=caller,
        )

        assert len(calls) == 2
        assert second.version_number == 2


class TestListVersions:
    @pytest.mark.asyncio
    async def test_newest_first_with_paths(self, db_session, storage, queue, caller):
        first = await upload_asset(db_session, storage, queue, _metadata(), b"one", caller)
        await create_or_update_version(
            db_session, storage, queue, first.asset_id,
            asset_service.SuppliedBytes(b"two"),
            mime_type="image/png", file_name="shot.png", caller=caller,
        )

        versions = await list_versions(db_session, first.asset_id)

        assert [v["versionNumber"] for v in versions] == [2, 1]
        latest = versions[0]
        assert latest["processingStatus"] == "pending"
        assert latest["downloadPath"] == f"/assets/{first.asset_id}/download?version={latest['id']}"
        assert latest["previewPath"].endswith("rendition=original")
        assert latest["metadata"]["originalFileName"] == "shot.png"

    @pytest.mark.asyncio
    async def test_unknown_asset(self, db_session):
        with pytest.raises(AssetNotFoundError):
            await list_versions(db_session, uuid.uuid4())


class TestDeleteAsset:
    async def _asset_with_files(self, db_session, storage, backend, queue, caller, image_factory):
        first = await upload_asset(db_session, storage, queue, _metadata(), b"one", caller)
        thumb = base64.b64encode(image_factory(20, 20, fmt="PNG")).decode()
        init = await init_upload(
            db_session, storage, _metadata(assetId=str(first.asset_id), fileName="shot-v2.png"), caller
        )
        await backend.put_object(init.storage_path, b"two")
        await complete_upload(
            db_session, storage, queue, first.asset_id,
            CompleteUpload(storage_path=init.storage_path, thumbnail_data=thumb), caller,
        )
        # Derivative written by the worker plus a stray upload
        await backend.put_object(f"{first.asset_id}/thumbnails/{first.version_id}.jpg", b"t")
        await backend.put_object(f"{first.asset_id}/999-abandoned.png", b"x")
        return first.asset_id

    @pytest.mark.asyncio
    async def test_removes_rows_and_objects(
        self, db_session, session_maker, storage, backend, queue, caller, image_factory, clean_hooks
    ):
        asset_id = await self._asset_with_files(db_session, storage, backend, queue, caller, image_factory)
        assert len(await backend.list_objects(f"{asset_id}/")) == 5
        seen = []
        clean_hooks.add_action(BEFORE_ASSET_DELETE, lambda asset: seen.append(asset.id))

        assert await delete_asset(db_session, storage, asset_id) is True

        assert await backend.list_objects(f"{asset_id}/") == []
        assert seen == [asset_id]
        assert await _count(session_maker, Asset.__table__) == 0
        assert await _count(session_maker, AssetVersion.__table__) == 0

    @pytest.mark.asyncio
    async def test_three_versions_with_associations(
        self, db_session, session_maker, storage, backend, queue, caller
    ):
        db_session.add_all([Tag(slug="hero", name="Hero"), Audience(code="dealers", name="Dealers")])
        await db_session.commit()
        tagged = dict(
            tags=["hero"],
            audiences=["dealers"],
            locales=[{"code": "en-US", "primary": True}],
            regions=["NA"],
        )
        asset_id = None
        for n in (1, 2, 3):
            overrides = dict(tagged, fileName=f"shot-v{n}.png")
            if asset_id:
                overrides["assetId"] = str(asset_id)
            result = await upload_asset(db_session, storage, queue, _metadata(**overrides), b"png", caller)
            asset_id = result.asset_id
            await backend.put_object(f"{asset_id}/thumbnails/{result.version_id}.jpg", b"t")

        assert await _count(session_maker, AssetVersion.__table__) == 3
        assert len(await backend.list_objects(f"{asset_id}/")) == 6

        assert await delete_asset(db_session, storage, asset_id) is True

        assert await backend.list_objects(f"{asset_id}/") == []
        for table in (
            Asset.__table__,
            AssetVersion.__table__,
            asset_tag_map,
            asset_audience_map,
            asset_locale_map,
            asset_region_map,
        ):
            assert await _count(session_maker, table) == 0
        assert await _count(session_maker, Tag.__table__) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_block(
        self, db_session, session_maker, storage, backend, queue, caller, image_factory
    ):
        asset_id = await self._asset_with_files(db_session, storage, backend, queue, caller, image_factory)
        backend.delete_object = AsyncMock(side_effect=RuntimeError("store down"))

        assert await delete_asset(db_session, storage, asset_id) is True

        assert await _count(session_maker, Asset.__table__) == 0

    @pytest.mark.asyncio
    async def test_missing_asset(self, db_session, storage):
        assert await delete_asset(db_session, storage, uuid.uuid4()) is False
