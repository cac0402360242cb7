"""Job handlers run by the worker, keyed by job name."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from damworks.config import Settings
from damworks.db.models import AssetVersion, ProcessingStatus
from damworks.lib.derivatives import (
    DERIVATIVE_ERROR_KEYS,
    DerivativeKind,
    ProcessingContext,
    Strategy,
    default_strategies,
)
from damworks.lib.exceptions import ValidationError, VersionNotFoundError
from damworks.lib.hooks import AFTER_VERSION_FAILED, AFTER_VERSION_PROCESSED, hooks
from damworks.lib.observability import span
from damworks.lib.queue.base import PROCESS_VERSION_JOB
from damworks.lib.storage.manager import StorageManager
from damworks.lib.storage.paths import thumbnail_path

# Columns a strategy is allowed to overwrite
DERIVATIVE_FIELDS = frozenset(
    {"thumbnail_path", "extracted_text", "page_count", "duration_seconds", "width", "height"}
)
FAILURE_KEYS = ("failureReason", "failedAt")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class JobContext:
    """Shared collaborators handed to every job handler."""

    session_maker: Any
    storage: StorageManager
    settings: Settings
    worker_id: str
    temp_root: Path | None = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("damworks.worker"))
    strategies: dict[DerivativeKind, Strategy] = field(default_factory=default_strategies)


class ProcessVersionPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    asset_id: UUID
    version_id: UUID


def parse_payload(payload: Any) -> ProcessVersionPayload:
    try:
        return ProcessVersionPayload.model_validate(payload or {})
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid job payload: {payload!r}") from exc


async def _load_version(session, payload: ProcessVersionPayload) -> AssetVersion:
    version = await session.get(AssetVersion, payload.version_id)
    if version is None or version.asset_id != payload.asset_id:
        raise VersionNotFoundError(f"Version {payload.version_id} not found")
    return version


async def process_version(ctx: JobContext, payload: dict[str, Any]) -> None:
    """Generate derivatives for one version.

    Safe to repeat: every step overwrites the same fields and paths.
    """
    parsed = parse_payload(payload)
    extra = {"assetId": str(parsed.asset_id), "versionId": str(parsed.version_id)}

    async with ctx.session_maker() as session:
        version = await _load_version(session, parsed)
        meta = dict(version.meta or {})
        meta["workerId"] = ctx.worker_id
        meta["processingStartedAt"] = _now()
        version.meta = meta
        version.processing_status = ProcessingStatus.PROCESSING.value
        await session.commit()

        mime_type = version.mime_type
        store_name = version.storage_bucket
        source_path = version.storage_path

    backend = await ctx.storage.get(store_name)
    data = await backend.get_object(source_path)

    kind = DerivativeKind.from_mime_type(mime_type)
    strategy = ctx.strategies[kind]
    ctx.logger.info("Processing version", extra={**extra, "strategy": kind.value, "mimeType": mime_type})

    processing_ctx = ProcessingContext(
        asset_id=parsed.asset_id,
        version_id=parsed.version_id,
        mime_type=mime_type,
        storage=backend,
        thumbnail_path=thumbnail_path(parsed.asset_id, parsed.version_id),
        thumbnails=ctx.settings.thumbnails,
        worker=ctx.settings.worker,
        temp_root=ctx.temp_root,
        logger=ctx.logger,
    )
    with span("dam.derivative", strategy=kind.value, version_id=str(parsed.version_id)):
        output = await strategy.process(data, processing_ctx)

    async with ctx.session_maker() as session:
        version = await _load_version(session, parsed)
        for name, value in output.fields.items():
            if name in DERIVATIVE_FIELDS:
                setattr(version, name, value)

        # Errors from an earlier attempt must not outlive a successful rerun
        meta = {
            key: value
            for key, value in (version.meta or {}).items()
            if key not in DERIVATIVE_ERROR_KEYS and key not in FAILURE_KEYS
        }
        meta.update(output.metadata)
        meta["processingCompletedAt"] = _now()
        version.meta = meta
        version.processing_status = ProcessingStatus.COMPLETE.value
        await session.commit()

    ctx.logger.info(
        "Version processed",
        extra={**extra, "strategy": kind.value, "errors": sorted(k for k in output.metadata if k in DERIVATIVE_ERROR_KEYS)},
    )
    await hooks.do_action(AFTER_VERSION_PROCESSED, version)


async def fail_version(ctx: JobContext, payload: dict[str, Any], reason: str) -> None:
    """Mark the version behind an exhausted job as failed."""
    try:
        parsed = parse_payload(payload)
    except ValidationError:
        ctx.logger.warning("Exhausted job has an unusable payload", extra={"payload": payload})
        return

    async with ctx.session_maker() as session:
        version = await session.get(AssetVersion, parsed.version_id)
        if version is None:
            return
        meta = dict(version.meta or {})
        meta["failureReason"] = reason
        meta["failedAt"] = _now()
        version.meta = meta
        version.processing_status = ProcessingStatus.FAILED.value
        await session.commit()

    ctx.logger.error(
        "Version processing failed permanently",
        extra={"assetId": str(parsed.asset_id), "versionId": str(parsed.version_id), "error": reason},
    )
    await hooks.do_action(AFTER_VERSION_FAILED, version)


JobHandler = Callable[[JobContext, dict[str, Any]], Awaitable[None]]
ExhaustedHandler = Callable[[JobContext, dict[str, Any], str], Awaitable[None]]

JOB_HANDLERS: dict[str, JobHandler] = {
    PROCESS_VERSION_JOB: process_version,
}

EXHAUSTED_HANDLERS: dict[str, ExhaustedHandler] = {
    PROCESS_VERSION_JOB: fail_version,
}
