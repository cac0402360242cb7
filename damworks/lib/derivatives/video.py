"""Video probing and poster frames via ffprobe/ffmpeg subprocesses."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence

from damworks.lib.derivatives.base import (
    THUMBNAIL_ERROR,
    VIDEO_METADATA_ERROR,
    DerivativeKind,
    DerivativeOutput,
    ProcessingContext,
    store_thumbnail,
)
from damworks.lib.imaging import make_thumbnail
from damworks.lib.tempfiles import scratch_dir


class CommandError(RuntimeError):
    """An external command failed or timed out."""


@dataclass
class CommandResult:
    returncode: int
    stdout: bytes
    stderr: bytes


CommandRunner = Callable[[Sequence[str], float], Awaitable[CommandResult]]


async def run_command(cmd: Sequence[str], timeout: float) -> CommandResult:
    """Run *cmd*, killing it if it exceeds *timeout* seconds."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise CommandError(f"{cmd[0]} not found") from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise CommandError(f"{cmd[0]} timed out after {timeout}s") from exc
    return CommandResult(proc.returncode or 0, stdout, stderr)


def parse_probe(raw: bytes) -> dict[str, Any]:
    """Reduce ffprobe JSON to the fields stored on a version."""
    probe = json.loads(raw or b"{}")
    fmt = probe.get("format") or {}
    video = next(
        (s for s in probe.get("streams") or [] if s.get("codec_type") == "video"),
        {},
    )

    fields: dict[str, Any] = {}
    metadata: dict[str, Any] = {}

    duration = fmt.get("duration") or video.get("duration")
    if duration is not None:
        fields["duration_seconds"] = float(duration)
    if video.get("width"):
        fields["width"] = int(video["width"])
    if video.get("height"):
        fields["height"] = int(video["height"])
    if fmt.get("format_name"):
        metadata["videoFormat"] = fmt["format_name"]
    if fmt.get("bit_rate"):
        metadata["videoBitrate"] = int(fmt["bit_rate"])
    return {"fields": fields, "metadata": metadata}


class VideoStrategy:
    kind = DerivativeKind.VIDEO

    def __init__(self, runner: CommandRunner = run_command) -> None:
        self._run = runner

    async def process(self, data: bytes, ctx: ProcessingContext) -> DerivativeOutput:
        output = DerivativeOutput()
        worker = ctx.worker

        with scratch_dir(ctx.temp_root) as workdir:
            source = workdir / "source"
            await asyncio.to_thread(source.write_bytes, data)

            try:
                probed = await self._probe(source, worker.ffprobe_binary, worker.command_timeout)
                output.fields.update(probed["fields"])
                output.metadata.update(probed["metadata"])
            except Exception as exc:
                ctx.logger.warning(
                    "Video probe failed",
                    extra=ctx.log_extra(strategy=self.kind.value, error=str(exc)),
                )
                output.metadata[VIDEO_METADATA_ERROR] = str(exc)

            try:
                frame = await self._grab_frame(source, workdir, worker)
                cfg = ctx.thumbnails
                jpeg = await asyncio.to_thread(
                    make_thumbnail, frame, cfg.max_width, cfg.max_height, cfg.quality
                )
                output.fields["thumbnail_path"] = await store_thumbnail(ctx, jpeg)
            except Exception as exc:
                ctx.logger.warning(
                    "Video frame grab failed",
                    extra=ctx.log_extra(strategy=self.kind.value, error=str(exc)),
                )
                output.metadata[THUMBNAIL_ERROR] = str(exc)

        return output

    async def _probe(self, source: Path, binary: str, timeout: float) -> dict[str, Any]:
        result = await self._run(
            [
                binary,
                "-v", "error",
                "-print_format", "json",
                "-show_format",
                "-show_streams",
                str(source),
            ],
            timeout,
        )
        if result.returncode != 0:
            raise CommandError(result.stderr.decode(errors="replace").strip() or "ffprobe failed")
        return parse_probe(result.stdout)

    async def _grab_frame(self, source: Path, workdir: Path, worker) -> bytes:
        frame = workdir / "frame.jpg"
        result = await self._run(
            [
                worker.ffmpeg_binary,
                "-y",
                "-ss", str(worker.frame_offset),
                "-i", str(source),
                "-frames:v", "1",
                str(frame),
            ],
            worker.command_timeout,
        )
        if result.returncode != 0 or not frame.exists():
            raise CommandError(result.stderr.decode(errors="replace").strip() or "ffmpeg produced no frame")
        return await asyncio.to_thread(frame.read_bytes)
