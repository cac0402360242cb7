from __future__ import annotations

import asyncio

from damworks.lib.derivatives.base import (
    THUMBNAIL_ERROR,
    DerivativeKind,
    DerivativeOutput,
    ProcessingContext,
    store_thumbnail,
)
from damworks.lib.imaging import image_dimensions, make_thumbnail


class ImageStrategy:
    """Record intrinsic dimensions and write a JPEG thumbnail."""

    kind = DerivativeKind.IMAGE

    async def process(self, data: bytes, ctx: ProcessingContext) -> DerivativeOutput:
        output = DerivativeOutput()
        cfg = ctx.thumbnails
        try:
            width, height = await asyncio.to_thread(image_dimensions, data)
            output.fields["width"] = width
            output.fields["height"] = height

            jpeg = await asyncio.to_thread(
                make_thumbnail, data, cfg.max_width, cfg.max_height, cfg.quality
            )
            output.fields["thumbnail_path"] = await store_thumbnail(ctx, jpeg)
        except Exception as exc:
            ctx.logger.warning(
                "Image thumbnail failed",
                extra=ctx.log_extra(strategy=self.kind.value, error=str(exc)),
            )
            output.metadata[THUMBNAIL_ERROR] = str(exc)
        return output
