from __future__ import annotations

from damworks.lib.derivatives.base import DerivativeKind, DerivativeOutput, ProcessingContext


class UnsupportedStrategy:
    """Types with no derivatives are completed with an explanatory note."""

    kind = DerivativeKind.UNSUPPORTED

    async def process(self, data: bytes, ctx: ProcessingContext) -> DerivativeOutput:
        return DerivativeOutput(
            metadata={"processingNote": f"File type {ctx.mime_type} does not require processing"}
        )
