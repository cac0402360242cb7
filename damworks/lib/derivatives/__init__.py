"""Derivative generation strategies keyed by :class:`DerivativeKind`."""

from __future__ import annotations

from damworks.lib.derivatives.base import (
    DERIVATIVE_ERROR_KEYS,
    DerivativeKind,
    DerivativeOutput,
    ProcessingContext,
    Strategy,
)
from damworks.lib.derivatives.image import ImageStrategy
from damworks.lib.derivatives.pdf import PdfStrategy
from damworks.lib.derivatives.unsupported import UnsupportedStrategy
from damworks.lib.derivatives.video import VideoStrategy


def default_strategies() -> dict[DerivativeKind, Strategy]:
    return {
        DerivativeKind.IMAGE: ImageStrategy(),
        DerivativeKind.PDF: PdfStrategy(),
        DerivativeKind.VIDEO: VideoStrategy(),
        DerivativeKind.UNSUPPORTED: UnsupportedStrategy(),
    }


__all__ = [
    "DERIVATIVE_ERROR_KEYS",
    "DerivativeKind",
    "DerivativeOutput",
    "ImageStrategy",
    "PdfStrategy",
    "ProcessingContext",
    "Strategy",
    "UnsupportedStrategy",
    "VideoStrategy",
    "default_strategies",
]
