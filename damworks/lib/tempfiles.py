"""Scoped scratch directories for derivative work."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

TEMP_PREFIX = "damworks-"


def resolve_temp_root(configured: str = "") -> Path:
    root = Path(configured) if configured else Path(tempfile.gettempdir())
    root.mkdir(parents=True, exist_ok=True)
    return root


@contextmanager
def scratch_dir(root: Path | None = None) -> Iterator[Path]:
    """Create a ``damworks-*`` directory and remove it on every exit path."""
    path = Path(tempfile.mkdtemp(prefix=TEMP_PREFIX, dir=root))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def sweep_temp_dir(root: Path, older_than: float) -> int:
    """Remove ``damworks-*`` entries under *root* not modified for *older_than* seconds.

    Returns the number of entries removed.
    """
    if not root.is_dir():
        return 0

    cutoff = time.time() - older_than
    removed = 0
    for entry in root.glob(f"{TEMP_PREFIX}*"):
        try:
            if entry.stat().st_mtime >= cutoff:
                continue
            if entry.is_dir():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError:
            logger.warning("Could not remove temp entry %s", entry, exc_info=True)

    if removed:
        logger.info("Swept %d leftover temp entries from %s", removed, root)
    return removed
