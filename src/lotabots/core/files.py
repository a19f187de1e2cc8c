"""All-or-nothing file writes for cached artifacts."""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)


@contextmanager
def atomic_path(destination: Path) -> Iterator[Path]:
    """Yield a temporary path next to ``destination`` and rename it into place.

    The temporary file lives in the destination directory so the final
    ``os.replace`` is atomic. If the body raises, the temporary file is
    removed and ``destination`` is left untouched. Parent directories are
    created as needed; ``OSError`` from that step propagates to the caller.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=destination.parent,
        prefix=f".{destination.name}.",
        suffix=".part",
    )
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        yield tmp_path
        os.replace(tmp_path, destination)
    except BaseException:
        _discard(tmp_path)
        raise


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Failed to remove temporary file %s: %s", path, exc)
