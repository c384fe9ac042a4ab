"""Scoped ownership of short-lived local files.

An :class:`ArtifactScope` hands out temporary paths and deletes every one of
them when the scope closes, whether the enclosing block succeeded or raised.
Closing is idempotent and never raises; deletion failures are logged.
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Literal

from src.utils.logging_utils import structured_log

_LOG = logging.getLogger("ephemeral")


class ArtifactScope:
    def __init__(self, directory: str | os.PathLike[str] | None = None, *, prefix: str = "narration-") -> None:
        self._directory = Path(directory) if directory is not None else Path(tempfile.gettempdir())
        self._prefix = prefix
        self._paths: list[Path] = []
        self._closed = False

    @property
    def allocated(self) -> tuple[Path, ...]:
        return tuple(self._paths)

    @property
    def closed(self) -> bool:
        return self._closed

    def allocate(self, suffix: str = "") -> Path:
        """Reserve a unique path inside the scope directory.

        The file itself is created by whoever writes to it; the scope only
        guarantees removal.
        """
        if self._closed:
            raise RuntimeError("ArtifactScope is closed")
        path = self._directory / f"{self._prefix}{uuid.uuid4().hex}{suffix}"
        self._paths.append(path)
        return path

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        while self._paths:
            path = self._paths.pop()
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                structured_log(
                    _LOG,
                    logging.WARNING,
                    "ephemeral_cleanup_failed",
                    path=str(path),
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )

    def __enter__(self) -> "ArtifactScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> Literal[False]:
        self.close()
        return False


__all__ = ["ArtifactScope"]
