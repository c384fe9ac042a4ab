"""Uvicorn launcher for the document narration service."""

from __future__ import annotations

import multiprocessing
import os

import uvicorn

_DEFAULT_APP = "src.main:create_app"


def _positive_int(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _worker_count() -> int:
    explicit = _positive_int(os.getenv("UVICORN_WORKERS")) or _positive_int(
        os.getenv("WEB_CONCURRENCY")
    )
    if explicit:
        return explicit
    return max(1, multiprocessing.cpu_count() or 1)


def main() -> None:
    workers = _worker_count()
    uvicorn.run(
        os.getenv("FASTAPI_APP", _DEFAULT_APP),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_positive_int(os.getenv("PORT")) or 8080,
        factory=True,
        workers=workers,
        lifespan="on",
    )


if __name__ == "__main__":  # pragma: no cover - exercised in runtime
    main()
