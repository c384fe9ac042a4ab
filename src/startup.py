"""Startup helpers: materialise service account credentials for Google clients."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

_LOG = logging.getLogger(__name__)


def _load_service_account_payload(raw: str) -> str | None:
    trimmed = raw.strip()
    if not trimmed:
        return None
    if trimmed.startswith("{"):
        return trimmed
    candidate = Path(trimmed)
    try:
        return candidate.read_text(encoding="utf-8") if candidate.is_file() else None
    except OSError as exc:
        _LOG.warning("service_account_json_unreadable", extra={"error": str(exc)})
        return None


def hydrate_google_credentials_file() -> Path | None:
    """Write ``SERVICE_ACCOUNT_JSON`` to ``GOOGLE_APPLICATION_CREDENTIALS``.

    Cloud Run injects secrets as env vars while the Google client libraries
    (and V4 URL signing) expect a key file on disk. Returns the written path,
    or None when there was nothing to do.
    """
    target = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    raw = os.getenv("SERVICE_ACCOUNT_JSON")
    if not target or not raw:
        return None

    payload = _load_service_account_payload(raw)
    if payload is None:
        return None
    try:
        json.loads(payload)
    except json.JSONDecodeError as exc:
        _LOG.warning("service_account_json_invalid", extra={"error": str(exc)})
        return None

    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")
    os.chmod(path, 0o600)
    _LOG.info("service_account_credentials_written", extra={"path": str(path)})
    return path


__all__ = ["hydrate_google_credentials_file"]
