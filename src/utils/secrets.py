"""Resolve ``sm://`` Secret Manager references used in configuration values."""

from __future__ import annotations

import logging

from google.cloud import secretmanager  # type: ignore[attr-defined]

SM_PREFIX = "sm://"
_SECRET_CACHE: dict[str, str] = {}
_LOG = logging.getLogger(__name__)


class SecretResolutionError(RuntimeError):
    """Raised when a Secret Manager reference cannot be resolved."""


def secret_version_path(reference: str, project_id: str | None) -> str:
    """Expand ``name[:version]`` or a full resource path into a version path."""
    raw = reference.strip()
    if not raw:
        raise SecretResolutionError("Empty secret reference")

    if raw.startswith("projects/"):
        if "/versions/" in raw:
            return raw
        base, _, version = raw.partition(":")
        return f"{base.rstrip('/')}/versions/{version.strip() or 'latest'}"

    if not project_id:
        raise SecretResolutionError("project_id is required for shorthand sm:// references")
    secret_id, _, version = raw.partition(":")
    if not secret_id.strip():
        raise SecretResolutionError("Secret identifier missing in sm:// reference")
    return f"projects/{project_id}/secrets/{secret_id.strip()}/versions/{version.strip() or 'latest'}"


def resolve_secret(value: str | None, *, project_id: str | None = None) -> str | None:
    """Return ``value`` unchanged unless it is an ``sm://`` reference."""
    if value is None or not isinstance(value, str):
        return value
    trimmed = value.strip()
    if not trimmed.startswith(SM_PREFIX):
        return value

    cached = _SECRET_CACHE.get(trimmed)
    if cached is not None:
        return cached

    path = secret_version_path(trimmed[len(SM_PREFIX):], project_id)
    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(name=path)
    except Exception as exc:  # noqa: BLE001 - wrapped for a consistent error surface
        raise SecretResolutionError(f"Failed to access secret {path}: {exc}") from exc

    data = getattr(getattr(response, "payload", None), "data", None)
    if data is None:
        raise SecretResolutionError(f"Secret {path} returned no payload data")
    resolved = data.decode("utf-8")
    _SECRET_CACHE[trimmed] = resolved
    _LOG.debug("secret_resolved", extra={"secret_path": path})
    return resolved


def clear_secret_cache() -> None:
    """Clear cached secrets (intended for tests)."""
    _SECRET_CACHE.clear()


__all__ = [
    "SecretResolutionError",
    "resolve_secret",
    "secret_version_path",
    "clear_secret_cache",
]
