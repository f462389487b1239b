"""Structured logging helpers for SlackFM services."""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from typing import Any

_JSON_PRIMITIVES = (str, int, float, bool, type(None))


def _validate_flat_value(name: str, value: Any) -> None:
    if isinstance(value, _JSON_PRIMITIVES):
        return
    raise TypeError(f"Field '{name}' must be a flat JSON-compatible value")


def _ensure_meta(meta: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    if meta is None:
        return None
    if not isinstance(meta, Mapping):
        raise TypeError("meta must be a mapping if provided")
    meta_dict = dict(meta)
    for key, value in meta_dict.items():
        if not isinstance(key, str):
            raise TypeError("Keys in 'meta' must be strings")
        _validate_flat_value(f"meta.{key}", value)
    return meta_dict


def log_event(logger: Any, event: str, /, *, level: str = "info", **fields: Any) -> None:
    """Emit a structured log event with a canonical payload."""

    if not isinstance(event, str) or not event.strip():
        raise ValueError("event must be a non-empty string")

    meta = _ensure_meta(fields.pop("meta", None))

    extra: dict[str, Any] = {"event": event}
    for name, value in fields.items():
        _validate_flat_value(name, value)
        extra[name] = value
    if meta is not None:
        extra["meta"] = meta

    getattr(logger, level)(event, extra=extra)


def fingerprint(secret: str) -> str:
    """Return a short, non-reversible identifier safe to log in place of ``secret``."""

    digest = hashlib.sha256(secret.encode("utf-8")).hexdigest()
    return digest[:12]
