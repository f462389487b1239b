"""Application configuration utilities for SlackFM."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

from slackfm.logging import get_logger

logger = get_logger(__name__)

DEFAULT_APP_HOST = "127.0.0.1"
DEFAULT_APP_PORT = 3000
DEFAULT_LASTFM_API_BASE = "https://ws.audioscrobbler.com/2.0/"
DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_REDIRECT_URI = "http://127.0.0.1:3000/auth"
DEFAULT_STATUS_EMOJI = ":headphones:"
DEFAULT_STORE_FILENAME = "db.json.enc"
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = "slackfm-bot"


@dataclass(slots=True, frozen=True)
class RequiredEnv:
    name: str
    help: str


REQUIRED_ENV: tuple[RequiredEnv, ...] = (
    RequiredEnv(
        "LASTFM_API_KEY",
        "Please set your last.fm API key in the environment variable LASTFM_API_KEY",
    ),
    RequiredEnv(
        "SLACK_TEAM_ID",
        "Please set your slack team id in the environment variable SLACK_TEAM_ID",
    ),
    RequiredEnv(
        "SLACK_CLIENT_ID",
        "Please set your slack client id in the environment variable SLACK_CLIENT_ID",
    ),
    RequiredEnv(
        "SLACK_CLIENT_SECRET",
        "Please set your slack client secret in the environment variable SLACK_CLIENT_SECRET",
    ),
    RequiredEnv(
        "SLACK_SIGNING_SECRET",
        "Please set your slack signing secret in the environment variable SLACK_SIGNING_SECRET",
    ),
)


class ConfigError(RuntimeError):
    """Raised when the runtime environment cannot produce a usable configuration."""


_RUNTIME_ENV_CACHE: dict[str, str] | None = None


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export ") :]
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def load_runtime_env(
    *,
    env_file: str | os.PathLike[str] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Load runtime environment values applying .env before explicit environment."""

    env: dict[str, str] = {}
    source = dict(base_env or os.environ)

    path = Path(env_file) if env_file is not None else Path(".env")
    if path.exists() and path.is_file():
        env.update(_load_env_file(path))

    env.update({key: str(value) for key, value in source.items() if value is not None})
    return env


def get_runtime_env() -> Mapping[str, str]:
    """Return the cached runtime environment mapping."""

    global _RUNTIME_ENV_CACHE
    if _RUNTIME_ENV_CACHE is None:
        _RUNTIME_ENV_CACHE = load_runtime_env()
    return _RUNTIME_ENV_CACHE


def override_runtime_env(runtime_env: Mapping[str, str] | None) -> None:
    """Override the cached runtime environment (primarily for testing)."""

    global _RUNTIME_ENV_CACHE
    if runtime_env is None:
        _RUNTIME_ENV_CACHE = None
    else:
        _RUNTIME_ENV_CACHE = dict(runtime_env)


def get_env(name: str, default: str | None = None) -> str | None:
    """Return an environment variable honoring ENV > .env > defaults."""

    env = get_runtime_env()
    return env.get(name, default)


def _env_value(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def _as_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _bounded_int(
    value: Any,
    *,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    resolved = _coerce_int(value, default=default)
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def _bounded_float(
    value: Any,
    *,
    default: float,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    try:
        resolved = float(value)
    except (TypeError, ValueError):
        resolved = default
    if minimum is not None:
        resolved = max(minimum, resolved)
    if maximum is not None:
        resolved = min(maximum, resolved)
    return resolved


def any_required_set(env: Mapping[str, Any] | None = None) -> bool:
    """Return whether at least one required variable is configured."""

    runtime_env: Mapping[str, Any] = env if env is not None else get_runtime_env()
    return any(_env_value(runtime_env, entry.name) for entry in REQUIRED_ENV)


def missing_required(env: Mapping[str, Any] | None = None) -> list[str]:
    runtime_env: Mapping[str, Any] = env if env is not None else get_runtime_env()
    return [entry.name for entry in REQUIRED_ENV if not _env_value(runtime_env, entry.name)]


def render_env_help() -> str:
    """Return a Markdown document describing the required environment."""

    lines = ["# Environment Variables Help", ""]
    for entry in REQUIRED_ENV:
        lines.append(f"## {entry.name}")
        lines.append(entry.help)
        lines.append("")
    return "\n".join(lines)


@dataclass(slots=True, frozen=True)
class LastfmConfig:
    api_key: str
    api_base: str
    poll_interval_seconds: float


@dataclass(slots=True, frozen=True)
class SlackConfig:
    team_id: str
    client_id: str
    client_secret: str
    signing_secret: str
    redirect_uri: str
    status_emoji: str
    verify_signatures: bool


@dataclass(slots=True, frozen=True)
class StoreConfig:
    path: Path
    passphrase: str


@dataclass(slots=True, frozen=True)
class HttpConfig:
    timeout_seconds: float
    user_agent: str


@dataclass(slots=True, frozen=True)
class ServerConfig:
    host: str
    port: int
    log_level: str


@dataclass(slots=True, frozen=True)
class AppConfig:
    lastfm: LastfmConfig
    slack: SlackConfig
    store: StoreConfig
    http: HttpConfig
    server: ServerConfig


def resolve_app_port(env: Mapping[str, Any] | None = None) -> int:
    """Return the configured application port constrained to valid TCP ranges."""

    runtime_env: Mapping[str, Any] = env if env is not None else get_runtime_env()
    raw_value = _env_value(runtime_env, "APP_PORT")
    port = _bounded_int(raw_value, default=DEFAULT_APP_PORT, minimum=1, maximum=65535)
    if raw_value is not None and str(port) != raw_value:
        logger.warning(
            "APP_PORT value %r is invalid or out of range; using %s.",
            raw_value,
            port,
        )
    return port


def load_config(runtime_env: Mapping[str, Any] | None = None) -> AppConfig:
    """Build the application configuration from the runtime environment.

    Raises :class:`ConfigError` when any required variable is missing.
    """

    env = runtime_env if runtime_env is not None else get_runtime_env()
    missing = missing_required(env)
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    signing_secret = _env_value(env, "SLACK_SIGNING_SECRET") or ""

    lastfm = LastfmConfig(
        api_key=_env_value(env, "LASTFM_API_KEY") or "",
        api_base=_env_value(env, "LASTFM_API_BASE") or DEFAULT_LASTFM_API_BASE,
        poll_interval_seconds=_bounded_float(
            _env_value(env, "LASTFM_POLL_INTERVAL_SEC"),
            default=DEFAULT_POLL_INTERVAL_SECONDS,
            minimum=1.0,
        ),
    )
    slack = SlackConfig(
        team_id=_env_value(env, "SLACK_TEAM_ID") or "",
        client_id=_env_value(env, "SLACK_CLIENT_ID") or "",
        client_secret=_env_value(env, "SLACK_CLIENT_SECRET") or "",
        signing_secret=signing_secret,
        redirect_uri=_env_value(env, "SLACK_REDIRECT_URI") or DEFAULT_REDIRECT_URI,
        status_emoji=_env_value(env, "SLACK_STATUS_EMOJI") or DEFAULT_STATUS_EMOJI,
        verify_signatures=_as_bool(_env_value(env, "SLACK_VERIFY_SIGNATURES"), default=True),
    )
    store_path = _env_value(env, "SLACKFM_STORE_PATH")
    store = StoreConfig(
        path=Path(store_path) if store_path else Path.cwd() / DEFAULT_STORE_FILENAME,
        passphrase=_env_value(env, "SLACKFM_STORE_PASSPHRASE") or signing_secret,
    )
    http = HttpConfig(
        timeout_seconds=_bounded_float(
            _env_value(env, "HTTP_TIMEOUT_SEC"),
            default=DEFAULT_HTTP_TIMEOUT_SECONDS,
            minimum=0.1,
        ),
        user_agent=_env_value(env, "HTTP_USER_AGENT") or DEFAULT_USER_AGENT,
    )
    server = ServerConfig(
        host=_env_value(env, "APP_HOST") or DEFAULT_APP_HOST,
        port=resolve_app_port(env),
        log_level=(_env_value(env, "LOG_LEVEL") or "INFO").upper(),
    )
    return AppConfig(lastfm=lastfm, slack=slack, store=store, http=http, server=server)


__all__ = [
    "AppConfig",
    "ConfigError",
    "HttpConfig",
    "LastfmConfig",
    "REQUIRED_ENV",
    "ServerConfig",
    "SlackConfig",
    "StoreConfig",
    "any_required_set",
    "get_env",
    "get_runtime_env",
    "load_config",
    "load_runtime_env",
    "missing_required",
    "override_runtime_env",
    "render_env_help",
    "resolve_app_port",
]
