"""Application factory and ``slackfm`` entry point."""

from __future__ import annotations

import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI

from slackfm import __version__
from slackfm.api import router_pages, router_slack, setup_exception_handlers
from slackfm.config import (
    AppConfig,
    ConfigError,
    any_required_set,
    get_runtime_env,
    load_config,
    render_env_help,
)
from slackfm.lastfm.client import LastfmClient
from slackfm.logging import configure_logging, get_logger
from slackfm.logging_events import log_event
from slackfm.services.link_service import LinkService
from slackfm.slack.client import SlackClient
from slackfm.slack.oauth import SlackOAuth
from slackfm.store.crypto import DEFAULT_ITERATIONS
from slackfm.store.records import StoreDecodeError
from slackfm.store.store_fs import CredentialStore
from slackfm.workers.presence_sync import PresenceSync
from slackfm.workers.supervisor import TaskSupervisor

logger = get_logger(__name__)


def build_http_client(config: AppConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=config.http.timeout_seconds,
        headers={"User-Agent": config.http.user_agent},
    )


def create_app(
    config: AppConfig | None = None,
    *,
    store: CredentialStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    store_iterations: int = DEFAULT_ITERATIONS,
) -> FastAPI:
    """Build the FastAPI application.

    Collaborators are wired in the lifespan so that every startup loads the
    store, restarts workers for authorized users and every shutdown cancels
    them. ``store`` and ``http_client`` may be injected; an injected client is
    not closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app_config = config or load_config()
        credential_store = store or CredentialStore.load(
            app_config.store.path,
            app_config.store.passphrase,
            iterations=store_iterations,
        )
        owns_client = http_client is None
        client = http_client or build_http_client(app_config)

        lastfm = LastfmClient(app_config.lastfm, client)
        slack = SlackClient(client)
        supervisor = TaskSupervisor()
        service = LinkService(
            store=credential_store,
            supervisor=supervisor,
            lastfm=lastfm,
            slack=slack,
            oauth=SlackOAuth(app_config.slack, slack),
            presence=PresenceSync(
                lastfm,
                slack,
                poll_interval=app_config.lastfm.poll_interval_seconds,
                status_emoji=app_config.slack.status_emoji,
            ),
        )
        app.state.config = app_config
        app.state.link_service = service

        started = await service.reconcile_on_startup()
        log_event(
            logger,
            "startup.ready",
            users=len(credential_store),
            workers=started,
            host=app_config.server.host,
            port=app_config.server.port,
        )
        try:
            yield
        finally:
            await supervisor.shutdown()
            if owns_client:
                await client.aclose()
            logger.info("SlackFM stopped")

    app = FastAPI(title="SlackFM", version=__version__, lifespan=lifespan)
    setup_exception_handlers(app)
    app.include_router(router_slack)
    app.include_router(router_pages)
    return app


def _serve() -> int:
    env = get_runtime_env()
    if not any_required_set(env):
        print(render_env_help())
        return 0
    try:
        config = load_config(env)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(config.server.log_level)
    try:
        store = CredentialStore.load(config.store.path, config.store.passphrase)
    except StoreDecodeError as exc:
        print(f"Couldn't open credential store {config.store.path}: {exc}", file=sys.stderr)
        return 1

    uvicorn.run(
        create_app(config, store=store),
        host=config.server.host,
        port=config.server.port,
        log_config=None,
    )
    return 0


def run() -> None:
    raise SystemExit(_serve())


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    run()
