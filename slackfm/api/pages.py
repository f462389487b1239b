"""Browser-facing routes: the OAuth redirect, install pages and health."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse

from slackfm.api.dependencies import get_link_service
from slackfm.services.link_service import CSRF_MISMATCH, LinkService

__all__ = ["router_pages"]

router_pages = APIRouter(tags=["Pages"])


@router_pages.get("/auth", response_class=PlainTextResponse)
async def oauth_redirect(
    code: str | None = None,
    state: str | None = None,
    service: LinkService = Depends(get_link_service),
) -> PlainTextResponse:
    if not state:
        return PlainTextResponse(CSRF_MISMATCH, status_code=status.HTTP_400_BAD_REQUEST)
    result = await service.authorization_callback(code or "", state)
    status_code = status.HTTP_200_OK if result.ok else status.HTTP_400_BAD_REQUEST
    return PlainTextResponse(result.message, status_code=status_code)


@router_pages.get("/installed", response_class=PlainTextResponse)
async def installed() -> str:
    return "Welcome"


@router_pages.get("/cancelled", response_class=PlainTextResponse)
async def cancelled() -> str:
    return "Cancelled"


@router_pages.get("/error", response_class=PlainTextResponse)
async def install_error() -> str:
    return "Error while installing"


@router_pages.get("/health")
async def health(service: LinkService = Depends(get_link_service)) -> dict[str, Any]:
    return {
        "ok": True,
        "workers": len(service.supervisor.running_ids()),
        "store_dirty": service.store.dirty,
    }
