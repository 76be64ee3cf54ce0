from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from ..config import Settings
from ..credentials import DiscogsAuthFlow, LastFmAuthFlow, TokenVault
from ..models import DISCOGS, LASTFM
from .deps import (
    _discogs_flow,
    _lastfm_flow,
    _settings,
    _vault,
    current_user,
    set_user_cookie,
    user_id_from_cookie,
)


router = APIRouter(prefix="/auth", tags=["auth"])


def _back_to_app(request: Request, settings: Settings, service: str, user_id: str) -> RedirectResponse:
    resp = RedirectResponse(url=f"{settings.public_app_origin}/settings?auth={service}", status_code=302)
    # Refreshes the caller's own cookie; the callback never switches identity.
    set_user_cookie(request, resp, user_id)
    return resp


@router.get("/status")
def status(
    user_id: str = Depends(current_user),
    vault: TokenVault = Depends(_vault),
) -> Dict[str, bool]:
    return vault.status(user_id)


@router.api_route("/lastfm/start", methods=["GET", "POST"])
def lastfm_start(
    user_id: str = Depends(current_user),
    flow: LastFmAuthFlow = Depends(_lastfm_flow),
) -> Dict[str, str]:
    return {"redirectUrl": flow.start(user_id)}


@router.get("/lastfm/callback")
def lastfm_callback(
    request: Request,
    token: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    user_id: str = Depends(current_user),
    settings: Settings = Depends(_settings),
    flow: LastFmAuthFlow = Depends(_lastfm_flow),
) -> RedirectResponse:
    flow.callback(user_id, token, state, error)
    return _back_to_app(request, settings, LASTFM, user_id)


@router.post("/lastfm/disconnect")
def lastfm_disconnect(
    request: Request,
    vault: TokenVault = Depends(_vault),
) -> Dict[str, bool]:
    user_id = user_id_from_cookie(request)
    if user_id:
        vault.disconnect(user_id, LASTFM)
    return {"success": True}


@router.api_route("/discogs/start", methods=["GET", "POST"])
def discogs_start(
    user_id: str = Depends(current_user),
    flow: DiscogsAuthFlow = Depends(_discogs_flow),
) -> Dict[str, str]:
    return {"redirectUrl": flow.start(user_id)}


@router.get("/discogs/callback")
def discogs_callback(
    request: Request,
    oauth_token: Optional[str] = None,
    oauth_verifier: Optional[str] = None,
    user_id: str = Depends(current_user),
    settings: Settings = Depends(_settings),
    flow: DiscogsAuthFlow = Depends(_discogs_flow),
) -> RedirectResponse:
    flow.callback(user_id, oauth_token, oauth_verifier)
    return _back_to_app(request, settings, DISCOGS, user_id)


@router.post("/discogs/disconnect")
def discogs_disconnect(
    request: Request,
    vault: TokenVault = Depends(_vault),
) -> Dict[str, bool]:
    user_id = user_id_from_cookie(request)
    if user_id:
        vault.disconnect(user_id, DISCOGS)
    return {"success": True}
