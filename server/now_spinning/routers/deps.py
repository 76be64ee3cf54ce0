from __future__ import annotations

import uuid

from fastapi import Request, Response

from ..config import Settings
from ..credentials import DiscogsAuthFlow, LastFmAuthFlow, TokenVault
from ..discogs import DiscogsClient
from ..kv_store import UserCookieSigner
from ..sessions import SessionService


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _signer(request: Request) -> UserCookieSigner:
    return request.app.state.cookie_signer


def _vault(request: Request) -> TokenVault:
    return request.app.state.token_vault


def _sessions(request: Request) -> SessionService:
    return request.app.state.session_service


def _catalog(request: Request) -> DiscogsClient:
    return request.app.state.discogs_client


def _lastfm_flow(request: Request) -> LastFmAuthFlow:
    return request.app.state.lastfm_auth


def _discogs_flow(request: Request) -> DiscogsAuthFlow:
    return request.app.state.discogs_auth


def user_id_from_cookie(request: Request) -> str | None:
    settings = _settings(request)
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    return _signer(request).loads(token)


def set_user_cookie(request: Request, response: Response, user_id: str) -> None:
    settings = _settings(request)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=_signer(request).dumps(user_id),
        max_age=settings.session_cookie_max_age_s,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


def current_user(request: Request, response: Response) -> str:
    """Internal user id bound to the signed identity cookie, minted on first contact."""
    user_id = user_id_from_cookie(request)
    if user_id is None:
        user_id = str(uuid.uuid4())
        request.state.minted_user_id = user_id
    request.state.user_id = user_id
    set_user_cookie(request, response, user_id)
    return user_id


def keep_minted_cookie(request: Request, response: Response) -> None:
    """Carry a just-minted identity onto an error response.

    The cookie set by ``current_user`` lives on the route's response, which is
    dropped when the route raises.
    """
    user_id = getattr(request.state, "minted_user_id", None)
    if user_id:
        set_user_cookie(request, response, user_id)
