from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.request import urlopen

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ConfigError, Settings, load_settings
from .credentials import DiscogsAuthFlow, LastFmAuthFlow, TokenVault
from .discogs import DiscogsClient
from .errors import CONFIG_ERROR, INTERNAL_ERROR, VALIDATION_ERROR, NowSpinningError, error_body
from .kv_store import InMemoryKeyValueStore, UserCookieSigner
from .lastfm import LastFmClient
from .routers.auth import router as auth_router
from .routers.deps import keep_minted_cookie
from .routers.discogs import router as discogs_router
from .routers.session import router as session_router
from .sessions import SessionService
from .upstream import Opener


logger = logging.getLogger(__name__)


def _validation_details(err: RequestValidationError) -> Dict[str, List[str]]:
    details: Dict[str, List[str]] = {}
    for issue in err.errors():
        # Drop the "body"/"query"/"path" location prefix.
        path = ".".join(str(part) for part in issue.get("loc", ())[1:]) or "body"
        details.setdefault(path, []).append(str(issue.get("msg", "Invalid value")))
    return details


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NowSpinningError)
    def _known_error(request: Request, err: NowSpinningError) -> JSONResponse:
        resp = JSONResponse(
            status_code=err.status_code,
            content=error_body(err.code, err.message, err.details),
            headers=err.headers(),
        )
        keep_minted_cookie(request, resp)
        return resp

    @app.exception_handler(ConfigError)
    def _config_error(request: Request, err: ConfigError) -> JSONResponse:
        logger.error("Configuration error on %s: %s", request.url.path, err)
        resp = JSONResponse(status_code=500, content=error_body(CONFIG_ERROR, str(err)))
        keep_minted_cookie(request, resp)
        return resp

    @app.exception_handler(RequestValidationError)
    def _invalid_request(request: Request, err: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=error_body(VALIDATION_ERROR, "Request validation failed", _validation_details(err)),
        )

    @app.exception_handler(StarletteHTTPException)
    def _http_error(request: Request, err: StarletteHTTPException) -> JSONResponse:
        code = "NOT_FOUND" if err.status_code == 404 else "HTTP_ERROR"
        return JSONResponse(
            status_code=err.status_code,
            content=error_body(code, str(err.detail)),
            headers=getattr(err, "headers", None),
        )

    @app.exception_handler(Exception)
    def _unexpected(request: Request, err: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500, content=error_body(INTERNAL_ERROR, "An unexpected error occurred")
        )


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[InMemoryKeyValueStore] = None,
    opener: Opener = urlopen,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    app = FastAPI(title="now-spinning server", version="0.1.0")

    if settings is None:
        try:
            settings = load_settings()
        except ConfigError as err:
            # App still starts, but surfaces a clear startup configuration error.
            startup_error = str(err)

            @app.get("/healthz")
            def _healthz_failed() -> JSONResponse:
                return JSONResponse(status_code=500, content=error_body(CONFIG_ERROR, startup_error))

            return app

    logging.basicConfig(
        level=logging.INFO if settings.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = store if store is not None else InMemoryKeyValueStore(clock=clock)
    vault = TokenVault(store)
    discogs_client = DiscogsClient(settings, cache=store, opener=opener, sleep=sleep)
    lastfm_client = LastFmClient(settings, opener=opener)

    app.state.settings = settings
    app.state.kv_store = store
    app.state.cookie_signer = UserCookieSigner(
        settings.session_secret, max_age_s=settings.session_cookie_max_age_s, clock=clock
    )
    app.state.token_vault = vault
    app.state.discogs_client = discogs_client
    app.state.lastfm_auth = LastFmAuthFlow(settings, vault, lastfm_client, clock=clock)
    app.state.discogs_auth = DiscogsAuthFlow(settings, vault, discogs_client, clock=clock)
    app.state.session_service = SessionService(
        settings, store, vault, discogs_client, lastfm_client, clock=clock
    )

    _install_error_handlers(app)

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    app.include_router(auth_router)
    app.include_router(session_router)
    app.include_router(discogs_router)
    return app


app = create_app()
