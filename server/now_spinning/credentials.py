from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .config import Settings
from .discogs import DiscogsClient
from .errors import (
    AUTH_DENIED,
    INVALID_STATE,
    LASTFM_ERROR,
    NowSpinningError,
    discogs_failure,
)
from .kv_store import InMemoryKeyValueStore
from .lastfm import LastFmClient
from .models import DISCOGS, LASTFM, SERVICES, StoredToken, StoredTokens
from .signatures import generate_random_string


logger = logging.getLogger(__name__)

OAUTH_STATE_TTL_S = 600


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def _with_query(url: str, params: Dict[str, str]) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True) + list(params.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class TokenVault:
    """Per-user token record plus the one-time OAuth state records."""

    def __init__(self, store: InMemoryKeyValueStore):
        self._store = store

    @staticmethod
    def _tokens_key(user_id: str) -> str:
        return f"user:{user_id}:tokens"

    @staticmethod
    def _state_key(service: str, token: str) -> str:
        return f"oauth:{service}:{token}"

    def load(self, user_id: str) -> StoredTokens:
        return StoredTokens.from_dict(self._store.get_json(self._tokens_key(user_id)))

    def save(self, user_id: str, tokens: StoredTokens) -> None:
        self._store.put_json(self._tokens_key(user_id), tokens.to_dict())

    def store_token(self, user_id: str, token: StoredToken) -> None:
        # Read-modify-write of the shared record; the other service's slot is carried over.
        tokens = self.load(user_id)
        tokens.set(token.service, token)
        self.save(user_id, tokens)

    def disconnect(self, user_id: str, service: str) -> None:
        if service not in SERVICES:
            raise ValueError(f"Unknown service: {service}")
        tokens = self.load(user_id)
        if tokens.get(service) is None:
            return
        tokens.set(service, None)
        self.save(user_id, tokens)

    def status(self, user_id: str) -> Dict[str, bool]:
        tokens = self.load(user_id)
        return {
            "lastfmConnected": tokens.lastfm is not None,
            "discogsConnected": tokens.discogs is not None,
        }

    def put_state(self, service: str, token: str, record: Dict[str, str]) -> None:
        self._store.put_json(self._state_key(service, token), record, ttl_s=OAUTH_STATE_TTL_S)

    def take_state(self, service: str, token: str) -> Optional[Dict[str, str]]:
        record = self._store.take_json(self._state_key(service, token))
        return record if isinstance(record, dict) else None


class LastFmAuthFlow:
    """Last.fm web auth: one token from the redirect, exchanged for a session key."""

    def __init__(
        self,
        settings: Settings,
        vault: TokenVault,
        client: LastFmClient,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._vault = vault
        self._client = client
        self._clock = clock

    def start(self, user_id: str) -> str:
        creds = self._settings.lastfm_credentials(need_callback=True)
        state = generate_random_string(32)
        self._vault.put_state(LASTFM, state, {"userId": user_id})
        callback = _with_query(creds.callback_url, {"state": state})
        return f"{self._settings.lastfm_auth_url}?{urlencode({'api_key': creds.api_key, 'cb': callback})}"

    def callback(
        self, user_id: str, token: Optional[str], state: Optional[str], error: Optional[str] = None
    ) -> None:
        """Complete the handshake for the user who started it.

        The state record names the user id that called ``start``; a callback
        arriving under any other identity is rejected like an unknown state.
        """
        if not token:
            raise NowSpinningError(
                AUTH_DENIED, error or "User denied Last.fm authorization", status_code=403
            )
        self._settings.lastfm_credentials()
        record = self._vault.take_state(LASTFM, state) if state else None
        if record is None or record.get("userId") != user_id:
            raise NowSpinningError(
                INVALID_STATE, "OAuth state token expired or invalid", status_code=400
            )

        result = self._client.get_session(token)
        if not result.ok:
            logger.warning("Last.fm auth.getSession failed: %s", result.error.message)
            raise NowSpinningError(LASTFM_ERROR, result.error.message, status_code=502)

        self._vault.store_token(
            user_id,
            StoredToken(service=LASTFM, access_token=result.value, stored_at=_now_ms(self._clock)),
        )
        logger.info("Stored Last.fm session key for user %s", user_id)


class DiscogsAuthFlow:
    """Discogs three-legged OAuth 1.0a with PLAINTEXT signatures."""

    def __init__(
        self,
        settings: Settings,
        vault: TokenVault,
        client: DiscogsClient,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._vault = vault
        self._client = client
        self._clock = clock

    def start(self, user_id: str) -> str:
        creds = self._settings.discogs_credentials(need_callback=True)
        result = self._client.request_token(creds.callback_url)
        if not result.ok:
            failure = result.error
            raise discogs_failure(
                failure.status or 502,
                "Discogs request token failed",
                failure.retry_after,
                failure.detail,
            )
        request_token = result.value.get("oauth_token", "")
        request_secret = result.value.get("oauth_token_secret", "")
        if not request_token:
            raise discogs_failure(502, "Discogs request token missing from response")
        self._vault.put_state(
            DISCOGS,
            request_token,
            {
                "userId": user_id,
                "oauth_token": request_token,
                "oauth_token_secret": request_secret,
            },
        )
        return f"{self._settings.discogs_authorize_url}?{urlencode({'oauth_token': request_token})}"

    def callback(
        self, user_id: str, oauth_token: Optional[str], oauth_verifier: Optional[str]
    ) -> None:
        if not oauth_token or not oauth_verifier:
            raise NowSpinningError(AUTH_DENIED, "User denied Discogs authorization", status_code=403)
        self._settings.discogs_credentials()
        record = self._vault.take_state(DISCOGS, oauth_token)
        if record is None or record.get("userId") != user_id:
            raise NowSpinningError(
                INVALID_STATE, "OAuth state token expired or invalid", status_code=403
            )

        result = self._client.access_token(
            oauth_token, record.get("oauth_token_secret", ""), oauth_verifier
        )
        if not result.ok:
            failure = result.error
            raise discogs_failure(
                failure.status or 502,
                "Discogs access token exchange failed",
                failure.retry_after,
                failure.detail,
            )
        access_token = result.value.get("oauth_token", "")
        access_secret = result.value.get("oauth_token_secret", "")
        if not access_token:
            raise discogs_failure(502, "Discogs access token missing from response")

        self._vault.store_token(
            user_id,
            StoredToken(
                service=DISCOGS,
                access_token=access_token,
                access_token_secret=access_secret,
                stored_at=_now_ms(self._clock),
            ),
        )
        logger.info("Stored Discogs access token for user %s", user_id)
