from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


class ConfigError(RuntimeError):
    """Raised when required configuration is missing."""


@dataclass(frozen=True)
class LastFmCredentials:
    api_key: str
    shared_secret: str
    callback_url: str


@dataclass(frozen=True)
class DiscogsCredentials:
    consumer_key: str
    consumer_secret: str
    callback_url: str


@dataclass(frozen=True)
class Settings:
    public_app_origin: str
    session_secret: str
    lastfm_api_key: Optional[str] = None
    lastfm_api_secret: Optional[str] = None
    lastfm_callback_url: Optional[str] = None
    discogs_consumer_key: Optional[str] = None
    discogs_consumer_secret: Optional[str] = None
    discogs_callback_url: Optional[str] = None
    session_cookie_name: str = "now_spinning_session"
    session_cookie_max_age_s: int = 30 * 24 * 60 * 60
    cookie_secure: bool = False
    dev_mode: bool = False
    debug: bool = False
    upstream_timeout_s: float = 5.0
    scrobble_threshold_percent: float = 50.0
    lastfm_api_url: str = "https://ws.audioscrobbler.com/2.0/"
    lastfm_auth_url: str = "https://www.last.fm/api/auth"
    discogs_api_base: str = "https://api.discogs.com"
    discogs_authorize_url: str = "https://www.discogs.com/oauth/authorize"
    discogs_user_agent: str = "NowSpinning/0.1.0 +now-spinning.dev"

    def lastfm_credentials(self, *, need_callback: bool = False) -> LastFmCredentials:
        if not self.lastfm_api_key:
            raise ConfigError("Last.fm API key not configured")
        if not self.lastfm_api_secret:
            raise ConfigError("Last.fm API secret not configured")
        if need_callback and not self.lastfm_callback_url:
            raise ConfigError("Last.fm callback URL not configured")
        return LastFmCredentials(
            api_key=self.lastfm_api_key,
            shared_secret=self.lastfm_api_secret,
            callback_url=self.lastfm_callback_url or "",
        )

    def discogs_credentials(self, *, need_callback: bool = False) -> DiscogsCredentials:
        if not self.discogs_consumer_key:
            raise ConfigError("Discogs consumer key not configured")
        if not self.discogs_consumer_secret:
            raise ConfigError("Discogs consumer secret not configured")
        if need_callback and not self.discogs_callback_url:
            raise ConfigError("Discogs callback URL not configured")
        return DiscogsCredentials(
            consumer_key=self.discogs_consumer_key,
            consumer_secret=self.discogs_consumer_secret,
            callback_url=self.discogs_callback_url or "",
        )


def _load_dotenv_files() -> None:
    # server/now_spinning/config.py -> server/ (parents[1]) -> repo root (parents[2])
    server_dir = Path(__file__).resolve().parents[1]
    repo_root = Path(__file__).resolve().parents[2]
    # Load root first, then allow server/.env to override.
    load_dotenv(repo_root / ".env", override=False)
    load_dotenv(server_dir / ".env", override=True)


def _get_setting(name: str) -> str:
    return os.environ.get(name, "").strip()


def _require_env(name: str) -> str:
    value = _get_setting(name)
    if not value:
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def _optional(name: str) -> Optional[str]:
    return _get_setting(name) or None


def _flag(name: str) -> bool:
    return _get_setting(name).lower() in {"1", "true", "yes"}


def _number(name: str, default: float) -> float:
    raw = _get_setting(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as err:
        raise ConfigError(f"Environment variable {name} must be a number, got {raw!r}") from err


def load_settings() -> Settings:
    _load_dotenv_files()
    threshold = _number("SCROBBLE_THRESHOLD_PERCENT", 50.0)
    if not 0 <= threshold <= 100:
        raise ConfigError("SCROBBLE_THRESHOLD_PERCENT must be between 0 and 100")
    return Settings(
        public_app_origin=_require_env("PUBLIC_APP_ORIGIN").rstrip("/"),
        session_secret=_require_env("SESSION_SECRET"),
        lastfm_api_key=_optional("LASTFM_API_KEY"),
        lastfm_api_secret=_optional("LASTFM_API_SECRET"),
        lastfm_callback_url=_optional("LASTFM_CALLBACK_URL"),
        discogs_consumer_key=_optional("DISCOGS_CONSUMER_KEY"),
        discogs_consumer_secret=_optional("DISCOGS_CONSUMER_SECRET"),
        discogs_callback_url=_optional("DISCOGS_CALLBACK_URL"),
        session_cookie_name=_get_setting("SESSION_COOKIE_NAME") or "now_spinning_session",
        cookie_secure=_flag("COOKIE_SECURE"),
        dev_mode=_flag("DEV_MODE"),
        debug=_flag("NOW_SPINNING_DEBUG"),
        upstream_timeout_s=_number("UPSTREAM_TIMEOUT_S", 5.0),
        scrobble_threshold_percent=threshold,
        lastfm_api_url=_get_setting("LASTFM_API_URL") or "https://ws.audioscrobbler.com/2.0/",
        lastfm_auth_url=_get_setting("LASTFM_AUTH_URL") or "https://www.last.fm/api/auth",
        discogs_api_base=(_get_setting("DISCOGS_API_BASE") or "https://api.discogs.com").rstrip("/"),
        discogs_authorize_url=_get_setting("DISCOGS_AUTHORIZE_URL")
        or "https://www.discogs.com/oauth/authorize",
        discogs_user_agent=_get_setting("DISCOGS_USER_AGENT")
        or "NowSpinning/0.1.0 +now-spinning.dev",
    )
