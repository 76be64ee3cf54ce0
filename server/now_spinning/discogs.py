from __future__ import annotations

import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import quote, urlencode
from urllib.request import urlopen

from .config import Settings
from .kv_store import InMemoryKeyValueStore
from .models import CatalogListItem, CatalogPage, NormalizedRelease, StoredToken
from .normalize import normalize_collection_item, normalize_release, normalize_search_item
from .results import Err, Ok, UpstreamFailure
from .signatures import (
    discogs_app_auth_header,
    oauth1_authorization_header,
    oauth1_params,
    parse_form_encoded,
)
from .upstream import Opener, UpstreamResponse, UpstreamUnavailable, send


logger = logging.getLogger(__name__)

CACHE_TTL_S = 600
CACHE_VERSION = "v2"

RATE_LIMIT_MAX_RETRIES = 1
RATE_LIMIT_INITIAL_BACKOFF_S = 0.5
RATE_LIMIT_MAX_BACKOFF_S = 10.0

MIN_PER_PAGE = 5
MAX_PER_PAGE = 50
DEFAULT_PER_PAGE = 25

CatalogResult = Union[Ok[Any], Err[UpstreamFailure]]


def parse_retry_after(header: Optional[str], *, now: Optional[float] = None) -> Optional[float]:
    """Seconds to wait according to a Retry-After header, capped at the max backoff.

    Accepts delta-seconds or an HTTP date; None when absent or unparseable.
    """
    if not header:
        return None
    value = header.strip()
    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None:
        if seconds < 0:
            return None
        return min(seconds, RATE_LIMIT_MAX_BACKOFF_S)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    delta = when.timestamp() - (time.time() if now is None else now)
    return min(max(delta, 0.0), RATE_LIMIT_MAX_BACKOFF_S)


def backoff_delay(attempt: int, retry_after: Optional[str]) -> float:
    hinted = parse_retry_after(retry_after)
    if hinted is not None:
        return hinted
    return min(RATE_LIMIT_INITIAL_BACKOFF_S * (2 ** attempt), RATE_LIMIT_MAX_BACKOFF_S)


def clamp_page(page: Optional[int]) -> int:
    return max(1, page or 1)


def clamp_per_page(per_page: Optional[int]) -> int:
    return min(MAX_PER_PAGE, max(MIN_PER_PAGE, per_page or DEFAULT_PER_PAGE))


class DiscogsClient:
    """Discogs API client with 429 handling and a short-lived response cache."""

    def __init__(
        self,
        settings: Settings,
        *,
        cache: Optional[InMemoryKeyValueStore] = None,
        opener: Opener = urlopen,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._settings = settings
        self._cache = cache
        self._opener = opener
        self._sleep = sleep

    def _headers(self, auth_header: Optional[str]) -> Dict[str, str]:
        headers = {"User-Agent": self._settings.discogs_user_agent, "Accept": "application/json"}
        if auth_header:
            headers["Authorization"] = auth_header
        return headers

    def _app_auth(self) -> str:
        creds = self._settings.discogs_credentials()
        return discogs_app_auth_header(creds.consumer_key, creds.consumer_secret)

    def _request(
        self, method: str, url: str, *, auth_header: Optional[str] = None
    ) -> Union[Ok[UpstreamResponse], Err[UpstreamFailure]]:
        path = url.split("?", 1)[0].replace(self._settings.discogs_api_base, "")
        attempts = RATE_LIMIT_MAX_RETRIES + 1
        for attempt in range(attempts):
            try:
                resp = send(
                    method,
                    url,
                    opener=self._opener,
                    headers=self._headers(auth_header),
                    timeout_s=self._settings.upstream_timeout_s,
                )
            except UpstreamUnavailable as err:
                logger.warning("Discogs %s %s unreachable: %s", method, path, err)
                return Err(UpstreamFailure(f"Discogs connection error: {err}"))

            logger.info(
                "Discogs %s %s -> %s | ratelimit=%s remaining=%s%s",
                method,
                path,
                resp.status,
                resp.header("X-Discogs-Ratelimit"),
                resp.header("X-Discogs-Ratelimit-Remaining"),
                f" attempt={attempt + 1}" if attempt else "",
            )
            if resp.status != 429:
                if not resp.ok:
                    return Err(_failure(resp))
                return Ok(resp)

            retry_after = resp.header("Retry-After")
            if attempt + 1 >= attempts:
                return Err(
                    UpstreamFailure("Discogs rate limit reached", status=429, retry_after=retry_after)
                )
            delay_s = backoff_delay(attempt, retry_after)
            logger.info("Discogs %s rate limited, retrying in %.2fs", path, delay_s)
            self._sleep(delay_s)
        raise AssertionError("unreachable")

    def _get_json(self, url: str, *, auth_header: Optional[str]) -> CatalogResult:
        result = self._request("GET", url, auth_header=auth_header)
        if not result.ok:
            return result
        try:
            data = result.value.json()
        except ValueError:
            return Err(UpstreamFailure("Discogs returned invalid JSON", status=502))
        if not isinstance(data, dict):
            return Err(UpstreamFailure("Discogs returned invalid data", status=502))
        return Ok(data)

    def _cached(self, key: str) -> Any:
        return self._cache.get_json(key) if self._cache is not None else None

    def _remember(self, key: str, value: Any) -> None:
        if self._cache is not None:
            self._cache.put_json(key, value, ttl_s=CACHE_TTL_S)

    def get_release(self, release_id: str) -> Union[Ok[NormalizedRelease], Err[UpstreamFailure]]:
        cache_key = f"discogs:release:{release_id}"
        cached = self._cached(cache_key)
        if cached:
            return Ok(NormalizedRelease.from_dict(cached))
        result = self._get_json(
            f"{self._settings.discogs_api_base}/releases/{release_id}",
            auth_header=self._app_auth(),
        )
        if not result.ok:
            return result
        release = normalize_release(result.value)
        self._remember(cache_key, release.to_dict())
        return Ok(release)

    def search(self, query: str, *, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> CatalogResult:
        page, per_page = clamp_page(page), clamp_per_page(per_page)
        cache_key = f"discogs:search:{query.lower()}:{page}:{per_page}"
        cached = self._cached(cache_key)
        if cached:
            return Ok(cached)
        params = urlencode({"q": query, "type": "release", "page": page, "per_page": per_page})
        result = self._get_json(
            f"{self._settings.discogs_api_base}/database/search?{params}",
            auth_header=self._app_auth(),
        )
        if not result.ok:
            return result
        raw = result.value
        items = [
            item
            for item in (
                normalize_search_item(entry)
                for entry in raw.get("results") or []
                if isinstance(entry, dict) and entry.get("type") in (None, "release")
            )
            if item is not None
        ]
        response = _page(raw.get("pagination"), page, per_page, items, query=query)
        self._remember(cache_key, response)
        return Ok(response)

    def identity(self, auth_header: str) -> CatalogResult:
        return self._get_json(f"{self._settings.discogs_api_base}/oauth/identity", auth_header=auth_header)

    def collection(
        self,
        user_id: str,
        token: StoredToken,
        *,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> CatalogResult:
        creds = self._settings.discogs_credentials()
        page, per_page = clamp_page(page), clamp_per_page(per_page)
        cache_key = f"discogs:collection:{CACHE_VERSION}:{user_id}:{page}:{per_page}"
        cached = self._cached(cache_key)
        if cached:
            return Ok(cached)

        auth_header = oauth1_authorization_header(
            creds.consumer_key,
            creds.consumer_secret,
            token.access_token,
            token.access_token_secret or "",
        )
        identity_key = f"discogs:identity:{user_id}"
        identity = self._cached(identity_key)
        if not identity or not identity.get("username"):
            result = self.identity(auth_header)
            if not result.ok:
                return result
            identity = result.value
            self._remember(identity_key, identity)
        username = identity.get("username")
        if not username:
            return Err(UpstreamFailure("Discogs username not available", status=502))

        params = urlencode({"page": page, "per_page": per_page})
        result = self._get_json(
            f"{self._settings.discogs_api_base}/users/{quote(str(username), safe='')}"
            f"/collection/folders/0/releases?{params}",
            auth_header=auth_header,
        )
        if not result.ok:
            return result
        raw = result.value
        items = [
            item
            for item in (
                normalize_collection_item(entry)
                for entry in raw.get("releases") or []
                if isinstance(entry, dict)
            )
            if item is not None
        ]
        response = _page(raw.get("pagination"), page, per_page, items)
        self._remember(cache_key, response)
        return Ok(response)

    def _oauth_post(self, path: str, params: Mapping[str, str]) -> Union[Ok[Dict[str, str]], Err[UpstreamFailure]]:
        url = f"{self._settings.discogs_api_base}{path}?{urlencode(params)}"
        result = self._request("POST", url)
        if not result.ok:
            return result
        return Ok(parse_form_encoded(result.value.text()))

    def request_token(self, callback_url: str) -> Union[Ok[Dict[str, str]], Err[UpstreamFailure]]:
        creds = self._settings.discogs_credentials(need_callback=True)
        params = oauth1_params(
            creds.consumer_key,
            creds.consumer_secret,
            extra={"oauth_callback": callback_url},
        )
        return self._oauth_post("/oauth/request_token", params)

    def access_token(
        self, request_token: str, request_token_secret: str, verifier: str
    ) -> Union[Ok[Dict[str, str]], Err[UpstreamFailure]]:
        creds = self._settings.discogs_credentials()
        params = oauth1_params(
            creds.consumer_key,
            creds.consumer_secret,
            token=request_token,
            token_secret=request_token_secret,
            extra={"oauth_verifier": verifier},
        )
        return self._oauth_post("/oauth/access_token", params)


def _failure(resp: UpstreamResponse) -> UpstreamFailure:
    detail = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        detail = str(body["message"])
    message = f"Discogs returned {resp.status}"
    return UpstreamFailure(
        f"{message}: {detail}" if detail else message, status=resp.status, detail=detail
    )


def _page(
    pagination: Any,
    page: int,
    per_page: int,
    items: List[CatalogListItem],
    query: Optional[str] = None,
) -> Dict[str, Any]:
    pagination = pagination if isinstance(pagination, dict) else {}
    total = pagination.get("items")
    return CatalogPage(
        page=int(pagination.get("page") or page),
        pages=int(pagination.get("pages") or page),
        per_page=int(pagination.get("per_page") or per_page),
        total_items=int(total) if total is not None else len(items),
        items=items,
        query=query,
    ).to_dict()
