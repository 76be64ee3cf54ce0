from __future__ import annotations

import io
import json
from typing import Any, Dict, List, Optional, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import parse_qs, parse_qsl, urlsplit
from urllib.request import Request

from now_spinning.config import Settings
from now_spinning.models import NormalizedRelease, NormalizedTrack

DISCOGS = "https://api.discogs.com"
LASTFM = "https://ws.audioscrobbler.com/2.0/"


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        public_app_origin="http://localhost:5173",
        session_secret="test-session-secret",
        lastfm_api_key="lfm-key",
        lastfm_api_secret="lfm-secret",
        lastfm_callback_url="http://localhost:8787/auth/lastfm/callback",
        discogs_consumer_key="dc-key",
        discogs_consumer_secret="dc-secret",
        discogs_callback_url="http://localhost:8787/auth/discogs/callback",
    )
    values.update(overrides)
    return Settings(**values)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status: int, body: bytes, headers: Dict[str, str]):
        self.status = status
        self.headers = headers
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc: Any) -> bool:
        return False


Canned = Tuple[int, bytes, Dict[str, str]]


def reply(status: int = 200, body: Any = None, headers: Optional[Dict[str, str]] = None) -> Canned:
    if isinstance(body, (dict, list)):
        raw = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        raw = body.encode("utf-8")
    else:
        raw = body or b""
    return status, raw, dict(headers or {})


class FakeOpener:
    """Stands in for urllib.request.urlopen.

    Routes match on method and URL prefix; each call consumes the next canned
    reply and the last one repeats.
    """

    def __init__(self) -> None:
        self.calls: List[Request] = []
        self._routes: List[Tuple[str, str, List[Canned]]] = []

    def add(self, method: str, prefix: str, *replies: Canned) -> "FakeOpener":
        self._routes.insert(0, (method, prefix, list(replies)))
        return self

    def __call__(self, req: Request, timeout: Optional[float] = None) -> FakeResponse:
        self.calls.append(req)
        for method, prefix, replies in self._routes:
            if req.get_method() == method and req.full_url.startswith(prefix):
                status, body, headers = replies.pop(0) if len(replies) > 1 else replies[0]
                if status >= 400:
                    raise HTTPError(req.full_url, status, "error", headers, io.BytesIO(body))
                return FakeResponse(status, body, headers)
        raise URLError(f"no fake route for {req.get_method()} {req.full_url}")

    def calls_to(self, prefix: str) -> List[Request]:
        return [req for req in self.calls if req.full_url.startswith(prefix)]

    def lastfm_calls(self, method: Optional[str] = None) -> List[Dict[str, str]]:
        out = []
        for req in self.calls_to(LASTFM):
            params = dict(parse_qsl((req.data or b"").decode("utf-8")))
            if method is None or params.get("method") == method:
                out.append(params)
        return out


def query_of(url: str) -> Dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


def raw_release(release_id: int = 1234) -> Dict[str, Any]:
    return {
        "id": release_id,
        "title": "Kind of Blue",
        "year": 1959,
        "artists": [{"name": "Miles Davis"}],
        "images": [
            {"uri": "https://img.example/secondary.jpg", "type": "secondary"},
            {"uri": "https://img.example/primary.jpg", "type": "primary"},
        ],
        "tracklist": [
            {"position": "", "title": "Side A", "type_": "heading"},
            {"position": "A1", "title": "So What", "duration": "4:00", "type_": "track"},
            {"position": "A2", "title": "Freddie Freeloader", "duration": "3:00", "type_": "track"},
        ],
    }


def two_track_release() -> NormalizedRelease:
    return NormalizedRelease(
        id="1234",
        title="Kind of Blue",
        artist="Miles Davis",
        year=1959,
        cover_url=None,
        tracks=(
            NormalizedTrack("A1", "So What", "Miles Davis", 240, "A", 0),
            NormalizedTrack("A2", "Freddie Freeloader", "Miles Davis", 180, "A", 1),
        ),
    )


def lastfm_ok(opener: FakeOpener, session_key: str = "sk-123") -> FakeOpener:
    return opener.add("POST", LASTFM, reply(200, {"session": {"name": "listener", "key": session_key}}))


def connect_lastfm(client: Any, token: str = "tok") -> Any:
    """Walk the Last.fm start/callback pair through a TestClient."""
    start = client.get("/auth/lastfm/start")
    assert start.status_code == 200
    state = query_of(query_of(start.json()["redirectUrl"])["cb"])["state"]
    res = client.get(
        "/auth/lastfm/callback", params={"token": token, "state": state}, follow_redirects=False
    )
    assert res.status_code == 302
    return res
