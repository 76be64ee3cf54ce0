from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple


SIDES = ("A", "B", "C", "D")

RUNNING = "running"
PAUSED = "paused"
ENDED = "ended"
SESSION_STATES = (RUNNING, PAUSED, ENDED)

PENDING = "pending"
SCROBBLED = "scrobbled"
SKIPPED = "skipped"
TRACK_STATUSES = (PENDING, SCROBBLED, SKIPPED)

LASTFM = "lastfm"
DISCOGS = "discogs"
SERVICES = (LASTFM, DISCOGS)


@dataclass(frozen=True)
class NormalizedTrack:
    position: str
    title: str
    artist: str
    duration_sec: Optional[int]
    side: Optional[str]
    index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "title": self.title,
            "artist": self.artist,
            "durationSec": self.duration_sec,
            "side": self.side,
            "index": self.index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedTrack":
        return cls(
            position=str(data["position"]),
            title=str(data["title"]),
            artist=str(data["artist"]),
            duration_sec=data.get("durationSec"),
            side=data.get("side"),
            index=int(data["index"]),
        )


@dataclass(frozen=True)
class NormalizedRelease:
    id: str
    title: str
    artist: str
    year: Optional[int]
    cover_url: Optional[str]
    tracks: Tuple[NormalizedTrack, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "year": self.year,
            "coverUrl": self.cover_url,
            "tracks": [track.to_dict() for track in self.tracks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedRelease":
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            artist=str(data["artist"]),
            year=data.get("year"),
            cover_url=data.get("coverUrl"),
            tracks=tuple(NormalizedTrack.from_dict(t) for t in data.get("tracks") or []),
        )


@dataclass(frozen=True)
class SessionTrackState:
    index: int
    started_at: Optional[int] = None
    status: str = PENDING
    scrobbled_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "startedAt": self.started_at,
            "status": self.status,
            "scrobbledAt": self.scrobbled_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionTrackState":
        return cls(
            index=int(data["index"]),
            started_at=data.get("startedAt"),
            status=str(data.get("status") or PENDING),
            scrobbled_at=data.get("scrobbledAt"),
        )


@dataclass(frozen=True)
class Session:
    """One playback pass through one release.

    Sessions are immutable values; every transition returns a new Session and
    the caller persists it. ``release`` is a snapshot taken at start, so later
    catalog edits never reach an in-flight session.
    """

    id: str
    user_id: str
    release: NormalizedRelease
    state: str
    current_index: int
    started_at: int
    tracks: Tuple[SessionTrackState, ...]

    @property
    def current_track(self) -> Optional[NormalizedTrack]:
        if 0 <= self.current_index < len(self.release.tracks):
            return self.release.tracks[self.current_index]
        return None

    def with_track(self, index: int, track: SessionTrackState) -> "Session":
        tracks = list(self.tracks)
        tracks[index] = track
        return replace(self, tracks=tuple(tracks))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "release": self.release.to_dict(),
            "state": self.state,
            "currentIndex": self.current_index,
            "startedAt": self.started_at,
            "tracks": [track.to_dict() for track in self.tracks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=str(data["id"]),
            user_id=str(data["userId"]),
            release=NormalizedRelease.from_dict(data["release"]),
            state=str(data["state"]),
            current_index=int(data["currentIndex"]),
            started_at=int(data["startedAt"]),
            tracks=tuple(SessionTrackState.from_dict(t) for t in data.get("tracks") or []),
        )


@dataclass
class StoredToken:
    service: str
    access_token: str
    stored_at: int
    access_token_secret: Optional[str] = None
    expires_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "service": self.service,
            "accessToken": self.access_token,
            "storedAt": self.stored_at,
        }
        if self.access_token_secret is not None:
            data["accessTokenSecret"] = self.access_token_secret
        if self.expires_at is not None:
            data["expiresAt"] = self.expires_at
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["StoredToken"]:
        if not data or not data.get("accessToken"):
            return None
        return cls(
            service=str(data["service"]),
            access_token=str(data["accessToken"]),
            stored_at=int(data.get("storedAt") or 0),
            access_token_secret=data.get("accessTokenSecret"),
            expires_at=data.get("expiresAt"),
        )


@dataclass
class StoredTokens:
    """Both per-service credential slots, persisted together per user."""

    lastfm: Optional[StoredToken] = None
    discogs: Optional[StoredToken] = None

    def get(self, service: str) -> Optional[StoredToken]:
        return getattr(self, service)

    def set(self, service: str, token: Optional[StoredToken]) -> None:
        if service not in SERVICES:
            raise ValueError(f"Unknown service: {service}")
        setattr(self, service, token)

    def to_dict(self) -> Dict[str, Any]:
        return {
            LASTFM: self.lastfm.to_dict() if self.lastfm else None,
            DISCOGS: self.discogs.to_dict() if self.discogs else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StoredTokens":
        data = data or {}
        return cls(
            lastfm=StoredToken.from_dict(data.get(LASTFM)),
            discogs=StoredToken.from_dict(data.get(DISCOGS)),
        )


@dataclass(frozen=True)
class CatalogListItem:
    release_id: str
    title: str
    artist: str
    year: Optional[int]
    thumb_url: Optional[str]
    formats: Tuple[str, ...] = ()
    instance_id: Optional[str] = None
    date_added: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "releaseId": self.release_id,
            "title": self.title,
            "artist": self.artist,
            "year": self.year,
            "thumbUrl": self.thumb_url,
            "formats": list(self.formats),
        }
        if self.instance_id is not None:
            data["instanceId"] = self.instance_id
        if self.date_added is not None:
            data["dateAdded"] = self.date_added
        return data


@dataclass(frozen=True)
class CatalogPage:
    page: int
    pages: int
    per_page: int
    total_items: int
    items: List[CatalogListItem] = field(default_factory=list)
    query: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "page": self.page,
            "pages": self.pages,
            "perPage": self.per_page,
            "totalItems": self.total_items,
            "items": [item.to_dict() for item in self.items],
        }
        if self.query is not None:
            data["query"] = self.query
        return data
