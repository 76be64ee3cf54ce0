from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union
from urllib.request import urlopen

from .config import Settings
from .models import NormalizedRelease, NormalizedTrack
from .results import Err, Ok, UpstreamFailure
from .signatures import listening_api_signature
from .upstream import Opener, UpstreamUnavailable, send


logger = logging.getLogger(__name__)

LastFmResult = Union[Ok[Dict[str, Any]], Err[UpstreamFailure]]


def _mask(value: str) -> str:
    return value[:4] + "..." if len(value) > 4 else "..."


def _track_params(release: NormalizedRelease, track: NormalizedTrack) -> Dict[str, Optional[Union[str, int]]]:
    return {
        "artist": track.artist,
        "track": track.title,
        "album": release.title,
        "duration": track.duration_sec,
    }


class LastFmClient:
    """Signed calls against the Last.fm web service."""

    def __init__(self, settings: Settings, *, opener: Opener = urlopen):
        self._settings = settings
        self._opener = opener

    def call(self, method: str, params: Mapping[str, Optional[Union[str, int]]]) -> LastFmResult:
        creds = self._settings.lastfm_credentials()
        payload: Dict[str, str] = {"method": method, "api_key": creds.api_key, "format": "json"}
        for key, value in params.items():
            if value is not None:
                payload[key] = str(value)
        payload["api_sig"] = listening_api_signature(payload, creds.shared_secret)

        logger.debug("Last.fm %s (api_key=%s)", method, _mask(creds.api_key))
        try:
            resp = send(
                "POST",
                self._settings.lastfm_api_url,
                opener=self._opener,
                form=payload,
                timeout_s=self._settings.upstream_timeout_s,
            )
        except UpstreamUnavailable as err:
            return Err(UpstreamFailure(f"Last.fm connection error: {err}"))

        try:
            data = resp.json()
        except ValueError:
            return Err(UpstreamFailure(f"Last.fm returned HTTP {resp.status} with an unreadable body", status=resp.status))
        if not isinstance(data, dict):
            return Err(UpstreamFailure("Last.fm returned an unexpected payload", status=resp.status))

        if not resp.ok or data.get("error"):
            code = data.get("error")
            failure = UpstreamFailure(
                str(data.get("message") or "Last.fm request failed"),
                status=resp.status,
                retry_after=resp.header("Retry-After"),
                code=code if isinstance(code, int) else None,
            )
            logger.info("Last.fm %s failed: HTTP %s code=%s %s", method, resp.status, failure.code, failure.message)
            return Err(failure)
        return Ok(data)

    def get_session(self, token: str) -> Union[Ok[str], Err[UpstreamFailure]]:
        result = self.call("auth.getSession", {"token": token})
        if not result.ok:
            return result
        session = result.value.get("session")
        key = session.get("key") if isinstance(session, dict) else None
        if not key:
            return Err(UpstreamFailure("Last.fm session key missing"))
        return Ok(str(key))

    def update_now_playing(
        self, session_key: str, release: NormalizedRelease, track: NormalizedTrack
    ) -> LastFmResult:
        params = _track_params(release, track)
        if self._settings.dev_mode:
            logger.info("[dev mode] would send now playing: %s", params)
            return Ok({})
        return self.call("track.updateNowPlaying", {"sk": session_key, **params})

    def scrobble(
        self,
        session_key: str,
        release: NormalizedRelease,
        track: NormalizedTrack,
        timestamp_s: int,
    ) -> LastFmResult:
        params = {**_track_params(release, track), "timestamp": timestamp_s}
        if self._settings.dev_mode:
            logger.info("[dev mode] would scrobble: %s", params)
            return Ok({})
        return self.call("track.scrobble", {"sk": session_key, **params})
