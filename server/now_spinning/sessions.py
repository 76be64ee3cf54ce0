from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Callable, Optional

from .config import ConfigError, Settings
from .credentials import TokenVault
from .discogs import DiscogsClient
from .eligibility import is_eligible_to_scrobble
from .engine import advance_session, create_session, end_session, pause_session, resume_session
from .errors import (
    INVALID_RELEASE_ID,
    NowSpinningError,
    discogs_failure,
    lastfm_not_connected,
    session_not_found,
    validation_error,
)
from .kv_store import InMemoryKeyValueStore
from .lastfm import LastFmClient
from .models import ENDED, Session, StoredToken


logger = logging.getLogger(__name__)

_RELEASE_ID_RE = re.compile(r"[0-9]+")


class SessionService:
    """Runs session transitions against stored state and reports them to Last.fm.

    Every transition is persisted before Last.fm is called. Now-playing and
    scrobble failures are logged and never undo the transition: the stored
    session is what the UI shows, whether or not Last.fm got the update.

    Concurrent actions on one session are last-write-wins.
    """

    def __init__(
        self,
        settings: Settings,
        store: InMemoryKeyValueStore,
        vault: TokenVault,
        catalog: DiscogsClient,
        lastfm: LastFmClient,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._store = store
        self._vault = vault
        self._catalog = catalog
        self._lastfm = lastfm
        self._clock = clock

    # -------- persistence --------
    @staticmethod
    def _session_key(session_id: str) -> str:
        return f"session:{session_id}"

    @staticmethod
    def _current_key(user_id: str) -> str:
        return f"session:current:{user_id}"

    def _save(self, session: Session) -> None:
        self._store.put_json(self._session_key(session.id), session.to_dict())
        self._store.put(self._current_key(session.user_id), session.id)

    def _load(self, session_id: str) -> Optional[Session]:
        data = self._store.get_json(self._session_key(session_id))
        return Session.from_dict(data) if data else None

    def _load_owned(self, user_id: str, session_id: str) -> Session:
        session = self._load(session_id)
        if session is None or session.user_id != user_id:
            raise session_not_found()
        return session

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _lastfm_token(self, user_id: str) -> StoredToken:
        token = self._vault.load(user_id).lastfm
        if token is None:
            raise lastfm_not_connected()
        return token

    # -------- side-effect dispatch --------
    def _now_playing(self, token: StoredToken, session: Session) -> None:
        track = session.current_track
        if track is None:
            return
        try:
            result = self._lastfm.update_now_playing(token.access_token, session.release, track)
        except ConfigError as err:
            logger.error("Now playing skipped for session %s: %s", session.id, err)
            return
        if not result.ok:
            logger.warning(
                "Now playing failed for session %s track %s: %s",
                session.id,
                track.position,
                result.error.message,
            )

    def _scrobble(self, token: StoredToken, before: Session, closed_at: int) -> None:
        track = before.current_track
        state = before.tracks[before.current_index]
        if track is None:
            return
        # Last.fm records when playback began; a retried close-out therefore
        # produces the same payload and is collapsed upstream as a duplicate.
        started_at = state.started_at if state.started_at is not None else closed_at
        elapsed_ms = closed_at - started_at
        duration_ms = track.duration_sec * 1000 if track.duration_sec else None
        if not is_eligible_to_scrobble(elapsed_ms, duration_ms, self._settings.scrobble_threshold_percent):
            logger.info(
                "Session %s track %s closed after %sms, below the scrobble threshold; sending anyway",
                before.id,
                track.position,
                elapsed_ms,
            )
        try:
            result = self._lastfm.scrobble(token.access_token, before.release, track, started_at // 1000)
        except ConfigError as err:
            logger.error("Scrobble skipped for session %s: %s", before.id, err)
            return
        if not result.ok:
            failure = result.error
            logger.error(
                "Scrobble failed for session %s track %s (auth=%s, rate_limited=%s): %s",
                before.id,
                track.position,
                failure.is_auth_failure,
                failure.is_rate_limited,
                failure.message,
            )

    # -------- actions --------
    def start(self, user_id: str, release_id: str) -> Session:
        release_id = release_id.strip()
        if not _RELEASE_ID_RE.fullmatch(release_id):
            raise NowSpinningError(INVALID_RELEASE_ID, "Release id must be numeric", status_code=400)
        token = self._lastfm_token(user_id)

        result = self._catalog.get_release(release_id)
        if not result.ok:
            failure = result.error
            raise discogs_failure(
                failure.status or 502, "Discogs release lookup failed", failure.retry_after, failure.detail
            )
        release = result.value
        if not release.tracks:
            raise validation_error("Release has no playable tracks", {"releaseId": [release_id]})

        session = create_session(str(uuid.uuid4()), user_id, release, self._now_ms())
        self._save(session)
        logger.info("Session %s started for release %s (%s tracks)", session.id, release.id, len(release.tracks))
        self._now_playing(token, session)
        return session

    def pause(self, user_id: str, session_id: str) -> Session:
        self._lastfm_token(user_id)
        session = pause_session(self._load_owned(user_id, session_id))
        self._save(session)
        return session

    def resume(self, user_id: str, session_id: str) -> Session:
        self._lastfm_token(user_id)
        session = resume_session(self._load_owned(user_id, session_id), self._now_ms())
        self._save(session)
        return session

    def advance(self, user_id: str, session_id: str) -> Session:
        token = self._lastfm_token(user_id)
        before = self._load_owned(user_id, session_id)
        if before.state == ENDED:
            return before
        now = self._now_ms()
        after = advance_session(before, now)
        self._save(after)
        self._scrobble(token, before, now)
        if after.state != ENDED:
            self._now_playing(token, after)
        return after

    def end(self, user_id: str, session_id: str) -> Session:
        token = self._lastfm_token(user_id)
        before = self._load_owned(user_id, session_id)
        if before.state == ENDED:
            return before
        now = self._now_ms()
        after = end_session(before, now)
        self._save(after)
        self._scrobble(token, before, now)
        return after

    def current(self, user_id: str) -> Optional[Session]:
        session_id = self._store.get(self._current_key(user_id))
        if not session_id:
            return None
        session = self._load(session_id)
        if session is None or session.user_id != user_id:
            return None
        return session
