"""Session state machine.

Transitions are pure: each takes a Session and returns a new one. Upstream
dispatch and persistence live in ``sessions.SessionService``.

    running --pause--> paused --resume--> running
    running|paused --advance past last track / end--> ended (terminal)
"""

from __future__ import annotations

from dataclasses import replace

from .errors import INVALID_TRACK_INDEX, NowSpinningError
from .models import (
    ENDED,
    PAUSED,
    PENDING,
    RUNNING,
    SCROBBLED,
    NormalizedRelease,
    Session,
    SessionTrackState,
)


def create_session(session_id: str, user_id: str, release: NormalizedRelease, started_at: int) -> Session:
    tracks = [SessionTrackState(index=track.index) for track in release.tracks]
    if tracks:
        tracks[0] = replace(tracks[0], started_at=started_at)
    return Session(
        id=session_id,
        user_id=user_id,
        release=release,
        state=RUNNING,
        current_index=0,
        started_at=started_at,
        tracks=tuple(tracks),
    )


def require_valid_index(session: Session) -> None:
    """Fail loudly on a stored session whose current index points nowhere.

    That only happens when persisted state is corrupt, so it is never repaired.
    """
    if not 0 <= session.current_index < len(session.tracks) or len(session.tracks) != len(
        session.release.tracks
    ):
        raise NowSpinningError(
            INVALID_TRACK_INDEX,
            f"Current track index {session.current_index} is invalid",
            status_code=500,
        )


def pause_session(session: Session) -> Session:
    if session.state != RUNNING:
        return session
    return replace(session, state=PAUSED)


def resume_session(session: Session, resumed_at: int) -> Session:
    if session.state != PAUSED:
        return session
    require_valid_index(session)
    current = session.tracks[session.current_index]
    if current.started_at is None:
        session = session.with_track(session.current_index, replace(current, started_at=resumed_at))
    return replace(session, state=RUNNING)


def close_out_track(session: Session, closed_at: int) -> Session:
    current = session.tracks[session.current_index]
    if current.status != PENDING:
        return session
    return session.with_track(
        session.current_index, replace(current, status=SCROBBLED, scrobbled_at=closed_at)
    )


def advance_session(session: Session, advanced_at: int) -> Session:
    """Close out the current track and move to the next one, or end after the last.

    The index never moves past the last track; ending leaves it there.
    """
    if session.state == ENDED:
        return session
    require_valid_index(session)
    session = close_out_track(session, advanced_at)
    next_index = session.current_index + 1
    if next_index >= len(session.tracks):
        return replace(session, state=ENDED)
    nxt = session.tracks[next_index]
    session = session.with_track(
        next_index, replace(nxt, started_at=nxt.started_at if nxt.started_at is not None else advanced_at)
    )
    return replace(session, current_index=next_index, state=RUNNING)


def end_session(session: Session, ended_at: int) -> Session:
    if session.state == ENDED:
        return session
    require_valid_index(session)
    session = close_out_track(session, ended_at)
    return replace(session, state=ENDED)
