from typing import List, Tuple

from fastapi.testclient import TestClient

from now_spinning.main import create_app

from support import (
    DISCOGS,
    LASTFM,
    FakeClock,
    FakeOpener,
    connect_lastfm,
    lastfm_ok,
    make_settings,
    raw_release,
    reply,
)


def _client(opener: FakeOpener, clock: FakeClock, **overrides) -> Tuple[TestClient, List[float]]:
    sleeps: List[float] = []
    app = create_app(make_settings(**overrides), opener=opener, sleep=sleeps.append, clock=clock)
    return TestClient(app), sleeps


def _opener() -> FakeOpener:
    opener = lastfm_ok(FakeOpener())
    return opener.add("GET", f"{DISCOGS}/releases/1234", reply(200, raw_release()))


def test_two_track_session_scrobbles_each_track() -> None:
    clock = FakeClock()
    opener = _opener()
    client, _ = _client(opener, clock)
    connect_lastfm(client)

    res = client.post("/session/start", json={"releaseId": "1234"})
    assert res.status_code == 200
    session = res.json()["session"]
    started_ms = int(clock.now * 1000)
    assert session["state"] == "running"
    assert session["currentIndex"] == 0
    assert session["startedAt"] == started_ms
    assert session["release"]["title"] == "Kind of Blue"
    assert [t["startedAt"] for t in session["tracks"]] == [started_ms, None]

    clock.advance(241)
    session = client.post(f"/session/{session['id']}/next").json()["session"]
    assert session["state"] == "running"
    assert session["currentIndex"] == 1
    assert session["tracks"][0]["status"] == "scrobbled"
    assert session["tracks"][1]["startedAt"] == started_ms + 241_000

    clock.advance(181)
    session = client.post(f"/session/{session['id']}/next").json()["session"]
    assert session["state"] == "ended"
    assert session["currentIndex"] == 1
    assert [t["status"] for t in session["tracks"]] == ["scrobbled", "scrobbled"]

    scrobbles = opener.lastfm_calls("track.scrobble")
    assert [s["track"] for s in scrobbles] == ["So What", "Freddie Freeloader"]
    assert [int(s["timestamp"]) for s in scrobbles] == [started_ms // 1000, started_ms // 1000 + 241]
    assert scrobbles[0]["sk"] == "sk-123"
    assert len(opener.lastfm_calls("track.updateNowPlaying")) == 2

    current = client.get("/session/current").json()["session"]
    assert current["id"] == session["id"]
    assert current["state"] == "ended"


def test_pause_and_resume_keep_track_state() -> None:
    clock = FakeClock()
    client, _ = _client(_opener(), clock)
    connect_lastfm(client)
    session = client.post("/session/start", json={"releaseId": "1234"}).json()["session"]

    paused = client.post(f"/session/{session['id']}/pause").json()["session"]
    assert paused["state"] == "paused"
    assert paused["tracks"] == session["tracks"]

    clock.advance(60)
    resumed = client.post(f"/session/{session['id']}/resume").json()["session"]
    assert resumed["state"] == "running"
    assert resumed["tracks"] == session["tracks"]
    assert resumed["currentIndex"] == 0


def test_end_twice_scrobbles_once() -> None:
    opener = _opener()
    client, _ = _client(opener, FakeClock())
    connect_lastfm(client)
    session_id = client.post("/session/start", json={"releaseId": "1234"}).json()["session"]["id"]

    first = client.post(f"/session/{session_id}/end")
    second = client.post(f"/session/{session_id}/end")

    assert first.status_code == second.status_code == 200
    assert first.json()["session"] == second.json()["session"]
    assert first.json()["session"]["tracks"][1]["status"] == "pending"
    assert len(opener.lastfm_calls("track.scrobble")) == 1

    after = client.post(f"/session/{session_id}/next").json()["session"]
    assert after == first.json()["session"]
    assert len(opener.lastfm_calls("track.scrobble")) == 1


def test_scrobble_failure_does_not_undo_transition() -> None:
    clock = FakeClock()
    opener = _opener()
    client, _ = _client(opener, clock)
    connect_lastfm(client)
    session_id = client.post("/session/start", json={"releaseId": "1234"}).json()["session"]["id"]

    opener.add("POST", LASTFM, reply(403, {"error": 9, "message": "Invalid session key"}))
    res = client.post(f"/session/{session_id}/next")
    assert res.status_code == 200
    assert res.json()["session"]["currentIndex"] == 1


def test_session_actions_need_lastfm() -> None:
    opener = _opener()
    client, _ = _client(opener, FakeClock())

    res = client.post("/session/start", json={"releaseId": "1234"})
    assert res.status_code == 401
    assert res.json()["error"]["code"] == "LASTFM_NOT_CONNECTED"
    assert opener.calls_to(DISCOGS) == []

    res = client.post("/session/whatever/pause")
    assert res.status_code == 401


def test_non_numeric_release_id_never_reaches_discogs() -> None:
    opener = _opener()
    client, _ = _client(opener, FakeClock())
    connect_lastfm(client)

    res = client.post("/session/start", json={"releaseId": "abc"})
    assert res.status_code == 400
    body = res.json()["error"]
    assert body["code"] == "INVALID_RELEASE_ID"
    assert body["requestId"]
    assert opener.calls_to(DISCOGS) == []


def test_missing_release_id_is_validation_error() -> None:
    client, _ = _client(_opener(), FakeClock())
    res = client.post("/session/start", json={})
    assert res.status_code == 400
    body = res.json()["error"]
    assert body["code"] == "VALIDATION_ERROR"
    assert "releaseId" in body["details"]


def test_release_without_tracks_is_rejected() -> None:
    opener = lastfm_ok(FakeOpener()).add(
        "GET", f"{DISCOGS}/releases/55", reply(200, {"id": 55, "title": "Empty", "tracklist": []})
    )
    client, _ = _client(opener, FakeClock())
    connect_lastfm(client)

    res = client.post("/session/start", json={"releaseId": "55"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"
    assert client.get("/session/current").json() == {"session": None}


def test_other_users_session_is_not_found() -> None:
    opener = _opener()
    app = create_app(make_settings(), opener=opener, sleep=lambda _: None, clock=FakeClock())
    owner, intruder = TestClient(app), TestClient(app)
    connect_lastfm(owner)
    connect_lastfm(intruder)
    session_id = owner.post("/session/start", json={"releaseId": "1234"}).json()["session"]["id"]

    for action in ("pause", "resume", "next", "end"):
        res = intruder.post(f"/session/{session_id}/{action}")
        assert res.status_code == 404
        assert res.json()["error"]["code"] == "SESSION_NOT_FOUND"

    assert intruder.get("/session/current").json() == {"session": None}
    assert owner.get("/session/current").json()["session"]["state"] == "running"


def test_unknown_session_is_not_found() -> None:
    client, _ = _client(_opener(), FakeClock())
    connect_lastfm(client)
    res = client.post("/session/does-not-exist/next")
    assert res.status_code == 404


def test_discogs_rate_limit_surfaces_retry_after() -> None:
    opener = lastfm_ok(FakeOpener()).add(
        "GET", f"{DISCOGS}/releases/1234", reply(429, {}, {"Retry-After": "3"})
    )
    client, sleeps = _client(opener, FakeClock())
    connect_lastfm(client)

    res = client.post("/session/start", json={"releaseId": "1234"})
    assert res.status_code == 429
    assert res.json()["error"]["code"] == "DISCOGS_RATE_LIMIT"
    assert res.headers["retry-after"] == "3"
    assert len(opener.calls_to(f"{DISCOGS}/releases/1234")) == 2
    assert sleeps == [3.0]
    assert client.get("/session/current").json() == {"session": None}


def test_first_contact_error_still_issues_identity_cookie() -> None:
    client, _ = _client(_opener(), FakeClock())

    res = client.post("/session/start", json={"releaseId": "1234"})
    assert res.status_code == 401
    minted = res.cookies.get("now_spinning_session")
    assert minted

    res = client.post("/session/start", json={"releaseId": "1234"})
    assert res.status_code == 401
    assert "now_spinning_session" not in res.cookies
    assert client.cookies.get("now_spinning_session") == minted
