from __future__ import annotations

import base64
import hashlib
import hmac
import json
import threading
import time
from typing import Any, Callable, Dict, Optional


class InMemoryKeyValueStore:
    """Key-value store with optional per-key expiry.

    ``take`` reads and deletes under one lock, so a one-time record can only be
    consumed once. A networked store without conditional delete would leave a
    small read-then-delete window; that is acceptable for ten-minute OAuth
    state records.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._data: Dict[str, tuple[str, Optional[float]]] = {}

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, exp) in self._data.items() if exp is not None and exp <= now]
        for key in expired:
            self._data.pop(key, None)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._purge_expired()
            value = self._data.get(key)
            return None if value is None else value[0]

    def put(self, key: str, value: str, ttl_s: Optional[float] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl_s if ttl_s is not None else None
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def take(self, key: str) -> Optional[str]:
        with self._lock:
            self._purge_expired()
            value = self._data.pop(key, None)
            return None if value is None else value[0]

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        return None if raw is None else json.loads(raw)

    def put_json(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        self.put(key, json.dumps(value, separators=(",", ":")), ttl_s=ttl_s)

    def take_json(self, key: str) -> Any:
        raw = self.take(key)
        return None if raw is None else json.loads(raw)


class UserCookieSigner:
    """Signs the opaque user id carried in the identity cookie.

    The payload records when it was issued; ``loads`` rejects anything older
    than ``max_age_s`` even if the browser kept the cookie around.
    """

    def __init__(self, secret: str, *, max_age_s: int, clock: Callable[[], float] = time.time):
        self._secret = secret.encode("utf-8")
        self._max_age_s = max_age_s
        self._clock = clock

    def _sign(self, body: str) -> str:
        return hmac.new(self._secret, body.encode("utf-8"), hashlib.sha256).hexdigest()

    def dumps(self, user_id: str) -> str:
        payload = {"uid": user_id, "iat": int(self._clock())}
        body = base64.urlsafe_b64encode(
            json.dumps(payload, separators=(",", ":")).encode("utf-8")
        ).decode("ascii").rstrip("=")
        return f"{body}.{self._sign(body)}"

    def loads(self, token: str) -> Optional[str]:
        body, _, sig = token.partition(".")
        if not sig or not hmac.compare_digest(sig, self._sign(body)):
            return None
        try:
            payload = json.loads(base64.urlsafe_b64decode(body + "=" * (-len(body) % 4)))
        except (ValueError, UnicodeDecodeError):
            return None
        if not isinstance(payload, dict):
            return None
        uid, issued_at = payload.get("uid"), payload.get("iat")
        if not isinstance(uid, str) or not uid or not isinstance(issued_at, int):
            return None
        age = self._clock() - issued_at
        if age < 0 or age > self._max_age_s:
            return None
        return uid
