from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen


Opener = Callable[..., Any]


class UpstreamUnavailable(RuntimeError):
    """Raised when an upstream call got no HTTP response at all."""


@dataclass
class UpstreamResponse:
    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.text())


def _lower_headers(headers: Any) -> Dict[str, str]:
    if not headers:
        return {}
    return {str(key).lower(): str(value) for key, value in headers.items()}


def send(
    method: str,
    url: str,
    *,
    opener: Opener = urlopen,
    headers: Optional[Mapping[str, str]] = None,
    form: Optional[Mapping[str, str]] = None,
    timeout_s: float = 5.0,
) -> UpstreamResponse:
    """Perform one HTTP exchange; non-2xx statuses come back as responses, not exceptions."""
    data = None
    all_headers = dict(headers or {})
    if form is not None:
        data = urlencode(form).encode("utf-8")
        all_headers.setdefault("Content-Type", "application/x-www-form-urlencoded")
    req = Request(url, method=method, data=data, headers=all_headers)
    try:
        with opener(req, timeout=timeout_s) as resp:
            return UpstreamResponse(
                status=int(getattr(resp, "status", 200)),
                body=resp.read(),
                headers=_lower_headers(resp.headers),
            )
    except HTTPError as err:
        body = err.read() if err.fp is not None else b""
        return UpstreamResponse(status=err.code, body=body, headers=_lower_headers(err.headers))
    except OSError as err:
        # URLError, socket timeouts and resets all land here.
        raise UpstreamUnavailable(f"{method} {url} failed: {err}") from err
