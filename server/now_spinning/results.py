from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Generic, Optional, TypeVar, Union


T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E
    ok: ClassVar[bool] = False


Result = Union[Ok[T], Err[E]]


@dataclass(frozen=True)
class UpstreamFailure:
    """Why an upstream HTTP call did not produce a usable payload.

    ``status`` is the upstream HTTP status, or None when the request never got
    a response (connection error, timeout) or the body could not be decoded.
    ``detail`` is the upstream's own error text, when its body carried one.
    """

    message: str
    status: Optional[int] = None
    retry_after: Optional[str] = None
    code: Optional[int] = None
    detail: Optional[str] = None

    @property
    def is_auth_failure(self) -> bool:
        # Last.fm: 4 = auth failed, 9 = invalid session key, 14 = token not authorized
        return self.code in {4, 9, 14}

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429 or self.code == 29
