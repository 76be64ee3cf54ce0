from __future__ import annotations

import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ..credentials import TokenVault
from ..discogs import DEFAULT_PER_PAGE, DiscogsClient
from ..errors import (
    INVALID_QUERY,
    INVALID_RELEASE_ID,
    NowSpinningError,
    discogs_failure,
    discogs_not_connected,
)
from .deps import _catalog, _vault, current_user


router = APIRouter(prefix="/discogs", tags=["discogs"])

_RELEASE_ID_RE = re.compile(r"[0-9]+")


def _unwrap(result: Any, message: str) -> Any:
    if result.ok:
        return result.value
    failure = result.error
    raise discogs_failure(failure.status or 502, message, failure.retry_after, failure.detail)


@router.get("/release/{release_id}")
def release(
    release_id: str,
    catalog: DiscogsClient = Depends(_catalog),
) -> Dict[str, Any]:
    if not _RELEASE_ID_RE.fullmatch(release_id):
        raise NowSpinningError(INVALID_RELEASE_ID, "Release id must be numeric", status_code=400)
    normalized = _unwrap(catalog.get_release(release_id), "Discogs release lookup failed")
    return {"release": normalized.to_dict()}


@router.get("/search")
def search(
    query: str = "",
    page: int = Query(default=1),
    per_page: int = Query(default=DEFAULT_PER_PAGE, alias="perPage"),
    catalog: DiscogsClient = Depends(_catalog),
) -> Dict[str, Any]:
    query = query.strip()
    if not query:
        raise NowSpinningError(INVALID_QUERY, "Query is required", status_code=400)
    return _unwrap(catalog.search(query, page=page, per_page=per_page), "Discogs search failed")


@router.get("/collection")
def collection(
    page: Optional[int] = Query(default=1),
    per_page: Optional[int] = Query(default=DEFAULT_PER_PAGE, alias="perPage"),
    user_id: str = Depends(current_user),
    vault: TokenVault = Depends(_vault),
    catalog: DiscogsClient = Depends(_catalog),
) -> Dict[str, Any]:
    token = vault.load(user_id).discogs
    if token is None or not token.access_token_secret:
        raise discogs_not_connected()
    return _unwrap(
        catalog.collection(user_id, token, page=page or 1, per_page=per_page or DEFAULT_PER_PAGE),
        "Discogs collection fetch failed",
    )
