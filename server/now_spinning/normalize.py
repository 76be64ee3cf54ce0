from __future__ import annotations

from typing import Any, Dict, List, Optional

from .models import SIDES, CatalogListItem, NormalizedRelease, NormalizedTrack


UNKNOWN_ARTIST = "Unknown Artist"
UNTITLED = "Untitled"


def parse_duration(value: Optional[str]) -> Optional[int]:
    """Parse a Discogs ``H:MM:SS`` / ``MM:SS`` / ``SS`` duration into seconds.

    Anything that is not one to three colon-separated non-negative integers
    yields None.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    parts = trimmed.split(":")
    if len(parts) > 3:
        return None
    numbers: List[int] = []
    for part in parts:
        part = part.strip()
        if not part.isdecimal():
            return None
        numbers.append(int(part))
    total = 0
    for number in numbers:
        total = total * 60 + number
    return total


def format_duration(seconds: int, parts: int = 2) -> str:
    """Inverse of parse_duration for ``parts`` fields (1 = SS, 2 = MM:SS, 3 = H:MM:SS)."""
    if seconds < 0:
        raise ValueError("seconds must be non-negative")
    if parts == 1:
        return str(seconds)
    if parts == 2:
        minutes, secs = divmod(seconds, 60)
        return f"{minutes}:{secs:02d}"
    if parts == 3:
        hours, rest = divmod(seconds, 3600)
        minutes, secs = divmod(rest, 60)
        return f"{hours}:{minutes:02d}:{secs:02d}"
    raise ValueError("parts must be 1, 2 or 3")


def derive_side(position: Optional[str]) -> Optional[str]:
    if not position:
        return None
    first = position.strip()[:1].upper()
    return first if first in SIDES else None


def _first_name(entries: Any) -> Optional[str]:
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, dict) and entry.get("name"):
            return str(entry["name"])
    return None


def _year(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    year = int(value)
    # Discogs uses 0 for "unknown".
    return year or None


def resolve_cover_url(images: Any) -> Optional[str]:
    if not isinstance(images, list) or not images:
        return None
    for image in images:
        if isinstance(image, dict) and image.get("type") == "primary" and image.get("uri"):
            return str(image["uri"])
    first = images[0]
    if isinstance(first, dict) and first.get("uri"):
        return str(first["uri"])
    return None


def normalize_release(raw: Dict[str, Any]) -> NormalizedRelease:
    release_artist = _first_name(raw.get("artists")) or UNKNOWN_ARTIST
    playable = [
        entry
        for entry in (raw.get("tracklist") or [])
        if isinstance(entry, dict) and entry.get("type_") != "heading"
    ]
    tracks = []
    for index, entry in enumerate(playable):
        position = str(entry.get("position") or "").strip() or str(index + 1)
        tracks.append(
            NormalizedTrack(
                position=position,
                title=str(entry.get("title") or UNTITLED),
                artist=_first_name(entry.get("artists")) or release_artist,
                duration_sec=parse_duration(entry.get("duration")),
                side=derive_side(position),
                index=index,
            )
        )
    release_id = raw.get("id")
    return NormalizedRelease(
        id="" if release_id is None else str(release_id),
        title=str(raw.get("title") or UNTITLED),
        artist=release_artist,
        year=_year(raw.get("year")),
        cover_url=resolve_cover_url(raw.get("images")),
        tracks=tuple(tracks),
    )


def normalize_search_item(result: Dict[str, Any]) -> Optional[CatalogListItem]:
    if not result.get("id"):
        return None
    raw_title = str(result.get("title") or "").strip() or UNTITLED
    title = raw_title
    artist = str(result.get("artist") or "").strip() or UNKNOWN_ARTIST
    # Search results fold the artist into the title as "Artist - Title".
    if not result.get("artist") and " - " in raw_title:
        maybe_artist, rest = raw_title.split(" - ", 1)
        artist = maybe_artist.strip() or artist
        title = rest.strip() or title
    return CatalogListItem(
        release_id=str(result["id"]),
        title=title,
        artist=artist,
        year=_year(result.get("year")),
        thumb_url=result.get("thumb") or result.get("cover_image") or None,
        formats=tuple(str(f) for f in result.get("format") or []),
    )


def normalize_collection_item(release: Dict[str, Any]) -> Optional[CatalogListItem]:
    basic = release.get("basic_information") or {}
    instance_id = release.get("id")
    release_id = basic.get("id")
    if not instance_id or not release_id:
        return None
    formats: List[str] = []
    for fmt in basic.get("formats") or []:
        words = [fmt.get("name")] + list(fmt.get("descriptions") or [])
        label = " ".join(str(w) for w in words if w).strip()
        if label and label not in formats:
            formats.append(label)
    return CatalogListItem(
        release_id=str(release_id),
        title=str(basic.get("title") or UNTITLED),
        artist=_first_name(basic.get("artists")) or UNKNOWN_ARTIST,
        year=_year(basic.get("year")),
        thumb_url=basic.get("thumb") or basic.get("cover_image") or None,
        formats=tuple(formats),
        instance_id=str(instance_id),
        date_added=release.get("date_added"),
    )
