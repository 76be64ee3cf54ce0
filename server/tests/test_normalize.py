import pytest

from now_spinning.normalize import (
    derive_side,
    format_duration,
    normalize_collection_item,
    normalize_release,
    normalize_search_item,
    parse_duration,
)


def test_parse_duration_formats() -> None:
    assert parse_duration("3:45") == 225
    assert parse_duration("01:02:03") == 3723
    assert parse_duration("42") == 42
    assert parse_duration(" 4:00 ") == 240


@pytest.mark.parametrize(
    "value", ["", "   ", "3:ab", "not-a-time", "1:2:3:4", "-1:30", ":30", "²", "3:²5", None]
)
def test_parse_duration_rejects_malformed(value) -> None:
    assert parse_duration(value) is None


def test_parse_duration_inverts_format_at_same_granularity() -> None:
    for seconds in (0, 1, 59, 60, 61, 599, 3599, 3600, 3661, 7322):
        assert parse_duration(format_duration(seconds, 1)) == seconds
        assert parse_duration(format_duration(seconds, 2)) == seconds
        assert parse_duration(format_duration(seconds, 3)) == seconds
    assert format_duration(225) == "3:45"
    assert format_duration(3723, 3) == "1:02:03"


def test_derive_side() -> None:
    assert derive_side("A1") == "A"
    assert derive_side("d4") == "D"
    assert derive_side("E1") is None
    assert derive_side("3") is None
    assert derive_side("") is None


def test_normalize_release_order_sides_and_fallbacks() -> None:
    normalized = normalize_release(
        {
            "id": 42,
            "title": "Test Release",
            "year": 1999,
            "artists": [{"name": "Release Artist"}],
            "images": [
                {"uri": "https://example.com/alt.jpg", "type": "secondary"},
                {"uri": "https://example.com/primary.jpg", "type": "primary"},
            ],
            "tracklist": [
                {"position": "A1", "title": "Intro", "duration": "1:00"},
                {"position": "", "title": "Side B", "type_": "heading"},
                {"position": "B2", "title": "Finale", "duration": "3:30", "artists": [{"name": "Guest"}]},
                {"position": "", "title": "Hidden", "duration": ""},
                {"position": "", "type_": "heading"},
            ],
        }
    )

    assert normalized.id == "42"
    assert normalized.artist == "Release Artist"
    assert normalized.cover_url == "https://example.com/primary.jpg"
    assert [t.index for t in normalized.tracks] == [0, 1, 2]
    assert [t.title for t in normalized.tracks] == ["Intro", "Finale", "Hidden"]

    first, second, third = normalized.tracks
    assert (first.position, first.side, first.duration_sec, first.artist) == ("A1", "A", 60, "Release Artist")
    assert (second.position, second.side, second.duration_sec, second.artist) == ("B2", "B", 210, "Guest")
    assert (third.position, third.side, third.duration_sec) == ("3", None, None)


def test_normalize_release_defaults_for_sparse_payload() -> None:
    normalized = normalize_release({"tracklist": [{"position": "1"}], "year": 0, "images": []})
    assert normalized.artist == "Unknown Artist"
    assert normalized.title == "Untitled"
    assert normalized.year is None
    assert normalized.cover_url is None
    assert normalized.tracks[0].title == "Untitled"
    assert normalized.tracks[0].artist == "Unknown Artist"


def test_normalize_release_is_stable_through_dict_copy() -> None:
    normalized = normalize_release({"id": 7, "title": "T", "tracklist": [{"position": "A1", "title": "x"}]})
    data = normalized.to_dict()
    assert data["tracks"][0] == {
        "position": "A1",
        "title": "x",
        "artist": "Unknown Artist",
        "durationSec": None,
        "side": "A",
        "index": 0,
    }
    assert type(normalized).from_dict(data) == normalized


def test_search_item_splits_artist_from_title() -> None:
    item = normalize_search_item({"id": 5, "title": "Nirvana - Nevermind", "year": 1991, "format": ["Vinyl", "LP"]})
    assert item is not None
    assert (item.artist, item.title, item.release_id) == ("Nirvana", "Nevermind", "5")
    assert item.formats == ("Vinyl", "LP")
    assert normalize_search_item({"title": "no id"}) is None


def test_collection_item_formats_and_ids() -> None:
    item = normalize_collection_item(
        {
            "id": 99,
            "date_added": "2024-01-01T00:00:00-08:00",
            "basic_information": {
                "id": 1234,
                "title": "Blue Train",
                "artists": [{"name": "John Coltrane"}],
                "formats": [
                    {"name": "Vinyl", "descriptions": ["LP", "Album"]},
                    {"name": "Vinyl", "descriptions": ["LP", "Album"]},
                ],
                "thumb": "https://img.example/t.jpg",
            },
        }
    )
    assert item is not None
    assert item.instance_id == "99"
    assert item.release_id == "1234"
    assert item.formats == ("Vinyl LP Album",)
    assert item.to_dict()["dateAdded"] == "2024-01-01T00:00:00-08:00"
    assert normalize_collection_item({"basic_information": {"id": 1}}) is None


def test_odd_duration_digits_leave_duration_unknown() -> None:
    normalized = normalize_release({"id": 1, "tracklist": [{"position": "A1", "title": "x", "duration": "3:²5"}]})
    assert normalized.tracks[0].duration_sec is None
