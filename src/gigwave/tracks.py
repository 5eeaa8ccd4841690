"""Track normalization.

Track data arrives as bare song names or as dicts written by several
generations of clients (catalog search results, master playlist rows,
hand-entered songs). This module is the only place that knows those field
names; everything downstream works with ``Track``.
"""

from collections.abc import Mapping
from typing import Any

from .models import Track

UNTITLED = "Untitled track"

# Priority order per canonical field; first non-empty value wins.
EXTERNAL_ID_FIELDS = ("itunesId", "itunes_id", "external_id", "trackId", "id")
TITLE_FIELDS = ("title", "name", "trackName", "track_name")
ARTIST_FIELDS = ("artistName", "artist_name", "artist", "singer")

KEY_SEPARATOR = "::"


def _first_value(raw: Mapping[str, Any], fields: tuple[str, ...]) -> str | None:
    for field in fields:
        value = raw.get(field)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_track(raw: Any) -> Track | None:
    """Convert a raw track entry into a ``Track``.

    Args:
        raw: A song name, a dict using any known field aliases, or a Track

    Returns:
        Normalized Track (without provenance), or None for unusable input
    """
    if isinstance(raw, Track):
        return raw

    if isinstance(raw, str):
        return Track(title=raw.strip() or UNTITLED)

    if isinstance(raw, Mapping):
        return Track(
            external_id=_first_value(raw, EXTERNAL_ID_FIELDS),
            title=_first_value(raw, TITLE_FIELDS) or UNTITLED,
            artist_name=_first_value(raw, ARTIST_FIELDS),
        )

    return None


def normalize_tracks(raw_tracks: Any) -> list[Track]:
    """Normalize a list of raw entries, dropping unusable ones."""
    if not isinstance(raw_tracks, (list, tuple)):
        return []
    tracks = []
    for raw in raw_tracks:
        track = normalize_track(raw)
        if track is not None:
            tracks.append(track)
    return tracks


def track_key(track: Track) -> str:
    """Deduplication key for a track.

    Provenance is deliberately left out so the same song found in both the
    gig playlist and the master catalog collapses to one entry.
    """
    if track.external_id:
        return f"itunes:{track.external_id}"
    title = track.title.lower().strip()
    artist = (track.artist_name or "").lower().strip()
    return f"{title}{KEY_SEPARATOR}{artist}"
