"""Effective playlist resolution.

The audience always sees a full-length playlist: the gig's own tracks come
first, then the artist's master catalog pads the list up to the song limit.
Padding tracks are tagged ``supplemented`` so the artist can tell them apart.
"""

import math
from collections.abc import Iterable
from typing import Any

from .config import get_settings
from .logging import get_logger
from .models import AttachedPlaylist, EmbeddedPlaylist, Gig, Track, TrackSource
from .store import GigStore
from .tracks import normalize_track, track_key

logger = get_logger(__name__)


def clamp_song_limit(raw_limit: Any) -> int:
    """Clamp a song limit into the allowed range.

    Non-numeric values (including bools and NaN) fall back to the default.
    Fractional limits round up, so 7.5 allows eight tracks.
    """
    settings = get_settings()
    if isinstance(raw_limit, bool) or not isinstance(raw_limit, (int, float)):
        return settings.default_song_limit
    if isinstance(raw_limit, float) and math.isnan(raw_limit):
        return settings.default_song_limit
    if raw_limit < settings.min_song_limit:
        return settings.min_song_limit
    if raw_limit > settings.max_song_limit:
        return settings.max_song_limit
    return math.ceil(raw_limit)


def compute_effective_playlist(
    primary: Iterable[Any] | None,
    master: Iterable[Any] | None,
    song_limit: Any = None,
) -> list[Track]:
    """Build the ordered, deduplicated track list for a gig.

    Args:
        primary: The gig's own tracks (raw entries or Tracks), in order
        master: The artist's master catalog, in order
        song_limit: Requested length; clamped with ``clamp_song_limit``

    Returns:
        At most ``song_limit`` tracks with no repeated dedup key; primary
        tracks first, then supplemented ones, each in source order
    """
    limit = clamp_song_limit(song_limit)
    seen: set[str] = set()
    result: list[Track] = []

    for raw_tracks, source in (
        (primary, TrackSource.PRIMARY),
        (master, TrackSource.SUPPLEMENTED),
    ):
        for raw in raw_tracks or ():
            if len(result) >= limit:
                return result

            track = normalize_track(raw)
            if track is None:
                continue

            key = track_key(track)
            if key in seen:
                continue

            seen.add(key)
            result.append(track.model_copy(update={"source": source}))

    return result


def resolve_primary_tracks(gig: Gig, store: GigStore) -> list[Track]:
    """The gig's own track list, following an attached playlist if set."""
    source = gig.playlist_source
    if isinstance(source, EmbeddedPlaylist):
        return list(source.tracks)
    if isinstance(source, AttachedPlaylist):
        playlist = store.get_playlist(source.playlist_id)
        if playlist is None:
            logger.warning(
                "attached_playlist_missing",
                gig_id=gig.id,
                playlist_id=source.playlist_id,
            )
            return []
        return list(playlist.tracks)
    return []


def effective_playlist_for_gig(gig: Gig, store: GigStore) -> list[Track]:
    """Resolve a stored gig's playlist against its artist's master catalog."""
    primary = resolve_primary_tracks(gig, store)
    master = store.get_master_catalog(gig.artist_id)
    tracks = compute_effective_playlist(primary, master, gig.song_limit)

    supplemented = sum(1 for t in tracks if t.source == TrackSource.SUPPLEMENTED)
    logger.debug(
        "effective_playlist_resolved",
        gig_id=gig.id,
        tracks=len(tracks),
        supplemented=supplemented,
    )
    return tracks
