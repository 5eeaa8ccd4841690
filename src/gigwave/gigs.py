"""Gig setup: creating gigs, choosing their playlist, managing catalogs."""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from .config import get_settings
from .errors import InvalidArgument, NotFound, PermissionDenied, Unauthenticated
from .lifecycle import scheduled_start
from .logging import bind_caller, get_logger
from .models import (
    AttachedPlaylist,
    EmbeddedPlaylist,
    Gig,
    GigStatus,
    Playlist,
    PlaylistSource,
    Track,
    Venue,
)
from .store import GigStore, new_id
from .tracks import normalize_tracks, track_key

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GigOperations:
    """Caller and ownership checks shared by artist and audience operations."""

    def __init__(self, store: GigStore, clock: Callable[[], datetime] = utc_now):
        """Initialize the service.

        Args:
            store: Gig document store
            clock: Returns the current time; injectable for tests
        """
        self.store = store
        self.clock = clock

    def _require_caller(self, caller_id: str | None, gig_id: str | None = None) -> str:
        bind_caller(caller_id, gig_id)
        if not caller_id:
            raise Unauthenticated("Sign in required.")
        return caller_id

    def _get_gig(self, gig_id: str) -> Gig:
        gig = self.store.get_gig(gig_id) if gig_id else None
        if gig is None:
            raise NotFound("Gig not found.")
        return gig

    def _get_gig_as_artist(self, gig_id: str, caller_id: str | None) -> Gig:
        caller = self._require_caller(caller_id, gig_id)
        gig = self._get_gig(gig_id)
        if gig.artist_id != caller:
            logger.warning("artist_check_failed", artist_id=gig.artist_id)
            raise PermissionDenied("Only the artist can do this.")
        return gig


def validate_song_limit(value: Any) -> int:
    """Song limit for a stored gig: default when unset, otherwise within bounds."""
    settings = get_settings()
    if value is None:
        return settings.default_song_limit
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument("Song limit must be a whole number.")
    if not settings.min_song_limit <= value <= settings.max_song_limit:
        raise InvalidArgument(
            f"Song limit must be between {settings.min_song_limit} and {settings.max_song_limit}."
        )
    return value


def embedded_tracks(raw_tracks: list[Any], song_limit: int) -> list[Track]:
    """Normalize tracks for embedding, dropping repeats, then keep the first ``song_limit``."""
    seen: set[str] = set()
    result: list[Track] = []
    for track in normalize_tracks(raw_tracks):
        key = track_key(track)
        if key in seen:
            continue
        seen.add(key)
        result.append(track)
    return result[:song_limit]


class GigService(GigOperations):
    """Artist-facing setup operations."""

    def create_gig(
        self,
        caller_id: str | None,
        title: str,
        venue: Venue,
        date: str,
        time: str,
        song_limit: int | None = None,
        playlist_id: str | None = None,
        tracks: list[Any] | None = None,
    ) -> Gig:
        """Create an upcoming gig owned by the caller.

        Args:
            caller_id: Artist creating the gig
            title: Gig title
            venue: Venue details
            date: Scheduled date, YYYY-MM-DD
            time: Scheduled start, HH:MM
            song_limit: Playlist length (5-60), default 20
            playlist_id: Saved playlist to attach
            tracks: Raw tracks to embed instead of attaching a playlist

        Returns:
            The stored gig
        """
        artist_id = self._require_caller(caller_id)

        if not (title or "").strip() or not (venue.name or "").strip():
            raise InvalidArgument("Please fill in title, date, time and venue name.")
        if not date or not time:
            raise InvalidArgument("Please fill in title, date, time and venue name.")
        try:
            scheduled_start(date, time, get_settings().venue_timezone)
        except ValueError:
            raise InvalidArgument(f"Invalid date or time: {date} {time}. Use YYYY-MM-DD and HH:MM.")

        if playlist_id and tracks is not None:
            raise InvalidArgument("Attach a saved playlist or embed tracks, not both.")
        limit = validate_song_limit(song_limit)

        source: PlaylistSource | None = None
        if playlist_id:
            self._get_own_playlist(playlist_id, artist_id)
            source = AttachedPlaylist(playlist_id=playlist_id)
        elif tracks is not None:
            source = EmbeddedPlaylist(tracks=embedded_tracks(tracks, limit))

        now = self.clock()
        gig = Gig(
            id=new_id(),
            artist_id=artist_id,
            title=title.strip(),
            venue=venue,
            date=date.strip(),
            time=time.strip(),
            status=GigStatus.UPCOMING,
            song_limit=limit,
            playlist_source=source,
            created_at=now,
            updated_at=now,
        )
        self.store.insert_gig(gig)
        logger.info("gig_created", gig_id=gig.id, date=gig.date, time=gig.time)
        return gig

    def _get_own_playlist(self, playlist_id: str, artist_id: str) -> Playlist:
        playlist = self.store.get_playlist(playlist_id)
        if playlist is None:
            raise NotFound("Playlist not found.")
        if playlist.artist_id != artist_id:
            raise PermissionDenied("You can only use your own playlists.")
        return playlist

    def attach_playlist(self, gig_id: str, playlist_id: str, caller_id: str | None) -> None:
        """Use a saved playlist as the gig's primary source, dropping any embedded list."""
        gig = self._get_gig_as_artist(gig_id, caller_id)
        self._get_own_playlist(playlist_id, gig.artist_id)
        self.store.set_playlist_source(gig.id, AttachedPlaylist(playlist_id=playlist_id), self.clock())
        logger.info("playlist_attached", playlist_id=playlist_id)

    def set_embedded_playlist(self, gig_id: str, tracks: list[Any], caller_id: str | None) -> None:
        """Store tracks on the gig itself, detaching any saved playlist.

        Repeated tracks are dropped, then anything beyond the gig's song limit.
        """
        gig = self._get_gig_as_artist(gig_id, caller_id)
        normalized = embedded_tracks(tracks, gig.song_limit)
        self.store.set_playlist_source(gig.id, EmbeddedPlaylist(tracks=normalized), self.clock())
        logger.info("playlist_embedded", tracks=len(normalized))

    def clear_playlist_source(self, gig_id: str, caller_id: str | None) -> None:
        """Remove the gig's primary source; the master catalog fills the playlist."""
        gig = self._get_gig_as_artist(gig_id, caller_id)
        self.store.set_playlist_source(gig.id, None, self.clock())
        logger.info("playlist_source_cleared")

    def update_song_limit(self, gig_id: str, song_limit: int, caller_id: str | None) -> None:
        gig = self._get_gig_as_artist(gig_id, caller_id)
        self.store.set_song_limit(gig.id, validate_song_limit(song_limit), self.clock())

    def create_playlist(
        self,
        caller_id: str | None,
        name: str,
        tracks: list[Any] | None = None,
        description: str = "",
    ) -> Playlist:
        """Save a reusable playlist for the caller."""
        artist_id = self._require_caller(caller_id)
        if not (name or "").strip():
            raise InvalidArgument("Playlist name is required.")

        now = self.clock()
        playlist = Playlist(
            id=new_id(),
            artist_id=artist_id,
            name=name.strip(),
            description=description or "",
            tracks=normalize_tracks(tracks or []),
            created_at=now,
            updated_at=now,
        )
        self.store.insert_playlist(playlist)
        logger.info("playlist_created", playlist_id=playlist.id, tracks=len(playlist.tracks))
        return playlist

    def list_playlists(self, caller_id: str | None) -> list[Playlist]:
        """The caller's saved playlists, oldest first."""
        return self.store.list_playlists(self._require_caller(caller_id))

    def update_playlist(
        self,
        playlist_id: str,
        caller_id: str | None,
        name: str | None = None,
        description: str | None = None,
        tracks: list[Any] | None = None,
    ) -> Playlist:
        """Change any of a saved playlist's name, description or tracks.

        Gigs with the playlist attached pick up the change on their next read.
        """
        artist_id = self._require_caller(caller_id)
        playlist = self._get_own_playlist(playlist_id, artist_id)

        changes: dict[str, Any] = {"updated_at": self.clock()}
        if name is not None:
            if not name.strip():
                raise InvalidArgument("Playlist name is required.")
            changes["name"] = name.strip()
        if description is not None:
            changes["description"] = description
        if tracks is not None:
            changes["tracks"] = normalize_tracks(tracks)

        updated = playlist.model_copy(update=changes)
        self.store.update_playlist(updated)
        logger.info("playlist_updated", playlist_id=playlist_id, fields=sorted(changes))
        return updated

    def delete_playlist(self, playlist_id: str, caller_id: str | None) -> None:
        """Delete a saved playlist.

        Gigs that still reference it fall back to the master catalog.
        """
        artist_id = self._require_caller(caller_id)
        self._get_own_playlist(playlist_id, artist_id)
        self.store.delete_playlist(playlist_id)
        logger.info("playlist_deleted", playlist_id=playlist_id)

    def set_master_catalog(self, caller_id: str | None, tracks: list[Any]) -> list[Track]:
        """Replace the caller's master catalog."""
        artist_id = self._require_caller(caller_id)
        normalized = normalize_tracks(tracks)
        self.store.set_master_catalog(artist_id, normalized, self.clock())
        logger.info("master_catalog_updated", tracks=len(normalized))
        return normalized
