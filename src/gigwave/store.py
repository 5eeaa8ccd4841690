"""SQLite document store for gigwave.

Holds:
- Gig documents, with their song requests and votes
- Artist playlists
- Artist master catalogs

Nested documents (venue, playlist source, now playing, track lists) are
stored as JSON columns. Counter updates are done in SQL so concurrent
writers never lose an increment.
"""

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator

from pydantic import TypeAdapter

from .models import (
    Gig,
    GigStatus,
    NowPlaying,
    Playlist,
    PlaylistSource,
    RequestStatus,
    SongRequest,
    Track,
    Vote,
    vote_id,
)

_playlist_source_adapter: TypeAdapter[PlaylistSource] = TypeAdapter(PlaylistSource)

COUNTER_COLUMNS = {
    RequestStatus.ACCEPTED: "accepted_requests_count",
    RequestStatus.REJECTED: "rejected_requests_count",
    RequestStatus.PLAYED: "played_requests_count",
}

TIMESTAMP_COLUMNS = {
    RequestStatus.ACCEPTED: "accepted_at",
    RequestStatus.REJECTED: "rejected_at",
    RequestStatus.PLAYED: "played_at",
}

CLOSED_STATUSES = (GigStatus.ENDED.value, GigStatus.CANCELLED.value)


def new_id() -> str:
    """Generate a document ID."""
    return uuid.uuid4().hex


def _dump(model: Any) -> str | None:
    if model is None:
        return None
    return model.model_dump_json()


def _dump_tracks(tracks: list[Track]) -> str:
    return json.dumps([t.model_dump(mode="json") for t in tracks])


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class GigStore:
    """SQLite-backed store for gigs, requests, votes and playlists."""

    def __init__(self, db_path: Path | str):
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._ensure_db_exists()
        self._create_tables()

    def _ensure_db_exists(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Open a connection; commit on success, roll back on error."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        with self._get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS gigs (
                    id TEXT PRIMARY KEY,
                    artist_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    venue_json TEXT NOT NULL,
                    date TEXT,
                    time TEXT,
                    status TEXT,
                    song_limit INTEGER NOT NULL DEFAULT 20,
                    playlist_source_json TEXT,
                    now_playing_json TEXT,
                    accepted_requests_count INTEGER NOT NULL DEFAULT 0,
                    rejected_requests_count INTEGER NOT NULL DEFAULT 0,
                    played_requests_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    ended_at TEXT,
                    cancelled_at TEXT
                );

                CREATE TABLE IF NOT EXISTS requests (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    gig_id TEXT NOT NULL REFERENCES gigs(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    song_name TEXT NOT NULL,
                    message TEXT,
                    custom INTEGER NOT NULL DEFAULT 1,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL,
                    accepted_at TEXT,
                    rejected_at TEXT,
                    played_at TEXT
                );

                CREATE TABLE IF NOT EXISTS votes (
                    id TEXT PRIMARY KEY,
                    gig_id TEXT NOT NULL REFERENCES gigs(id) ON DELETE CASCADE,
                    request_id TEXT NOT NULL REFERENCES requests(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS playlists (
                    id TEXT PRIMARY KEY,
                    artist_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    tracks_json TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS master_catalogs (
                    artist_id TEXT PRIMARY KEY,
                    tracks_json TEXT NOT NULL DEFAULT '[]',
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_gigs_status ON gigs(status);
                CREATE INDEX IF NOT EXISTS idx_requests_gig ON requests(gig_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_votes_gig ON votes(gig_id, request_id);
                CREATE INDEX IF NOT EXISTS idx_playlists_artist ON playlists(artist_id);
            """)

    # Gigs
    def _row_to_document(self, row: sqlite3.Row) -> dict[str, Any]:
        doc = dict(row)
        doc["venue"] = json.loads(doc.pop("venue_json"))
        source = doc.pop("playlist_source_json")
        doc["playlist_source"] = json.loads(source) if source else None
        now_playing = doc.pop("now_playing_json")
        doc["now_playing"] = json.loads(now_playing) if now_playing else None
        return doc

    def insert_gig(self, gig: Gig) -> None:
        """Store a new gig document."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO gigs (
                    id, artist_id, title, venue_json, date, time, status, song_limit,
                    playlist_source_json, now_playing_json,
                    accepted_requests_count, rejected_requests_count, played_requests_count,
                    created_at, updated_at, ended_at, cancelled_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    gig.id,
                    gig.artist_id,
                    gig.title,
                    gig.venue.model_dump_json(),
                    gig.date,
                    gig.time,
                    gig.status.value,
                    gig.song_limit,
                    _dump(gig.playlist_source),
                    _dump(gig.now_playing),
                    gig.accepted_requests_count,
                    gig.rejected_requests_count,
                    gig.played_requests_count,
                    _iso(gig.created_at),
                    _iso(gig.updated_at),
                    _iso(gig.ended_at),
                    _iso(gig.cancelled_at),
                ),
            )

    def get_gig(self, gig_id: str) -> Gig | None:
        """Load a gig by ID."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM gigs WHERE id = ?", (gig_id,)).fetchone()
        if row is None:
            return None
        return Gig.model_validate(self._row_to_document(row))

    def list_gig_documents(self) -> list[dict[str, Any]]:
        """All gig documents as raw dicts, unvalidated.

        Used by the lifecycle sweep so one malformed document can be
        reported without failing the whole listing.
        """
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM gigs ORDER BY created_at").fetchall()
        return [self._row_to_document(row) for row in rows]

    def list_gigs(self, artist_id: str | None = None, status: GigStatus | None = None) -> list[Gig]:
        """List gigs, optionally filtered by artist and status."""
        clauses: list[str] = []
        params: list[Any] = []
        if artist_id is not None:
            clauses.append("artist_id = ?")
            params.append(artist_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM gigs {where} ORDER BY date, time", params
            ).fetchall()
        return [Gig.model_validate(self._row_to_document(row)) for row in rows]

    def set_gig_status(
        self,
        gig_id: str,
        status: GigStatus,
        now: datetime,
        *,
        expected_status: str | None = None,
        ended: bool = False,
        cancelled: bool = False,
        clear_now_playing: bool = False,
    ) -> bool:
        """Write a new status.

        Args:
            gig_id: Gig to update
            status: New status
            now: Timestamp for updated_at (and ended_at / cancelled_at)
            expected_status: Only write if the stored status is exactly this value
            ended: Also record ended_at
            cancelled: Also record cancelled_at
            clear_now_playing: Also clear the now playing pointer

        Returns:
            False if the gig does not exist or its status no longer matches
        """
        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [status.value, _iso(now)]
        if ended:
            assignments.append("ended_at = ?")
            params.append(_iso(now))
        if cancelled:
            assignments.append("cancelled_at = ?")
            params.append(_iso(now))
        if clear_now_playing:
            assignments.append("now_playing_json = NULL")

        where = "id = ?"
        params.append(gig_id)
        if expected_status is not None:
            where += " AND status = ?"
            params.append(expected_status)

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE gigs SET {', '.join(assignments)} WHERE {where}", params
            )
            return cursor.rowcount == 1

    def end_gig(self, gig_id: str, now: datetime) -> bool:
        """End a gig unless it is already ended or cancelled.

        Returns False when the gig was already closed, leaving it untouched.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE gigs
                SET status = ?, ended_at = ?, updated_at = ?, now_playing_json = NULL
                WHERE id = ? AND status NOT IN (?, ?)
                """,
                (
                    GigStatus.ENDED.value,
                    _iso(now),
                    _iso(now),
                    gig_id,
                    GigStatus.ENDED.value,
                    GigStatus.CANCELLED.value,
                ),
            )
            return cursor.rowcount == 1

    def set_now_playing(self, gig_id: str, now_playing: NowPlaying | None, now: datetime) -> bool:
        """Point now playing somewhere new. Ended or cancelled gigs are left alone.

        Returns:
            False if the gig does not exist or is closed
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE gigs SET now_playing_json = ?, updated_at = ?
                WHERE id = ? AND status NOT IN (?, ?)
                """,
                (_dump(now_playing), _iso(now), gig_id, *CLOSED_STATUSES),
            )
            return cursor.rowcount == 1

    def set_playlist_source(
        self, gig_id: str, source: PlaylistSource | None, now: datetime
    ) -> None:
        """Replace the gig's primary track source.

        The column holds one variant at a time, so attaching a playlist
        drops any embedded list and vice versa.
        """
        payload = _playlist_source_adapter.dump_json(source).decode() if source else None
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE gigs SET playlist_source_json = ?, updated_at = ? WHERE id = ?",
                (payload, _iso(now), gig_id),
            )

    def set_song_limit(self, gig_id: str, song_limit: int, now: datetime) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE gigs SET song_limit = ?, updated_at = ? WHERE id = ?",
                (song_limit, _iso(now), gig_id),
            )

    # Requests
    def _row_to_request(self, row: sqlite3.Row) -> SongRequest:
        doc = dict(row)
        doc.pop("seq", None)
        doc["custom"] = bool(doc["custom"])
        return SongRequest.model_validate(doc)

    def insert_request(self, request: SongRequest) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO requests (
                    id, gig_id, user_id, song_name, message, custom, status,
                    created_at, accepted_at, rejected_at, played_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    request.id,
                    request.gig_id,
                    request.user_id,
                    request.song_name,
                    request.message,
                    int(request.custom),
                    request.status.value,
                    _iso(request.created_at),
                    _iso(request.accepted_at),
                    _iso(request.rejected_at),
                    _iso(request.played_at),
                ),
            )

    def get_request(self, gig_id: str, request_id: str) -> SongRequest | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM requests WHERE gig_id = ? AND id = ?", (gig_id, request_id)
            ).fetchone()
        return self._row_to_request(row) if row else None

    def list_requests(self, gig_id: str) -> list[SongRequest]:
        """Requests for a gig, oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM requests WHERE gig_id = ? ORDER BY created_at, seq", (gig_id,)
            ).fetchall()
        return [self._row_to_request(row) for row in rows]

    def transition_request(
        self,
        gig_id: str,
        request_id: str,
        expected: RequestStatus,
        target: RequestStatus,
        now: datetime,
        *,
        now_playing: NowPlaying | None = None,
        clear_now_playing_for_request: bool = False,
    ) -> bool:
        """Move a request between statuses and bump the matching gig counter.

        Both writes happen in one transaction. The request update only
        matches if the request is still in ``expected`` and its gig is not
        ended or cancelled, so a concurrent transition of the same request
        cannot double-count.

        Args:
            gig_id: Owning gig
            request_id: Request to transition
            expected: Status the request must currently have
            target: New status (accepted, rejected or played)
            now: Timestamp for the transition
            now_playing: If given, becomes the gig's now playing pointer
            clear_now_playing_for_request: Clear now playing if it points at this request

        Returns:
            False if the request was not in ``expected`` or the gig is
            closed; nothing is written
        """
        counter = COUNTER_COLUMNS[target]
        stamp = TIMESTAMP_COLUMNS[target]

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE requests SET status = ?, {stamp} = ?
                WHERE gig_id = ? AND id = ? AND status = ?
                AND EXISTS (SELECT 1 FROM gigs WHERE id = ? AND status NOT IN (?, ?))
                """,
                (
                    target.value,
                    _iso(now),
                    gig_id,
                    request_id,
                    expected.value,
                    gig_id,
                    *CLOSED_STATUSES,
                ),
            )
            if cursor.rowcount != 1:
                return False

            assignments = [f"{counter} = {counter} + 1", "updated_at = ?"]
            params: list[Any] = [_iso(now)]
            if now_playing is not None:
                assignments.append("now_playing_json = ?")
                params.append(_dump(now_playing))
            elif clear_now_playing_for_request:
                assignments.append(
                    "now_playing_json = CASE "
                    "WHEN json_extract(now_playing_json, '$.request_id') = ? THEN NULL "
                    "ELSE now_playing_json END"
                )
                params.append(request_id)
            params.append(gig_id)

            conn.execute(f"UPDATE gigs SET {', '.join(assignments)} WHERE id = ?", params)
            return True

    # Votes
    def upsert_vote(self, vote: Vote) -> None:
        """Record a vote. A repeat vote by the same user on the same request is a no-op."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO votes (id, gig_id, request_id, user_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO NOTHING
                """,
                (
                    vote_id(vote.request_id, vote.user_id),
                    vote.gig_id,
                    vote.request_id,
                    vote.user_id,
                    _iso(vote.created_at),
                ),
            )

    def vote_counts(self, gig_id: str) -> dict[str, int]:
        """Distinct voters per request ID."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT request_id, COUNT(DISTINCT user_id) AS votes
                FROM votes WHERE gig_id = ? GROUP BY request_id
                """,
                (gig_id,),
            ).fetchall()
        return {row["request_id"]: row["votes"] for row in rows}

    def voted_request_ids(self, gig_id: str, user_id: str) -> set[str]:
        """Requests the given user has voted on."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT request_id FROM votes WHERE gig_id = ? AND user_id = ?",
                (gig_id, user_id),
            ).fetchall()
        return {row["request_id"] for row in rows}

    # Playlists
    def _row_to_playlist(self, row: sqlite3.Row) -> Playlist:
        doc = dict(row)
        doc["tracks"] = json.loads(doc.pop("tracks_json"))
        return Playlist.model_validate(doc)

    def insert_playlist(self, playlist: Playlist) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO playlists (id, artist_id, name, description, tracks_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    playlist.id,
                    playlist.artist_id,
                    playlist.name,
                    playlist.description,
                    _dump_tracks(playlist.tracks),
                    _iso(playlist.created_at),
                    _iso(playlist.updated_at),
                ),
            )

    def get_playlist(self, playlist_id: str) -> Playlist | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,)).fetchone()
        return self._row_to_playlist(row) if row else None

    def list_playlists(self, artist_id: str) -> list[Playlist]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM playlists WHERE artist_id = ? ORDER BY created_at", (artist_id,)
            ).fetchall()
        return [self._row_to_playlist(row) for row in rows]

    def update_playlist(self, playlist: Playlist) -> None:
        """Overwrite a playlist's name, description and tracks."""
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE playlists SET name = ?, description = ?, tracks_json = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    playlist.name,
                    playlist.description,
                    _dump_tracks(playlist.tracks),
                    _iso(playlist.updated_at),
                    playlist.id,
                ),
            )

    def delete_playlist(self, playlist_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))
            return cursor.rowcount == 1

    # Master catalogs
    def get_master_catalog(self, artist_id: str) -> list[Track]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT tracks_json FROM master_catalogs WHERE artist_id = ?", (artist_id,)
            ).fetchone()
        if row is None:
            return []
        return [Track.model_validate(t) for t in json.loads(row["tracks_json"])]

    def set_master_catalog(self, artist_id: str, tracks: list[Track], now: datetime) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO master_catalogs (artist_id, tracks_json, updated_at)
                VALUES (?, ?, ?)
                """,
                (artist_id, _dump_tracks(tracks), _iso(now)),
            )
