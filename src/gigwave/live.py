"""Live gig operations: song requests, votes and the now playing pointer.

Request statuses only move forward::

    pending -> accepted -> played
    pending -> rejected

Artist operations require the caller to own the gig, and those that move a
request or now playing refuse ended and cancelled gigs. Audience operations
require the gig to be live and the caller to be within the interaction
radius; the radius check itself happens upstream and arrives here as the
``interactive`` flag.
"""

from datetime import datetime

from .errors import FailedPrecondition, InvalidArgument, NotFound
from .gigs import GigOperations
from .logging import get_logger
from .models import (
    Gig,
    GigStatus,
    NowPlaying,
    NowPlayingSource,
    QueueEntry,
    RequestStatus,
    SongRequest,
    Vote,
)
from .playlist import effective_playlist_for_gig
from .store import new_id

logger = get_logger(__name__)


def order_queue(requests: list[SongRequest], votes: dict[str, int]) -> list[QueueEntry]:
    """Most votes first; ties go to the oldest request.

    ``requests`` must already be in submission order so that requests with
    equal votes and timestamps keep that order.
    """
    entries = [QueueEntry(request=r, votes=votes.get(r.id, 0)) for r in requests]
    return sorted(entries, key=lambda e: (-e.votes, e.request.created_at))


class LiveGigService(GigOperations):
    """Operations invoked from the artist console and the audience live view."""

    def _get_request(self, gig_id: str, request_id: str) -> SongRequest:
        request = self.store.get_request(gig_id, request_id) if request_id else None
        if request is None:
            raise NotFound("Request not found.")
        return request

    def _require_open(self, gig: Gig) -> None:
        if gig.status in (GigStatus.ENDED, GigStatus.CANCELLED):
            raise FailedPrecondition(f"Gig is {gig.status.value}.")

    def _require_interactive(self, gig: Gig, interactive: bool) -> None:
        if gig.status != GigStatus.LIVE:
            raise FailedPrecondition("Gig is not live.")
        if not interactive:
            raise FailedPrecondition("You must be near the venue to interact with this gig.")

    def _request_now_playing(self, request: SongRequest) -> NowPlaying:
        now = self.clock()
        return NowPlaying(
            song_name=request.song_name,
            source=NowPlayingSource.REQUEST,
            request_id=request.id,
            started_at=now,
            updated_at=now,
        )

    def _write_now_playing(self, gig: Gig, now_playing: NowPlaying, now: datetime) -> None:
        if not self.store.set_now_playing(gig.id, now_playing, now):
            # Ended between our read and write
            raise FailedPrecondition("Gig is no longer open.")

    def _transition(
        self,
        gig: Gig,
        request: SongRequest,
        expected: RequestStatus,
        target: RequestStatus,
        **kwargs,
    ) -> None:
        if request.status != expected:
            raise FailedPrecondition(
                f"Request is {request.status.value}; only {expected.value} requests can be {target.value}."
            )
        moved = self.store.transition_request(
            gig.id, request.id, expected, target, self.clock(), **kwargs
        )
        if not moved:
            # Another call moved the request or closed the gig since our read
            raise FailedPrecondition(f"Request is no longer {expected.value}.")
        logger.info(f"request_{target.value}", request_id=request.id, song=request.song_name)

    # Artist operations
    def accept_request(self, gig_id: str, request_id: str, caller_id: str | None) -> None:
        """Accept a pending request and make it the now playing track."""
        gig = self._get_gig_as_artist(gig_id, caller_id)
        self._require_open(gig)
        request = self._get_request(gig_id, request_id)
        self._transition(
            gig,
            request,
            RequestStatus.PENDING,
            RequestStatus.ACCEPTED,
            now_playing=self._request_now_playing(request),
        )

    def reject_request(self, gig_id: str, request_id: str, caller_id: str | None) -> None:
        """Reject a pending request. Now playing is left alone."""
        gig = self._get_gig_as_artist(gig_id, caller_id)
        self._require_open(gig)
        request = self._get_request(gig_id, request_id)
        self._transition(gig, request, RequestStatus.PENDING, RequestStatus.REJECTED)

    def mark_played(self, gig_id: str, request_id: str, caller_id: str | None) -> None:
        """Mark an accepted request as played.

        Now playing is cleared only if it still points at this request.
        """
        gig = self._get_gig_as_artist(gig_id, caller_id)
        self._require_open(gig)
        request = self._get_request(gig_id, request_id)
        self._transition(
            gig,
            request,
            RequestStatus.ACCEPTED,
            RequestStatus.PLAYED,
            clear_now_playing_for_request=True,
        )

    def set_now_playing(self, gig_id: str, request_id: str, caller_id: str | None) -> None:
        """Point now playing at any request without changing its status."""
        gig = self._get_gig_as_artist(gig_id, caller_id)
        self._require_open(gig)
        request = self._get_request(gig_id, request_id)
        self._write_now_playing(gig, self._request_now_playing(request), self.clock())
        logger.info("now_playing_set", source="request", request_id=request.id)

    def set_now_playing_from_playlist(
        self, gig_id: str, track_index: int, caller_id: str | None
    ) -> None:
        """Point now playing at a track of the gig's effective playlist."""
        if isinstance(track_index, bool) or not isinstance(track_index, int):
            raise InvalidArgument("trackIndex is required")

        gig = self._get_gig_as_artist(gig_id, caller_id)
        self._require_open(gig)
        tracks = effective_playlist_for_gig(gig, self.store)
        if not 0 <= track_index < len(tracks):
            raise NotFound("Track not found in playlist")

        track = tracks[track_index]
        now = self.clock()
        self._write_now_playing(
            gig,
            NowPlaying(
                song_name=track.title,
                source=NowPlayingSource.PLAYLIST,
                track_index=track_index,
                started_at=now,
                updated_at=now,
            ),
            now,
        )
        logger.info("now_playing_set", source="playlist", track_index=track_index)

    def end_gig(self, gig_id: str, caller_id: str | None) -> None:
        """End the gig and clear now playing."""
        if not gig_id:
            raise InvalidArgument("gigId is required")

        gig = self._get_gig_as_artist(gig_id, caller_id)
        if gig.status == GigStatus.CANCELLED:
            raise FailedPrecondition("Gig was cancelled")
        if gig.status == GigStatus.ENDED or not self.store.end_gig(gig.id, self.clock()):
            raise FailedPrecondition("Gig is already ended")
        logger.info("gig_ended", previous_status=gig.status.value)

    # Audience operations
    def submit_request(
        self,
        gig_id: str,
        caller_id: str | None,
        song_name: str,
        message: str | None = None,
        *,
        interactive: bool,
        custom: bool = True,
    ) -> str:
        """Submit a song request to a live gig. Returns the new request ID."""
        caller = self._require_caller(caller_id, gig_id)
        gig = self._get_gig(gig_id)
        self._require_interactive(gig, interactive)

        song = (song_name or "").strip()
        if not song:
            raise InvalidArgument("Song name is required.")
        note = (message or "").strip() or None

        request = SongRequest(
            id=new_id(),
            gig_id=gig.id,
            user_id=caller,
            song_name=song,
            message=note,
            custom=custom,
            created_at=self.clock(),
        )
        self.store.insert_request(request)
        logger.info("request_submitted", request_id=request.id, song=song, custom=custom)
        return request.id

    def vote_request(
        self, gig_id: str, request_id: str, caller_id: str | None, *, interactive: bool
    ) -> None:
        """Vote for a request. Voting twice counts once."""
        caller = self._require_caller(caller_id, gig_id)
        gig = self._get_gig(gig_id)
        request = self._get_request(gig_id, request_id)
        self._require_interactive(gig, interactive)

        self.store.upsert_vote(
            Vote(gig_id=gig.id, request_id=request.id, user_id=caller, created_at=self.clock())
        )
        logger.info("request_voted", request_id=request.id)

    # Read side
    def vote_counts(self, gig_id: str) -> dict[str, int]:
        return self.store.vote_counts(gig_id)

    def request_queue(self, gig_id: str, pending_only: bool = False) -> list[QueueEntry]:
        """Requests in priority order, recomputed on every read."""
        self._get_gig(gig_id)
        requests = self.store.list_requests(gig_id)
        if pending_only:
            requests = [r for r in requests if r.status == RequestStatus.PENDING]
        return order_queue(requests, self.store.vote_counts(gig_id))

    def next_request(self, gig_id: str) -> SongRequest | None:
        """The pending request the artist should look at first."""
        queue = self.request_queue(gig_id, pending_only=True)
        return queue[0].request if queue else None
