"""Tests for live requests, votes and now playing."""

import pytest

from gigwave.errors import (
    FailedPrecondition,
    InvalidArgument,
    NotFound,
    PermissionDenied,
    Unauthenticated,
)
from gigwave.models import EmbeddedPlaylist, GigStatus, NowPlayingSource, RequestStatus, Track

from conftest import ARTIST, make_gig


def submit(live, gig, song="Wonderwall", user="fan-1", **kwargs):
    return live.submit_request(gig.id, user, song, interactive=True, **kwargs)


class TestArtistChecks:

    def test_requires_caller(self, live, gig):
        request_id = submit(live, gig)
        with pytest.raises(Unauthenticated):
            live.accept_request(gig.id, request_id, None)

    def test_requires_gig_owner(self, live, gig):
        request_id = submit(live, gig)
        with pytest.raises(PermissionDenied):
            live.accept_request(gig.id, request_id, "fan-1")

    def test_unknown_gig(self, live):
        with pytest.raises(NotFound):
            live.reject_request("missing", "req", ARTIST)

    def test_unknown_request(self, live, gig):
        with pytest.raises(NotFound):
            live.mark_played(gig.id, "missing", ARTIST)

    def test_error_result_is_tagged(self, live, gig):
        with pytest.raises(PermissionDenied) as exc:
            live.end_gig(gig.id, "fan-1")
        assert exc.value.to_result() == {
            "success": False,
            "error": {"kind": "permission-denied", "message": "Only the artist can do this."},
        }


class TestAccept:

    def test_accept_sets_now_playing_and_counter(self, live, store, gig):
        request_id = submit(live, gig, song="Yellow")
        live.accept_request(gig.id, request_id, ARTIST)

        request = store.get_request(gig.id, request_id)
        assert request.status == RequestStatus.ACCEPTED
        assert request.accepted_at is not None

        updated = store.get_gig(gig.id)
        assert updated.accepted_requests_count == 1
        assert updated.now_playing.song_name == "Yellow"
        assert updated.now_playing.request_id == request_id
        assert updated.now_playing.source == NowPlayingSource.REQUEST

    def test_accept_twice_fails(self, live, store, gig):
        request_id = submit(live, gig)
        live.accept_request(gig.id, request_id, ARTIST)
        with pytest.raises(FailedPrecondition):
            live.accept_request(gig.id, request_id, ARTIST)
        assert store.get_gig(gig.id).accepted_requests_count == 1

    def test_accept_rejected_fails(self, live, gig):
        request_id = submit(live, gig)
        live.reject_request(gig.id, request_id, ARTIST)
        with pytest.raises(FailedPrecondition):
            live.accept_request(gig.id, request_id, ARTIST)


class TestReject:

    def test_reject_leaves_now_playing(self, live, store, gig):
        first = submit(live, gig, song="First")
        second = submit(live, gig, song="Second")
        live.accept_request(gig.id, first, ARTIST)
        live.reject_request(gig.id, second, ARTIST)

        updated = store.get_gig(gig.id)
        assert store.get_request(gig.id, second).status == RequestStatus.REJECTED
        assert updated.rejected_requests_count == 1
        assert updated.now_playing.request_id == first

    def test_reject_accepted_fails(self, live, gig):
        request_id = submit(live, gig)
        live.accept_request(gig.id, request_id, ARTIST)
        with pytest.raises(FailedPrecondition):
            live.reject_request(gig.id, request_id, ARTIST)


class TestMarkPlayed:

    def test_pending_cannot_be_played(self, live, store, gig):
        request_id = submit(live, gig)
        with pytest.raises(FailedPrecondition):
            live.mark_played(gig.id, request_id, ARTIST)
        assert store.get_request(gig.id, request_id).status == RequestStatus.PENDING
        assert store.get_gig(gig.id).played_requests_count == 0

    def test_clears_matching_now_playing(self, live, store, gig):
        request_id = submit(live, gig)
        live.accept_request(gig.id, request_id, ARTIST)
        live.mark_played(gig.id, request_id, ARTIST)

        updated = store.get_gig(gig.id)
        assert store.get_request(gig.id, request_id).status == RequestStatus.PLAYED
        assert updated.played_requests_count == 1
        assert updated.now_playing is None

    def test_keeps_other_now_playing(self, live, store, gig):
        first = submit(live, gig, song="First")
        second = submit(live, gig, song="Second")
        live.accept_request(gig.id, first, ARTIST)
        live.accept_request(gig.id, second, ARTIST)

        live.mark_played(gig.id, first, ARTIST)

        updated = store.get_gig(gig.id)
        assert updated.now_playing.request_id == second
        assert updated.now_playing.song_name == "Second"

    def test_played_is_terminal(self, live, gig):
        request_id = submit(live, gig)
        live.accept_request(gig.id, request_id, ARTIST)
        live.mark_played(gig.id, request_id, ARTIST)
        with pytest.raises(FailedPrecondition):
            live.mark_played(gig.id, request_id, ARTIST)


class TestNowPlaying:

    def test_manual_override_keeps_status(self, live, store, gig):
        request_id = submit(live, gig, song="Manual")
        live.set_now_playing(gig.id, request_id, ARTIST)

        assert store.get_request(gig.id, request_id).status == RequestStatus.PENDING
        assert store.get_gig(gig.id).now_playing.song_name == "Manual"

    def test_from_playlist_index(self, live, store):
        gig = make_gig(
            store,
            playlist_source=EmbeddedPlaylist(tracks=[Track(title="Opener"), Track(title="Closer")]),
        )
        live.set_now_playing_from_playlist(gig.id, 1, ARTIST)

        now_playing = store.get_gig(gig.id).now_playing
        assert now_playing.source == NowPlayingSource.PLAYLIST
        assert now_playing.track_index == 1
        assert now_playing.song_name == "Closer"
        assert now_playing.request_id is None

    def test_from_supplemented_track(self, live, store):
        store.set_master_catalog(ARTIST, [Track(title="From Catalog")], live.clock())
        gig = make_gig(store, playlist_source=EmbeddedPlaylist(tracks=[Track(title="Opener")]))
        live.set_now_playing_from_playlist(gig.id, 1, ARTIST)
        assert store.get_gig(gig.id).now_playing.song_name == "From Catalog"

    def test_index_out_of_range(self, live, store):
        gig = make_gig(store, playlist_source=EmbeddedPlaylist(tracks=[Track(title="Only")]))
        with pytest.raises(NotFound):
            live.set_now_playing_from_playlist(gig.id, 1, ARTIST)
        with pytest.raises(NotFound):
            live.set_now_playing_from_playlist(gig.id, -1, ARTIST)

    def test_index_must_be_integer(self, live, gig):
        with pytest.raises(InvalidArgument):
            live.set_now_playing_from_playlist(gig.id, "0", ARTIST)
        with pytest.raises(InvalidArgument):
            live.set_now_playing_from_playlist(gig.id, True, ARTIST)


class TestEndGig:

    def test_end_clears_now_playing(self, live, store, gig):
        request_id = submit(live, gig)
        live.accept_request(gig.id, request_id, ARTIST)
        live.end_gig(gig.id, ARTIST)

        updated = store.get_gig(gig.id)
        assert updated.status == GigStatus.ENDED
        assert updated.ended_at is not None
        assert updated.now_playing is None

    def test_end_twice_fails_without_touching_timestamps(self, live, store, gig):
        live.end_gig(gig.id, ARTIST)
        first = store.get_gig(gig.id)

        with pytest.raises(FailedPrecondition):
            live.end_gig(gig.id, ARTIST)

        second = store.get_gig(gig.id)
        assert second.ended_at == first.ended_at
        assert second.updated_at == first.updated_at

    def test_end_cancelled_fails(self, live, store):
        gig = make_gig(store, status=GigStatus.CANCELLED)
        with pytest.raises(FailedPrecondition):
            live.end_gig(gig.id, ARTIST)
        assert store.get_gig(gig.id).status == GigStatus.CANCELLED

    def test_requires_gig_id(self, live):
        with pytest.raises(InvalidArgument):
            live.end_gig("", ARTIST)

    def test_accept_after_end_fails(self, live, store, gig):
        request_id = submit(live, gig, song="Yellow")
        live.end_gig(gig.id, ARTIST)

        with pytest.raises(FailedPrecondition):
            live.accept_request(gig.id, request_id, ARTIST)

        updated = store.get_gig(gig.id)
        assert updated.status == GigStatus.ENDED
        assert updated.now_playing is None
        assert updated.accepted_requests_count == 0
        assert store.get_request(gig.id, request_id).status == RequestStatus.PENDING

    @pytest.mark.parametrize(
        "operation",
        [
            lambda live, gig, pending, accepted: live.reject_request(gig.id, pending, ARTIST),
            lambda live, gig, pending, accepted: live.mark_played(gig.id, accepted, ARTIST),
            lambda live, gig, pending, accepted: live.set_now_playing(gig.id, pending, ARTIST),
            lambda live, gig, pending, accepted: live.set_now_playing_from_playlist(gig.id, 0, ARTIST),
        ],
        ids=["reject", "played", "now_playing_request", "now_playing_track"],
    )
    def test_artist_writes_refused_after_end(self, live, store, operation):
        gig = make_gig(store, playlist_source=EmbeddedPlaylist(tracks=[Track(title="Opener")]))
        pending = submit(live, gig)
        accepted = submit(live, gig, song="Yellow")
        live.accept_request(gig.id, accepted, ARTIST)
        live.end_gig(gig.id, ARTIST)
        before = store.get_gig(gig.id)

        with pytest.raises(FailedPrecondition):
            operation(live, gig, pending, accepted)

        assert store.get_gig(gig.id) == before

    def test_cancelled_gig_refuses_now_playing(self, live, store):
        gig = make_gig(
            store,
            status=GigStatus.CANCELLED,
            playlist_source=EmbeddedPlaylist(tracks=[Track(title="Opener")]),
        )
        with pytest.raises(FailedPrecondition):
            live.set_now_playing_from_playlist(gig.id, 0, ARTIST)
        assert store.get_gig(gig.id).now_playing is None


class TestSubmitRequest:

    def test_creates_pending_request(self, live, store, gig):
        request_id = live.submit_request(
            gig.id, "fan-1", "  Yellow ", "  for Priya  ", interactive=True
        )
        request = store.get_request(gig.id, request_id)
        assert request.status == RequestStatus.PENDING
        assert request.song_name == "Yellow"
        assert request.message == "for Priya"
        assert request.user_id == "fan-1"
        assert request.custom is True

    def test_blank_message_stored_as_none(self, live, store, gig):
        request_id = live.submit_request(gig.id, "fan-1", "Yellow", "   ", interactive=True)
        assert store.get_request(gig.id, request_id).message is None

    def test_requires_live_gig(self, live, store):
        gig = make_gig(store, status=GigStatus.UPCOMING)
        with pytest.raises(FailedPrecondition):
            submit(live, gig)

    def test_requires_interaction(self, live, gig):
        with pytest.raises(FailedPrecondition):
            live.submit_request(gig.id, "fan-1", "Yellow", interactive=False)

    def test_requires_song_name(self, live, gig):
        with pytest.raises(InvalidArgument):
            submit(live, gig, song="   ")

    def test_requires_caller(self, live, gig):
        with pytest.raises(Unauthenticated):
            live.submit_request(gig.id, None, "Yellow", interactive=True)


class TestVotes:

    def test_vote_is_idempotent(self, live, gig):
        request_id = submit(live, gig)
        live.vote_request(gig.id, request_id, "fan-2", interactive=True)
        live.vote_request(gig.id, request_id, "fan-2", interactive=True)
        assert live.vote_counts(gig.id) == {request_id: 1}

    def test_distinct_voters_counted(self, live, gig):
        request_id = submit(live, gig)
        for voter in ("fan-2", "fan-3", "fan-4"):
            live.vote_request(gig.id, request_id, voter, interactive=True)
        assert live.vote_counts(gig.id)[request_id] == 3

    def test_vote_requires_live_gig(self, live, store, gig):
        request_id = submit(live, gig)
        live.end_gig(gig.id, ARTIST)
        with pytest.raises(FailedPrecondition):
            live.vote_request(gig.id, request_id, "fan-2", interactive=True)

    def test_vote_requires_interaction(self, live, gig):
        request_id = submit(live, gig)
        with pytest.raises(FailedPrecondition):
            live.vote_request(gig.id, request_id, "fan-2", interactive=False)

    def test_vote_unknown_request(self, live, gig):
        with pytest.raises(NotFound):
            live.vote_request(gig.id, "missing", "fan-2", interactive=True)


class TestQueue:

    def test_orders_by_votes_then_age(self, live, gig):
        oldest = submit(live, gig, song="Oldest")
        middle = submit(live, gig, song="Middle")
        newest = submit(live, gig, song="Newest")
        live.vote_request(gig.id, newest, "fan-2", interactive=True)
        live.vote_request(gig.id, newest, "fan-3", interactive=True)
        live.vote_request(gig.id, middle, "fan-2", interactive=True)

        queue = live.request_queue(gig.id)
        assert [e.request.id for e in queue] == [newest, middle, oldest]
        assert [e.votes for e in queue] == [2, 1, 0]

    def test_ties_go_to_oldest(self, live, gig):
        first = submit(live, gig, song="First")
        second = submit(live, gig, song="Second")
        assert [e.request.id for e in live.request_queue(gig.id)] == [first, second]

    def test_pending_only_and_next_request(self, live, gig):
        popular = submit(live, gig, song="Popular")
        other = submit(live, gig, song="Other")
        live.vote_request(gig.id, popular, "fan-2", interactive=True)
        assert live.next_request(gig.id).id == popular

        live.accept_request(gig.id, popular, ARTIST)
        assert [e.request.id for e in live.request_queue(gig.id, pending_only=True)] == [other]
        assert live.next_request(gig.id).id == other

    def test_empty_queue(self, live, gig):
        assert live.request_queue(gig.id) == []
        assert live.next_request(gig.id) is None

    def test_unknown_gig(self, live):
        with pytest.raises(NotFound):
            live.request_queue("missing")
