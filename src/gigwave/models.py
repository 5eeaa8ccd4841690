"""Pydantic data models for gigwave.

Gig documents own their song requests and votes. Tracks are embedded data
with no lifecycle of their own.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator


class GigStatus(str, Enum):
    UPCOMING = "upcoming"
    CHECK_WITH_VENUE = "check with venue"
    LIVE = "live"
    ENDED = "ended"
    CANCELLED = "cancelled"


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PLAYED = "played"


class TrackSource(str, Enum):
    """Where a resolved track came from."""

    PRIMARY = "primary"
    SUPPLEMENTED = "supplemented"


class NowPlayingSource(str, Enum):
    REQUEST = "request"
    PLAYLIST = "playlist"


class Track(BaseModel):
    """A normalized song reference."""

    external_id: str | None = Field(default=None, description="External catalog (iTunes) track ID")
    title: str = Field(default="Untitled track", min_length=1, description="Song title")
    artist_name: str | None = Field(default=None, description="Performing artist, if known")
    source: TrackSource | None = Field(
        default=None, description="Provenance once resolved into an effective playlist"
    )


class VenueLocation(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)


class Venue(BaseModel):
    name: str = Field(description="Venue name")
    address: str = Field(default="", description="Street address")
    location: VenueLocation | None = Field(default=None, description="Coordinates, if picked on a map")


class AttachedPlaylist(BaseModel):
    """Primary source pointing at one of the artist's saved playlists."""

    kind: Literal["attached"] = "attached"
    playlist_id: str


class EmbeddedPlaylist(BaseModel):
    """Primary source stored directly on the gig document."""

    kind: Literal["embedded"] = "embedded"
    tracks: list[Track] = Field(default_factory=list)


PlaylistSource = Annotated[Union[AttachedPlaylist, EmbeddedPlaylist], Field(discriminator="kind")]


class NowPlaying(BaseModel):
    """The gig's current single-track pointer."""

    song_name: str = Field(description="Snapshot of the song name when it started")
    source: NowPlayingSource
    request_id: str | None = Field(default=None, description="Set when source is 'request'")
    track_index: int | None = Field(default=None, description="Set when source is 'playlist'")
    started_at: datetime
    updated_at: datetime


class Gig(BaseModel):
    """One live-music event."""

    id: str
    artist_id: str = Field(description="Owning artist's user ID")
    title: str
    venue: Venue
    date: str = Field(description="Scheduled date, YYYY-MM-DD")
    time: str = Field(description="Scheduled start, HH:MM")
    status: GigStatus = GigStatus.UPCOMING
    song_limit: int = Field(default=20, ge=5, le=60)
    playlist_source: PlaylistSource | None = None
    now_playing: NowPlaying | None = None

    accepted_requests_count: int = 0
    rejected_requests_count: int = 0
    played_requests_count: int = 0

    created_at: datetime
    updated_at: datetime
    ended_at: datetime | None = None
    cancelled_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        # Older documents wrote "Check with Venue"
        if isinstance(value, str):
            return value.strip().lower()
        return value


class Playlist(BaseModel):
    """A named, ordered track list owned by an artist, reusable across gigs."""

    id: str
    artist_id: str
    name: str
    description: str = ""
    tracks: list[Track] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SongRequest(BaseModel):
    """A crowd-submitted song ask tied to one gig."""

    id: str
    gig_id: str
    user_id: str
    song_name: str
    message: str | None = None
    custom: bool = Field(default=True, description="Typed by the crowd rather than picked from the catalog")
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    played_at: datetime | None = None


class Vote(BaseModel):
    """One audience member's endorsement of one request."""

    gig_id: str
    request_id: str
    user_id: str
    created_at: datetime

    @property
    def id(self) -> str:
        return vote_id(self.request_id, self.user_id)


def vote_id(request_id: str, user_id: str) -> str:
    """Composite key enforcing one vote per user per request."""
    return f"{request_id}_{user_id}"


class QueueEntry(BaseModel):
    """A request as shown in the artist's queue."""

    request: SongRequest
    votes: int = 0


class SweepResult(BaseModel):
    """Outcome of one lifecycle sweep."""

    transitioned: dict[str, GigStatus] = Field(
        default_factory=dict, description="Gig ID -> new status"
    )
    failed: list[str] = Field(default_factory=list, description="Gig IDs whose transition raised")
    skipped: list[str] = Field(default_factory=list, description="Gig IDs missing date, time or status")

    @property
    def count(self) -> int:
        return len(self.transitioned)
