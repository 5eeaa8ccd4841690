"""Shared fixtures for gigwave tests."""

from datetime import datetime, timedelta, timezone

import pytest

from gigwave.config import get_settings
from gigwave.live import LiveGigService
from gigwave.logging import configure_logging
from gigwave.models import Gig, GigStatus, Venue, VenueLocation
from gigwave.store import GigStore, new_id

ARTIST = "artist-1"
VENUE_LOCATION = VenueLocation(lat=12.9716, lng=77.5946)


class TickingClock:
    """Clock that advances one second on every read."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + timedelta(seconds=1)
        return value


@pytest.fixture(scope="session", autouse=True)
def quiet_logs():
    configure_logging(level="CRITICAL")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a temp store and ignore any local .env."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GIGWAVE_STORE_PATH", str(tmp_path / "gigwave.db"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store(tmp_path):
    return GigStore(tmp_path / "gigwave.db")


@pytest.fixture
def clock():
    return TickingClock(datetime(2025, 12, 31, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def live(store, clock):
    return LiveGigService(store, clock=clock)


def make_gig(store, *, status=GigStatus.LIVE, artist_id=ARTIST, date="2025-12-31",
             time="20:00", song_limit=20, playlist_source=None, now_playing=None):
    """Insert a minimal gig and return it."""
    now = datetime(2025, 12, 31, 12, 0, tzinfo=timezone.utc)
    gig = Gig(
        id=new_id(),
        artist_id=artist_id,
        title="Friday Night Set",
        venue=Venue(name="Blue Frog", address="Mill Compound", location=VENUE_LOCATION),
        date=date,
        time=time,
        status=status,
        song_limit=song_limit,
        playlist_source=playlist_source,
        now_playing=now_playing,
        created_at=now,
        updated_at=now,
    )
    store.insert_gig(gig)
    return gig


@pytest.fixture
def gig(store):
    return make_gig(store)
