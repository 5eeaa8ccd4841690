"""Distance checks between audience members and venues."""

import math
from collections.abc import Iterable

from .errors import FailedPrecondition
from .models import Gig, GigStatus, VenueLocation

EARTH_RADIUS_KM = 6371.0


def distance_km(a: VenueLocation, b: VenueLocation) -> float:
    """Great-circle (haversine) distance in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def within_radius(gig: Gig, user_location: VenueLocation | None, radius_km: float) -> bool:
    """True if the user is known to be within ``radius_km`` of the venue.

    Unknown user or venue coordinates count as out of range.
    """
    venue_location = gig.venue.location
    if user_location is None or venue_location is None:
        return False
    return distance_km(user_location, venue_location) <= radius_km


def interaction_enabled(gig: Gig, user_location: VenueLocation | None, radius_km: float) -> bool:
    """Whether an audience member may vote or submit requests right now."""
    return gig.status == GigStatus.LIVE and within_radius(gig, user_location, radius_km)


def require_joinable(gig: Gig, user_location: VenueLocation | None, radius_km: float) -> float:
    """Check the user may open the gig's live view. Returns their distance in km.

    Raises:
        FailedPrecondition: The gig is not live, or the user is not close enough
    """
    if gig.status != GigStatus.LIVE:
        raise FailedPrecondition("Gig is not live.")
    venue_location = gig.venue.location
    if user_location is None or venue_location is None:
        raise FailedPrecondition("Share your location to join this live gig.")
    distance = distance_km(user_location, venue_location)
    if distance > radius_km:
        raise FailedPrecondition(
            f"You are {distance:.1f} km away from the venue. "
            f"You must be within {radius_km:g} km to join this live gig."
        )
    return distance


def nearby_gigs(
    gigs: Iterable[Gig], user_location: VenueLocation, radius_km: float
) -> list[tuple[Gig, float]]:
    """Open gigs with known coordinates within ``radius_km``, nearest first."""
    found = []
    for gig in gigs:
        if gig.status in (GigStatus.ENDED, GigStatus.CANCELLED) or gig.venue.location is None:
            continue
        distance = distance_km(user_location, gig.venue.location)
        if distance <= radius_km:
            found.append((gig, distance))
    return sorted(found, key=lambda item: item[1])
