"""gigwave - Live gigs with crowd song requests.

Artists publish gigs with a playlist padded from their master catalog; during
a live gig the audience requests and votes on songs while the artist drives
the now playing pointer.
"""

from .cli import main

__all__ = ["main"]
