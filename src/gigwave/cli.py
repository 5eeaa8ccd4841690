"""gigwave CLI using Typer.

Commands mirror the operations offered to the artist console, the audience
live view and the scheduler. Every command prints a JSON result; failures
print ``{"success": false, "error": {...}}`` and exit with status 1.
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from pydantic import ValidationError

from .config import get_settings
from .errors import GigWaveError, InvalidArgument, NotFound
from .geo import interaction_enabled, nearby_gigs, require_joinable
from .gigs import GigService
from .lifecycle import run_periodic, sweep_gigs
from .live import LiveGigService
from .logging import configure_logging, get_logger
from .models import Venue, VenueLocation
from .playlist import effective_playlist_for_gig
from .store import GigStore

app = typer.Typer(
    name="gigwave",
    help="Run gigs: playlists, live song requests and votes.",
    add_completion=False,
)

logger = get_logger(__name__)

CallerOption = Annotated[Optional[str], typer.Option("--as", help="User ID of the caller")]
LatOption = Annotated[Optional[float], typer.Option("--lat", help="Caller latitude")]
LngOption = Annotated[Optional[float], typer.Option("--lng", help="Caller longitude")]
TracksOption = Annotated[
    Optional[list[str]], typer.Option("--track", "-t", help="Song name (repeatable)")
]
TracksFileOption = Annotated[
    Optional[Path], typer.Option("--tracks-file", help="JSON file with a list of tracks")
]


def _store() -> GigStore:
    return GigStore(get_settings().store_path)


def _emit(payload: dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def _run(action: Callable[[], Any]) -> None:
    """Run an operation and print its tagged result."""
    try:
        value = action()
    except GigWaveError as e:
        _emit(e.to_result())
        raise typer.Exit(1)
    except ValidationError as e:
        _emit(InvalidArgument(str(e)).to_result())
        raise typer.Exit(1)
    except Exception as e:
        logger.exception("command_failed", error=str(e))
        _emit({"success": False, "error": {"kind": "internal", "message": str(e)}})
        raise typer.Exit(1)
    result: dict[str, Any] = {"success": True}
    if value is not None:
        result["result"] = value
    _emit(result)


def _load_tracks(tracks: list[str] | None, tracks_file: Path | None) -> list[Any] | None:
    if tracks_file is not None:
        try:
            data = json.loads(tracks_file.read_text())
        except (OSError, ValueError) as e:
            raise InvalidArgument(f"Could not read tracks file: {e}")
        if not isinstance(data, list):
            raise InvalidArgument("Tracks file must contain a JSON list.")
        return data
    return list(tracks) if tracks else None


def _is_interactive(store: GigStore, gig_id: str, lat: float | None, lng: float | None) -> bool:
    gig = store.get_gig(gig_id)
    if gig is None or lat is None or lng is None:
        return False
    return interaction_enabled(
        gig, VenueLocation(lat=lat, lng=lng), get_settings().interaction_radius_km
    )


@app.callback()
def main_callback(
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")] = None,
    log_format: Annotated[Optional[str], typer.Option("--log-format", help="Log format (console, json)")] = None,
) -> None:
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        format=log_format or settings.log_format,  # type: ignore[arg-type]
    )


# Setup
@app.command()
def create_gig(
    title: Annotated[str, typer.Option("--title", help="Gig title")],
    venue: Annotated[str, typer.Option("--venue", "-v", help="Venue name")],
    date: Annotated[str, typer.Option("--date", "-d", help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Option("--time", help="Start time (HH:MM)")],
    caller: CallerOption = None,
    address: Annotated[str, typer.Option("--address", help="Venue address")] = "",
    lat: Annotated[Optional[float], typer.Option("--venue-lat", help="Venue latitude")] = None,
    lng: Annotated[Optional[float], typer.Option("--venue-lng", help="Venue longitude")] = None,
    song_limit: Annotated[Optional[int], typer.Option("--song-limit", help="Songs in the playlist (5-60)")] = None,
    playlist_id: Annotated[Optional[str], typer.Option("--playlist-id", help="Saved playlist to attach")] = None,
    tracks: TracksOption = None,
    tracks_file: TracksFileOption = None,
) -> None:
    """Create an upcoming gig."""

    def action() -> Any:
        location = VenueLocation(lat=lat, lng=lng) if lat is not None and lng is not None else None
        gig = GigService(_store()).create_gig(
            caller,
            title=title,
            venue=Venue(name=venue, address=address, location=location),
            date=date,
            time=time,
            song_limit=song_limit,
            playlist_id=playlist_id,
            tracks=_load_tracks(tracks, tracks_file),
        )
        return {"gigId": gig.id}

    _run(action)


@app.command()
def create_playlist(
    name: Annotated[str, typer.Option("--name", "-n", help="Playlist name")],
    caller: CallerOption = None,
    description: Annotated[str, typer.Option("--description", help="Playlist description")] = "",
    tracks: TracksOption = None,
    tracks_file: TracksFileOption = None,
) -> None:
    """Save a reusable playlist."""

    def action() -> Any:
        playlist = GigService(_store()).create_playlist(
            caller, name, _load_tracks(tracks, tracks_file), description
        )
        return {"playlistId": playlist.id, "tracks": len(playlist.tracks)}

    _run(action)


@app.command()
def list_playlists(caller: CallerOption = None) -> None:
    """List your saved playlists."""

    def action() -> Any:
        return [
            {"playlistId": p.id, "name": p.name, "tracks": len(p.tracks)}
            for p in GigService(_store()).list_playlists(caller)
        ]

    _run(action)


@app.command()
def update_playlist(
    playlist_id: Annotated[str, typer.Argument(help="Playlist ID")],
    caller: CallerOption = None,
    name: Annotated[Optional[str], typer.Option("--name", "-n", help="New name")] = None,
    description: Annotated[Optional[str], typer.Option("--description", help="New description")] = None,
    tracks: TracksOption = None,
    tracks_file: TracksFileOption = None,
) -> None:
    """Rename a saved playlist or replace its tracks."""

    def action() -> Any:
        playlist = GigService(_store()).update_playlist(
            playlist_id,
            caller,
            name=name,
            description=description,
            tracks=_load_tracks(tracks, tracks_file),
        )
        return {"playlistId": playlist.id, "name": playlist.name, "tracks": len(playlist.tracks)}

    _run(action)


@app.command()
def delete_playlist(
    playlist_id: Annotated[str, typer.Argument(help="Playlist ID")],
    caller: CallerOption = None,
) -> None:
    """Delete a saved playlist."""
    _run(lambda: GigService(_store()).delete_playlist(playlist_id, caller))


@app.command()
def set_catalog(
    caller: CallerOption = None,
    tracks: TracksOption = None,
    tracks_file: TracksFileOption = None,
) -> None:
    """Replace your master catalog."""

    def action() -> Any:
        saved = GigService(_store()).set_master_catalog(caller, _load_tracks(tracks, tracks_file) or [])
        return {"tracks": len(saved)}

    _run(action)


@app.command()
def attach_playlist(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    playlist_id: Annotated[str, typer.Argument(help="Playlist ID")],
    caller: CallerOption = None,
) -> None:
    """Attach a saved playlist to a gig, replacing any embedded tracks."""
    _run(lambda: GigService(_store()).attach_playlist(gig_id, playlist_id, caller))


@app.command()
def list_gigs(
    artist: Annotated[Optional[str], typer.Option("--artist", help="Only this artist's gigs")] = None,
) -> None:
    """List gigs."""
    gigs = _store().list_gigs(artist_id=artist)
    _emit({"success": True, "result": [g.model_dump(mode="json") for g in gigs]})


@app.command()
def playlist(gig_id: Annotated[str, typer.Argument(help="Gig ID")]) -> None:
    """Show the playlist the audience will see for a gig."""

    def action() -> Any:
        store = _store()
        gig = store.get_gig(gig_id)
        if gig is None:
            raise NotFound("Gig not found.")
        return [t.model_dump(mode="json") for t in effective_playlist_for_gig(gig, store)]

    _run(action)


# Artist console
@app.command()
def accept(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    request_id: Annotated[str, typer.Argument(help="Request ID")],
    caller: CallerOption = None,
) -> None:
    """Accept a pending request and make it now playing."""
    _run(lambda: LiveGigService(_store()).accept_request(gig_id, request_id, caller))


@app.command()
def reject(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    request_id: Annotated[str, typer.Argument(help="Request ID")],
    caller: CallerOption = None,
) -> None:
    """Reject a pending request."""
    _run(lambda: LiveGigService(_store()).reject_request(gig_id, request_id, caller))


@app.command()
def played(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    request_id: Annotated[str, typer.Argument(help="Request ID")],
    caller: CallerOption = None,
) -> None:
    """Mark an accepted request as played."""
    _run(lambda: LiveGigService(_store()).mark_played(gig_id, request_id, caller))


@app.command()
def now_playing(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    request_id: Annotated[Optional[str], typer.Option("--request", "-r", help="Request to play")] = None,
    track_index: Annotated[Optional[int], typer.Option("--track-index", "-i", help="Playlist track to play")] = None,
    caller: CallerOption = None,
) -> None:
    """Set now playing from a request or from a playlist track."""

    def action() -> Any:
        service = LiveGigService(_store())
        if (request_id is None) == (track_index is None):
            raise InvalidArgument("Pass exactly one of --request or --track-index.")
        if request_id is not None:
            return service.set_now_playing(gig_id, request_id, caller)
        return service.set_now_playing_from_playlist(gig_id, track_index, caller)

    _run(action)


@app.command()
def end(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    caller: CallerOption = None,
) -> None:
    """End a gig."""
    _run(lambda: LiveGigService(_store()).end_gig(gig_id, caller))


@app.command()
def queue(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    pending: Annotated[bool, typer.Option("--pending", help="Only pending requests")] = False,
) -> None:
    """Show requests by votes, then age."""

    def action() -> Any:
        entries = LiveGigService(_store()).request_queue(gig_id, pending_only=pending)
        return [
            {
                "requestId": e.request.id,
                "songName": e.request.song_name,
                "status": e.request.status.value,
                "votes": e.votes,
            }
            for e in entries
        ]

    _run(action)


# Audience
@app.command()
def nearby(
    lat: Annotated[float, typer.Option("--lat", help="Your latitude")],
    lng: Annotated[float, typer.Option("--lng", help="Your longitude")],
) -> None:
    """List upcoming and live gigs near you, nearest first."""

    def action() -> Any:
        found = nearby_gigs(
            _store().list_gigs(),
            VenueLocation(lat=lat, lng=lng),
            get_settings().nearby_radius_km,
        )
        return [
            {
                "gigId": gig.id,
                "title": gig.title,
                "venue": gig.venue.name,
                "status": gig.status.value,
                "distanceKm": round(distance, 2),
            }
            for gig, distance in found
        ]

    _run(action)


@app.command()
def join(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    lat: LatOption = None,
    lng: LngOption = None,
) -> None:
    """Check you are close enough to join a live gig."""

    def action() -> Any:
        gig = _store().get_gig(gig_id)
        if gig is None:
            raise NotFound("Gig not found.")
        location = VenueLocation(lat=lat, lng=lng) if lat is not None and lng is not None else None
        distance = require_joinable(gig, location, get_settings().join_radius_km)
        return {"gigId": gig.id, "distanceKm": round(distance, 2)}

    _run(action)


@app.command()
def request(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    song: Annotated[str, typer.Option("--song", "-s", help="Song name")],
    message: Annotated[Optional[str], typer.Option("--message", "-m", help="Note for the artist")] = None,
    caller: CallerOption = None,
    lat: LatOption = None,
    lng: LngOption = None,
) -> None:
    """Request a song at a live gig."""

    def action() -> Any:
        store = _store()
        request_id = LiveGigService(store).submit_request(
            gig_id,
            caller,
            song,
            message,
            interactive=_is_interactive(store, gig_id, lat, lng),
        )
        return {"requestId": request_id}

    _run(action)


@app.command()
def vote(
    gig_id: Annotated[str, typer.Argument(help="Gig ID")],
    request_id: Annotated[str, typer.Argument(help="Request ID")],
    caller: CallerOption = None,
    lat: LatOption = None,
    lng: LngOption = None,
) -> None:
    """Vote for a request at a live gig."""

    def action() -> Any:
        store = _store()
        return LiveGigService(store).vote_request(
            gig_id,
            request_id,
            caller,
            interactive=_is_interactive(store, gig_id, lat, lng),
        )

    _run(action)


# Scheduler
@app.command()
def sweep(
    watch: Annotated[bool, typer.Option("--watch", help="Keep running every sweep interval")] = False,
) -> None:
    """Advance gig statuses by elapsed time."""
    store = _store()
    if watch:
        run_periodic(store)
        return
    result = sweep_gigs(store)
    _emit(
        {
            "success": True,
            "result": {
                "count": result.count,
                "transitioned": {k: v.value for k, v in result.transitioned.items()},
                "failed": result.failed,
                "skipped": result.skipped,
            },
        }
    )


def main() -> None:
    """CLI entry point."""
    app()
