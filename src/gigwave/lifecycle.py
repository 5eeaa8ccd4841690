"""Time-driven gig lifecycle.

A periodic sweep compares each gig's scheduled start with the current time:

- upcoming, 30 min to 5 h past start -> check with venue
- upcoming or check with venue, 5 h or more past start -> cancelled
- live, 5 h or more past start -> ended (now playing cleared)

The promotion upcoming -> live happens outside this package.
"""

import time as time_module
from datetime import datetime, timezone, tzinfo
from typing import Any

from .config import Settings, get_settings
from .logging import get_logger
from .models import GigStatus, SweepResult
from .store import GigStore

logger = get_logger(__name__)

START_FORMAT = "%Y-%m-%d %H:%M"


def scheduled_start(date: str, time: str, tz: tzinfo) -> datetime:
    """Combine a gig's ``YYYY-MM-DD`` date and ``HH:MM`` time in the venue offset."""
    return datetime.strptime(f"{date.strip()} {time.strip()}", START_FORMAT).replace(tzinfo=tz)


def next_status(
    status: GigStatus,
    start: datetime,
    now: datetime,
    settings: Settings | None = None,
) -> GigStatus | None:
    """The status a gig should move to, or None if it stays put."""
    settings = settings or get_settings()
    elapsed_minutes = (now - start).total_seconds() / 60
    check_after = settings.check_with_venue_after_minutes
    close_after = settings.auto_close_after_minutes

    if status == GigStatus.UPCOMING and check_after <= elapsed_minutes < close_after:
        return GigStatus.CHECK_WITH_VENUE
    if status in (GigStatus.UPCOMING, GigStatus.CHECK_WITH_VENUE) and elapsed_minutes >= close_after:
        return GigStatus.CANCELLED
    if status == GigStatus.LIVE and elapsed_minutes >= close_after:
        return GigStatus.ENDED
    return None


def _sweep_one(
    store: GigStore, doc: dict[str, Any], now: datetime, settings: Settings
) -> GigStatus | None:
    status = GigStatus(str(doc["status"]).strip().lower())
    start = scheduled_start(doc["date"], doc["time"], settings.venue_timezone)
    target = next_status(status, start, now, settings)
    if target is None:
        return None

    written = store.set_gig_status(
        doc["id"],
        target,
        now,
        expected_status=doc["status"],
        ended=target == GigStatus.ENDED,
        cancelled=target == GigStatus.CANCELLED,
        clear_now_playing=target == GigStatus.ENDED,
    )
    if not written:
        logger.info("gig_changed_during_sweep", gig_id=doc["id"])
        return None
    return target


def sweep_gigs(
    store: GigStore,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> SweepResult:
    """Apply time-driven transitions to every gig.

    A gig that fails to transition is logged and recorded in
    ``SweepResult.failed``; the sweep carries on with the rest.
    """
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    result = SweepResult()

    logger.info("lifecycle_sweep_start", now=now.isoformat())

    for doc in store.list_gig_documents():
        gig_id = doc["id"]
        if not doc.get("date") or not doc.get("time") or not doc.get("status"):
            result.skipped.append(gig_id)
            continue

        try:
            target = _sweep_one(store, doc, now, settings)
        except Exception as e:
            logger.error("gig_transition_failed", gig_id=gig_id, error=str(e))
            result.failed.append(gig_id)
            continue

        if target is not None:
            logger.info(
                "gig_transitioned",
                gig_id=gig_id,
                from_status=doc["status"],
                to_status=target.value,
            )
            result.transitioned[gig_id] = target

    logger.info(
        "lifecycle_sweep_complete",
        transitioned=result.count,
        failed=len(result.failed),
        skipped=len(result.skipped),
    )
    return result


def run_periodic(
    store: GigStore,
    interval_minutes: int | None = None,
    max_runs: int | None = None,
) -> None:
    """Run the sweep forever (or ``max_runs`` times), sleeping between runs."""
    interval = interval_minutes or get_settings().sweep_interval_minutes
    runs = 0
    while max_runs is None or runs < max_runs:
        sweep_gigs(store)
        runs += 1
        if max_runs is not None and runs >= max_runs:
            break
        time_module.sleep(interval * 60)
