"""Default schedule for routes whose stops have no times yet.

One stop per day, each arriving at the route's default arrival time. Stays
follow the stop kind: overnight stops leave the next day, day stops stay two
hours and waypoints are passed through.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import List
from zoneinfo import ZoneInfo

from src.itinerary_bc.route.domain.entities import Route
from src.itinerary_bc.scheduling.timeline import positional_sequence, shift
from src.itinerary_bc.stop.domain.entities import StopKind

logger = logging.getLogger(__name__)

DEFAULT_ARRIVAL_TIME = time(9, 0)
DEFAULT_DAY_STOP_MINUTES = 120


def seed_default_schedule(route: Route, today: date) -> List[str]:
    """Give every unscheduled, unlocked stop a default time window.

    Stops that already have a planned_start are left alone. Returns the ids
    of the seeded stops.
    """
    settings = route.settings
    arrival_time = settings.default_arrival_time or DEFAULT_ARRIVAL_TIME
    zone = ZoneInfo(settings.timezone)

    if settings.start_at is None:
        settings.start_at = datetime.combine(today, arrival_time, tzinfo=zone)
    first_day = settings.start_at.astimezone(zone).date()

    seeded: List[str] = []
    for index, stop in enumerate(positional_sequence(route.stops)):
        if stop.planned_start is not None or stop.is_locked:
            continue

        stop_zone = route.effective_timezone(stop)
        start = datetime.combine(first_day + timedelta(days=index), arrival_time, tzinfo=stop_zone)

        if stop.kind == StopKind.OVERNIGHT:
            if stop.stay_nights is None:
                stop.stay_nights = 1
            end = shift(start, timedelta(days=stop.stay_nights), stop_zone)
        elif stop.kind == StopKind.DAY_STOP:
            if stop.stay_duration_minutes is None:
                stop.stay_duration_minutes = DEFAULT_DAY_STOP_MINUTES
            end = shift(start, timedelta(minutes=stop.stay_duration_minutes), stop_zone)
        else:
            end = start

        stop.planned_start = start
        stop.planned_end = end
        seeded.append(stop.id)

    logger.info(f"Seeded default schedule for {len(seeded)} stops of route {route.id}")
    return seeded
