#!/usr/bin/env python3
"""Recalculate the schedule of a stored route.

Loads the route, runs the recalculation engine and prints the per-stop
changes. Without --dry-run the result is saved (conditioned on the route
version, like the API does).

Usage:
    python scripts/recalculate_route_schedule.py --route-id <uuid> --dry-run
    python scripts/recalculate_route_schedule.py --route-id <uuid> --relax-locks
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.database import SessionLocal
from src.itinerary_bc.route.domain.exceptions import ItineraryError
from src.itinerary_bc.route.infrastructure.repositories.route_repository import RouteRepository
from src.itinerary_bc.route.infrastructure.services.itinerary_service import ItineraryService
from src.itinerary_bc.scheduling import RecalculationResult, detect_route_conflicts, recalculate_schedule

logger = logging.getLogger(__name__)


def _fmt(value) -> str:
    return value.isoformat() if value is not None else "-"


def print_result(result: RecalculationResult) -> None:
    for change in result.changes:
        marker = "*" if change.changed else " "
        lock = " [locked]" if change.was_locked else ""
        print(
            f"{marker} {change.place_name or change.stop_id}{lock}: "
            f"{_fmt(change.old_start)} -> {_fmt(change.new_start)} / "
            f"{_fmt(change.old_end)} -> {_fmt(change.new_end)}"
        )
    for warning in result.warnings:
        print(f"WARNING: {warning}")
    print(f"{result.updated_stop_count} stops updated, locked days preserved: {result.preserved_locked_days}")


def main() -> int:
    parser = argparse.ArgumentParser(description='Recalculate the schedule of an itinerary route')
    parser.add_argument('--route-id', '-r', type=str, required=True, help='Route id')
    parser.add_argument('--relax-locks', action='store_true',
                        help='Allow adjusting the unlocked side of one-side-locked stops')
    parser.add_argument('--dry-run', action='store_true', help='Print changes without saving')
    args = parser.parse_args()

    preserve = not args.relax_locks
    db = SessionLocal()
    try:
        if args.dry_run:
            route = RouteRepository(db).get(args.route_id)
            result = recalculate_schedule(route, route.stops, route.legs, preserve)
            db.rollback()
        else:
            route, result = ItineraryService(db).recalculate(args.route_id, preserve_locked_days=preserve)
    except ItineraryError as e:
        logger.error(str(e))
        return 1
    finally:
        db.close()

    print_result(result)
    report = detect_route_conflicts(route)
    if report.has_conflict:
        print(f"Order conflicts remain: {sorted(report.conflicting_stop_ids)}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    sys.exit(main())
