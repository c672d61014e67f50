import logging

from celery import shared_task

from core.database import SessionLocal
from src.itinerary_bc.route.domain.exceptions import NotFoundError
from src.itinerary_bc.route.infrastructure.services.itinerary_service import ItineraryService
from src.itinerary_bc.routing.domain.exceptions import RoutingProviderError

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=30)
def refresh_route_legs(self, route_id: str):
    """Route every pending leg of a route and recalculate its schedule.

    Legs the provider could not route stay pending; the task retries them.
    """
    db = SessionLocal()
    try:
        service = ItineraryService(db)
        _, result = service.refresh_legs(route_id, fail_fast=False)
        if result.has_failures:
            raise RoutingProviderError(
                f"{len(result.failed)} legs of route {route_id} could not be routed: {result.errors[0]}"
            )
        return {
            "route_id": route_id,
            "refreshed": len(result.refreshed),
            "skipped": len(result.skipped),
        }
    except NotFoundError as e:
        # Route deleted in the meantime, nothing to retry
        logger.warning(f"Leg refresh skipped: {e}")
        return {"route_id": route_id, "refreshed": 0, "skipped": 0}
    except Exception as e:
        logger.error(f"Leg refresh for route {route_id} failed: {e}")
        raise self.retry(exc=e)
    finally:
        db.close()


@shared_task(bind=True, max_retries=1, default_retry_delay=60)
def refresh_pending_legs(self):
    """Queue a leg refresh for every route that has legs waiting for routing."""
    db = SessionLocal()
    try:
        route_ids = ItineraryService(db).list_routes_with_pending_legs()
        for route_id in route_ids:
            refresh_route_legs.delay(route_id)
        logger.info(f"Queued leg refresh for {len(route_ids)} routes")
        return {"routes": len(route_ids)}
    except Exception as e:
        logger.error(f"Pending leg sweep failed: {e}")
        raise self.retry(exc=e)
    finally:
        db.close()
