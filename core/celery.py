"""Celery app for background leg routing.

Start a worker and the beat scheduler with:

    celery -A core.celery worker -Q itinerary_routing
    celery -A core.celery beat
"""
from celery import Celery

from core.config import settings

ROUTING_QUEUE = "itinerary_routing"
TASKS_MODULE = "src.itinerary_bc.route.infrastructure.tasks"

celery_app = Celery(
    "itinerary",
    broker=settings.celery.CELERY_BROKER_URL,
    backend=settings.celery.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_time_limit=settings.celery.CELERY_TASK_TIME_LIMIT,
    task_soft_time_limit=settings.celery.CELERY_TASK_SOFT_TIME_LIMIT,
    # A leg refresh is a read-compute-write cycle; rerunning it is harmless
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # One route at a time per worker process keeps OSRM request bursts small
    worker_prefetch_multiplier=1,
    task_annotations={
        f"{TASKS_MODULE}.refresh_route_legs": {"rate_limit": settings.celery.LEG_REFRESH_RATE_LIMIT},
    },

    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    result_expires=3600,

    timezone=settings.DEFAULT_TIMEZONE,
    enable_utc=True,

    task_routes={f"{TASKS_MODULE}.*": {"queue": ROUTING_QUEUE}},
    beat_schedule={
        "refresh-pending-legs": {
            "task": f"{TASKS_MODULE}.refresh_pending_legs",
            "schedule": settings.celery.PENDING_LEGS_SWEEP_SECONDS,
            "options": {"queue": ROUTING_QUEUE},
        },
    },
)

celery_app.autodiscover_tasks(["src.itinerary_bc.route.infrastructure"])
