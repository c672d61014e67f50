# Models registry for Alembic autogenerate
# Import all SQLAlchemy models here so Alembic can detect them

# Itinerary BC models
from src.itinerary_bc.route.infrastructure.models import RouteModel
from src.itinerary_bc.stop.infrastructure.models import RouteStopModel
from src.itinerary_bc.leg.infrastructure.models import RouteLegModel

__all__ = [
    "RouteModel",
    "RouteStopModel",
    "RouteLegModel",
]
