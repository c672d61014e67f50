from .route_leg_model import RouteLegModel

__all__ = ["RouteLegModel"]
