from .route_stop_model import RouteStopModel

__all__ = ["RouteStopModel"]
