from .stop import RouteStop, StopKind, DEFAULT_STAY_BY_KIND

__all__ = ["RouteStop", "StopKind", "DEFAULT_STAY_BY_KIND"]
