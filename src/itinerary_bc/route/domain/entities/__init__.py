from .route import Route, RouteScheduleSettings, DEFAULT_TIMEZONE

__all__ = ["Route", "RouteScheduleSettings", "DEFAULT_TIMEZONE"]
