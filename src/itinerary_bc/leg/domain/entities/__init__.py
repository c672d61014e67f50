from .leg import RouteLeg, LegMetrics, DEFAULT_PROVIDER

__all__ = ["RouteLeg", "LegMetrics", "DEFAULT_PROVIDER"]
