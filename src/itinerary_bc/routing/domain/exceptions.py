from src.itinerary_bc.route.domain.exceptions import ItineraryError


class RoutingProviderError(ItineraryError):
    """The routing provider failed or returned no usable route."""


class RoutingProviderTimeoutError(RoutingProviderError):
    """The routing provider did not answer in time."""
