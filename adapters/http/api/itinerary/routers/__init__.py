from .itinerary_router import router as itinerary_router

__all__ = ["itinerary_router"]
