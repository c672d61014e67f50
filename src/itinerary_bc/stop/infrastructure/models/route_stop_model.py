from sqlalchemy import Column, String, Integer, Float, DateTime, Boolean, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from core.base import Base


class RouteStopModel(Base):
    """SQLAlchemy model for the stops of an itinerary route.

    Place name and coordinates are copied from the place catalogue when the
    stop is added, so routing requests need no extra lookup.
    """
    __tablename__ = "itinerary_route_stops"

    id = Column(String(36), primary_key=True)
    route_id = Column(
        String(36),
        ForeignKey("itinerary_routes.id", ondelete="CASCADE"),
        nullable=False,
    )
    place_id = Column(String(100), nullable=False, index=True)
    place_name = Column(String(255), nullable=False, default="")
    lat = Column(Float, nullable=True)
    lon = Column(Float, nullable=True)
    position_index = Column(Integer, nullable=False)
    kind = Column(Integer, nullable=False, default=0)  # 0=overnight, 1=day stop, 2=waypoint
    timezone = Column(String(64), nullable=True)  # Overrides the route zone

    planned_start = Column(DateTime(timezone=True), nullable=True)
    planned_end = Column(DateTime(timezone=True), nullable=True)
    stay_nights = Column(Integer, nullable=True)
    stay_duration_minutes = Column(Integer, nullable=True)
    start_locked = Column(Boolean, nullable=False, default=False)
    end_locked = Column(Boolean, nullable=False, default=False)

    route = relationship("RouteModel", back_populates="stops")

    __table_args__ = (
        UniqueConstraint("route_id", "position_index", name="uq_route_stops_route_position"),
        Index("ix_route_stops_route_start", "route_id", "planned_start"),
    )

    def __repr__(self):
        return f"<RouteStop {self.id} #{self.position_index} {self.place_name}>"
