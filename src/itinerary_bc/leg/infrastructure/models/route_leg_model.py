from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from core.base import Base


class RouteLegModel(Base):
    """SQLAlchemy model for travel legs between consecutive stops."""
    __tablename__ = "itinerary_route_legs"

    id = Column(String(36), primary_key=True)
    route_id = Column(
        String(36),
        ForeignKey("itinerary_routes.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_stop_id = Column(
        String(36),
        ForeignKey("itinerary_route_stops.id", ondelete="CASCADE"),
        nullable=False,
    )
    to_stop_id = Column(
        String(36),
        ForeignKey("itinerary_route_stops.id", ondelete="CASCADE"),
        nullable=False,
    )
    position_index = Column(Integer, nullable=False)  # Index of the from stop
    distance_meters = Column(Integer, nullable=False, default=0)
    duration_seconds = Column(Integer, nullable=False, default=0)
    geometry = Column(JSON, nullable=True)  # [[lon, lat], ...]
    provider = Column(String(50), nullable=False, default="OSRM")
    calculated_at = Column(DateTime(timezone=True), nullable=True)
    planned_start = Column(DateTime(timezone=True), nullable=True)
    planned_end = Column(DateTime(timezone=True), nullable=True)
    needs_routing = Column(Boolean, nullable=False, default=False)

    route = relationship("RouteModel", back_populates="legs")

    __table_args__ = (
        Index("ix_route_legs_route_position", "route_id", "position_index"),
        Index("ix_route_legs_needs_routing", "needs_routing"),
    )

    def __repr__(self):
        return f"<RouteLeg {self.from_stop_id}->{self.to_stop_id} {self.duration_seconds}s>"
