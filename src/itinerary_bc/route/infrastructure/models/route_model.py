from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, Text, Time
from sqlalchemy.orm import relationship
from core.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RouteModel(Base):
    """SQLAlchemy model for itinerary routes.

    version is bumped by SQLAlchemy on every UPDATE and checked in the
    WHERE clause, so a write based on a stale read fails with StaleDataError.
    """
    __tablename__ = "itinerary_routes"

    id = Column(String(36), primary_key=True)
    name = Column(String(200), nullable=False, default="")
    description = Column(Text, nullable=True)

    # Schedule settings
    timezone = Column(String(64), nullable=False, default="Europe/Berlin")
    start_at = Column(DateTime(timezone=True), nullable=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    default_arrival_time = Column(Time, nullable=True)
    default_departure_time = Column(Time, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    stops = relationship(
        "RouteStopModel",
        back_populates="route",
        cascade="all, delete-orphan",
        order_by="RouteStopModel.position_index",
    )
    legs = relationship(
        "RouteLegModel",
        back_populates="route",
        cascade="all, delete-orphan",
        order_by="RouteLegModel.position_index",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Route {self.id} v{self.version} ({self.name})>"
