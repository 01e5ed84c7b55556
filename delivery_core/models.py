# delivery_core/models.py

# SQLAlchemy ORM models for the delivery scheduling and route-tracking tables.
# Includes delivery_windows, delivery_appointments, addresses, delivery_routes,
# delivery_stops and driver_locations.
# estimated_arrival on delivery_stops is the only column the ETA estimator writes.


from __future__ import annotations
import enum
from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import (
    String, Integer, Float, Boolean, Date, DateTime, Enum, Index, Text,
    ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from delivery_core.db import Base


def _new_id() -> str:
    return uuid4().hex


class StopStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    issue = "issue"


class AppointmentStatus(str, enum.Enum):
    scheduled = "scheduled"
    cancelled = "cancelled"


class DeliveryWindow(Base):
    __tablename__ = "delivery_windows"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    day_of_week: Mapped[str] = mapped_column(String, nullable=False)  # "Saturday" / "Sunday"
    start_time: Mapped[str] = mapped_column(String, nullable=False)  # "HH:MM:SS"
    end_time: Mapped[str] = mapped_column(String, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Address(Base):
    __tablename__ = "addresses"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    line1: Mapped[str] = mapped_column(String, nullable=False)
    line2: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String, nullable=True)
    country: Mapped[str] = mapped_column(String, nullable=False, default="US")
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)


class DeliveryAppointment(Base):
    __tablename__ = "delivery_appointments"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    week_of: Mapped[date] = mapped_column(Date, nullable=False)  # kitchen-zone Saturday
    delivery_window_id: Mapped[str] = mapped_column(ForeignKey("delivery_windows.id"), nullable=False)
    address_id: Mapped[str | None] = mapped_column(ForeignKey("addresses.id"), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus), nullable=False, default=AppointmentStatus.scheduled
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "week_of", name="uq_appointment_user_week"),
        Index("idx_appointment_week_window", "week_of", "delivery_window_id"),
    )


class DeliveryRoute(Base):
    __tablename__ = "delivery_routes"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    driver_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    week_of: Mapped[date | None] = mapped_column(Date, nullable=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)


class DeliveryStop(Base):
    __tablename__ = "delivery_stops"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    route_id: Mapped[str] = mapped_column(ForeignKey("delivery_routes.id"), index=True, nullable=False)
    stop_order: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[StopStatus] = mapped_column(Enum(StopStatus), nullable=False, default=StopStatus.pending)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    geocoded_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    geocoded_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    estimated_arrival: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    driver_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_stops_route_order", "route_id", "stop_order"),
    )


class DriverLocation(Base):
    __tablename__ = "driver_locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    driver_id: Mapped[str] = mapped_column(String, nullable=False)
    route_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    heading: Mapped[float | None] = mapped_column(Float, nullable=True)
    speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("driver_id", "route_id", name="uq_driver_route"),
    )
