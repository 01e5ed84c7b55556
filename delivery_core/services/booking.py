# delivery_core/services/booking.py

# Delivery appointment booking for a delivery week.
# Enforces the Friday cutoff (admins bypass it), window availability, address
# ownership, and window capacity. Capacity is checked inside the same
# INSERT/UPDATE that writes the appointment, with the window row locked.

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, insert, update, func, literal
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from delivery_core.models import Address, AppointmentStatus, DeliveryAppointment, DeliveryWindow
from delivery_core.utils.calendar import UTC, DeliveryCalendar, aware_utc

logger = logging.getLogger(__name__)


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidWeekError(BookingError):
    status_code = 422


class CutoffPassedError(BookingError):
    status_code = 403


class AddressUnavailableError(BookingError):
    status_code = 403


class WindowUnavailableError(BookingError):
    status_code = 404


class AppointmentNotFoundError(BookingError):
    status_code = 404


class WindowFullError(BookingError):
    status_code = 409


class AppointmentConflictError(BookingError):
    status_code = 409


@dataclass(frozen=True)
class WindowAvailability:
    id: str
    day_of_week: str
    start_time: str
    end_time: str
    capacity: int
    booked: int

    @property
    def available(self) -> int:
        return max(self.capacity - self.booked, 0)


def _check_week(calendar: DeliveryCalendar, week: date, is_admin: bool, now: Optional[datetime]) -> None:
    if not calendar.is_delivery_week(week):
        raise InvalidWeekError("week_of must be a delivery Saturday.")
    if not is_admin and calendar.is_past_cutoff(week, now):
        raise CutoffPassedError("The Friday 5PM cutoff has passed for this week.")


async def list_windows_for_week(session: AsyncSession, week: date) -> List[WindowAvailability]:
    windows = (await session.execute(
        select(DeliveryWindow)
        .where(DeliveryWindow.is_active.is_(True))
        .order_by(DeliveryWindow.day_of_week, DeliveryWindow.start_time)
    )).scalars().all()

    counts = dict((await session.execute(
        select(DeliveryAppointment.delivery_window_id, func.count(DeliveryAppointment.id))
        .where(DeliveryAppointment.week_of == week)
        .where(DeliveryAppointment.status == AppointmentStatus.scheduled)
        .group_by(DeliveryAppointment.delivery_window_id)
    )).all())

    return [
        WindowAvailability(w.id, w.day_of_week, w.start_time, w.end_time, w.capacity, counts.get(w.id, 0))
        for w in windows
    ]


async def _resolve_address(session: AsyncSession, user_id: str, address_id: Optional[str]) -> Optional[str]:
    if address_id:
        owned = (await session.execute(
            select(Address.id).where(Address.id == address_id).where(Address.user_id == user_id)
        )).scalar_one_or_none()
        if owned is None:
            raise AddressUnavailableError("Address not available.")
        return owned
    # fall back to the user's primary address, if any
    return (await session.execute(
        select(Address.id).where(Address.user_id == user_id).where(Address.is_primary.is_(True)).limit(1)
    )).scalar_one_or_none()


async def upsert_appointment(
    session: AsyncSession,
    calendar: DeliveryCalendar,
    user_id: str,
    is_admin: bool,
    week_of: date,
    delivery_window_id: str,
    address_id: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DeliveryAppointment:
    """Create or replace the user's appointment for week_of. Raises BookingError subclasses."""
    _check_week(calendar, week_of, is_admin, now)

    # row lock serialises concurrent bookings of one window where the store supports it
    window = (await session.execute(
        select(DeliveryWindow).where(DeliveryWindow.id == delivery_window_id).with_for_update()
    )).scalar_one_or_none()
    if window is None or not window.is_active:
        await session.rollback()
        raise WindowUnavailableError("Selected delivery window is unavailable.")

    try:
        address_id = await _resolve_address(session, user_id, address_id)
    except AddressUnavailableError:
        await session.rollback()
        raise

    existing = (await session.execute(
        select(DeliveryAppointment)
        .where(DeliveryAppointment.user_id == user_id)
        .where(DeliveryAppointment.week_of == week_of)
    )).scalar_one_or_none()

    other = aliased(DeliveryAppointment)
    booked = (
        select(func.count(other.id))
        .where(other.week_of == week_of)
        .where(other.delivery_window_id == delivery_window_id)
        .where(other.status == AppointmentStatus.scheduled)
    )
    if existing is not None:
        booked = booked.where(other.id != existing.id)
    has_room = booked.scalar_subquery() < window.capacity

    table = DeliveryAppointment.__table__
    ts = aware_utc(now) if now is not None else datetime.now(UTC)
    values = {
        "delivery_window_id": delivery_window_id,
        "address_id": address_id,
        "notes": notes,
        "status": AppointmentStatus.scheduled,
        "updated_at": ts,
    }

    if existing is not None:
        appointment_id = existing.id
        stmt = update(table).where(table.c.id == appointment_id).where(has_room).values(**values)
    else:
        appointment_id = uuid4().hex
        row = {"id": appointment_id, "user_id": user_id, "week_of": week_of, "created_at": ts, **values}
        names = list(row)
        stmt = insert(table).from_select(
            names,
            select(*[literal(row[name], table.c[name].type) for name in names]).where(has_room),
        )

    try:
        result = await session.execute(stmt)
    except IntegrityError:
        await session.rollback()
        raise AppointmentConflictError("Appointment was changed concurrently; please retry.")

    if result.rowcount == 0:
        await session.rollback()
        logger.info("window %s full for week %s (capacity %d)", delivery_window_id, week_of, window.capacity)
        raise WindowFullError("Selected delivery window is full.")

    await session.commit()
    return await session.get(DeliveryAppointment, appointment_id, populate_existing=True)


async def cancel_appointment(
    session: AsyncSession,
    calendar: DeliveryCalendar,
    user_id: str,
    is_admin: bool,
    week_of: date,
    now: Optional[datetime] = None,
) -> DeliveryAppointment:
    _check_week(calendar, week_of, is_admin, now)

    appointment = (await session.execute(
        select(DeliveryAppointment)
        .where(DeliveryAppointment.user_id == user_id)
        .where(DeliveryAppointment.week_of == week_of)
        .where(DeliveryAppointment.status == AppointmentStatus.scheduled)
    )).scalar_one_or_none()
    if appointment is None:
        raise AppointmentNotFoundError("No scheduled appointment for this week.")

    appointment.status = AppointmentStatus.cancelled
    appointment.updated_at = aware_utc(now) if now is not None else datetime.now(UTC)
    await session.commit()
    return appointment
