# Tests for appointment booking: cutoff enforcement, admin bypass, capacity, address rules.

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import func, select

from conftest import run, seed
from delivery_core.models import Address, AppointmentStatus, DeliveryAppointment, DeliveryWindow
from delivery_core.services.booking import (
    AddressUnavailableError, AppointmentNotFoundError, CutoffPassedError, InvalidWeekError,
    WindowFullError, WindowUnavailableError, cancel_appointment, list_windows_for_week, upsert_appointment,
)
from delivery_core.utils.calendar import DeliveryCalendar

UTC = ZoneInfo("UTC")
WEEK = date(2026, 10, 24)
BEFORE_CUTOFF = datetime(2026, 10, 21, 12, 0, tzinfo=UTC)
AFTER_CUTOFF = datetime(2026, 10, 24, 0, 30, tzinfo=UTC)  # Friday 17:30 PDT
CAL = DeliveryCalendar("America/Los_Angeles")


@pytest.fixture
def windows(db):
    seed(
        db,
        DeliveryWindow(id="w-sat", day_of_week="Saturday", start_time="10:00:00", end_time="12:00:00", capacity=1),
        DeliveryWindow(id="w-sun", day_of_week="Sunday", start_time="10:00:00", end_time="12:00:00", capacity=5),
        DeliveryWindow(id="w-off", day_of_week="Sunday", start_time="14:00:00", end_time="16:00:00",
                       capacity=5, is_active=False),
        Address(id="a-primary", user_id="u1", line1="1 First St", is_primary=True),
        Address(id="a-other", user_id="u1", line1="2 Second St"),
        Address(id="a-u2", user_id="u2", line1="9 Ninth St"),
    )
    return db


def book(db, user="u1", window="w-sun", week=WEEK, now=BEFORE_CUTOFF, is_admin=False, **kwargs):
    async def _go():
        async with db() as session:
            return await upsert_appointment(session, CAL, user, is_admin, week, window, now=now, **kwargs)
    return run(_go())


def cancel(db, user="u1", week=WEEK, now=BEFORE_CUTOFF, is_admin=False):
    async def _go():
        async with db() as session:
            return await cancel_appointment(session, CAL, user, is_admin, week, now=now)
    return run(_go())


def count_rows(db):
    async def _go():
        async with db() as session:
            return (await session.execute(select(func.count(DeliveryAppointment.id)))).scalar()
    return run(_go())


def test_creates_then_updates_same_user_week(windows):
    first = book(windows, notes="gate code 1234")
    assert first.week_of == WEEK
    assert first.delivery_window_id == "w-sun"
    assert first.address_id == "a-primary"
    assert first.status == AppointmentStatus.scheduled

    second = book(windows, window="w-sat", address_id="a-other")
    assert second.id == first.id
    assert second.delivery_window_id == "w-sat"
    assert second.address_id == "a-other"
    assert count_rows(windows) == 1

def test_cutoff_blocks_customers_but_not_admins(windows):
    with pytest.raises(CutoffPassedError, match="cutoff"):
        book(windows, now=AFTER_CUTOFF)
    assert count_rows(windows) == 0

    appointment = book(windows, now=AFTER_CUTOFF, is_admin=True)
    assert appointment.delivery_window_id == "w-sun"

def test_rejects_non_saturday_week(windows):
    with pytest.raises(InvalidWeekError):
        book(windows, week=WEEK - timedelta(days=1))

def test_window_capacity_is_enforced(windows):
    book(windows, user="u1", window="w-sat")
    with pytest.raises(WindowFullError):
        book(windows, user="u2", window="w-sat")
    # re-saving the holder of the last slot still fits
    book(windows, user="u1", window="w-sat", notes="updated")
    assert count_rows(windows) == 1

def test_capacity_is_counted_per_week(windows):
    book(windows, user="u1", window="w-sat")
    other = book(windows, user="u2", window="w-sat", week=WEEK + timedelta(days=7))
    assert other.week_of == WEEK + timedelta(days=7)

def test_cancelled_appointment_frees_capacity(windows):
    book(windows, user="u1", window="w-sat")
    cancelled = cancel(windows, user="u1")
    assert cancelled.status == AppointmentStatus.cancelled
    assert book(windows, user="u2", window="w-sat").delivery_window_id == "w-sat"

def test_rebooking_a_cancelled_appointment_reschedules_it(windows):
    first = book(windows)
    cancel(windows)
    again = book(windows)
    assert again.id == first.id
    assert again.status == AppointmentStatus.scheduled

def test_cancel_rules(windows):
    with pytest.raises(AppointmentNotFoundError):
        cancel(windows)
    book(windows)
    with pytest.raises(CutoffPassedError):
        cancel(windows, now=AFTER_CUTOFF)

def test_unknown_or_inactive_window(windows):
    with pytest.raises(WindowUnavailableError):
        book(windows, window="missing")
    with pytest.raises(WindowUnavailableError):
        book(windows, window="w-off")

def test_address_must_belong_to_user(windows):
    with pytest.raises(AddressUnavailableError):
        book(windows, user="u1", address_id="a-u2")

def test_user_without_primary_address_books_without_one(windows):
    assert book(windows, user="u3").address_id is None

def test_list_windows_for_week_reports_availability(windows):
    book(windows, user="u1", window="w-sun")
    book(windows, user="u2", window="w-sun")
    book(windows, user="u3", window="w-sat")
    cancel(windows, user="u3")

    async def _go():
        async with windows() as session:
            return await list_windows_for_week(session, WEEK)

    listed = {w.id: (w.capacity, w.booked, w.available) for w in run(_go())}
    assert listed == {"w-sat": (1, 0, 1), "w-sun": (5, 2, 3)}
