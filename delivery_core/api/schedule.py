# delivery_core/api/schedule.py

# Scheduling endpoints backed by the delivery calendar.
# /schedule/weeks → next selectable delivery Saturdays with their Friday 5 PM cutoff.
# /schedule/windows → delivery windows for a week with remaining capacity.
# /delivery/appointment → create/replace the caller's appointment (blocked after cutoff unless admin).
# /delivery/appointment/cancel → cancel the caller's appointment for a week.

from __future__ import annotations
import logging
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_core.api.deps import CurrentUser, current_user, get_calendar
from delivery_core.config import settings
from delivery_core.db import get_session
from delivery_core.schemas import (
    AppointmentOut, AppointmentRequest, CancelRequest, DeliveryWeekOut, WeekWindowsOut, WindowOut,
)
from delivery_core.services.booking import (
    BookingError, cancel_appointment, list_windows_for_week, upsert_appointment,
)
from delivery_core.utils.calendar import DeliveryCalendar

logger = logging.getLogger(__name__)

router = APIRouter()


def _appointment_out(appointment) -> AppointmentOut:
    status = appointment.status.value if hasattr(appointment.status, "value") else appointment.status
    return AppointmentOut(
        id=appointment.id,
        week_of=appointment.week_of,
        delivery_window_id=appointment.delivery_window_id,
        status=status,
    )


@router.get("/schedule/weeks", response_model=List[DeliveryWeekOut])
async def upcoming_weeks(
    count: int = Query(default=settings.UPCOMING_WEEKS, ge=1, le=8),
    calendar: DeliveryCalendar = Depends(get_calendar),
):
    now = calendar.now()
    return [
        DeliveryWeekOut(
            week_of=week,
            cutoff=calendar.cutoff_instant(week),
            is_past_cutoff=calendar.is_past_cutoff(week, now),
        )
        for week in calendar.upcoming_delivery_weeks(count, now)
    ]


@router.get("/schedule/windows", response_model=WeekWindowsOut)
async def week_windows(
    week_of: date,
    calendar: DeliveryCalendar = Depends(get_calendar),
    session: AsyncSession = Depends(get_session),
):
    if not calendar.is_delivery_week(week_of):
        raise HTTPException(status_code=422, detail="week_of must be a delivery Saturday.")
    windows = await list_windows_for_week(session, week_of)
    return WeekWindowsOut(
        week_of=week_of,
        cutoff=calendar.cutoff_instant(week_of),
        is_past_cutoff=calendar.is_past_cutoff(week_of),
        windows=[
            WindowOut(id=w.id, day_of_week=w.day_of_week, start_time=w.start_time,
                      end_time=w.end_time, capacity=w.capacity, available=w.available)
            for w in windows
        ],
    )


@router.post("/delivery/appointment")
async def save_appointment(
    payload: AppointmentRequest,
    user: CurrentUser = Depends(current_user),
    calendar: DeliveryCalendar = Depends(get_calendar),
    session: AsyncSession = Depends(get_session),
):
    try:
        appointment = await upsert_appointment(
            session, calendar, user.id, user.is_admin,
            payload.week_of, payload.delivery_window_id, payload.address_id, payload.notes,
        )
    except BookingError as exc:
        logger.info("appointment rejected for user %s week %s: %s", user.id, payload.week_of, exc.message)
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    return {"appointment": _appointment_out(appointment)}


@router.post("/delivery/appointment/cancel")
async def cancel(
    payload: CancelRequest,
    user: CurrentUser = Depends(current_user),
    calendar: DeliveryCalendar = Depends(get_calendar),
    session: AsyncSession = Depends(get_session),
):
    try:
        appointment = await cancel_appointment(session, calendar, user.id, user.is_admin, payload.week_of)
    except BookingError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message)
    return {"appointment": _appointment_out(appointment)}
