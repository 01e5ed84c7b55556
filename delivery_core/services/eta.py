# delivery_core/services/eta.py

# Route ETA recalculation: driver position + ordered stops -> estimated_arrival per stop.
# One traffic-aware distance-matrix call from the driver to every geocoded stop,
# then a single ordered pass adding dwell time for incomplete stops still ahead.
# Missing inputs are reported as tagged results; provider failures propagate.

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import select, update, asc, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_core.config import settings
from delivery_core.models import DeliveryStop, DriverLocation
from delivery_core.services.maps_client import MatrixElement
from delivery_core.utils.calendar import UTC, aware_utc
from delivery_core.utils.traffic import adjusted_stop_minutes

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = {"completed", "delivered"}

MISSING_DRIVER_LOCATION = "missing_driver_location"
MISSING_STOP_COORDINATES = "missing_stop_coordinates"
NO_INCOMPLETE_STOPS = "no_incomplete_stops"


@dataclass(frozen=True)
class EtaResult:
    updated: bool
    reason: Optional[str] = None
    updates: int = 0

    def to_dict(self) -> dict:
        out = {"updated": self.updated}
        if self.reason:
            out["reason"] = self.reason
        else:
            out["updates"] = self.updates
        return out


@dataclass(frozen=True)
class StopSnapshot:
    id: str
    status: str
    completed_at: Optional[datetime] = None


def _status_value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def is_stop_incomplete(status, completed_at: Optional[datetime]) -> bool:
    return completed_at is None and _status_value(status) not in COMPLETED_STATUSES


def plan_stop_etas(
    stops: Sequence[StopSnapshot],
    elements: Sequence[MatrixElement],
    now: datetime,
    average_stop_minutes: float,
    dwell_minutes: Optional[Callable[[datetime], float]] = None,
) -> List[Tuple[str, datetime]]:
    """
    Fold over stops in route order, carrying the count of incomplete stops seen so far.

    A stop's ETA is now + its drive time + (incomplete stops before it) * dwell.
    Elements that are missing or not OK are skipped entirely. Only incomplete
    stops get an ETA; completed ones still consume their matrix element.

    dwell_minutes, when given, maps a provisional arrival instant to the dwell
    minutes used for that stop (time-of-day adjustment).
    """
    planned: List[Tuple[str, datetime]] = []
    incomplete_before = 0

    for index, stop in enumerate(stops):
        element = elements[index] if index < len(elements) else None
        if element is None or not element.ok:
            continue

        base_s = element.base_duration_s
        minutes = dwell_minutes(now + timedelta(seconds=base_s)) if dwell_minutes else average_stop_minutes
        added_dwell_s = incomplete_before * minutes * 60

        if is_stop_incomplete(stop.status, stop.completed_at):
            planned.append((stop.id, now + timedelta(seconds=base_s + added_dwell_s)))
            incomplete_before += 1

    return planned


async def _latest_driver_location(session: AsyncSession, route_id: str) -> Optional[DriverLocation]:
    return (await session.execute(
        select(DriverLocation)
        .where(DriverLocation.route_id == route_id)
        .order_by(desc(DriverLocation.updated_at))
        .limit(1)
    )).scalars().first()


async def _route_stops(session: AsyncSession, route_id: str) -> List[DeliveryStop]:
    return list((await session.execute(
        select(DeliveryStop)
        .where(DeliveryStop.route_id == route_id)
        .order_by(asc(DeliveryStop.stop_order))
    )).scalars().all())


async def recalculate_route_etas(
    session: AsyncSession,
    maps_client,
    route_id: str,
    average_stop_minutes: Optional[float] = None,
    use_time_factors: Optional[bool] = None,
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None,
) -> EtaResult:
    if average_stop_minutes is None:
        average_stop_minutes = settings.ETA_AVERAGE_STOP_MINUTES
    if use_time_factors is None:
        use_time_factors = settings.ETA_USE_TIME_FACTORS
    now = aware_utc(now) if now is not None else datetime.now(UTC)

    location = await _latest_driver_location(session, route_id)
    if location is None:
        return EtaResult(updated=False, reason=MISSING_DRIVER_LOCATION)

    stops = [
        s for s in await _route_stops(session, route_id)
        if s.geocoded_lat is not None and s.geocoded_lng is not None
    ]
    if not stops:
        return EtaResult(updated=False, reason=MISSING_STOP_COORDINATES)

    # requests is blocking; keep it off the event loop
    matrix = await asyncio.to_thread(
        maps_client.distance_matrix,
        (location.latitude, location.longitude),
        [(s.geocoded_lat, s.geocoded_lng) for s in stops],
    )

    dwell_minutes = None
    if use_time_factors:
        kitchen_tz = ZoneInfo(tz_name or settings.KITCHEN_TIME_ZONE)

        def dwell_minutes(arrival: datetime) -> float:
            return adjusted_stop_minutes(average_stop_minutes, arrival.astimezone(kitchen_tz))

    planned = plan_stop_etas(
        [StopSnapshot(s.id, _status_value(s.status), s.completed_at) for s in stops],
        matrix.elements,
        now,
        average_stop_minutes,
        dwell_minutes,
    )
    if not planned:
        return EtaResult(updated=False, reason=NO_INCOMPLETE_STOPS)

    # independent per-row writes: an earlier success is not undone by a later failure
    failed = 0
    for stop_id, eta in planned:
        try:
            await session.execute(
                update(DeliveryStop).where(DeliveryStop.id == stop_id).values(estimated_arrival=eta)
            )
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            failed += 1
            logger.exception("route %s: failed to store ETA for stop %s", route_id, stop_id)

    if failed:
        logger.error("route %s: %d of %d ETA writes failed", route_id, failed, len(planned))
    else:
        logger.info("route %s: updated %d stop ETAs", route_id, len(planned))
    return EtaResult(updated=failed == 0, updates=len(planned))
