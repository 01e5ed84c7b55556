# delivery_core/api/driver.py

# Driver app and live-tracking endpoints.
# /driver/location → upserts the driver's GPS position for a route, then refreshes stop ETAs.
#   ETA failures are logged and never reject the ping.
# /driver/stops → driver marks a stop pending / in progress / completed / issue.
# /routes/{route_id}/etas → current stop ETAs for the tracking screen.

from __future__ import annotations
import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, asc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_core.api.deps import CurrentUser, current_user, optional_maps_client
from delivery_core.db import get_session
from delivery_core.models import DeliveryRoute, DeliveryStop, DriverLocation, StopStatus
from delivery_core.schemas import LocationUpdate, StopOut, StopUpdate
from delivery_core.services.eta import recalculate_route_etas
from delivery_core.services.maps_client import MapsProviderError
from delivery_core.utils.calendar import UTC, aware_utc

logger = logging.getLogger(__name__)

router = APIRouter()


def _stop_out(stop: DeliveryStop) -> StopOut:
    return StopOut(
        id=stop.id,
        stop_order=stop.stop_order,
        status=stop.status.value if hasattr(stop.status, "value") else stop.status,
        completed_at=aware_utc(stop.completed_at) if stop.completed_at else None,
        estimated_arrival=aware_utc(stop.estimated_arrival) if stop.estimated_arrival else None,
        driver_notes=stop.driver_notes,
    )


@router.post("/driver/location")
async def update_location(
    payload: LocationUpdate,
    user: CurrentUser = Depends(current_user),
    session: AsyncSession = Depends(get_session),
    maps_client=Depends(optional_maps_client),
):
    location = (await session.execute(
        select(DriverLocation)
        .where(DriverLocation.driver_id == user.id)
        .where(DriverLocation.route_id == payload.route_id)
    )).scalar_one_or_none()
    if location is None:
        location = DriverLocation(driver_id=user.id, route_id=payload.route_id,
                                  latitude=payload.latitude, longitude=payload.longitude,
                                  updated_at=datetime.now(UTC))
        session.add(location)

    location.latitude = payload.latitude
    location.longitude = payload.longitude
    location.heading = payload.heading
    location.speed = payload.speed
    location.accuracy = payload.accuracy
    location.updated_at = datetime.now(UTC)

    try:
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("failed to store location for driver %s route %s", user.id, payload.route_id)
        raise HTTPException(status_code=500, detail="Failed to update location")

    eta = None
    if maps_client is not None:
        try:
            eta = await recalculate_route_etas(session, maps_client, payload.route_id)
        except (MapsProviderError, SQLAlchemyError) as exc:
            logger.warning("ETA recalculation failed for route %s: %s", payload.route_id, exc)

    return {"ok": True, "eta": eta.to_dict() if eta else None}


@router.post("/driver/stops", response_model=StopOut)
async def update_stop(
    payload: StopUpdate,
    user: CurrentUser = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    stop = await session.get(DeliveryStop, payload.stop_id)
    if stop is None:
        raise HTTPException(status_code=404, detail="Stop not found.")

    route = await session.get(DeliveryRoute, stop.route_id)
    if route is None or (route.driver_id != user.id and not user.is_admin):
        raise HTTPException(status_code=403, detail="You do not have access to this stop.")

    stop.status = StopStatus(payload.status)
    stop.driver_notes = payload.driver_notes
    if stop.status == StopStatus.completed:
        if stop.completed_at is None:
            stop.completed_at = datetime.now(UTC)
    else:
        # undoing a completion makes the stop eligible for ETAs again
        stop.completed_at = None

    await session.commit()
    return _stop_out(stop)


@router.get("/routes/{route_id}/etas", response_model=List[StopOut])
async def route_etas(
    route_id: str,
    user: CurrentUser = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    stops = (await session.execute(
        select(DeliveryStop).where(DeliveryStop.route_id == route_id).order_by(asc(DeliveryStop.stop_order))
    )).scalars().all()
    if not stops and await session.get(DeliveryRoute, route_id) is None:
        raise HTTPException(status_code=404, detail="Route not found.")
    return [_stop_out(s) for s in stops]
