# delivery_core/api/maps.py

# Mapping endpoints.
# /maps/geocode → geocodes one of the caller's addresses and stores canonical fields + coordinates.
# /maps/directions → driving directions (optionally waypoint-optimized) for route planning.

from __future__ import annotations
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_core.api.deps import CurrentUser, current_user, require_maps_client
from delivery_core.db import get_session
from delivery_core.models import Address
from delivery_core.schemas import DirectionsRequest, GeocodeRequest
from delivery_core.services.maps_client import MapsProviderError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/maps/geocode")
async def geocode_address(
    payload: GeocodeRequest,
    user: CurrentUser = Depends(current_user),
    session: AsyncSession = Depends(get_session),
    maps_client=Depends(require_maps_client),
):
    address = (await session.execute(
        select(Address).where(Address.id == payload.address_id).where(Address.user_id == user.id)
    )).scalar_one_or_none()
    if address is None:
        raise HTTPException(status_code=404, detail="Address not found.")

    try:
        result = await asyncio.to_thread(maps_client.geocode, payload.as_query())
    except MapsProviderError as exc:
        logger.warning("geocode failed for address %s: %s", payload.address_id, exc)
        raise HTTPException(status_code=422, detail=str(exc))

    canonical = result.canonical_address()
    address.line1 = canonical["line1"] or payload.line1
    address.line2 = payload.line2
    address.city = canonical["city"] or payload.city
    address.state = canonical["state"] or payload.state
    address.postal_code = canonical["postal_code"] or payload.postal_code
    address.country = canonical["country"] or payload.country
    address.latitude = result.lat
    address.longitude = result.lng
    await session.commit()

    return {
        "id": address.id,
        "formatted_address": result.formatted_address,
        "latitude": result.lat,
        "longitude": result.lng,
        "address": canonical,
    }


@router.post("/maps/directions")
async def directions(
    payload: DirectionsRequest,
    user: CurrentUser = Depends(current_user),
    maps_client=Depends(require_maps_client),
):
    try:
        route = await asyncio.to_thread(
            maps_client.directions, payload.origin, payload.destination, payload.waypoints, payload.optimize
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except MapsProviderError as exc:
        logger.warning("directions failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))

    return {
        "polyline": route.polyline,
        "distance_m": route.distance_m,
        "duration_s": route.duration_s,
        "waypoint_order": route.waypoint_order,
        "legs": [
            {"distance_m": leg.distance_m, "duration_s": leg.duration_s,
             "start_address": leg.start_address, "end_address": leg.end_address}
            for leg in route.legs
        ],
    }
