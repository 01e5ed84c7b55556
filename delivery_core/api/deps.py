# delivery_core/api/deps.py

# Shared FastAPI dependencies.
# Identity is established upstream by the auth provider and forwarded as
# X-User-Id / X-User-Role headers; this service only reads them.

from __future__ import annotations
import logging
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from delivery_core.config import settings
from delivery_core.services.maps_client import GoogleMapsClient
from delivery_core.utils.calendar import DeliveryCalendar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def current_user(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> CurrentUser:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return CurrentUser(id=x_user_id, role=(x_user_role or "customer").lower())


@lru_cache
def get_calendar() -> DeliveryCalendar:
    return DeliveryCalendar(settings.KITCHEN_TIME_ZONE)


@lru_cache
def get_maps_client() -> GoogleMapsClient:
    return GoogleMapsClient()


def optional_maps_client() -> GoogleMapsClient | None:
    """Maps client, or None when no API key is configured (ETA refresh is skipped)."""
    try:
        return get_maps_client()
    except ValueError:
        logger.warning("GOOGLE_MAPS_API_KEY not set; ETA recalculation disabled")
        return None


def require_maps_client(client: GoogleMapsClient | None = Depends(optional_maps_client)) -> GoogleMapsClient:
    if client is None:
        raise HTTPException(status_code=503, detail="Mapping provider is not configured.")
    return client
