# delivery_core/schemas.py

# Pydantic schemas for API request/response models.
from __future__ import annotations
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class LocationUpdate(BaseModel):
    route_id: str = Field(min_length=1)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    heading: Optional[float] = Field(default=None, ge=0, le=360)
    speed: Optional[float] = Field(default=None, ge=0)
    accuracy: Optional[float] = Field(default=None, ge=0)


class StopUpdate(BaseModel):
    stop_id: str = Field(min_length=1)
    status: Literal["pending", "in_progress", "completed", "issue"]
    driver_notes: Optional[str] = Field(default=None, max_length=1000)


class StopOut(BaseModel):
    id: str
    stop_order: int
    status: str
    completed_at: Optional[datetime] = None
    estimated_arrival: Optional[datetime] = None
    driver_notes: Optional[str] = None


class DeliveryWeekOut(BaseModel):
    week_of: date
    cutoff: datetime
    is_past_cutoff: bool


class WindowOut(BaseModel):
    id: str
    day_of_week: str
    start_time: str
    end_time: str
    capacity: int
    available: int


class WeekWindowsOut(BaseModel):
    week_of: date
    cutoff: datetime
    is_past_cutoff: bool
    windows: List[WindowOut]


class AppointmentRequest(BaseModel):
    week_of: date
    delivery_window_id: str = Field(min_length=1)
    address_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class CancelRequest(BaseModel):
    week_of: date


class AppointmentOut(BaseModel):
    id: str
    week_of: date
    delivery_window_id: str
    status: str
    model_config = ConfigDict(from_attributes=True)


class GeocodeRequest(BaseModel):
    address_id: str
    line1: str = Field(min_length=1)
    line2: Optional[str] = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(default="US", min_length=1)

    def as_query(self) -> str:
        parts = [self.line1, self.line2, self.city, self.state, self.postal_code, self.country]
        return ", ".join(p for p in parts if p)


class DirectionsRequest(BaseModel):
    origin: str = Field(min_length=1)
    destination: str = Field(min_length=1)
    waypoints: Optional[List[str]] = None
    optimize: bool = False
