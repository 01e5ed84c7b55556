# delivery_core/main.py

# FastAPI application entrypoint for the weekly delivery service.
# Includes health, scheduling, driver/tracking and maps routers, and sets up
# database tables and logging on startup.
# Root endpoint shows available API routes for quick reference.

from fastapi import FastAPI
from delivery_core.api.health import router as health_router
from delivery_core.api.schedule import router as schedule_router
from delivery_core.api.driver import router as driver_router
from delivery_core.api.maps import router as maps_router
from delivery_core.config import settings
from delivery_core.db import Base, engine
from delivery_core.logging_config import setup_logging
import delivery_core.models  # important: registers tables

app = FastAPI(title="Weekly Delivery Core", version="0.1.0")
app.include_router(health_router, tags=["health"])
app.include_router(schedule_router, tags=["schedule"])
app.include_router(driver_router, tags=["driver"])
app.include_router(maps_router, tags=["maps"])

@app.on_event("startup")
async def on_startup():
    setup_logging(settings.LOG_LEVEL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

@app.get("/")
async def root():
    return {"status": "ok", "see": ["/healthz", "/schedule/weeks", "/schedule/windows?week_of=...",
                                   "/delivery/appointment", "/driver/location", "/routes/{route_id}/etas"]}
