# delivery_core/ingest.py

# Seed script to load delivery windows and route stops from CSV into the database.
# Normalizes day labels, HH:MM[:SS] times, stop statuses and optional coordinates.
# Replaces existing rows; routes referenced by stops are created if missing.
# Paths come from settings (WINDOWS_CSV / STOPS_CSV) or the command line.

from __future__ import annotations

import asyncio
import logging
import os
import sys
from uuid import uuid4

import pandas as pd
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from delivery_core.config import settings
from delivery_core.db import engine, SessionLocal
from delivery_core.logging_config import setup_logging
import delivery_core.models as models  # ensure models are registered

logger = logging.getLogger(__name__)


# ---------- helpers ----------

_DAY_LABELS = {
    "0": "Monday", "1": "Tuesday", "2": "Wednesday", "3": "Thursday",
    "4": "Friday", "5": "Saturday", "6": "Sunday",
    "mon": "Monday", "tue": "Tuesday", "wed": "Wednesday", "thu": "Thursday",
    "fri": "Friday", "sat": "Saturday", "sun": "Sunday",
}

def _norm_day(val) -> str:
    s = str(val).strip().lower()
    return _DAY_LABELS.get(s, _DAY_LABELS.get(s[:3], str(val).strip().title()))

def _norm_status(val) -> str:
    s = str(val).strip().lower().replace(" ", "_").replace("-", "_")
    if s in {"completed", "delivered", "done"}:
        return "completed"
    if s in {"in_progress", "en_route", "started"}:
        return "in_progress"
    if s in {"issue", "failed", "problem"}:
        return "issue"
    return "pending"

def _ensure_time_str(x) -> str:
    """Return HH:MM:SS string from 'H', 'H:M' or 'H:M:S'."""
    s = str(x).strip()
    if s.isdigit():
        s = f"{s}:00"  # bare hour, e.g. "9"
    return pd.to_datetime(s).strftime("%H:%M:%S")

def _read_csv(path: str) -> pd.DataFrame:
    if not os.path.exists(path):
        raise FileNotFoundError(f"CSV not found: {path}")
    df = pd.read_csv(path)
    df.columns = [c.strip().lower() for c in df.columns]
    return df

def _none_if_nan(val):
    return None if pd.isna(val) else float(val)


async def _load_windows(session: AsyncSession, df: pd.DataFrame) -> int:
    df = df.copy()
    for col in ("day_of_week", "start_time", "end_time", "capacity"):
        if col not in df.columns:
            raise ValueError(f"delivery windows CSV must contain '{col}'.")

    if "id" not in df.columns:
        df["id"] = [uuid4().hex for _ in range(len(df))]
    if "is_active" not in df.columns:
        df["is_active"] = True

    df["id"] = df["id"].astype(str)
    df["day_of_week"] = df["day_of_week"].map(_norm_day)
    df["start_time"] = df["start_time"].map(_ensure_time_str)
    df["end_time"] = df["end_time"].map(_ensure_time_str)
    df["capacity"] = df["capacity"].astype(int)
    df["is_active"] = df["is_active"].astype(bool)

    await session.execute(delete(models.DeliveryWindow))
    for row in df.to_dict(orient="records"):
        session.add(models.DeliveryWindow(
            id=row["id"],
            day_of_week=row["day_of_week"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            capacity=int(row["capacity"]),
            is_active=bool(row["is_active"]),
        ))
    await session.commit()
    logger.info("Inserted delivery_windows rows: %d", len(df))
    return len(df)


async def _load_stops(session: AsyncSession, df: pd.DataFrame) -> int:
    df = df.copy()
    for col in ("route_id", "stop_order"):
        if col not in df.columns:
            raise ValueError(f"delivery stops CSV must contain '{col}'.")
    for col in ("status", "geocoded_lat", "geocoded_lng"):
        if col not in df.columns:
            df[col] = None
    if "id" not in df.columns:
        df["id"] = [uuid4().hex for _ in range(len(df))]

    df["id"] = df["id"].astype(str)
    df["route_id"] = df["route_id"].astype(str)
    df["stop_order"] = df["stop_order"].astype(int)
    df["status"] = df["status"].fillna("pending").map(_norm_status)
    df["geocoded_lat"] = pd.to_numeric(df["geocoded_lat"], errors="coerce")
    df["geocoded_lng"] = pd.to_numeric(df["geocoded_lng"], errors="coerce")
    df = df.sort_values(["route_id", "stop_order"])

    route_ids = sorted(df["route_id"].unique())
    existing = set((await session.execute(
        select(models.DeliveryRoute.id).where(models.DeliveryRoute.id.in_(route_ids))
    )).scalars().all())
    session.add_all(models.DeliveryRoute(id=rid) for rid in route_ids if rid not in existing)

    await session.execute(delete(models.DeliveryStop).where(models.DeliveryStop.route_id.in_(route_ids)))
    for row in df.to_dict(orient="records"):
        session.add(models.DeliveryStop(
            id=row["id"],
            route_id=row["route_id"],
            stop_order=int(row["stop_order"]),
            status=models.StopStatus(row["status"]),
            geocoded_lat=_none_if_nan(row["geocoded_lat"]),
            geocoded_lng=_none_if_nan(row["geocoded_lng"]),
        ))
    await session.commit()
    logger.info("Inserted delivery_stops rows: %d across %d routes", len(df), len(route_ids))
    return len(df)


# ---------- public entrypoint ----------

async def ingest(windows_csv: str | None, stops_csv: str | None, session_factory=SessionLocal, bind=engine) -> dict:
    # create tables if not present (safe)
    async with bind.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

    counts = {"windows": 0, "stops": 0}
    async with session_factory() as session:
        if windows_csv:
            counts["windows"] = await _load_windows(session, _read_csv(windows_csv))
        if stops_csv:
            counts["stops"] = await _load_stops(session, _read_csv(stops_csv))
    return counts


if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL)
    args = sys.argv[1:]
    windows_csv = args[0] if len(args) > 0 else settings.WINDOWS_CSV
    stops_csv = args[1] if len(args) > 1 else settings.STOPS_CSV

    if not (windows_csv or stops_csv):
        raise SystemExit(
            "Set WINDOWS_CSV / STOPS_CSV in .env or pass them: python -m delivery_core.ingest windows.csv stops.csv"
        )

    result = asyncio.run(ingest(windows_csv, stops_csv))
    logger.info("Ingest complete. Rows => windows:%d stops:%d", result["windows"], result["stops"])
