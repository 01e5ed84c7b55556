# delivery_core/api/health.py

# Health check endpoint.
# /healthz → verifies DB connectivity by running "SELECT 1".

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from delivery_core.db import get_session

router = APIRouter()

@router.get("/healthz")
async def healthz(session: AsyncSession = Depends(get_session)):
    await session.execute(text("SELECT 1"))
    return {"ok": True}
