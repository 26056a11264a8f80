from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.deps import get_db, get_principal
from sprintdesk.reporting.service import build_dashboard
from sprintdesk.schemas import DashboardOut
from sprintdesk.security import Principal

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardOut)
async def dashboard(actor: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> DashboardOut:
  return await build_dashboard(db, actor, datetime.now(timezone.utc))
