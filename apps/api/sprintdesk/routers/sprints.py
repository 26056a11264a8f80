from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.deps import get_admin, get_db, get_principal
from sprintdesk.schemas import SprintCreateIn, SprintDetailOut, SprintOut, SprintUpdateIn
from sprintdesk.security import Principal
from sprintdesk.sprints import service as sprints

router = APIRouter(prefix="/sprints", tags=["sprints"])


@router.get("", response_model=list[SprintOut])
async def list_sprints(_: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> list[SprintOut]:
  return await sprints.list_sprints(db)


@router.post("", response_model=SprintOut, status_code=201)
async def create_sprint(payload: SprintCreateIn, _: Principal = Depends(get_admin), db: AsyncSession = Depends(get_db)) -> SprintOut:
  return await sprints.create_sprint(db, payload)


@router.get("/{sprint_id}", response_model=SprintDetailOut)
async def get_sprint(sprint_id: str, _: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> SprintDetailOut:
  return await sprints.get_sprint_detail(db, sprint_id)


@router.patch("/{sprint_id}", response_model=SprintOut)
async def update_sprint(
  sprint_id: str,
  payload: SprintUpdateIn,
  _: Principal = Depends(get_admin),
  db: AsyncSession = Depends(get_db),
) -> SprintOut:
  return await sprints.update_sprint(db, sprint_id, payload)


@router.delete("/{sprint_id}")
async def delete_sprint(sprint_id: str, _: Principal = Depends(get_admin), db: AsyncSession = Depends(get_db)) -> dict:
  await sprints.delete_sprint(db, sprint_id)
  return {"ok": True}
