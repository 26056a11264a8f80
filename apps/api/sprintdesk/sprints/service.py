from __future__ import annotations

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.errors import NotFound, PreconditionFailed, ValidationError
from sprintdesk.models import Sprint, Task
from sprintdesk.schemas import SprintCreateIn, SprintDetailOut, SprintOut, SprintUpdateIn
from sprintdesk.tasks.service import task_outs

log = structlog.get_logger()


def _sprint_out(s: Sprint, task_count: int = 0) -> SprintOut:
  return SprintOut(
    id=s.id,
    name=s.name,
    startDate=s.start_date,
    endDate=s.end_date,
    taskCount=task_count,
    createdAt=s.created_at,
  )


async def get_sprint_or_404(db: AsyncSession, sprint_id: str) -> Sprint:
  res = await db.execute(select(Sprint).where(Sprint.id == sprint_id))
  s = res.scalar_one_or_none()
  if not s:
    raise NotFound("Sprint not found")
  return s


async def task_count(db: AsyncSession, sprint_id: str) -> int:
  res = await db.execute(select(func.count()).select_from(Task).where(Task.sprint_id == sprint_id))
  return int(res.scalar_one())


async def list_sprint_rows(db: AsyncSession) -> list[Sprint]:
  res = await db.execute(select(Sprint).order_by(Sprint.start_date.desc(), Sprint.id.asc()))
  return list(res.scalars().all())


async def list_sprints(db: AsyncSession) -> list[SprintOut]:
  sprints = await list_sprint_rows(db)
  counts: dict[str, int] = {}
  if sprints:
    res = await db.execute(
      select(Task.sprint_id, func.count())
      .where(Task.sprint_id.in_([s.id for s in sprints]))
      .group_by(Task.sprint_id)
    )
    counts = {sid: int(n) for sid, n in res.all()}
  return [_sprint_out(s, counts.get(s.id, 0)) for s in sprints]


async def get_sprint_detail(db: AsyncSession, sprint_id: str) -> SprintDetailOut:
  s = await get_sprint_or_404(db, sprint_id)
  res = await db.execute(
    select(Task)
    .where(Task.sprint_id == s.id, Task.parent_id.is_(None))
    .order_by(Task.created_at.asc(), Task.id.asc())
  )
  tasks = await task_outs(db, list(res.scalars().all()), with_counts=True)
  return SprintDetailOut(**_sprint_out(s, await task_count(db, s.id)).model_dump(), tasks=tasks)


async def create_sprint(db: AsyncSession, payload: SprintCreateIn) -> SprintOut:
  name = payload.name.strip()
  if not name:
    raise ValidationError("Name is required")
  s = Sprint(name=name, start_date=payload.startDate, end_date=payload.endDate)
  db.add(s)
  await db.commit()
  log.info("sprint.created", sprint_id=s.id, name=s.name)
  return _sprint_out(s)


async def update_sprint(db: AsyncSession, sprint_id: str, payload: SprintUpdateIn) -> SprintOut:
  s = await get_sprint_or_404(db, sprint_id)
  if payload.name is not None:
    name = payload.name.strip()
    if not name:
      raise ValidationError("Name is required")
    s.name = name
  if payload.startDate is not None:
    s.start_date = payload.startDate
  if payload.endDate is not None:
    s.end_date = payload.endDate
  await db.commit()
  log.info("sprint.updated", sprint_id=s.id, changed=sorted(payload.model_fields_set))
  return _sprint_out(s, await task_count(db, s.id))


async def delete_sprint(db: AsyncSession, sprint_id: str) -> None:
  s = await get_sprint_or_404(db, sprint_id)
  linked = await task_count(db, s.id)
  if linked > 0:
    log.info("sprint.delete_refused", sprint_id=s.id, task_count=linked)
    raise PreconditionFailed("Cannot delete sprint with tasks. Remove tasks first.")
  await db.execute(delete(Sprint).where(Sprint.id == s.id))
  await db.commit()
  log.info("sprint.deleted", sprint_id=sprint_id)
