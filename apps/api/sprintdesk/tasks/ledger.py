from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.models import StatusEvent, Task, utcnow

log = structlog.get_logger()


def record_status_change(db: AsyncSession, *, task: Task, new_status: str, actor_id: str) -> StatusEvent | None:
  """
  Move `task` to `new_status` and stage the matching StatusEvent.

  Nothing is committed here: the caller's commit persists the status and the
  event together. Returns None (and stages nothing) when the status is unchanged.
  """
  old_status = task.status
  if new_status == old_status:
    return None
  ev = StatusEvent(task_id=task.id, actor_id=actor_id, from_status=old_status, to_status=new_status, at=utcnow())
  task.status = new_status
  db.add(ev)
  log.info("task.status_changed", task_id=task.id, actor_id=actor_id, from_status=old_status, to_status=new_status)
  return ev


async def list_status_events(db: AsyncSession, task_id: str) -> list[StatusEvent]:
  res = await db.execute(
    select(StatusEvent).where(StatusEvent.task_id == task_id).order_by(StatusEvent.at.desc(), StatusEvent.id.desc())
  )
  return list(res.scalars().all())
