"""
Read-side aggregations for the dashboard.

The functions here are pure: they take already-loaded task and sprint rows
plus an explicit `now`, and never touch the database.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.models import Task, TaskAssignee
from sprintdesk.schemas import DashboardOut, SprintOut, SprintProgressOut, TaskOut, UserStatsOut
from sprintdesk.security import Principal
from sprintdesk.sprints.service import list_sprints
from sprintdesk.tasks.service import task_outs

DUE_SOON_DAYS = 7
MY_TASKS_LIMIT = 10


def user_stats(tasks: Sequence[TaskOut]) -> UserStatsOut:
  return UserStatsOut(
    total=len(tasks),
    done=sum(1 for t in tasks if t.status == "DONE"),
    inProgress=sum(1 for t in tasks if t.status == "IN_PROGRESS"),
    todo=sum(1 for t in tasks if t.status in ("TODO", "BACKLOG")),
    blocked=sum(1 for t in tasks if t.status == "BLOCKED"),
  )


def overdue(tasks: Sequence[TaskOut], now: datetime) -> list[TaskOut]:
  rows = [t for t in tasks if t.dueDate is not None and t.dueDate < now and t.status != "DONE"]
  return sorted(rows, key=lambda t: t.dueDate)


def due_soon(tasks: Sequence[TaskOut], now: datetime, days: int = DUE_SOON_DAYS) -> list[TaskOut]:
  horizon = now + timedelta(days=days)
  rows = [t for t in tasks if t.dueDate is not None and now <= t.dueDate <= horizon and t.status != "DONE"]
  return sorted(rows, key=lambda t: t.dueDate)


def active_sprint(sprints: Sequence[SprintOut], now: datetime) -> SprintOut | None:
  # First match in the given order wins when sprints overlap.
  for s in sprints:
    if s.startDate <= now <= s.endDate:
      return s
  return None


def sprint_progress(tasks: Sequence[TaskOut]) -> SprintProgressOut:
  total = len(tasks)
  done = sum(1 for t in tasks if t.status == "DONE")
  # Half-up rounding: 1 of 8 done is 13%, not banker's 12%.
  percent = (done * 200 + total) // (2 * total) if total else 0
  return SprintProgressOut(total=total, done=done, percent=percent)


async def _top_level_tasks(db: AsyncSession, *, assignee_id: str | None = None, sprint_id: str | None = None) -> list[TaskOut]:
  stmt = select(Task).where(Task.parent_id.is_(None))
  if assignee_id:
    stmt = stmt.where(Task.id.in_(select(TaskAssignee.task_id).where(TaskAssignee.user_id == assignee_id)))
  if sprint_id:
    stmt = stmt.where(Task.sprint_id == sprint_id)
  stmt = stmt.order_by(Task.created_at.desc(), Task.id.desc())
  res = await db.execute(stmt)
  return await task_outs(db, list(res.scalars().all()))


async def build_dashboard(db: AsyncSession, actor: Principal, now: datetime) -> DashboardOut:
  mine = await _top_level_tasks(db, assignee_id=actor.id)
  everything = await _top_level_tasks(db)

  sprint = active_sprint(await list_sprints(db), now)
  progress = None
  if sprint is not None:
    progress = sprint_progress(await _top_level_tasks(db, sprint_id=sprint.id))

  return DashboardOut(
    stats=user_stats(mine),
    myTasks=mine[:MY_TASKS_LIMIT],
    activeSprint=sprint,
    sprintProgress=progress,
    overdue=overdue(everything, now),
    dueSoon=due_soon(everything, now),
  )
