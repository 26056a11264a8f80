from __future__ import annotations

from collections import defaultdict

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.collab.service import attachment_outs, comment_outs, task_attachments, task_comments
from sprintdesk.errors import Forbidden, NotFound, ValidationError
from sprintdesk.models import Attachment, Comment, Sprint, StatusEvent, Task, TaskAssignee, User
from sprintdesk.schemas import (
  SprintSummary,
  StatusEventOut,
  TaskCounts,
  TaskCreateIn,
  TaskDetailOut,
  TaskOut,
  TaskUpdateIn,
  UserSummary,
)
from sprintdesk.security import Principal
from sprintdesk.tasks.ledger import list_status_events, record_status_change

log = structlog.get_logger()

SPRINT_TASK = "SPRINT_TASK"


async def get_task_or_404(db: AsyncSession, task_id: str) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFound("Task not found")
  return t


async def assignee_ids_for(db: AsyncSession, task_id: str) -> list[str]:
  res = await db.execute(select(TaskAssignee.user_id).where(TaskAssignee.task_id == task_id))
  return list(res.scalars().all())


def can_edit(task: Task, assignee_ids: list[str], actor: Principal) -> bool:
  return actor.is_admin or actor.id == task.reporter_id or actor.id in assignee_ids


async def _require_sprint(db: AsyncSession, sprint_id: str) -> None:
  res = await db.execute(select(Sprint.id).where(Sprint.id == sprint_id))
  if res.scalar_one_or_none() is None:
    raise NotFound("Sprint not found")


async def _validate_assignees(db: AsyncSession, assignee_ids: list[str]) -> list[str]:
  ids = list(dict.fromkeys(i for i in assignee_ids if i))
  if not ids:
    return []
  res = await db.execute(select(User.id).where(User.id.in_(ids), User.active.is_(True)))
  found = set(res.scalars().all())
  missing = [i for i in ids if i not in found]
  if missing:
    raise ValidationError(f"Unknown assignee: {missing[0]}")
  return ids


async def _assignees_by_task(db: AsyncSession, task_ids: list[str]) -> dict[str, list[UserSummary]]:
  out: dict[str, list[UserSummary]] = defaultdict(list)
  if not task_ids:
    return out
  res = await db.execute(
    select(TaskAssignee.task_id, User.id, User.name, User.email)
    .join(User, User.id == TaskAssignee.user_id)
    .where(TaskAssignee.task_id.in_(task_ids))
    .order_by(User.name.asc())
  )
  for row in res.all():
    out[row.task_id].append(UserSummary(id=row.id, name=row.name, email=row.email))
  return out


async def _grouped_counts(db: AsyncSession, column, task_ids: list[str]) -> dict[str, int]:
  res = await db.execute(select(column, func.count()).where(column.in_(task_ids)).group_by(column))
  return {tid: int(n) for tid, n in res.all()}


async def task_outs(db: AsyncSession, tasks: list[Task], *, with_counts: bool = False) -> list[TaskOut]:
  """Build TaskOut rows with assignee, reporter and sprint summaries resolved in bulk."""
  task_ids = [t.id for t in tasks]
  assignees = await _assignees_by_task(db, task_ids)

  reporter_ids = {t.reporter_id for t in tasks}
  reporters: dict[str, UserSummary] = {}
  if reporter_ids:
    ures = await db.execute(select(User).where(User.id.in_(reporter_ids)))
    reporters = {u.id: UserSummary(id=u.id, name=u.name, email=u.email) for u in ures.scalars().all()}

  sprint_ids = {t.sprint_id for t in tasks if t.sprint_id}
  sprints: dict[str, SprintSummary] = {}
  if sprint_ids:
    sres = await db.execute(select(Sprint.id, Sprint.name).where(Sprint.id.in_(sprint_ids)))
    sprints = {row.id: SprintSummary(id=row.id, name=row.name) for row in sres.all()}

  subtasks: dict[str, int] = {}
  comments: dict[str, int] = {}
  attachments: dict[str, int] = {}
  if with_counts and task_ids:
    subtasks = await _grouped_counts(db, Task.parent_id, task_ids)
    comments = await _grouped_counts(db, Comment.task_id, task_ids)
    attachments = await _grouped_counts(db, Attachment.task_id, task_ids)

  out: list[TaskOut] = []
  for t in tasks:
    counts = None
    if with_counts:
      counts = TaskCounts(
        subtasks=subtasks.get(t.id, 0),
        comments=comments.get(t.id, 0),
        attachments=attachments.get(t.id, 0),
      )
    out.append(
      TaskOut(
        id=t.id,
        title=t.title,
        description=t.description or "",
        status=t.status,
        type=t.type,
        priority=t.priority,
        startDate=t.start_date,
        dueDate=t.due_date,
        sprintId=t.sprint_id,
        sprint=sprints.get(t.sprint_id) if t.sprint_id else None,
        parentId=t.parent_id,
        reporterId=t.reporter_id,
        reporter=reporters.get(t.reporter_id),
        assignees=assignees.get(t.id, []),
        counts=counts,
        createdAt=t.created_at,
        updatedAt=t.updated_at,
      )
    )
  return out


async def list_tasks(
  db: AsyncSession,
  *,
  type: str | None = None,
  sprint_id: str | None = None,
  assignee_id: str | None = None,
  status: str | None = None,
  q: str | None = None,
  parent_id: str | None = None,
) -> list[TaskOut]:
  stmt = select(Task)
  if type:
    stmt = stmt.where(Task.type == type)
  if sprint_id:
    stmt = stmt.where(Task.sprint_id == sprint_id)
  if assignee_id:
    stmt = stmt.where(Task.id.in_(select(TaskAssignee.task_id).where(TaskAssignee.user_id == assignee_id)))
  if status:
    stmt = stmt.where(Task.status == status)
  if q:
    stmt = stmt.where(Task.title.icontains(q, autoescape=True))
  if parent_id == "null":
    stmt = stmt.where(Task.parent_id.is_(None))
  elif parent_id:
    stmt = stmt.where(Task.parent_id == parent_id)

  stmt = stmt.order_by(Task.created_at.desc(), Task.id.desc())
  res = await db.execute(stmt)
  return await task_outs(db, list(res.scalars().all()), with_counts=True)


async def get_task_detail(db: AsyncSession, task_id: str) -> TaskDetailOut:
  t = await get_task_or_404(db, task_id)
  base = (await task_outs(db, [t], with_counts=True))[0]

  sres = await db.execute(select(Task).where(Task.parent_id == t.id).order_by(Task.created_at.asc(), Task.id.asc()))
  subtasks = await task_outs(db, list(sres.scalars().all()))

  events = await list_status_events(db, t.id)
  actor_ids = {e.actor_id for e in events}
  actors: dict[str, UserSummary] = {}
  if actor_ids:
    ares = await db.execute(select(User.id, User.name).where(User.id.in_(actor_ids)))
    actors = {row.id: UserSummary(id=row.id, name=row.name) for row in ares.all()}
  status_log = [
    StatusEventOut(
      id=e.id,
      taskId=e.task_id,
      from_=e.from_status,
      to=e.to_status,
      actor=actors.get(e.actor_id) or UserSummary(id=e.actor_id, name=""),
      at=e.at,
    )
    for e in events
  ]

  return TaskDetailOut(
    **base.model_dump(),
    subtasks=subtasks,
    comments=await comment_outs(db, await task_comments(db, t.id)),
    attachments=await attachment_outs(db, await task_attachments(db, t.id)),
    statusLog=status_log,
  )


async def create_task(db: AsyncSession, payload: TaskCreateIn, actor: Principal) -> TaskOut:
  title = payload.title.strip()
  if not title:
    raise ValidationError("Title is required")

  task_type = payload.type
  sprint_id = payload.sprintId
  if payload.parentId:
    pres = await db.execute(select(Task).where(Task.id == payload.parentId))
    parent = pres.scalar_one_or_none()
    if not parent:
      raise NotFound("Parent task not found")
    if parent.parent_id:
      raise ValidationError("Subtasks cannot have subtasks")
    task_type = parent.type
    sprint_id = parent.sprint_id

  if sprint_id:
    await _require_sprint(db, sprint_id)
  if task_type == SPRINT_TASK and not sprint_id:
    raise ValidationError("Sprint tasks must have a sprintId")

  assignee_ids = await _validate_assignees(db, payload.assigneeIds)

  t = Task(
    title=title,
    description=payload.description or "",
    type=task_type,
    priority=payload.priority or "MEDIUM",
    status=payload.status or "BACKLOG",
    start_date=payload.startDate,
    due_date=payload.dueDate,
    sprint_id=sprint_id,
    reporter_id=actor.id,
    parent_id=payload.parentId,
  )
  db.add(t)
  await db.flush()
  for uid in assignee_ids:
    db.add(TaskAssignee(task_id=t.id, user_id=uid))
  await db.commit()
  log.info("task.created", task_id=t.id, type=t.type, sprint_id=t.sprint_id, parent_id=t.parent_id, actor_id=actor.id)
  return (await task_outs(db, [t], with_counts=True))[0]


async def update_task(db: AsyncSession, task_id: str, payload: TaskUpdateIn, actor: Principal) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  current_assignees = await assignee_ids_for(db, t.id)
  if not can_edit(t, current_assignees, actor):
    raise Forbidden("You do not have permission to edit this task")

  fields_set = payload.model_fields_set
  if "sprintId" in fields_set:
    # Presence of the key is the attempt, even when the value is unchanged.
    if not actor.is_admin:
      raise Forbidden("Only admins can change sprint assignment")
    if payload.sprintId:
      await _require_sprint(db, payload.sprintId)
    t.sprint_id = payload.sprintId

  if "title" in fields_set and payload.title is not None:
    title = payload.title.strip()
    if not title:
      raise ValidationError("Title is required")
    t.title = title
  if "description" in fields_set:
    t.description = payload.description or ""
  if "priority" in fields_set and payload.priority is not None:
    t.priority = payload.priority
  if "startDate" in fields_set:
    t.start_date = payload.startDate
  if "dueDate" in fields_set:
    t.due_date = payload.dueDate

  if "assigneeIds" in fields_set and payload.assigneeIds is not None:
    new_ids = await _validate_assignees(db, payload.assigneeIds)
    await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id == t.id))
    for uid in new_ids:
      db.add(TaskAssignee(task_id=t.id, user_id=uid))

  if "status" in fields_set and payload.status is not None:
    record_status_change(db, task=t, new_status=payload.status, actor_id=actor.id)

  await db.commit()
  log.info("task.updated", task_id=t.id, changed=sorted(fields_set), actor_id=actor.id)
  return (await task_outs(db, [t], with_counts=True))[0]


async def _purge_task_rows(db: AsyncSession, task_id: str) -> None:
  await db.execute(delete(StatusEvent).where(StatusEvent.task_id == task_id))
  await db.execute(delete(Comment).where(Comment.task_id == task_id))
  await db.execute(delete(Attachment).where(Attachment.task_id == task_id))
  await db.execute(delete(TaskAssignee).where(TaskAssignee.task_id == task_id))
  await db.execute(delete(Task).where(Task.id == task_id))


async def delete_task(db: AsyncSession, task_id: str, actor: Principal) -> int:
  """Delete a task, its direct subtasks and everything hanging off them. Returns the number of tasks removed."""
  t = await get_task_or_404(db, task_id)
  if not can_edit(t, await assignee_ids_for(db, t.id), actor):
    raise Forbidden("You do not have permission to delete this task")

  sres = await db.execute(select(Task.id).where(Task.parent_id == t.id))
  subtask_ids = list(sres.scalars().all())
  for sid in subtask_ids:
    await _purge_task_rows(db, sid)
  await _purge_task_rows(db, t.id)
  await db.commit()

  deleted = len(subtask_ids) + 1
  log.info("task.deleted", task_id=task_id, deleted=deleted, actor_id=actor.id)
  return deleted
