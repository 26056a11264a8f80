from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.deps import get_db, get_principal
from sprintdesk.schemas import TaskCreateIn, TaskDeleteOut, TaskDetailOut, TaskOut, TaskStatus, TaskType, TaskUpdateIn
from sprintdesk.security import Principal
from sprintdesk.tasks import service as tasks

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskOut])
async def list_tasks(
  type: TaskType | None = None,
  sprintId: str | None = None,
  assigneeId: str | None = None,
  status: TaskStatus | None = None,
  q: str | None = None,
  parentId: str | None = None,
  _: Principal = Depends(get_principal),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  return await tasks.list_tasks(
    db,
    type=type,
    sprint_id=sprintId,
    assignee_id=assigneeId,
    status=status,
    q=q,
    parent_id=parentId,
  )


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(payload: TaskCreateIn, actor: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> TaskOut:
  return await tasks.create_task(db, payload, actor)


@router.get("/{task_id}", response_model=TaskDetailOut)
async def get_task(task_id: str, _: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> TaskDetailOut:
  return await tasks.get_task_detail(db, task_id)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  actor: Principal = Depends(get_principal),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  return await tasks.update_task(db, task_id, payload, actor)


@router.delete("/{task_id}", response_model=TaskDeleteOut)
async def delete_task(task_id: str, actor: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> TaskDeleteOut:
  deleted = await tasks.delete_task(db, task_id, actor)
  return TaskDeleteOut(ok=True, deleted=deleted)
