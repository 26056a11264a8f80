from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.collab import service as collab
from sprintdesk.deps import get_db, get_principal
from sprintdesk.schemas import CommentCreateIn, CommentOut
from sprintdesk.security import Principal

router = APIRouter(tags=["comments"])


@router.get("/tasks/{task_id}/comments", response_model=list[CommentOut])
async def list_comments(task_id: str, _: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> list[CommentOut]:
  return await collab.list_comments(db, task_id)


@router.post("/tasks/{task_id}/comments", response_model=CommentOut, status_code=201)
async def create_comment(
  task_id: str,
  payload: CommentCreateIn,
  actor: Principal = Depends(get_principal),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  return await collab.add_comment(db, task_id, payload.body, actor)


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str, actor: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> dict:
  await collab.delete_comment(db, comment_id, actor)
  return {"ok": True}
