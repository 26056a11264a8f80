from __future__ import annotations

import posixpath
import uuid

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.blobs.client import BlobStore
from sprintdesk.config import settings
from sprintdesk.errors import ExternalServiceDegraded, Forbidden, NotFound, ValidationError
from sprintdesk.models import Attachment, Comment, Task, User
from sprintdesk.schemas import AttachmentOut, CommentOut, UserSummary
from sprintdesk.security import Principal

log = structlog.get_logger()


async def _require_task(db: AsyncSession, task_id: str) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFound("Task not found")
  return t


async def _user_summaries(db: AsyncSession, user_ids: set[str], *, with_email: bool = True) -> dict[str, UserSummary]:
  if not user_ids:
    return {}
  res = await db.execute(select(User).where(User.id.in_(user_ids)))
  return {
    u.id: UserSummary(id=u.id, name=u.name, email=u.email if with_email else None)
    for u in res.scalars().all()
  }


async def comment_outs(db: AsyncSession, comments: list[Comment]) -> list[CommentOut]:
  authors = await _user_summaries(db, {c.author_id for c in comments})
  return [
    CommentOut(
      id=c.id,
      taskId=c.task_id,
      authorId=c.author_id,
      author=authors.get(c.author_id) or UserSummary(id=c.author_id, name=""),
      body=c.body,
      createdAt=c.created_at,
    )
    for c in comments
  ]


async def attachment_outs(db: AsyncSession, attachments: list[Attachment]) -> list[AttachmentOut]:
  uploaders = await _user_summaries(db, {a.uploaded_by_id for a in attachments}, with_email=False)
  return [
    AttachmentOut(
      id=a.id,
      taskId=a.task_id,
      originalName=a.original_name,
      url=a.locator,
      mimeType=a.mime_type,
      sizeBytes=a.size_bytes,
      uploadedBy=uploaders.get(a.uploaded_by_id) or UserSummary(id=a.uploaded_by_id, name=""),
      createdAt=a.created_at,
    )
    for a in attachments
  ]


async def task_comments(db: AsyncSession, task_id: str) -> list[Comment]:
  res = await db.execute(select(Comment).where(Comment.task_id == task_id).order_by(Comment.created_at.asc(), Comment.id.asc()))
  return list(res.scalars().all())


async def task_attachments(db: AsyncSession, task_id: str) -> list[Attachment]:
  res = await db.execute(
    select(Attachment).where(Attachment.task_id == task_id).order_by(Attachment.created_at.desc(), Attachment.id.desc())
  )
  return list(res.scalars().all())


async def list_comments(db: AsyncSession, task_id: str) -> list[CommentOut]:
  await _require_task(db, task_id)
  return await comment_outs(db, await task_comments(db, task_id))


async def add_comment(db: AsyncSession, task_id: str, body: str, actor: Principal) -> CommentOut:
  await _require_task(db, task_id)
  text = (body or "").strip()
  if not text:
    raise ValidationError("Comment cannot be empty")
  c = Comment(task_id=task_id, author_id=actor.id, body=text)
  db.add(c)
  await db.commit()
  log.info("comment.created", comment_id=c.id, task_id=task_id, actor_id=actor.id)
  return (await comment_outs(db, [c]))[0]


async def delete_comment(db: AsyncSession, comment_id: str, actor: Principal) -> None:
  res = await db.execute(select(Comment).where(Comment.id == comment_id))
  c = res.scalar_one_or_none()
  if not c:
    raise NotFound("Comment not found")
  if not actor.is_admin and c.author_id != actor.id:
    raise Forbidden()
  await db.execute(delete(Comment).where(Comment.id == comment_id))
  await db.commit()
  log.info("comment.deleted", comment_id=comment_id, task_id=c.task_id, actor_id=actor.id)


async def list_attachments(db: AsyncSession, task_id: str) -> list[AttachmentOut]:
  await _require_task(db, task_id)
  return await attachment_outs(db, await task_attachments(db, task_id))


def _extension(filename: str) -> str:
  return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def _max_size_label() -> str:
  mb = int(settings.max_attachment_bytes) / (1024 * 1024)
  return f"{mb:g} MB"


async def upload_attachment(
  db: AsyncSession,
  task_id: str,
  *,
  filename: str | None,
  content_type: str | None,
  data: bytes | None,
  actor: Principal,
  blob_store: BlobStore,
) -> AttachmentOut:
  """
  Validate and store an uploaded file, then record its metadata.

  Checks run in a fixed order (task, file present, size, extension) and all of
  them happen before the blob store is touched, so a rejected upload leaves no
  blob and no row behind.
  """
  await _require_task(db, task_id)
  if not filename or data is None:
    raise ValidationError("No file provided")
  if len(data) > int(settings.max_attachment_bytes):
    raise ValidationError(f"File too large. Maximum size is {_max_size_label()}.")
  allowed = settings.allowed_extension_list()
  ext = _extension(filename)
  if not ext:
    raise ValidationError(f"File has no extension. Allowed: {', '.join(allowed)}")
  if ext not in allowed:
    raise ValidationError(f"File type .{ext} is not allowed. Allowed: {', '.join(allowed)}")

  mime = content_type or "application/octet-stream"
  name = posixpath.basename(filename.replace("\\", "/")) or filename
  # Random prefix keeps same-named uploads from sharing one blob.
  url = await blob_store.put(f"attachments/{task_id}/{uuid.uuid4().hex}-{name}", data, content_type=mime)

  a = Attachment(
    task_id=task_id,
    original_name=filename,
    locator=url,
    mime_type=mime,
    size_bytes=len(data),
    uploaded_by_id=actor.id,
  )
  db.add(a)
  await db.commit()
  log.info("attachment.created", attachment_id=a.id, task_id=task_id, size_bytes=a.size_bytes, actor_id=actor.id)
  return (await attachment_outs(db, [a]))[0]


async def attachment_locator(db: AsyncSession, attachment_id: str) -> str:
  res = await db.execute(select(Attachment.locator).where(Attachment.id == attachment_id))
  locator = res.scalar_one_or_none()
  if not locator:
    raise NotFound("Attachment not found")
  return locator


async def delete_attachment(db: AsyncSession, attachment_id: str, actor: Principal, blob_store: BlobStore) -> None:
  res = await db.execute(select(Attachment).where(Attachment.id == attachment_id))
  a = res.scalar_one_or_none()
  if not a:
    raise NotFound("Attachment not found")
  if not actor.is_admin and a.uploaded_by_id != actor.id:
    raise Forbidden()

  # The blob may already be gone; the metadata row is removed regardless.
  try:
    await blob_store.delete(a.locator)
  except (ExternalServiceDegraded, ValueError) as exc:
    log.warning("attachment.blob_delete_failed", attachment_id=a.id, locator=a.locator, error=str(exc))

  await db.execute(delete(Attachment).where(Attachment.id == attachment_id))
  await db.commit()
  log.info("attachment.deleted", attachment_id=attachment_id, task_id=a.task_id, actor_id=actor.id)
