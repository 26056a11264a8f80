from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.blobs.client import BlobStore
from sprintdesk.collab import service as collab
from sprintdesk.config import settings
from sprintdesk.deps import get_blob_store, get_db, get_principal
from sprintdesk.schemas import AttachmentOut
from sprintdesk.security import Principal

router = APIRouter(tags=["attachments"])


@router.get("/tasks/{task_id}/attachments", response_model=list[AttachmentOut])
async def list_attachments(task_id: str, _: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> list[AttachmentOut]:
  return await collab.list_attachments(db, task_id)


@router.post("/tasks/{task_id}/attachments", response_model=AttachmentOut, status_code=201)
async def upload_attachment(
  task_id: str,
  file: UploadFile | None = File(default=None),
  actor: Principal = Depends(get_principal),
  db: AsyncSession = Depends(get_db),
  blob_store: BlobStore = Depends(get_blob_store),
) -> AttachmentOut:
  data: bytes | None = None
  if file is not None:
    # One byte past the limit is enough to reject without buffering a huge body.
    data = await file.read(int(settings.max_attachment_bytes) + 1)
  return await collab.upload_attachment(
    db,
    task_id,
    filename=file.filename if file is not None else None,
    content_type=file.content_type if file is not None else None,
    data=data,
    actor=actor,
    blob_store=blob_store,
  )


@router.get("/attachments/{attachment_id}")
async def download_attachment(attachment_id: str, _: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> RedirectResponse:
  return RedirectResponse(url=await collab.attachment_locator(db, attachment_id), status_code=307)


@router.delete("/attachments/{attachment_id}")
async def delete_attachment(
  attachment_id: str,
  actor: Principal = Depends(get_principal),
  db: AsyncSession = Depends(get_db),
  blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
  await collab.delete_attachment(db, attachment_id, actor, blob_store)
  return {"ok": True}
