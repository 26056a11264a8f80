from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Cookie, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.blobs.client import BlobStore, blob_store_from_settings
from sprintdesk.db import SessionLocal
from sprintdesk.errors import Unauthenticated
from sprintdesk.models import Session as DbSession, User
from sprintdesk.security import SESSION_COOKIE_NAME, Principal, require_admin


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def get_current_user(
  request: Request,
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> User:
  if not session_id:
    auth = request.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
      session_id = auth.split(" ", 1)[1].strip() or None
  if not session_id:
    raise Unauthenticated()

  res = await db.execute(select(DbSession).where(DbSession.id == session_id))
  s = res.scalar_one_or_none()
  if not s:
    raise Unauthenticated("Invalid session")
  if s.expires_at < datetime.now(timezone.utc):
    raise Unauthenticated("Session expired")

  ures = await db.execute(select(User).where(User.id == s.user_id))
  u = ures.scalar_one_or_none()
  if not u or not u.active:
    raise Unauthenticated("User not found")
  return u


async def get_principal(user: User = Depends(get_current_user)) -> Principal:
  return Principal(id=user.id, role=user.role, name=user.name, email=user.email)


async def get_admin(principal: Principal = Depends(get_principal)) -> Principal:
  return require_admin(principal)


_blob_store: BlobStore | None = None


def get_blob_store() -> BlobStore:
  global _blob_store
  if _blob_store is None:
    _blob_store = blob_store_from_settings()
  return _blob_store


def client_ip(request: Request) -> str | None:
  return request.client.host if request.client else None
