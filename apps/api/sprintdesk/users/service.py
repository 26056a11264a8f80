from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.errors import Forbidden, NotFound, Unauthenticated, ValidationError
from sprintdesk.models import Session as DbSession, TaskAssignee, User
from sprintdesk.schemas import PasswordChangeIn, UserCreateIn, UserOut, UserUpdateIn
from sprintdesk.security import Principal, hash_password, new_session_expires_at, verify_password

log = structlog.get_logger()

DELETED_EMAIL_DOMAIN = "sprintdesk.local"


def normalize_email(email: str) -> str:
  return (email or "").strip().lower()


def user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name, role=u.role, createdAt=u.created_at)


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
  res = await db.execute(select(User).where(User.id == user_id))
  u = res.scalar_one_or_none()
  if not u or not u.active:
    raise NotFound("User not found")
  return u


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
  normalized = normalize_email(email)
  res = await db.execute(select(User).where(User.email == normalized))
  u = res.scalar_one_or_none()
  if not u or not verify_password(password, u.password_hash):
    log.warning("auth.login.failed", email=normalized)
    raise Unauthenticated("Invalid credentials")
  if not u.active:
    log.warning("auth.login.disabled", user_id=u.id)
    raise Forbidden("User disabled")
  return u


async def open_session(db: AsyncSession, user: User, *, ip: str | None, user_agent: str | None) -> DbSession:
  s = DbSession(user_id=user.id, expires_at=new_session_expires_at(), created_ip=ip, user_agent=user_agent)
  db.add(s)
  await db.commit()
  log.info("auth.login.success", user_id=user.id, session_id=s.id)
  return s


async def revoke_sessions(db: AsyncSession, user_id: str) -> None:
  await db.execute(delete(DbSession).where(DbSession.user_id == user_id))


async def list_users(db: AsyncSession) -> list[UserOut]:
  res = await db.execute(select(User).where(User.active.is_(True)).order_by(User.name.asc(), User.id.asc()))
  return [user_out(u) for u in res.scalars().all()]


async def create_user(db: AsyncSession, payload: UserCreateIn) -> UserOut:
  email = normalize_email(payload.email)
  if "@" not in email or email.startswith("@") or email.endswith("@"):
    raise ValidationError("Invalid email")
  name = payload.name.strip()
  if not name:
    raise ValidationError("Name is required")

  res = await db.execute(select(User.id).where(User.email == email))
  if res.scalar_one_or_none() is not None:
    raise ValidationError("Email already in use")

  u = User(email=email, name=name, role=payload.role, password_hash=hash_password(payload.password), active=True)
  db.add(u)
  await db.commit()
  log.info("user.created", user_id=u.id, role=u.role)
  return user_out(u)


async def update_user(db: AsyncSession, user_id: str, payload: UserUpdateIn) -> UserOut:
  u = await get_user_or_404(db, user_id)
  if payload.name is not None:
    name = payload.name.strip()
    if not name:
      raise ValidationError("Name is required")
    u.name = name
  if payload.role is not None:
    u.role = payload.role
  if payload.password is not None:
    u.password_hash = hash_password(payload.password)
    await revoke_sessions(db, u.id)
  await db.commit()
  log.info("user.updated", user_id=u.id, changed=sorted(payload.model_fields_set))
  return user_out(u)


async def delete_user(db: AsyncSession, user_id: str, actor: Principal) -> None:
  """
  Soft-delete a user.

  The row stays so tasks, comments and attachments keep a valid reporter,
  author or uploader; the email is released, sessions are revoked and every
  task assignment is removed.
  """
  if actor.id == user_id:
    raise ValidationError("Cannot delete yourself")
  u = await get_user_or_404(db, user_id)

  await db.execute(delete(TaskAssignee).where(TaskAssignee.user_id == u.id))
  await revoke_sessions(db, u.id)
  u.active = False
  u.email = f"deleted+{u.id}@{DELETED_EMAIL_DOMAIN}"
  await db.commit()
  log.info("user.deleted", user_id=u.id, actor_id=actor.id)


async def change_password(db: AsyncSession, user: User, payload: PasswordChangeIn) -> None:
  if not verify_password(payload.currentPassword, user.password_hash):
    raise ValidationError("Current password is incorrect")
  user.password_hash = hash_password(payload.newPassword)
  await db.commit()
  log.info("account.password_changed", user_id=user.id)
