from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

from sprintdesk.errors import Forbidden

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "sd_session"
SESSION_TTL_DAYS = 14

ROLE_ADMIN = "ADMIN"
ROLE_MEMBER = "MEMBER"


@dataclass(frozen=True)
class Principal:
  id: str
  role: str
  name: str = ""
  email: str = ""

  @property
  def is_admin(self) -> bool:
    return self.role == ROLE_ADMIN


def require_admin(principal: Principal) -> Principal:
  if not principal.is_admin:
    raise Forbidden()
  return principal


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def new_session_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(days=SESSION_TTL_DAYS)
