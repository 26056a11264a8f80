from __future__ import annotations

import os
import sys
from pathlib import Path

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./sprintdesk_test.db")
os.environ.setdefault("LOG_FORMAT", "console")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select, update

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

from sprintdesk.config import settings
from sprintdesk.db import SessionLocal, engine
from sprintdesk.deps import get_blob_store
from sprintdesk.errors import ExternalServiceDegraded
from sprintdesk.main import app
from sprintdesk.models import (
  Attachment,
  Base,
  Comment,
  Session,
  Sprint,
  StatusEvent,
  Task,
  TaskAssignee,
  User,
)
from sprintdesk.rate_limit import limiter
from sprintdesk.security import hash_password

ADMIN_EMAIL = "admin@sprintdesk.local"
ADMIN_PASSWORD = "admin1234"
MEMBER_EMAIL = "member@sprintdesk.local"
MEMBER_PASSWORD = "member1234"

_seeded_hashes: dict[str, str] = {}


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _ensure_schema() -> None:
  if _seeded_hashes:
    return
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    for email, name, role, password in (
      (ADMIN_EMAIL, "Admin", "ADMIN", ADMIN_PASSWORD),
      (MEMBER_EMAIL, "Member", "MEMBER", MEMBER_PASSWORD),
    ):
      _seeded_hashes[email] = hash_password(password)
      db.add(User(email=email, name=name, role=role, password_hash=_seeded_hashes[email], active=True))
    await db.commit()


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  await _ensure_schema()
  async with SessionLocal() as db:
    # Keep seeded users; wipe everything else for deterministic tests.
    await db.execute(delete(StatusEvent))
    await db.execute(delete(Comment))
    await db.execute(delete(Attachment))
    await db.execute(delete(TaskAssignee))
    await db.execute(delete(Task).where(Task.parent_id.is_not(None)))
    await db.execute(delete(Task))
    await db.execute(delete(Sprint))
    await db.execute(delete(Session))

    keep = [ADMIN_EMAIL, MEMBER_EMAIL]
    await db.execute(delete(User).where(User.email.notin_(keep)))
    # Reset seeded users to known state for each test.
    for email, pw_hash in _seeded_hashes.items():
      await db.execute(update(User).where(User.email == email).values(password_hash=pw_hash, active=True))
    await db.execute(update(User).where(User.email == ADMIN_EMAIL).values(name="Admin", role="ADMIN"))
    await db.execute(update(User).where(User.email == MEMBER_EMAIL).values(name="Member", role="MEMBER"))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. sprintdesk_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


class RecordingBlobStore:
  """In-memory blob store that records every call."""

  def __init__(self) -> None:
    self.puts: list[tuple[str, bytes, str]] = []
    self.deletes: list[str] = []
    self.fail_deletes = False

  async def put(self, path: str, data: bytes, *, content_type: str) -> str:
    self.puts.append((path, data, content_type))
    return f"https://blobs.example.test/{path}"

  async def delete(self, url: str) -> None:
    self.deletes.append(url)
    if self.fail_deletes:
      raise ExternalServiceDegraded("blob store unavailable")


@pytest.fixture
def blob_store() -> RecordingBlobStore:
  return RecordingBlobStore()


@pytest.fixture
async def client(blob_store: RecordingBlobStore) -> AsyncClient:
  app.dependency_overrides[get_blob_store] = lambda: blob_store
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c
  app.dependency_overrides.pop(get_blob_store, None)


async def login(client: AsyncClient, email: str, password: str) -> dict[str, str]:
  res = await client.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "sd_session=" in cookie
  return res.json()


async def login_admin(client: AsyncClient) -> dict[str, str]:
  return await login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


async def login_member(client: AsyncClient) -> dict[str, str]:
  return await login(client, MEMBER_EMAIL, MEMBER_PASSWORD)


async def seeded_user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    u = res.scalar_one()
    return u.id


async def make_user(email: str, name: str, *, role: str = "MEMBER", password: str = "password123") -> str:
  async with SessionLocal() as db:
    u = User(email=email, name=name, role=role, password_hash=hash_password(password), active=True)
    db.add(u)
    await db.commit()
    return u.id


async def make_sprint(client: AsyncClient, name: str = "Sprint 1", start: str = "2026-01-01", end: str = "2026-01-14") -> dict:
  """Creates a sprint as admin; leaves the admin session signed in."""
  await login_admin(client)
  res = await client.post("/sprints", json={"name": name, "startDate": start, "endDate": end})
  assert res.status_code == 201, res.text
  return res.json()
