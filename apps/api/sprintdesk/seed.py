from __future__ import annotations

import asyncio
import os
import secrets

import structlog
from sqlalchemy import select

from sprintdesk.config import settings
from sprintdesk.db import SessionLocal
from sprintdesk.logging_setup import configure_logging
from sprintdesk.models import User
from sprintdesk.security import ROLE_ADMIN, hash_password

log = structlog.get_logger()


def _bootstrap_password(env_key: str) -> tuple[str, bool]:
  configured = (os.getenv(env_key) or "").strip()
  if configured:
    return configured, False
  return secrets.token_urlsafe(14), True


async def seed() -> None:
  """Create the first admin account if it does not exist yet."""
  admin_email = (os.getenv("SEED_ADMIN_EMAIL") or "admin@sprintdesk.local").strip().lower()
  admin_name = (os.getenv("SEED_ADMIN_NAME") or "Admin").strip() or "Admin"
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == admin_email))
    if res.scalar_one_or_none() is not None:
      log.info("seed.admin_exists", email=admin_email)
      return

    password, generated = _bootstrap_password("SEED_ADMIN_PASSWORD")
    db.add(User(email=admin_email, name=admin_name, role=ROLE_ADMIN, password_hash=hash_password(password), active=True))
    await db.commit()
    log.info("seed.admin_created", email=admin_email, generated_password=generated)
    if generated:
      # Shown once; there is no other way to recover a generated password.
      print(f"{admin_email}={password}")


def main() -> None:
  configure_logging(settings.log_level, settings.log_format)
  asyncio.run(seed())


if __name__ == "__main__":
  main()
