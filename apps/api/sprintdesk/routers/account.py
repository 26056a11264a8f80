from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.deps import get_current_user, get_db
from sprintdesk.models import User
from sprintdesk.schemas import PasswordChangeIn, UserOut
from sprintdesk.users import service as users

router = APIRouter(prefix="/account", tags=["account"])


@router.get("", response_model=UserOut)
async def get_account(user: User = Depends(get_current_user)) -> UserOut:
  return users.user_out(user)


@router.patch("")
async def change_password(
  payload: PasswordChangeIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await users.change_password(db, user, payload)
  return {"ok": True}
