from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.deps import get_admin, get_db, get_principal
from sprintdesk.schemas import UserCreateIn, UserOut, UserUpdateIn
from sprintdesk.security import Principal
from sprintdesk.users import service as users

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserOut])
async def list_users(_: Principal = Depends(get_principal), db: AsyncSession = Depends(get_db)) -> list[UserOut]:
  return await users.list_users(db)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreateIn, _: Principal = Depends(get_admin), db: AsyncSession = Depends(get_db)) -> UserOut:
  return await users.create_user(db, payload)


@router.patch("/{user_id}", response_model=UserOut)
async def update_user(
  user_id: str,
  payload: UserUpdateIn,
  _: Principal = Depends(get_admin),
  db: AsyncSession = Depends(get_db),
) -> UserOut:
  return await users.update_user(db, user_id, payload)


@router.delete("/{user_id}")
async def delete_user(user_id: str, actor: Principal = Depends(get_admin), db: AsyncSession = Depends(get_db)) -> dict:
  await users.delete_user(db, user_id, actor)
  return {"ok": True}
