from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from sprintdesk.config import settings
from sprintdesk.deps import client_ip, get_current_user, get_db
from sprintdesk.models import User
from sprintdesk.rate_limit import limiter
from sprintdesk.schemas import LoginIn, UserOut
from sprintdesk.security import SESSION_COOKIE_NAME, SESSION_TTL_DAYS
from sprintdesk.users import service as users

router = APIRouter(prefix="/auth", tags=["auth"])


def _rate_limit_or_429(*, key: str, limit: int, window_seconds: int) -> None:
  allowed, retry_after = limiter.hit(key, limit=limit, window_seconds=window_seconds)
  if allowed:
    return
  raise HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail="Too many requests",
    headers={"Retry-After": str(retry_after)},
  )


@router.post("/login", response_model=UserOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  ip = client_ip(request) or "unknown"
  email_key = users.normalize_email(payload.email)
  _rate_limit_or_429(key=f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute), window_seconds=60)
  if email_key:
    _rate_limit_or_429(key=f"auth:login:email:{email_key}", limit=int(settings.rate_limit_login_email_per_minute), window_seconds=60)

  u = await users.authenticate(db, payload.email, payload.password)
  s = await users.open_session(db, u, ip=client_ip(request), user_agent=request.headers.get("user-agent"))

  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain or None,
    max_age=int(SESSION_TTL_DAYS * 86400),
    expires=s.expires_at,
    path="/",
  )
  return users.user_out(u)


@router.post("/logout")
async def logout(
  response: Response,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await users.revoke_sessions(db, user.id)
  await db.commit()
  response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return users.user_out(user)
