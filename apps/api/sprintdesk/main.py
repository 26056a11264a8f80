from __future__ import annotations

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.trustedhost import TrustedHostMiddleware

from sprintdesk.config import settings
from sprintdesk.errors import DomainError
from sprintdesk.logging_setup import configure_logging
from sprintdesk.routers.account import router as account_router
from sprintdesk.routers.attachments import router as attachments_router
from sprintdesk.routers.auth import router as auth_router
from sprintdesk.routers.comments import router as comments_router
from sprintdesk.routers.dashboard import router as dashboard_router
from sprintdesk.routers.sprints import router as sprints_router
from sprintdesk.routers.tasks import router as tasks_router
from sprintdesk.routers.users import router as users_router

configure_logging(settings.log_level, settings.log_format)
log = structlog.get_logger()

app = FastAPI(
  title="Sprintdesk API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(DomainError)
async def _domain_error_handler(_, exc: DomainError) -> JSONResponse:
  if exc.status_code >= 500:
    log.error("request.domain_error", error=type(exc).__name__, message=exc.message)
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def _first_validation_message(exc: RequestValidationError) -> str:
  errors = exc.errors()
  if not errors:
    return "Invalid request"
  first = errors[0]
  loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
  msg = str(first.get("msg") or "Invalid value")
  return f"{'.'.join(loc)}: {msg}" if loc else msg


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(_, exc: RequestValidationError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": _first_validation_message(exc)})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(auth_router)
app.include_router(account_router)
app.include_router(users_router)
app.include_router(sprints_router)
app.include_router(tasks_router)
app.include_router(comments_router)
app.include_router(attachments_router)
app.include_router(dashboard_router)

if (settings.blob_backend or "local").strip().lower() == "local":
  app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}
