from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore")

  database_url: str = "postgresql+asyncpg://sprintdesk:sprintdesk@db:5432/sprintdesk"
  app_version: str = "v2026-10-18"
  build_sha: str = "dev"
  api_docs_enabled: bool = True

  cookie_secure: bool = False
  cookie_domain: str | None = None

  rate_limit_login_ip_per_minute: int = 60
  rate_limit_login_email_per_minute: int = 20
  redis_url: str | None = None

  cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
  cors_origin_regex: str = r"^http://(localhost|127\.0\.0\.1):3000$"
  trusted_hosts: str = "localhost,127.0.0.1,0.0.0.0,api,web"

  max_attachment_bytes: int = 25 * 1024 * 1024
  allowed_attachment_extensions: str = "pdf,docx,pptx,xlsx,png,jpg,jpeg,txt,md,zip"

  blob_backend: str = "local"  # local | http
  upload_dir: str = "data/uploads"
  public_base_url: str = "http://localhost:8000"
  blob_base_url: str | None = None
  blob_token: str | None = None
  blob_timeout_seconds: float = 30.0

  log_level: str = "info"
  log_format: str = "json"  # json | console

  def cors_origin_list(self) -> list[str]:
    return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

  def trusted_host_list(self) -> list[str]:
    return [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]

  def allowed_extension_list(self) -> list[str]:
    return [e.strip().lower().lstrip(".") for e in self.allowed_attachment_extensions.split(",") if e.strip()]


settings = Settings()
