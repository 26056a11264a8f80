from __future__ import annotations

import asyncio
import os
from typing import Any, Protocol
from urllib.parse import quote, unquote

import httpx
import structlog

from sprintdesk.config import settings
from sprintdesk.errors import ExternalServiceDegraded

log = structlog.get_logger()


class BlobStore(Protocol):
  async def put(self, path: str, data: bytes, *, content_type: str) -> str: ...

  async def delete(self, url: str) -> None: ...


def normalize_base_url(base_url: str) -> str:
  b = (base_url or "").strip().rstrip("/")
  if not b:
    raise ValueError("blob base url is required")
  if not (b.startswith("http://") or b.startswith("https://")):
    b = "https://" + b
  return b


def safe_blob_path(path: str) -> str:
  parts = [p for p in path.replace("\\", "/").split("/") if p not in ("", ".", "..")]
  if not parts:
    raise ValueError("empty blob path")
  return "/".join(parts)


class LocalBlobStore:
  """Stores blobs on the local filesystem and serves them under /uploads."""

  def __init__(self, *, root_dir: str, public_base_url: str) -> None:
    self.root_dir = root_dir
    self.url_prefix = f"{public_base_url.rstrip('/')}/uploads/"

  def _fs_path(self, rel: str) -> str:
    return os.path.join(self.root_dir, *rel.split("/"))

  async def put(self, path: str, data: bytes, *, content_type: str) -> str:
    rel = safe_blob_path(path)
    out_path = self._fs_path(rel)

    def _write() -> None:
      os.makedirs(os.path.dirname(out_path), exist_ok=True)
      with open(out_path, "wb") as f:
        f.write(data)

    try:
      await asyncio.to_thread(_write)
    except OSError as exc:
      raise ExternalServiceDegraded(f"Blob write failed: {exc}") from exc
    return self.url_prefix + quote(rel)

  async def delete(self, url: str) -> None:
    if not url.startswith(self.url_prefix):
      raise ExternalServiceDegraded("Blob url does not belong to this store")
    rel = safe_blob_path(unquote(url[len(self.url_prefix):]))
    try:
      await asyncio.to_thread(os.remove, self._fs_path(rel))
    except OSError as exc:
      raise ExternalServiceDegraded(f"Blob delete failed: {exc}") from exc


class HttpBlobStore:
  """Client for an HTTP object store: PUT {base}/{path} -> {"url": ...}, DELETE {base}?url=..."""

  def __init__(self, *, base_url: str, token: str | None, timeout: float = 30.0) -> None:
    self.base_url = normalize_base_url(base_url)
    self.token = (token or "").strip()
    self.timeout = timeout

  def httpx_client(self) -> httpx.AsyncClient:
    headers = {"Accept": "application/json", "User-Agent": "Sprintdesk/1.0"}
    if self.token:
      headers["Authorization"] = f"Bearer {self.token}"
    return httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout)

  async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
    try:
      async with self.httpx_client() as client:
        r = await client.request(method, path, **kwargs)
    except httpx.HTTPError as exc:
      raise ExternalServiceDegraded(f"Blob storage unreachable: {exc}") from exc
    if r.status_code >= 400:
      raise ExternalServiceDegraded(f"Blob storage returned {r.status_code}")
    return r

  async def put(self, path: str, data: bytes, *, content_type: str) -> str:
    rel = safe_blob_path(path)
    r = await self._request("PUT", "/" + quote(rel), content=data, headers={"Content-Type": content_type})
    try:
      payload = r.json()
    except ValueError as exc:
      raise ExternalServiceDegraded("Blob storage returned invalid JSON") from exc
    url = payload.get("url") if isinstance(payload, dict) else None
    if not isinstance(url, str) or not url:
      raise ExternalServiceDegraded("Blob storage response missing url")
    return url

  async def delete(self, url: str) -> None:
    await self._request("DELETE", "/", params={"url": url})


def blob_store_from_settings() -> BlobStore:
  backend = (settings.blob_backend or "local").strip().lower()
  if backend == "http":
    if not settings.blob_base_url:
      raise RuntimeError("BLOB_BASE_URL is required when BLOB_BACKEND=http")
    return HttpBlobStore(base_url=settings.blob_base_url, token=settings.blob_token, timeout=settings.blob_timeout_seconds)
  if backend != "local":
    raise RuntimeError(f"Unknown BLOB_BACKEND: {backend}")
  log.info("blobs.local_store", root_dir=settings.upload_dir)
  return LocalBlobStore(root_dir=settings.upload_dir, public_base_url=settings.public_base_url)
