from __future__ import annotations

import re

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from sprintdesk.blobs.client import LocalBlobStore
from sprintdesk.config import settings
from sprintdesk.db import SessionLocal
from sprintdesk.deps import get_blob_store
from sprintdesk.main import app
from sprintdesk.models import Attachment

from conftest import login, login_admin, login_member, make_user


async def _attachment_rows(task_id: str) -> int:
  async with SessionLocal() as db:
    res = await db.execute(select(func.count()).select_from(Attachment).where(Attachment.task_id == task_id))
    return int(res.scalar_one())


async def _task(client: AsyncClient) -> dict:
  r = await client.post("/tasks", json={"title": "Files", "type": "GENERAL_TASK"})
  assert r.status_code == 201, r.text
  return r.json()


@pytest.mark.anyio
async def test_upload_stores_blob_and_metadata(client: AsyncClient, blob_store) -> None:
  await login_member(client)
  t = await _task(client)
  r = await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("Report.PDF", b"%PDF-1.7", "application/pdf")})
  assert r.status_code == 201, r.text
  a = r.json()
  assert a["originalName"] == "Report.PDF"
  assert a["sizeBytes"] == 8
  assert a["mimeType"] == "application/pdf"
  assert a["uploadedBy"]["name"] == "Member"
  assert len(blob_store.puts) == 1
  path, data, content_type = blob_store.puts[0]
  assert re.fullmatch(rf"attachments/{t['id']}/[0-9a-f]{{32}}-Report\.PDF", path)
  assert (data, content_type) == (b"%PDF-1.7", "application/pdf")
  assert a["url"] == f"https://blobs.example.test/{path}"


@pytest.mark.anyio
async def test_same_file_name_twice_keeps_both_blobs(client: AsyncClient, tmp_path) -> None:
  store = LocalBlobStore(root_dir=str(tmp_path), public_base_url="http://localhost:8000")
  app.dependency_overrides[get_blob_store] = lambda: store
  await login_member(client)
  t = await _task(client)
  a1 = (await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("report.pdf", b"FIRST", "application/pdf")})).json()
  a2 = (await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("report.pdf", b"SECOND", "application/pdf")})).json()
  assert a1["url"] != a2["url"]
  assert a1["originalName"] == a2["originalName"] == "report.pdf"

  def _blob(url: str):
    return tmp_path.joinpath(*url[len(store.url_prefix):].split("/"))

  assert _blob(a1["url"]).read_bytes() == b"FIRST"
  assert _blob(a2["url"]).read_bytes() == b"SECOND"

  r = await client.delete(f"/attachments/{a1['id']}")
  assert r.status_code == 200, r.text
  assert not _blob(a1["url"]).exists()
  assert _blob(a2["url"]).read_bytes() == b"SECOND"


@pytest.mark.anyio
async def test_disallowed_extension_never_reaches_blob_store(client: AsyncClient, blob_store) -> None:
  await login_member(client)
  t = await _task(client)
  r = await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("run.exe", b"MZ", "application/octet-stream")})
  assert r.status_code == 400, r.text
  detail = r.json()["detail"]
  assert detail.startswith("File type .exe is not allowed. Allowed: ")
  assert "pdf" in detail and "zip" in detail
  assert blob_store.puts == []
  assert await _attachment_rows(t["id"]) == 0

  r = await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("README", b"text", "text/plain")})
  assert r.status_code == 400, r.text
  assert r.json()["detail"].startswith("File has no extension. Allowed: ")
  r = await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("notes.", b"text", "text/plain")})
  assert r.status_code == 400, r.text
  assert r.json()["detail"].startswith("File has no extension. Allowed: ")
  assert blob_store.puts == []


@pytest.mark.anyio
async def test_size_limit_is_enforced_before_upload(client: AsyncClient, blob_store) -> None:
  await login_member(client)
  t = await _task(client)
  orig = settings.max_attachment_bytes
  settings.max_attachment_bytes = 10
  try:
    r = await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("big.txt", b"a" * 11, "text/plain")})
    assert r.status_code == 400, r.text
    assert r.json()["detail"].startswith("File too large.")

    r = await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("ok.txt", b"a" * 10, "text/plain")})
    assert r.status_code == 201, r.text
  finally:
    settings.max_attachment_bytes = orig
  assert len(blob_store.puts) == 1
  assert await _attachment_rows(t["id"]) == 1


@pytest.mark.anyio
async def test_default_size_limit_message(client: AsyncClient) -> None:
  await login_member(client)
  t = await _task(client)
  big = b"a" * (25 * 1024 * 1024 + 1)
  r = await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("big.zip", big, "application/zip")})
  assert r.status_code == 400, r.text
  assert r.json()["detail"] == "File too large. Maximum size is 25 MB."


@pytest.mark.anyio
async def test_upload_checks_task_and_file_first(client: AsyncClient, blob_store) -> None:
  await login_member(client)
  r = await client.post("/tasks/nope/attachments", files={"file": ("a.txt", b"x", "text/plain")})
  assert r.status_code == 404, r.text

  t = await _task(client)
  r = await client.post(f"/tasks/{t['id']}/attachments")
  assert r.status_code == 400, r.text
  assert r.json()["detail"] == "No file provided"
  assert blob_store.puts == []


@pytest.mark.anyio
async def test_download_redirects_to_stored_url(client: AsyncClient) -> None:
  await login_member(client)
  t = await _task(client)
  a = (await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("img.png", b"\x89PNG", "image/png")})).json()
  r = await client.get(f"/attachments/{a['id']}")
  assert r.status_code == 307, r.text
  assert r.headers["location"] == a["url"]
  assert (await client.get("/attachments/nope")).status_code == 404


@pytest.mark.anyio
async def test_only_uploader_or_admin_can_delete(client: AsyncClient, blob_store) -> None:
  await make_user("other@example.com", "Other")
  await login_member(client)
  t = await _task(client)
  a1 = (await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("a.txt", b"1", "text/plain")})).json()
  a2 = (await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("b.txt", b"2", "text/plain")})).json()

  rows = (await client.get(f"/tasks/{t['id']}/attachments")).json()
  assert [a["id"] for a in rows] == [a2["id"], a1["id"]]

  await login(client, "other@example.com", "password123")
  r = await client.delete(f"/attachments/{a1['id']}")
  assert r.status_code == 403, r.text
  assert blob_store.deletes == []

  await login_member(client)
  r = await client.delete(f"/attachments/{a1['id']}")
  assert r.status_code == 200, r.text

  await login_admin(client)
  r = await client.delete(f"/attachments/{a2['id']}")
  assert r.status_code == 200, r.text

  assert blob_store.deletes == [a1["url"], a2["url"]]
  assert await _attachment_rows(t["id"]) == 0


@pytest.mark.anyio
async def test_blob_delete_failure_still_removes_metadata(client: AsyncClient, blob_store) -> None:
  await login_member(client)
  t = await _task(client)
  a = (await client.post(f"/tasks/{t['id']}/attachments", files={"file": ("a.txt", b"1", "text/plain")})).json()

  blob_store.fail_deletes = True
  r = await client.delete(f"/attachments/{a['id']}")
  assert r.status_code == 200, r.text
  assert r.json() == {"ok": True}
  assert blob_store.deletes == [a["url"]]
  assert await _attachment_rows(t["id"]) == 0
