from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from sprintdesk.reporting.service import active_sprint, due_soon, overdue, sprint_progress, user_stats
from sprintdesk.schemas import SprintOut, TaskOut

from conftest import MEMBER_EMAIL, login_admin, login_member, seeded_user_id

NOW = datetime(2026, 2, 22, 12, 0, tzinfo=timezone.utc)


def _task(tid: str, status: str = "TODO", due: datetime | None = None) -> TaskOut:
  return TaskOut(
    id=tid,
    title=tid,
    description="",
    status=status,
    type="GENERAL_TASK",
    priority="MEDIUM",
    dueDate=due,
    reporterId="r",
    createdAt=NOW,
    updatedAt=NOW,
  )


def _sprint(sid: str, start: datetime, end: datetime) -> SprintOut:
  return SprintOut(id=sid, name=sid, startDate=start, endDate=end, createdAt=NOW)


@pytest.mark.anyio
async def test_user_stats_buckets() -> None:
  tasks = [
    _task("a", "DONE"),
    _task("b", "IN_PROGRESS"),
    _task("c", "TODO"),
    _task("d", "BACKLOG"),
    _task("e", "BLOCKED"),
    _task("f", "IN_REVIEW"),
  ]
  stats = user_stats(tasks)
  assert stats.model_dump() == {"total": 6, "done": 1, "inProgress": 1, "todo": 2, "blocked": 1}
  assert user_stats([]).total == 0


@pytest.mark.anyio
async def test_overdue_excludes_done_and_sorts_by_due() -> None:
  tasks = [
    _task("late2", due=NOW - timedelta(days=1)),
    _task("late1", due=NOW - timedelta(days=3)),
    _task("done", "DONE", due=NOW - timedelta(days=5)),
    _task("future", due=NOW + timedelta(days=1)),
    _task("nodue"),
  ]
  assert [t.id for t in overdue(tasks, NOW)] == ["late1", "late2"]


@pytest.mark.anyio
async def test_due_soon_window_is_inclusive() -> None:
  tasks = [
    _task("edge", due=NOW + timedelta(days=7)),
    _task("now", due=NOW),
    _task("tomorrow", due=NOW + timedelta(days=1)),
    _task("past", due=NOW - timedelta(seconds=1)),
    _task("far", due=NOW + timedelta(days=7, seconds=1)),
    _task("done", "DONE", due=NOW + timedelta(days=2)),
  ]
  assert [t.id for t in due_soon(tasks, NOW)] == ["now", "tomorrow", "edge"]


@pytest.mark.anyio
async def test_active_sprint_picks_first_containing_now() -> None:
  newer = _sprint("newer", NOW - timedelta(days=1), NOW + timedelta(days=10))
  older = _sprint("older", NOW - timedelta(days=5), NOW + timedelta(days=1))
  past = _sprint("past", NOW - timedelta(days=30), NOW - timedelta(days=16))
  assert active_sprint([newer, older, past], NOW).id == "newer"
  assert active_sprint([past], NOW) is None
  assert active_sprint([_sprint("edge", NOW, NOW)], NOW).id == "edge"


@pytest.mark.anyio
async def test_sprint_progress_rounds_and_handles_empty() -> None:
  assert sprint_progress([]).model_dump() == {"total": 0, "done": 0, "percent": 0}
  p = sprint_progress([_task("a", "DONE"), _task("b"), _task("c")])
  assert (p.total, p.done, p.percent) == (3, 1, 33)
  p = sprint_progress([_task("a", "DONE"), _task("b", "DONE"), _task("c")])
  assert p.percent == 67
  p = sprint_progress([_task("a", "DONE")] + [_task(str(i)) for i in range(7)])
  assert p.percent == 13


@pytest.mark.anyio
async def test_dashboard_endpoint(client: AsyncClient) -> None:
  member_id = await seeded_user_id(MEMBER_EMAIL)
  now = datetime.now(timezone.utc)
  await login_admin(client)
  current = (
    await client.post(
      "/sprints",
      json={
        "name": "Current",
        "startDate": (now - timedelta(days=2)).isoformat(),
        "endDate": (now + timedelta(days=12)).isoformat(),
      },
    )
  ).json()
  await client.post("/sprints", json={"name": "Old", "startDate": "2020-01-01", "endDate": "2020-01-14"})

  done = (
    await client.post("/tasks", json={"title": "Done", "type": "SPRINT_TASK", "sprintId": current["id"], "status": "DONE", "assigneeIds": [member_id]})
  ).json()
  late = (
    await client.post(
      "/tasks",
      json={
        "title": "Late",
        "type": "SPRINT_TASK",
        "sprintId": current["id"],
        "dueDate": (now - timedelta(days=1)).isoformat(),
        "assigneeIds": [member_id],
      },
    )
  ).json()
  soon = (
    await client.post("/tasks", json={"title": "Soon", "type": "GENERAL_TASK", "dueDate": (now + timedelta(days=2)).isoformat()})
  ).json()
  await client.post("/tasks", json={"title": "Sub", "type": "GENERAL_TASK", "parentId": late["id"], "assigneeIds": [member_id]})

  await login_member(client)
  r = await client.get("/dashboard")
  assert r.status_code == 200, r.text
  d = r.json()
  assert d["stats"] == {"total": 2, "done": 1, "inProgress": 0, "todo": 1, "blocked": 0}
  assert {t["id"] for t in d["myTasks"]} == {done["id"], late["id"]}
  assert d["activeSprint"]["id"] == current["id"]
  assert d["sprintProgress"] == {"total": 2, "done": 1, "percent": 50}
  assert [t["id"] for t in d["overdue"]] == [late["id"]]
  assert [t["id"] for t in d["dueSoon"]] == [soon["id"]]


@pytest.mark.anyio
async def test_dashboard_without_active_sprint(client: AsyncClient) -> None:
  await login_member(client)
  d = (await client.get("/dashboard")).json()
  assert d["activeSprint"] is None
  assert d["sprintProgress"] is None
  assert d["stats"]["total"] == 0
