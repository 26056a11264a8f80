from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field
from pydantic import field_validator


_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

Role = Literal["ADMIN", "MEMBER"]
TaskStatus = Literal["BACKLOG", "TODO", "IN_PROGRESS", "IN_REVIEW", "DONE", "BLOCKED"]
TaskType = Literal["SPRINT_TASK", "GENERAL_TASK"]
Priority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      dt = datetime.fromisoformat(s)
    else:
      dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def _blank_to_none(value: object) -> object:
  if isinstance(value, str) and not value.strip():
    return None
  return value


class UserSummary(BaseModel):
  id: str
  name: str
  email: str | None = None


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  role: Role
  createdAt: datetime


class UserCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=120)
  email: str = Field(min_length=3, max_length=320)
  password: str = Field(min_length=8, max_length=200)
  role: Role = "MEMBER"


class UserUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=120)
  role: Role | None = None
  password: str | None = Field(default=None, min_length=8, max_length=200)


class LoginIn(BaseModel):
  email: str
  password: str = Field(min_length=1)


class PasswordChangeIn(BaseModel):
  currentPassword: str = Field(min_length=1)
  newPassword: str = Field(min_length=8, max_length=200)


class SprintSummary(BaseModel):
  id: str
  name: str


class SprintCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=200)
  startDate: datetime
  endDate: datetime

  @field_validator("startDate", "endDate", mode="before")
  @classmethod
  def _dates(cls, v: object) -> object:
    return _parse_dt_utc(v)


class SprintUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=200)
  startDate: datetime | None = None
  endDate: datetime | None = None

  @field_validator("startDate", "endDate", mode="before")
  @classmethod
  def _dates(cls, v: object) -> object:
    return _parse_dt_utc(v)


class SprintOut(BaseModel):
  id: str
  name: str
  startDate: datetime
  endDate: datetime
  taskCount: int = 0
  createdAt: datetime


class TaskCounts(BaseModel):
  subtasks: int = 0
  comments: int = 0
  attachments: int = 0


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=500)
  description: str | None = None
  type: TaskType
  priority: Priority | None = None
  status: TaskStatus | None = None
  startDate: datetime | None = None
  dueDate: datetime | None = None
  sprintId: str | None = None
  assigneeIds: list[str] = Field(default_factory=list)
  parentId: str | None = None

  @field_validator("startDate", "dueDate", mode="before")
  @classmethod
  def _dates(cls, v: object) -> object:
    return _parse_dt_utc(v)

  @field_validator("sprintId", "parentId", mode="before")
  @classmethod
  def _ids(cls, v: object) -> object:
    return _blank_to_none(v)


class TaskUpdateIn(BaseModel):
  title: str | None = Field(default=None, min_length=1, max_length=500)
  description: str | None = None
  status: TaskStatus | None = None
  priority: Priority | None = None
  startDate: datetime | None = None
  dueDate: datetime | None = None
  sprintId: str | None = None
  assigneeIds: list[str] | None = None

  @field_validator("startDate", "dueDate", mode="before")
  @classmethod
  def _dates(cls, v: object) -> object:
    return _parse_dt_utc(v)

  @field_validator("sprintId", mode="before")
  @classmethod
  def _ids(cls, v: object) -> object:
    return _blank_to_none(v)


class TaskOut(BaseModel):
  id: str
  title: str
  description: str
  status: TaskStatus
  type: TaskType
  priority: Priority
  startDate: datetime | None = None
  dueDate: datetime | None = None
  sprintId: str | None = None
  sprint: SprintSummary | None = None
  parentId: str | None = None
  reporterId: str
  reporter: UserSummary | None = None
  assignees: list[UserSummary] = Field(default_factory=list)
  counts: TaskCounts | None = None
  createdAt: datetime
  updatedAt: datetime


class SprintDetailOut(SprintOut):
  tasks: list[TaskOut] = Field(default_factory=list)


class StatusEventOut(BaseModel):
  id: int
  taskId: str
  from_: TaskStatus = Field(serialization_alias="from")
  to: TaskStatus
  actor: UserSummary
  at: datetime


class CommentCreateIn(BaseModel):
  body: str = Field(max_length=20000)


class CommentOut(BaseModel):
  id: str
  taskId: str
  authorId: str
  author: UserSummary
  body: str
  createdAt: datetime


class AttachmentOut(BaseModel):
  id: str
  taskId: str
  originalName: str
  url: str
  mimeType: str
  sizeBytes: int
  uploadedBy: UserSummary
  createdAt: datetime


class TaskDetailOut(TaskOut):
  subtasks: list[TaskOut] = Field(default_factory=list)
  comments: list[CommentOut] = Field(default_factory=list)
  attachments: list[AttachmentOut] = Field(default_factory=list)
  statusLog: list[StatusEventOut] = Field(default_factory=list)


class TaskDeleteOut(BaseModel):
  ok: bool = True
  deleted: int


class UserStatsOut(BaseModel):
  total: int = 0
  done: int = 0
  inProgress: int = 0
  todo: int = 0
  blocked: int = 0


class SprintProgressOut(BaseModel):
  total: int = 0
  done: int = 0
  percent: int = 0


class DashboardOut(BaseModel):
  stats: UserStatsOut
  myTasks: list[TaskOut] = Field(default_factory=list)
  activeSprint: SprintOut | None = None
  sprintProgress: SprintProgressOut | None = None
  overdue: list[TaskOut] = Field(default_factory=list)
  dueSoon: list[TaskOut] = Field(default_factory=list)
