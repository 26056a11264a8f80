"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="MEMBER"),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "sessions",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_ip", sa.String(), nullable=True),
    sa.Column("user_agent", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"], unique=False)

  op.create_table(
    "sprints",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
    sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_sprints_start_date", "sprints", ["start_date"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False, server_default=""),
    sa.Column("status", sa.String(), nullable=False, server_default="BACKLOG"),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("priority", sa.String(), nullable=False, server_default="MEDIUM"),
    sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("sprint_id", sa.String(36), sa.ForeignKey("sprints.id"), nullable=True),
    sa.Column("reporter_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("parent_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_status", "tasks", ["status"], unique=False)
  op.create_index("ix_tasks_sprint_id", "tasks", ["sprint_id"], unique=False)
  op.create_index("ix_tasks_parent_id", "tasks", ["parent_id"], unique=False)
  op.create_index("ix_tasks_created_at", "tasks", ["created_at"], unique=False)

  op.create_table(
    "task_assignees",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("task_id", "user_id", name="ux_task_assignees_task_user"),
  )
  op.create_index("ix_task_assignees_task_id", "task_assignees", ["task_id"], unique=False)
  op.create_index("ix_task_assignees_user_id", "task_assignees", ["user_id"], unique=False)

  op.create_table(
    "status_events",
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("actor_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("from_status", sa.String(), nullable=False),
    sa.Column("to_status", sa.String(), nullable=False),
    sa.Column("at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_status_events_task_id", "status_events", ["task_id"], unique=False)

  op.create_table(
    "comments",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("author_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("body", sa.Text(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_comments_task_id", "comments", ["task_id"], unique=False)

  op.create_table(
    "attachments",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id"), nullable=False),
    sa.Column("original_name", sa.String(), nullable=False),
    sa.Column("locator", sa.String(), nullable=False),
    sa.Column("mime_type", sa.String(), nullable=False),
    sa.Column("size_bytes", sa.Integer(), nullable=False),
    sa.Column("uploaded_by_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_attachments_task_id", "attachments", ["task_id"], unique=False)


def downgrade() -> None:
  op.drop_table("attachments")
  op.drop_table("comments")
  op.drop_table("status_events")
  op.drop_table("task_assignees")
  op.drop_table("tasks")
  op.drop_table("sprints")
  op.drop_table("sessions")
  op.drop_table("users")
