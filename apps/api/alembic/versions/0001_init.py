"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
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
    sa.Column("email", sa.String(320), nullable=False),
    sa.Column("name", sa.String(50), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("title", sa.String(100), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
    sa.Column("priority", sa.String(16), nullable=False, server_default="Medium"),
    sa.Column("status", sa.String(16), nullable=False, server_default="To Do"),
    sa.Column("creator_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("assigned_to_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_due_date", "tasks", ["due_date"])
  op.create_index("ix_tasks_priority", "tasks", ["priority"])
  op.create_index("ix_tasks_status", "tasks", ["status"])
  op.create_index("ix_tasks_creator_id", "tasks", ["creator_id"])
  op.create_index("ix_tasks_assigned_to_id", "tasks", ["assigned_to_id"])

  op.create_table(
    "notifications",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
    sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])
  op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

  op.create_table(
    "audit_logs",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("task_id", sa.String(36), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("action", sa.String(32), nullable=False),
    sa.Column("previous_value", sa.Text(), nullable=True),
    sa.Column("new_value", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_logs_task_id", "audit_logs", ["task_id"])
  op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])


def downgrade() -> None:
  op.drop_index("ix_audit_logs_user_id", table_name="audit_logs")
  op.drop_index("ix_audit_logs_task_id", table_name="audit_logs")
  op.drop_table("audit_logs")
  op.drop_index("ix_notifications_created_at", table_name="notifications")
  op.drop_index("ix_notifications_user_read", table_name="notifications")
  op.drop_table("notifications")
  op.drop_index("ix_tasks_assigned_to_id", table_name="tasks")
  op.drop_index("ix_tasks_creator_id", table_name="tasks")
  op.drop_index("ix_tasks_status", table_name="tasks")
  op.drop_index("ix_tasks_priority", table_name="tasks")
  op.drop_index("ix_tasks_due_date", table_name="tasks")
  op.drop_table("tasks")
  op.drop_index("ix_users_email", table_name="users")
  op.drop_table("users")
