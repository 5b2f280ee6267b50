"""initial_bug_relationship_schema

Create projects, bugs, bug_monitors, bug_relationship, bug_history and
notifications tables.

Revision ID: 5d1e0a7c3b21
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5d1e0a7c3b21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=128), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "bugs" not in existing_tables:
        op.create_table(
            "bugs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("summary", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("steps_to_reproduce", sa.Text(), nullable=True),
            sa.Column("status", sa.Integer(), nullable=False),
            sa.Column("resolution", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("priority", sa.String(length=20), nullable=True),
            sa.Column("reporter", sa.String(length=100), nullable=True),
            sa.Column("handler", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_bugs_project_id", "bugs", ["project_id"])

    if "bug_monitors" not in existing_tables:
        op.create_table(
            "bug_monitors",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("bug_id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.ForeignKeyConstraint(["bug_id"], ["bugs.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("bug_id", "username", name="uq_bug_monitor"),
        )
        op.create_index("ix_bug_monitors_bug_id", "bug_monitors", ["bug_id"])

    if "bug_relationship" not in existing_tables:
        op.create_table(
            "bug_relationship",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("source_bug_id", sa.Integer(), nullable=False),
            sa.Column("destination_bug_id", sa.Integer(), nullable=False),
            sa.Column("relationship_type", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_bug_relationship_source_bug_id", "bug_relationship", ["source_bug_id"])
        op.create_index("ix_bug_relationship_destination_bug_id", "bug_relationship", ["destination_bug_id"])

    if "bug_history" not in existing_tables:
        op.create_table(
            "bug_history",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("bug_id", sa.Integer(), nullable=False),
            sa.Column("event_type", sa.String(length=30), nullable=False),
            sa.Column("field_name", sa.String(length=50), nullable=True),
            sa.Column("old_value", sa.Text(), nullable=True),
            sa.Column("new_value", sa.Text(), nullable=True),
            sa.Column("changed_by", sa.String(length=100), nullable=True),
            sa.Column("changed_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_bug_history_bug_id", "bug_history", ["bug_id"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient", sa.String(length=100), nullable=False),
            sa.Column("bug_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"])
        op.create_index("ix_notifications_bug_id", "notifications", ["bug_id"])


def downgrade():
    for table in ("notifications", "bug_history", "bug_relationship",
                  "bug_monitors", "bugs", "projects"):
        op.drop_table(table)
