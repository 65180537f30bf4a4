"""Initial issue schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18

Creates the issue tracking tables:
- users
- issues (with merged_into_id self-reference and version_id for
  optimistic locking)
- issue_reporters, issue_voters, issue_status_history,
  issue_notifications, issue_chat_messages

On PostgreSQL also enables PostGIS and adds a GiST index on the issue
location expression used by radius queries.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

GEOGRAPHY_EXPR = "(ST_SetSRID(ST_MakePoint(longitude, latitude), 4326)::geography)"


def upgrade() -> None:
    """Create issue schema."""
    # Enums are stored as member names in plain string columns

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("department", sa.String(120), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "issues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("address", sa.String(300), nullable=False),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("state", sa.String(120), nullable=True),
        sa.Column("pincode", sa.String(20), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("thumbnail_image", sa.String(), nullable=True),
        sa.Column("reported_by_id", sa.Integer(), nullable=False),
        sa.Column("assigned_department", sa.String(120), nullable=True),
        sa.Column("assigned_official_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("votes", sa.Integer(), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False),
        sa.Column("priority_auto", sa.Boolean(), nullable=False),
        sa.Column("priority_reasons", sa.JSON(), nullable=False),
        sa.Column("merged_into_id", sa.Integer(), nullable=True),
        sa.Column("merged_at", sa.DateTime(), nullable=True),
        sa.Column("estimated_resolution_hours", sa.Integer(), nullable=False),
        sa.Column("actual_resolution_hours", sa.Integer(), nullable=True),
        sa.Column("resolved_by_id", sa.Integer(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolution_description", sa.Text(), nullable=True),
        sa.Column("resolution_images", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["reported_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["assigned_official_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["resolved_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["merged_into_id"], ["issues.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_issues_id", "issues", ["id"])
    op.create_index("ix_issues_merged_into_id", "issues", ["merged_into_id"])
    op.create_index(
        "ix_issues_category_merged", "issues", ["category", "merged_into_id"]
    )
    op.create_index("ix_issues_lon_lat", "issues", ["longitude", "latitude"])
    op.create_index("ix_issues_created_at", "issues", ["created_at"])
    op.create_index("ix_issues_reported_by", "issues", ["reported_by_id"])

    op.create_table(
        "issue_reporters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("issue_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("consent", sa.Boolean(), nullable=True),
        sa.Column("joined_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["issue_id"], ["issues.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("issue_id", "user_id", name="uq_issue_reporter_user"),
    )
    op.create_index("ix_issue_reporters_id", "issue_reporters", ["id"])
    op.create_index("ix_issue_reporters_issue_id", "issue_reporters", ["issue_id"])

    op.create_table(
        "issue_voters",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("issue_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["issue_id"], ["issues.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("issue_id", "user_id", name="uq_issue_voter_user"),
    )
    op.create_index("ix_issue_voters_id", "issue_voters", ["id"])
    op.create_index("ix_issue_voters_issue_id", "issue_voters", ["issue_id"])

    op.create_table(
        "issue_status_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("issue_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("updated_by_id", sa.Integer(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("synced_from_id", sa.Integer(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["issue_id"], ["issues.id"]),
        sa.ForeignKeyConstraint(["updated_by_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["synced_from_id"], ["issues.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_issue_status_history_id", "issue_status_history", ["id"])
    op.create_index(
        "ix_issue_status_history_issue_id", "issue_status_history", ["issue_id"]
    )

    op.create_table(
        "issue_notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("issue_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("timestamp", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["issue_id"], ["issues.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_issue_notifications_id", "issue_notifications", ["id"])
    op.create_index(
        "ix_issue_notifications_issue_id", "issue_notifications", ["issue_id"]
    )

    op.create_table(
        "issue_chat_messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("issue_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("message", sa.String(2000), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["issue_id"], ["issues.id"]),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_issue_chat_messages_id", "issue_chat_messages", ["id"])
    op.create_index(
        "ix_issue_chat_issue_created", "issue_chat_messages", ["issue_id", "created_at"]
    )

    if op.get_bind().dialect.name == "postgresql":
        op.execute("CREATE EXTENSION IF NOT EXISTS postgis")
        op.execute(
            f"CREATE INDEX IF NOT EXISTS ix_issues_location_gist "
            f"ON issues USING GIST ({GEOGRAPHY_EXPR})"
        )


def downgrade() -> None:
    """Drop issue schema.

    WARNING: This drops all issue data. Development and test use only.
    """
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP INDEX IF EXISTS ix_issues_location_gist")

    op.drop_table("issue_chat_messages")
    op.drop_table("issue_notifications")
    op.drop_table("issue_status_history")
    op.drop_table("issue_voters")
    op.drop_table("issue_reporters")
    op.drop_table("issues")
    op.drop_table("users")
