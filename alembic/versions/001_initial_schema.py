"""Initial schema with jobs table

Revision ID: 001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JOB_STATUSES = ("pending", "running", "succeeded", "failed", "canceled")


def upgrade() -> None:
    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid, nullable=False),
        sa.Column("job_type", sa.String(100), nullable=False),
        sa.Column("owner_id", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text, nullable=True),
        sa.Column(
            "status",
            sa.Enum(*JOB_STATUSES, name="job_status", create_constraint=True),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="10"),
        sa.Column(
            "next_run_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("locked_by", sa.String(255), nullable=True),
        sa.Column("locked_at", sa.DateTime, nullable=True),
        sa.Column("last_attempt_at", sa.DateTime, nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("max_attempts >= 1", name="ck_jobs_max_attempts_positive"),
    )

    # Due-job sweep: pending jobs by next_run_at
    op.create_index("ix_jobs_status_next_run", "jobs", ["status", "next_run_at"])
    # Owner listing, most recent first
    op.create_index("ix_jobs_owner_created", "jobs", ["owner_id", "created_at"])
    # Stale-lock reaper
    op.create_index("ix_jobs_status_locked_at", "jobs", ["status", "locked_at"])


def downgrade() -> None:
    op.drop_index("ix_jobs_status_locked_at", table_name="jobs")
    op.drop_index("ix_jobs_owner_created", table_name="jobs")
    op.drop_index("ix_jobs_status_next_run", table_name="jobs")

    op.drop_table("jobs")

    # Drop enums
    op.execute("DROP TYPE IF EXISTS job_status")
