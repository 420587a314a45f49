"""initial schema: deployments, logs, certificates, work queue

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


deployment_status = sa.Enum(
    "QUEUED", "CLONING", "DETECTING", "GENERATING",
    "BUILDING", "TESTING", "COMPLETED", "FAILED",
    name="deployment_status",
)
deployment_platform = sa.Enum("LOCAL", "RENDER", name="deployment_platform")
log_level = sa.Enum("INFO", "WARNING", "ERROR", name="log_level")


def upgrade() -> None:
    op.create_table(
        "deployments",
        sa.Column("deployment_id", sa.String(length=36), nullable=False),
        sa.Column("repo_url", sa.Text(), nullable=False),
        sa.Column("platform", deployment_platform, nullable=False),
        sa.Column("status", deployment_status, nullable=False),
        sa.Column("detected_language", sa.String(length=50), nullable=True),
        sa.Column("detected_framework", sa.String(length=50), nullable=True),
        sa.Column("package_manager", sa.String(length=20), nullable=True),
        sa.Column("start_command", sa.Text(), nullable=True),
        sa.Column("port", sa.Integer(), nullable=True),
        sa.Column("dockerfile", sa.Text(), nullable=True),
        sa.Column("ci_pipeline", sa.Text(), nullable=True),
        sa.Column("container_id", sa.String(length=128), nullable=True),
        sa.Column("host_port", sa.Integer(), nullable=True),
        sa.Column("url", sa.String(length=255), nullable=True),
        sa.Column("metrics", sa.JSON(), nullable=True),
        sa.Column("certificate_id", sa.String(length=36), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("deployment_id"),
    )
    op.create_index("ix_deployments_status", "deployments", ["status"])

    op.create_table(
        "deployment_logs",
        sa.Column("sequence", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("deployment_id", sa.String(length=36), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("level", log_level, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(
            ["deployment_id"], ["deployments.deployment_id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("sequence"),
    )
    op.create_index(
        "ix_deployment_logs_deployment_seq",
        "deployment_logs",
        ["deployment_id", "sequence"],
    )

    op.create_table(
        "certificates",
        sa.Column("certificate_id", sa.String(length=36), nullable=False),
        sa.Column("deployment_id", sa.String(length=36), nullable=False),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("repo_url", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("detected_language", sa.String(length=50), nullable=True),
        sa.Column("detected_framework", sa.String(length=50), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metrics", sa.JSON(), nullable=False),
        sa.Column("format_version", sa.Integer(), nullable=False),
        sa.Column("signature", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("certificate_id"),
    )
    op.create_index("ix_certificates_deployment_id", "certificates", ["deployment_id"])

    op.create_table(
        "deployment_jobs",
        sa.Column("job_id", sa.String(length=36), nullable=False),
        sa.Column("deployment_id", sa.String(length=36), nullable=False),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("lease_owner", sa.String(length=255), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index("ix_deployment_jobs_deployment_id", "deployment_jobs", ["deployment_id"])
    op.create_index(
        "ix_deployment_jobs_claim_lookup",
        "deployment_jobs",
        ["lease_expires_at", "enqueued_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_deployment_jobs_claim_lookup", table_name="deployment_jobs")
    op.drop_index("ix_deployment_jobs_deployment_id", table_name="deployment_jobs")
    op.drop_table("deployment_jobs")

    op.drop_index("ix_certificates_deployment_id", table_name="certificates")
    op.drop_table("certificates")

    op.drop_index("ix_deployment_logs_deployment_seq", table_name="deployment_logs")
    op.drop_table("deployment_logs")

    op.drop_index("ix_deployments_status", table_name="deployments")
    op.drop_table("deployments")

    log_level.drop(op.get_bind(), checkfirst=True)
    deployment_platform.drop(op.get_bind(), checkfirst=True)
    deployment_status.drop(op.get_bind(), checkfirst=True)
