"""Video encoding models migration.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the videos table with encoding, moderation and publish state.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

encoding_status = postgresql.ENUM(
    "PENDING", "ENCODING", "READY", "FAILED",
    name="encodingstatus",
    create_type=False,
)
encoding_tiers_status = postgresql.ENUM(
    "NONE", "PARTIAL", "FULL",
    name="encodingtiersstatus",
    create_type=False,
)
publish_status = postgresql.ENUM(
    "DRAFT", "SCHEDULED", "PUBLISHED",
    name="publishstatus",
    create_type=False,
)
moderation_status = postgresql.ENUM(
    "PENDING", "APPROVED", "REJECTED", "NEEDS_REVIEW",
    name="moderationstatus",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in (encoding_status, encoding_tiers_status, publish_status, moderation_status):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "videos",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("encoding_status", encoding_status, nullable=False, server_default="PENDING"),
        sa.Column("encoding_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("encoding_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "encoding_tiers_status",
            encoding_tiers_status,
            nullable=False,
            server_default="NONE",
        ),
        sa.Column("encoding_error", sa.Text(), nullable=True),
        sa.Column("provider_job_id", sa.String(255), nullable=True),
        sa.Column("original_blob_name", sa.String(1024), nullable=True),
        sa.Column("hls_manifest_url", sa.String(1024), nullable=True),
        sa.Column("mp4_url", sa.String(1024), nullable=True),
        sa.Column("publish_status", publish_status, nullable=False, server_default="DRAFT"),
        sa.Column("scheduled_publish_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "moderation_status",
            moderation_status,
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_videos_encoding_status"),
        "videos",
        ["encoding_status"],
        unique=False,
    )
    op.create_index(
        op.f("ix_videos_publish_status"),
        "videos",
        ["publish_status"],
        unique=False,
    )
    op.create_index(
        op.f("ix_videos_scheduled_publish_at"),
        "videos",
        ["scheduled_publish_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_videos_scheduled_publish_at"), table_name="videos")
    op.drop_index(op.f("ix_videos_publish_status"), table_name="videos")
    op.drop_index(op.f("ix_videos_encoding_status"), table_name="videos")
    op.drop_table("videos")

    bind = op.get_bind()
    for enum_type in (moderation_status, publish_status, encoding_tiers_status, encoding_status):
        enum_type.drop(bind, checkfirst=True)
