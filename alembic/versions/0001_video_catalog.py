"""Video assets, versions and metadata

Revision ID: 0001_video_catalog
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_video_catalog"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "video_assets",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("original_filename", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("file_format", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("created_by", sa.String(length=100), nullable=False),
        sa.Column("modified_at", sa.DateTime(), nullable=True),
        sa.Column("modified_by", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_video_assets_title", "video_assets", ["title"])
    op.create_index("ix_video_assets_created_at", "video_assets", ["created_at"])
    op.create_index("ix_video_assets_status", "video_assets", ["status"])
    op.create_index("idx_video_assets_status_created_at", "video_assets", ["status", sa.text("created_at DESC")])

    op.create_table(
        "asset_versions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("asset_id", sa.String(length=36), sa.ForeignKey("video_assets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("file_path", sa.String(length=500), nullable=False),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("file_hash", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("change_description", sa.String(length=1000), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("created_by", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.UniqueConstraint("asset_id", "version_number", name="uq_asset_versions_number"),
    )
    op.create_index("ix_asset_versions_asset_id", "asset_versions", ["asset_id"])
    op.create_index(
        "uq_asset_versions_active",
        "asset_versions",
        ["asset_id"],
        unique=True,
        sqlite_where=sa.text("is_active"),
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "asset_metadata",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("asset_id", sa.String(length=36), sa.ForeignKey("video_assets.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("resolution", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("frame_rate", sa.Float(), nullable=True),
        sa.Column("video_codec", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("audio_codec", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("bit_rate", sa.Integer(), nullable=True),
        sa.Column("aspect_ratio", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("color_space", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("audio_channels", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("audio_sample_rate", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("container", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("tags", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("view_count", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("last_viewed_at", sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("asset_metadata")
    op.drop_index("uq_asset_versions_active", table_name="asset_versions")
    op.drop_index("ix_asset_versions_asset_id", table_name="asset_versions")
    op.drop_table("asset_versions")
    op.drop_index("idx_video_assets_status_created_at", table_name="video_assets")
    op.drop_index("ix_video_assets_status", table_name="video_assets")
    op.drop_index("ix_video_assets_created_at", table_name="video_assets")
    op.drop_index("ix_video_assets_title", table_name="video_assets")
    op.drop_table("video_assets")
