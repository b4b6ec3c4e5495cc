import enum
import uuid

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..core.database import Base
from .base import TagSet, utcnow


class AssetStatus(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class Asset(Base):
    __tablename__ = "video_assets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    original_filename = Column(String(500), nullable=False, default="")
    file_size_bytes = Column(BigInteger, nullable=False)
    file_format = Column(String(50), nullable=False, default="")
    duration_seconds = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    created_by = Column(String(100), nullable=False)
    modified_at = Column(DateTime, nullable=True)
    modified_by = Column(String(100), nullable=True)
    status = Column(
        Enum(AssetStatus, native_enum=False, length=16, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        nullable=False,
        default=AssetStatus.ACTIVE,
        index=True,
    )
    deleted_at = Column(DateTime, nullable=True)

    versions = relationship(
        "AssetVersion",
        back_populates="asset",
        cascade="all, delete-orphan",
        order_by="AssetVersion.version_number",
    )
    meta = relationship("AssetMetadata", back_populates="asset", cascade="all, delete-orphan", uselist=False)

    @property
    def is_deleted(self) -> bool:
        return self.status == AssetStatus.DELETED

    @property
    def active_version(self) -> "AssetVersion | None":
        for version in self.versions:
            if version.is_active:
                return version
        return None


class AssetVersion(Base):
    __tablename__ = "asset_versions"
    __table_args__ = (
        UniqueConstraint("asset_id", "version_number", name="uq_asset_versions_number"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    asset_id = Column(String(36), ForeignKey("video_assets.id", ondelete="CASCADE"), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size_bytes = Column(BigInteger, nullable=False)
    file_hash = Column(String(64), nullable=False, default="")
    change_description = Column(String(1000), nullable=False, default="")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    created_by = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)

    asset = relationship("Asset", back_populates="versions")


class AssetMetadata(Base):
    __tablename__ = "asset_metadata"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    asset_id = Column(String(36), ForeignKey("video_assets.id", ondelete="CASCADE"), nullable=False, unique=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    resolution = Column(String(50), nullable=False, default="")
    frame_rate = Column(Float, nullable=True)
    video_codec = Column(String(50), nullable=False, default="")
    audio_codec = Column(String(50), nullable=False, default="")
    bit_rate = Column(Integer, nullable=True)
    aspect_ratio = Column(String(20), nullable=False, default="")
    color_space = Column(String(100), nullable=False, default="")
    audio_channels = Column(Integer, nullable=False, default=0)
    audio_sample_rate = Column(Integer, nullable=False, default=0)
    container = Column(String(50), nullable=False, default="")
    tags = Column(TagSet, nullable=False, default=list)
    view_count = Column(BigInteger, nullable=False, default=0)
    last_viewed_at = Column(DateTime, nullable=True)

    asset = relationship("Asset", back_populates="meta")


# At most one active version per asset, enforced by the database as well.
Index(
    "uq_asset_versions_active",
    AssetVersion.asset_id,
    unique=True,
    sqlite_where=AssetVersion.is_active.is_(True),
    postgresql_where=AssetVersion.is_active.is_(True),
)
Index("idx_video_assets_status_created_at", Asset.status, Asset.created_at.desc())
