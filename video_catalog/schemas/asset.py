from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from ..models.base import normalize_tags


class TechnicalMetadata(BaseModel):
    width: int | None = None
    height: int | None = None
    resolution: str = ""
    frame_rate: float | None = None
    video_codec: str = ""
    audio_codec: str = ""
    bit_rate: int | None = None
    aspect_ratio: str = ""
    color_space: str = ""
    audio_channels: int = 0
    audio_sample_rate: int = 0
    container: str = ""


class AssetCreate(BaseModel):
    title: str
    description: str = ""
    original_filename: str = ""
    file_size_bytes: int
    file_format: str = ""
    duration_seconds: int = 0
    tags: list[str] = Field(default_factory=list)
    technical: TechnicalMetadata | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: str | list[str] | None) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return normalize_tags(value)


class AssetUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    tags: list[str] | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _split_tags(cls, value: str | list[str] | None) -> list[str] | None:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.split(",")
        return normalize_tags(value)


class AssetMetadataRead(TechnicalMetadata):
    tags: list[str] = Field(default_factory=list)
    view_count: int = 0
    last_viewed_at: datetime | None = None

    class Config:
        from_attributes = True


class AssetVersionRead(BaseModel):
    id: str
    asset_id: str
    version_number: int
    file_size_bytes: int
    file_hash: str
    change_description: str
    created_at: datetime
    created_by: str
    is_active: bool

    class Config:
        from_attributes = True


class AssetRead(BaseModel):
    id: str
    title: str
    description: str
    original_filename: str
    file_size_bytes: int
    file_format: str
    duration_seconds: int
    created_at: datetime
    created_by: str
    modified_at: datetime | None = None
    modified_by: str | None = None
    version_count: int = 0
    current_version: int = 1
    metadata: AssetMetadataRead | None = None

    class Config:
        from_attributes = True


class QueryParameters(BaseModel):
    search_term: str = ""
    sort_by: str = "createdDate"
    sort_descending: bool = True
    page_number: int = 1
    page_size: int | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


class PagedResult(BaseModel):
    items: list[AssetRead] = Field(default_factory=list)
    total_count: int = 0
    page_number: int = 1
    page_size: int = 20
    total_pages: int = 0
    has_previous_page: bool = False
    has_next_page: bool = False
