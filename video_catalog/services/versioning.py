"""Mutations over assets and their versions.

Every operation here spans the content store and the catalog store. Bytes are
staged before the catalog transaction opens and published before it commits,
so a failure can leave an unreferenced file behind but never a version row
that points at missing content.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import uuid
from typing import BinaryIO

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from ..core.errors import CatalogError, ConflictError, NotFoundError, ValidationError
from ..models.asset import Asset, AssetMetadata, AssetVersion
from ..schemas.asset import AssetCreate, AssetUpdate
from .catalog_store import CatalogStore
from .content_store import ContentStore

logger = logging.getLogger(__name__)

INITIAL_UPLOAD_DESCRIPTION = "Initial upload"


def _is_seekable(data: BinaryIO) -> bool:
    seekable = getattr(data, "seekable", None)
    return bool(seekable and seekable())


class VersioningEngine:
    def __init__(
        self,
        catalog: CatalogStore,
        content: ContentStore,
        *,
        allocation_attempts: int = 8,
        max_backoff_seconds: float = 0.5,
        default_actor: str = "System",
    ):
        self.catalog = catalog
        self.content = content
        self.allocation_attempts = allocation_attempts
        self.max_backoff_seconds = max_backoff_seconds
        self.default_actor = default_actor

    def _actor(self, actor: str | None) -> str:
        return (actor or "").strip() or self.default_actor

    # Assets

    def create_asset(self, payload: AssetCreate, actor: str | None = None) -> Asset:
        title = payload.title.strip()
        if not title:
            raise ValidationError("Title must not be empty", operation="create_asset")
        if payload.file_size_bytes <= 0:
            raise ValidationError("Declared file size must be positive", operation="create_asset")
        if payload.duration_seconds < 0:
            raise ValidationError("Declared duration must not be negative", operation="create_asset")

        asset = Asset(
            id=str(uuid.uuid4()),
            title=title,
            description=payload.description,
            original_filename=payload.original_filename,
            file_size_bytes=payload.file_size_bytes,
            file_format=payload.file_format,
            duration_seconds=payload.duration_seconds,
            created_by=self._actor(actor),
        )
        technical = payload.technical.model_dump() if payload.technical else {}
        metadata = AssetMetadata(tags=list(payload.tags), view_count=0, **technical)
        return self.catalog.create_asset(asset, metadata)

    def upload_asset(self, payload: AssetCreate, data: BinaryIO, actor: str | None = None) -> tuple[Asset, AssetVersion]:
        """Register a new asset and store ``data`` as its first version."""
        asset = self.create_asset(payload, actor)
        version = self.add_version(asset.id, data, INITIAL_UPLOAD_DESCRIPTION, actor)
        return self.catalog.find_asset_with_versions(asset.id), version

    def update_asset_fields(self, asset_id: str, changes: AssetUpdate, actor: str | None = None) -> Asset:
        fields = changes.model_dump(exclude_none=True, exclude={"tags"})
        if "title" in fields:
            title = fields["title"].strip()
            if not title:
                raise ValidationError("Title must not be empty", asset_id=asset_id, operation="update_asset")
            fields["title"] = title
        return self.catalog.update_asset(asset_id, fields, changes.tags, self._actor(actor))

    def soft_delete(self, asset_id: str) -> None:
        self.catalog.soft_delete(asset_id)

    def increment_view(self, asset_id: str) -> int:
        return self.catalog.increment_view(asset_id)

    # Versions

    def get_active_version(self, asset_id: str) -> AssetVersion:
        return self.catalog.get_active_version(asset_id)

    def get_version(self, asset_id: str, version_number: int) -> AssetVersion:
        return self.catalog.get_version(asset_id, version_number)

    def list_versions(self, asset_id: str) -> list[AssetVersion]:
        return self.catalog.list_versions(asset_id)

    def add_version(
        self,
        asset_id: str,
        data: BinaryIO,
        change_description: str = "",
        actor: str | None = None,
    ) -> AssetVersion:
        """Store ``data`` as the next version of ``asset_id`` and make it active.

        The bytes are staged before the catalog transaction opens; the number is
        allocated and the file published while the asset row is locked. On a
        collision the engine removes what it published and retries, up to
        ``allocation_attempts`` times.
        """
        actor = self._actor(actor)
        # Make sure the payload can be replayed on retry.
        if _is_seekable(data):
            buffer, owned = data, False
        else:
            buffer, owned = tempfile.TemporaryFile(), True
            shutil.copyfileobj(data, buffer)
            buffer.seek(0)

        try:
            start = buffer.tell()
            file_hash = self.content.hash(buffer)
            size = buffer.seek(0, os.SEEK_END) - start
            buffer.seek(start)
            if size <= 0:
                raise ValidationError("Version content is empty", asset_id=asset_id, operation="add_version")

            retrying = Retrying(
                retry=retry_if_exception_type(ConflictError),
                stop=stop_after_attempt(self.allocation_attempts),
                wait=wait_random_exponential(multiplier=0.01, max=self.max_backoff_seconds),
                before_sleep=before_sleep_log(logger, logging.DEBUG),
                reraise=True,
            )
            version = retrying(
                self._store_next_version, asset_id, buffer, start, size, file_hash, change_description, actor
            )
        finally:
            if owned:
                buffer.close()

        logger.info("Added version %s to asset %s (%d bytes)", version.version_number, asset_id, size)
        return version

    def _store_next_version(
        self,
        asset_id: str,
        buffer: BinaryIO,
        start: int,
        size: int,
        file_hash: str,
        change_description: str,
        actor: str,
    ) -> AssetVersion:
        buffer.seek(start)
        staged = self.content.stage(asset_id, buffer)
        published = []

        def _publish(version_number: int) -> str:
            # Runs under the asset row lock with an uncommitted number.
            location = self.content.publish(staged, asset_id, version_number, replace=True)
            published.append(location)
            return location

        try:
            return self.catalog.append_version(
                asset_id,
                _publish,
                file_size_bytes=size,
                file_hash=file_hash,
                change_description=change_description,
                actor=actor,
            )
        except (ConflictError, NotFoundError):
            # Rolled back before commit, so no row references these files.
            for location in published:
                self.content.delete(location)
            raise
        finally:
            self.content.discard(staged)

    # Content

    def open_content(self, asset_id: str, version_number: int | None = None) -> tuple[AssetVersion, BinaryIO]:
        """Open a version's bytes for download and count the view against the asset."""
        if version_number is None:
            version = self.catalog.get_active_version(asset_id)
        else:
            version = self.catalog.get_version(asset_id, version_number)
        stream = self.content.get(version.file_path)
        try:
            self.catalog.increment_view(asset_id)
        except CatalogError:
            stream.close()
            raise
        return version, stream
