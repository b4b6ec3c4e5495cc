from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from ..core.errors import CatalogError, ConflictError, NotFoundError, PersistenceError, ValidationError
from ..models.asset import Asset, AssetMetadata, AssetStatus, AssetVersion
from ..models.base import normalize_tags, to_naive_utc, utcnow

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "createddate": Asset.created_at,
    "title": Asset.title,
    "size": Asset.file_size_bytes,
    "duration": Asset.duration_seconds,
}
DEFAULT_SORT_KEY = "createddate"

_EDITABLE_FIELDS = ("title", "description")


def normalize_sort_key(sort_by: str | None) -> str:
    """Map ``createdDate``, ``created_date``, ``Title``... to a known key; unknown keys fall back."""
    key = (sort_by or "").strip().lower().replace("_", "").replace("-", "")
    return key if key in SORT_COLUMNS else DEFAULT_SORT_KEY


def _visible():
    # The single place soft-deleted assets are excluded.
    return Asset.status == AssetStatus.ACTIVE


def _with_relations():
    return (selectinload(Asset.versions), selectinload(Asset.meta))


def _text_filter(term: str):
    needle = term.strip()
    return or_(
        Asset.title.icontains(needle, autoescape=True),
        Asset.description.icontains(needle, autoescape=True),
        Asset.original_filename.icontains(needle, autoescape=True),
    )


def _date_filters(start: datetime | None, end: datetime | None) -> list:
    start = to_naive_utc(start) if start else None
    end = to_naive_utc(end) if end else None
    if start and end and start > end:
        raise ValidationError("Date range start must not be after its end", operation="filter_by_date_range")
    filters = []
    if start:
        filters.append(Asset.created_at >= start)
    if end:
        filters.append(Asset.created_at <= end)
    return filters


class CatalogStore:
    """Transactional storage for assets, their versions and metadata."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def transaction(
        self,
        operation: str,
        asset_id: str | None = None,
        integrity_conflict: bool = False,
    ) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except CatalogError:
            session.rollback()
            raise
        except IntegrityError as exc:
            session.rollback()
            if integrity_conflict:
                raise ConflictError("Concurrent write collided", asset_id=asset_id, operation=operation) from exc
            raise PersistenceError(f"Constraint violated: {exc.orig}", asset_id=asset_id, operation=operation) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(f"Catalog transaction failed: {exc}", asset_id=asset_id, operation=operation) from exc
        finally:
            session.close()

    def _load_asset(
        self, session: Session, asset_id: str, operation: str, lock: bool = False, relations: bool = False
    ) -> Asset:
        stmt = select(Asset).where(Asset.id == asset_id, _visible())
        if lock:
            stmt = stmt.with_for_update()
        if relations:
            stmt = stmt.options(*_with_relations())
        asset = session.execute(stmt).scalar_one_or_none()
        if asset is None:
            raise NotFoundError("Asset not found", asset_id=asset_id, operation=operation)
        return asset

    def _reload(self, session: Session, asset_id: str) -> Asset:
        session.flush()
        stmt = select(Asset).where(Asset.id == asset_id).options(*_with_relations()).execution_options(populate_existing=True)
        return session.execute(stmt).scalar_one()

    # Assets

    def create_asset(self, asset: Asset, metadata: AssetMetadata) -> Asset:
        with self.transaction("create_asset", asset.id) as session:
            asset.meta = metadata
            session.add(asset)
            session.flush()
            created = self._reload(session, asset.id)
        logger.info("Created asset %s (%s)", created.id, created.title)
        return created

    def find_asset_with_versions(self, asset_id: str) -> Asset:
        with self.transaction("find_asset", asset_id) as session:
            return self._load_asset(session, asset_id, "find_asset", relations=True)

    def find_asset_including_deleted(self, asset_id: str) -> Asset | None:
        """Physical lookup that ignores the delete status; audit/restore use only."""
        with self.transaction("find_asset_including_deleted", asset_id) as session:
            stmt = select(Asset).where(Asset.id == asset_id).options(*_with_relations())
            return session.execute(stmt).scalar_one_or_none()

    def update_asset(self, asset_id: str, changes: dict[str, Any], tags: list[str] | None, actor: str) -> Asset:
        with self.transaction("update_asset", asset_id) as session:
            asset = self._load_asset(session, asset_id, "update_asset", lock=True)
            for key in _EDITABLE_FIELDS:
                if key in changes and changes[key] is not None:
                    setattr(asset, key, changes[key])
            if tags is not None:
                metadata = session.execute(
                    select(AssetMetadata).where(AssetMetadata.asset_id == asset_id)
                ).scalar_one_or_none()
                if metadata is None:
                    metadata = AssetMetadata(asset_id=asset_id, view_count=0)
                    session.add(metadata)
                metadata.tags = normalize_tags(tags)
            asset.modified_at = utcnow()
            asset.modified_by = actor
            updated = self._reload(session, asset_id)
        logger.info("Updated asset %s", asset_id)
        return updated

    def soft_delete(self, asset_id: str) -> None:
        with self.transaction("soft_delete", asset_id) as session:
            asset = self._load_asset(session, asset_id, "soft_delete", lock=True)
            asset.status = AssetStatus.DELETED
            asset.deleted_at = utcnow()
        logger.info("Soft-deleted asset %s", asset_id)

    def increment_view(self, asset_id: str) -> int:
        now = utcnow()
        with self.transaction("increment_view", asset_id) as session:
            # Increment in SQL so concurrent callers never lose an update.
            result = session.execute(
                update(AssetMetadata)
                .where(
                    AssetMetadata.asset_id == asset_id,
                    AssetMetadata.asset_id.in_(select(Asset.id).where(Asset.id == asset_id, _visible())),
                )
                .values(view_count=AssetMetadata.view_count + 1, last_viewed_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError("Asset not found", asset_id=asset_id, operation="increment_view")
            return session.execute(
                select(AssetMetadata.view_count).where(AssetMetadata.asset_id == asset_id)
            ).scalar_one()

    # Versions

    def append_version(
        self,
        asset_id: str,
        publish: Callable[[int], str],
        *,
        file_size_bytes: int,
        file_hash: str,
        change_description: str,
        actor: str,
    ) -> AssetVersion:
        """Allocate the next version number, publish its content and make it the active version.

        The asset row stays write-locked from before the number is read until
        the commit, so ``publish(version_number)`` only ever sees a number no
        committed row holds. Raises ``ConflictError`` when the unique
        constraints still reject the insert.
        """
        with self.transaction("add_version", asset_id, integrity_conflict=True) as session:
            # An UPDATE takes the row lock on PostgreSQL and the write lock on SQLite.
            locked = session.execute(
                update(Asset)
                .where(Asset.id == asset_id, _visible())
                .values(status=Asset.status)
                .execution_options(synchronize_session=False)
            )
            if locked.rowcount == 0:
                raise NotFoundError("Asset not found", asset_id=asset_id, operation="add_version")
            current = session.execute(
                select(func.coalesce(func.max(AssetVersion.version_number), 0)).where(AssetVersion.asset_id == asset_id)
            ).scalar_one()
            version_number = current + 1
            file_path = publish(version_number)
            session.execute(
                update(AssetVersion)
                .where(AssetVersion.asset_id == asset_id, AssetVersion.is_active.is_(True))
                .values(is_active=False)
                .execution_options(synchronize_session=False)
            )
            version = AssetVersion(
                asset_id=asset_id,
                version_number=version_number,
                file_path=file_path,
                file_size_bytes=file_size_bytes,
                file_hash=file_hash,
                change_description=change_description,
                created_by=actor,
                created_at=utcnow(),
                is_active=True,
            )
            session.add(version)
            session.flush()
        return version

    def get_version(self, asset_id: str, version_number: int) -> AssetVersion:
        with self.transaction("get_version", asset_id) as session:
            version = session.execute(
                select(AssetVersion)
                .join(Asset, Asset.id == AssetVersion.asset_id)
                .where(AssetVersion.asset_id == asset_id, AssetVersion.version_number == version_number, _visible())
            ).scalar_one_or_none()
            if version is None:
                raise NotFoundError(f"Version {version_number} not found", asset_id=asset_id, operation="get_version")
            return version

    def get_active_version(self, asset_id: str) -> AssetVersion:
        with self.transaction("get_active_version", asset_id) as session:
            self._load_asset(session, asset_id, "get_active_version")
            version = session.execute(
                select(AssetVersion).where(AssetVersion.asset_id == asset_id, AssetVersion.is_active.is_(True))
            ).scalar_one_or_none()
            if version is None:
                raise NotFoundError("Asset has no active version", asset_id=asset_id, operation="get_active_version")
            return version

    def list_versions(self, asset_id: str) -> list[AssetVersion]:
        with self.transaction("list_versions", asset_id) as session:
            self._load_asset(session, asset_id, "list_versions")
            return list(
                session.execute(
                    select(AssetVersion)
                    .where(AssetVersion.asset_id == asset_id)
                    .order_by(AssetVersion.version_number.desc())
                ).scalars()
            )

    # Queries

    def search_by_text(self, term: str) -> list[Asset]:
        with self.transaction("search_by_text") as session:
            stmt = select(Asset).where(_visible()).options(*_with_relations())
            if term and term.strip():
                stmt = stmt.where(_text_filter(term))
            return list(session.execute(stmt.order_by(Asset.created_at.desc(), Asset.id)).scalars())

    def filter_by_date_range(self, start: datetime, end: datetime) -> list[Asset]:
        filters = _date_filters(start, end)
        with self.transaction("filter_by_date_range") as session:
            stmt = select(Asset).where(_visible(), *filters).options(*_with_relations())
            return list(session.execute(stmt.order_by(Asset.created_at.desc(), Asset.id)).scalars())

    def list_recent(self, count: int) -> list[Asset]:
        if count < 1:
            return []
        with self.transaction("list_recent") as session:
            stmt = (
                select(Asset)
                .where(_visible())
                .options(*_with_relations())
                .order_by(Asset.created_at.desc(), Asset.id)
                .limit(count)
            )
            return list(session.execute(stmt).scalars())

    def query(
        self,
        *,
        search_term: str = "",
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        sort_by: str = DEFAULT_SORT_KEY,
        descending: bool = True,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Asset], int]:
        """Filtered, sorted page of visible assets plus the filtered total, read in one session."""
        filters = [_visible(), *_date_filters(created_from, created_to)]
        if search_term and search_term.strip():
            filters.append(_text_filter(search_term))

        column = SORT_COLUMNS[normalize_sort_key(sort_by)]
        ordering = (column.desc(), Asset.id.desc()) if descending else (column.asc(), Asset.id.asc())

        with self.transaction("query") as session:
            total = session.execute(select(func.count(Asset.id)).where(*filters)).scalar_one()
            if offset >= total:
                return [], total
            stmt = select(Asset).where(*filters).options(*_with_relations()).order_by(*ordering).offset(offset).limit(limit)
            return list(session.execute(stmt).scalars()), total
