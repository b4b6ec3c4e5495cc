from __future__ import annotations

import math
from datetime import datetime

from ..models.asset import Asset
from ..schemas.asset import AssetMetadataRead, AssetRead, PagedResult, QueryParameters
from .catalog_store import CatalogStore


def project_asset(asset: Asset) -> AssetRead:
    """Read model for one asset, with its derived version figures."""
    active = asset.active_version
    # Built field by field: declarative models expose ``metadata`` as the table registry.
    return AssetRead(
        id=asset.id,
        title=asset.title,
        description=asset.description or "",
        original_filename=asset.original_filename or "",
        file_size_bytes=asset.file_size_bytes,
        file_format=asset.file_format or "",
        duration_seconds=asset.duration_seconds or 0,
        created_at=asset.created_at,
        created_by=asset.created_by,
        modified_at=asset.modified_at,
        modified_by=asset.modified_by,
        version_count=len(asset.versions or []),
        current_version=active.version_number if active else 1,
        metadata=AssetMetadataRead.model_validate(asset.meta, from_attributes=True) if asset.meta else None,
    )


class QueryService:
    def __init__(self, catalog: CatalogStore, *, default_page_size: int = 20, max_page_size: int = 100):
        self.catalog = catalog
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def effective_page_size(self, requested: int | None) -> int:
        if requested is None or requested < 1:
            return min(self.default_page_size, self.max_page_size)
        return min(requested, self.max_page_size)

    def query(self, params: QueryParameters) -> PagedResult:
        page_number = max(params.page_number, 1)
        page_size = self.effective_page_size(params.page_size)

        assets, total = self.catalog.query(
            search_term=params.search_term,
            created_from=params.created_from,
            created_to=params.created_to,
            sort_by=params.sort_by,
            descending=params.sort_descending,
            offset=(page_number - 1) * page_size,
            limit=page_size,
        )
        total_pages = math.ceil(total / page_size)
        return PagedResult(
            items=[project_asset(asset) for asset in assets],
            total_count=total,
            page_number=page_number,
            page_size=page_size,
            total_pages=total_pages,
            has_previous_page=page_number > 1,
            has_next_page=page_number < total_pages,
        )

    def get_asset(self, asset_id: str) -> AssetRead:
        return project_asset(self.catalog.find_asset_with_versions(asset_id))

    def search(self, term: str) -> list[AssetRead]:
        return [project_asset(asset) for asset in self.catalog.search_by_text(term)]

    def created_between(self, start: datetime, end: datetime) -> list[AssetRead]:
        return [project_asset(asset) for asset in self.catalog.filter_by_date_range(start, end)]

    def recent(self, count: int = 10) -> list[AssetRead]:
        return [project_asset(asset) for asset in self.catalog.list_recent(min(count, self.max_page_size))]
