from dataclasses import dataclass

from sqlalchemy.engine import Engine

from ..core.config import Settings
from ..core.database import build_engine, build_session_factory
from .catalog_store import CatalogStore
from .content_store import ContentStore
from .query import QueryService
from .versioning import VersioningEngine


@dataclass
class CatalogServices:
    engine: Engine
    catalog: CatalogStore
    content: ContentStore
    versioning: VersioningEngine
    queries: QueryService


def build_services(settings: Settings) -> CatalogServices:
    """Wire the stores and services for one process; callers hold the references."""
    engine = build_engine(settings.database_url)
    catalog = CatalogStore(build_session_factory(engine))
    content = ContentStore(settings.resolved_content_root)
    versioning = VersioningEngine(
        catalog,
        content,
        allocation_attempts=settings.version_allocation_attempts,
        max_backoff_seconds=settings.version_allocation_max_backoff_seconds,
        default_actor=settings.default_actor,
    )
    queries = QueryService(catalog, default_page_size=settings.default_page_size, max_page_size=settings.max_page_size)
    return CatalogServices(engine=engine, catalog=catalog, content=content, versioning=versioning, queries=queries)


__all__ = [
    "CatalogServices",
    "CatalogStore",
    "ContentStore",
    "QueryService",
    "VersioningEngine",
    "build_services",
]
