"""Shared fixtures: one SQLite catalog and one content root per test."""

from __future__ import annotations

import pytest

from video_catalog.core.config import Settings
from video_catalog.core.database import create_schema
from video_catalog.schemas.asset import AssetCreate
from video_catalog.services import CatalogServices, build_services


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'catalog.sqlite3'}",
        content_root=tmp_path / "content",
        max_page_size=100,
        default_page_size=20,
        version_allocation_attempts=50,
        version_allocation_max_backoff_seconds=0.1,
        log_level="WARNING",
    )


@pytest.fixture
def services(settings) -> CatalogServices:
    built = build_services(settings)
    create_schema(built.engine)
    yield built
    built.engine.dispose()


@pytest.fixture
def make_asset(services):
    def _make(title: str = "Demo", **overrides):
        fields = {
            "title": title,
            "description": "",
            "original_filename": f"{title.lower().replace(' ', '_')}.mp4",
            "file_size_bytes": 100,
            "file_format": ".mp4",
            "duration_seconds": 10,
        }
        fields.update(overrides)
        return services.versioning.create_asset(AssetCreate(**fields), actor="tester")

    return _make
