"""Tests for the versioning engine: numbering, activation, failure ordering and concurrency."""

from __future__ import annotations

import hashlib
import io
import threading

import pytest

from video_catalog.core.errors import ConflictError, NotFoundError, PersistenceError, StorageError, ValidationError
from video_catalog.schemas.asset import AssetCreate, AssetUpdate, QueryParameters
from video_catalog.services.query import project_asset
from video_catalog.services.versioning import INITIAL_UPLOAD_DESCRIPTION


class OneShotStream(io.RawIOBase):
    """Readable once, not seekable, like a network upload."""

    def __init__(self, data: bytes):
        self._data = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def readinto(self, buffer):
        chunk = self._data.read(len(buffer))
        buffer[: len(chunk)] = chunk
        return len(chunk)


def _active_numbers(services, asset_id):
    return [v.version_number for v in services.versioning.list_versions(asset_id) if v.is_active]


class TestAddVersion:
    def test_numbers_are_consecutive_and_single_active(self, services, make_asset):
        asset = make_asset()

        for expected in range(1, 6):
            version = services.versioning.add_version(asset.id, io.BytesIO(b"v" * expected), f"edit {expected}")
            assert version.version_number == expected
            assert version.is_active
            assert _active_numbers(services, asset.id) == [expected]

        numbers = sorted(v.version_number for v in services.versioning.list_versions(asset.id))
        assert numbers == [1, 2, 3, 4, 5]

    def test_records_size_hash_and_location(self, services, make_asset):
        asset = make_asset()
        body = b"frame data" * 50

        version = services.versioning.add_version(asset.id, io.BytesIO(body), "cut intro", actor="editor")

        assert version.file_size_bytes == len(body)
        assert version.file_hash == hashlib.sha256(body).hexdigest()
        assert version.created_by == "editor"
        assert version.change_description == "cut intro"
        with services.content.get(version.file_path) as stream:
            assert stream.read() == body

    def test_blank_actor_falls_back_to_default(self, services, make_asset):
        asset = make_asset()

        version = services.versioning.add_version(asset.id, io.BytesIO(b"data"), actor="  ")

        assert version.created_by == "System"

    def test_accepts_non_seekable_streams(self, services, make_asset):
        asset = make_asset()
        body = b"streamed upload" * 100

        version = services.versioning.add_version(asset.id, io.BufferedReader(OneShotStream(body)))

        assert version.file_size_bytes == len(body)
        with services.content.get(version.file_path) as stream:
            assert stream.read() == body

    def test_empty_content_is_rejected(self, services, make_asset):
        asset = make_asset()

        with pytest.raises(ValidationError):
            services.versioning.add_version(asset.id, io.BytesIO(b""))
        assert services.versioning.list_versions(asset.id) == []

    def test_unknown_or_deleted_asset(self, services, make_asset):
        with pytest.raises(NotFoundError):
            services.versioning.add_version("missing", io.BytesIO(b"data"))

        asset = make_asset()
        services.versioning.soft_delete(asset.id)
        with pytest.raises(NotFoundError):
            services.versioning.add_version(asset.id, io.BytesIO(b"data"))

    def test_storage_failure_registers_nothing(self, services, make_asset, monkeypatch):
        asset = make_asset()

        def _disk_full(asset_id, data):
            raise StorageError("No space left on device", asset_id=asset_id, operation="stage")

        monkeypatch.setattr(services.content, "stage", _disk_full)

        with pytest.raises(StorageError):
            services.versioning.add_version(asset.id, io.BytesIO(b"data"))
        assert services.versioning.list_versions(asset.id) == []

    def test_failure_before_publish_leaves_no_files(self, services, make_asset, monkeypatch):
        asset = make_asset()

        def _broken_commit(*args, **kwargs):
            raise PersistenceError("database unavailable", asset_id=asset.id, operation="add_version")

        monkeypatch.setattr(services.catalog, "append_version", _broken_commit)

        with pytest.raises(PersistenceError):
            services.versioning.add_version(asset.id, io.BytesIO(b"data"))
        assert list((services.content.base_path / asset.id).iterdir()) == []

    def test_uncertain_commit_keeps_published_file(self, services, make_asset, monkeypatch):
        asset = make_asset()

        def _lost_acknowledgement(asset_id, publish, **kwargs):
            publish(1)
            raise PersistenceError("connection dropped during commit", asset_id=asset_id, operation="add_version")

        monkeypatch.setattr(services.catalog, "append_version", _lost_acknowledgement)

        with pytest.raises(PersistenceError):
            services.versioning.add_version(asset.id, io.BytesIO(b"maybe committed"))

        with services.content.get(services.content.location_for(asset.id, 1)) as stream:
            assert stream.read() == b"maybe committed"

    def test_conflict_removes_published_file_and_retries(self, services, make_asset, monkeypatch):
        asset = make_asset()
        services.versioning.add_version(asset.id, io.BytesIO(b"first"))
        original = services.catalog.append_version
        calls = []

        def _collide_once(asset_id, publish, **kwargs):
            calls.append(asset_id)
            if len(calls) == 1:
                publish(2)
                raise ConflictError("simulated collision", asset_id=asset_id, operation="add_version")
            return original(asset_id, publish, **kwargs)

        monkeypatch.setattr(services.catalog, "append_version", _collide_once)

        version = services.versioning.add_version(asset.id, io.BytesIO(b"second"))

        assert len(calls) == 2
        assert version.version_number == 2
        with services.content.get(version.file_path) as stream:
            assert stream.read() == b"second"

    def test_exhausted_retries_surface_conflict(self, services, make_asset, monkeypatch):
        asset = make_asset()
        services.versioning.allocation_attempts = 3
        services.versioning.max_backoff_seconds = 0.01
        calls = []

        def _always_collide(asset_id, publish, **kwargs):
            calls.append(asset_id)
            raise ConflictError("simulated collision", asset_id=asset_id, operation="add_version")

        monkeypatch.setattr(services.catalog, "append_version", _always_collide)

        with pytest.raises(ConflictError):
            services.versioning.add_version(asset.id, io.BytesIO(b"data"))
        assert len(calls) == 3

    def test_leftover_file_is_replaced_by_next_version(self, services, make_asset):
        asset = make_asset()
        services.versioning.add_version(asset.id, io.BytesIO(b"first"))
        # A writer that died between publishing and committing.
        services.content.put(asset.id, 2, io.BytesIO(b"crashed writer"))

        version = services.versioning.add_version(asset.id, io.BytesIO(b"second"))

        assert version.version_number == 2
        assert version.file_hash == hashlib.sha256(b"second").hexdigest()
        with services.content.get(version.file_path) as stream:
            assert stream.read() == b"second"
        assert services.versioning.add_version(asset.id, io.BytesIO(b"third")).version_number == 3

    def test_concurrent_adds_serialize(self, services, make_asset):
        asset = make_asset()
        workers = 5
        barrier = threading.Barrier(workers)
        errors = []

        def _worker(index):
            barrier.wait()
            try:
                services.versioning.add_version(asset.id, io.BytesIO(f"worker {index}".encode()))
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=_worker, args=(i,)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        versions = services.versioning.list_versions(asset.id)
        assert sorted(v.version_number for v in versions) == [1, 2, 3, 4, 5]
        assert [v.version_number for v in versions if v.is_active] == [5]
        hashes = {v.file_hash for v in versions}
        assert len(hashes) == workers


class TestLookups:
    def test_get_version_and_active_version(self, services, make_asset):
        asset = make_asset()
        services.versioning.add_version(asset.id, io.BytesIO(b"a" * 100))
        services.versioning.add_version(asset.id, io.BytesIO(b"b" * 200))

        assert services.versioning.get_active_version(asset.id).version_number == 2
        assert services.versioning.get_version(asset.id, 1).file_size_bytes == 100
        with pytest.raises(NotFoundError):
            services.versioning.get_version(asset.id, 3)

    def test_asset_without_versions_has_no_active_version(self, services, make_asset):
        asset = make_asset()

        with pytest.raises(NotFoundError):
            services.versioning.get_active_version(asset.id)


class TestAssetLifecycle:
    def test_create_validation(self, services):
        with pytest.raises(ValidationError):
            services.versioning.create_asset(AssetCreate(title="   ", file_size_bytes=10))
        with pytest.raises(ValidationError):
            services.versioning.create_asset(AssetCreate(title="Clip", file_size_bytes=0))
        with pytest.raises(ValidationError):
            services.versioning.create_asset(AssetCreate(title="Clip", file_size_bytes=-5))
        with pytest.raises(ValidationError):
            services.versioning.create_asset(AssetCreate(title="Clip", file_size_bytes=5, duration_seconds=-1))
        assert services.queries.query(QueryParameters()).total_count == 0

    def test_create_with_technical_metadata(self, services):
        asset = services.versioning.create_asset(
            AssetCreate(
                title="  Clip  ",
                file_size_bytes=5,
                tags="one, two,one",
                technical={"resolution": "1920x1080", "frame_rate": 29.97, "video_codec": "h264"},
            ),
            actor="uploader",
        )

        read = project_asset(asset)
        assert read.title == "Clip"
        assert read.created_by == "uploader"
        assert read.metadata.resolution == "1920x1080"
        assert read.metadata.frame_rate == 29.97
        assert read.metadata.tags == ["one", "two"]
        assert read.version_count == 0
        assert read.current_version == 1

    def test_update_fields(self, services, make_asset):
        asset = make_asset("Draft", description="old", tags=["keep"])

        updated = services.versioning.update_asset_fields(
            asset.id, AssetUpdate(title="Final", tags=["new", "tags"]), actor="editor"
        )

        assert updated.title == "Final"
        assert updated.description == "old"
        assert updated.meta.tags == ["new", "tags"]
        assert updated.modified_by == "editor"
        assert updated.modified_at is not None

    def test_update_rejects_empty_title(self, services, make_asset):
        asset = make_asset("Draft")

        with pytest.raises(ValidationError):
            services.versioning.update_asset_fields(asset.id, AssetUpdate(title=" "))
        assert services.catalog.find_asset_with_versions(asset.id).title == "Draft"

    def test_null_fields_are_left_unchanged(self, services, make_asset):
        asset = make_asset("Draft", description="old")

        updated = services.versioning.update_asset_fields(
            asset.id, AssetUpdate.model_validate({"title": None, "description": None, "tags": ["x"]})
        )

        assert updated.title == "Draft"
        assert updated.description == "old"
        assert updated.meta.tags == ["x"]

    def test_update_deleted_asset(self, services, make_asset):
        asset = make_asset()
        services.versioning.soft_delete(asset.id)

        with pytest.raises(NotFoundError):
            services.versioning.update_asset_fields(asset.id, AssetUpdate(description="x"))

    def test_upload_creates_initial_version(self, services):
        asset, version = services.versioning.upload_asset(
            AssetCreate(title="Upload", original_filename="clip.mp4", file_size_bytes=4), io.BytesIO(b"data")
        )

        assert version.version_number == 1
        assert version.change_description == INITIAL_UPLOAD_DESCRIPTION
        read = project_asset(asset)
        assert read.version_count == 1
        assert read.current_version == 1


class TestViews:
    def test_sequential_increments(self, services, make_asset):
        asset = make_asset()

        for _ in range(7):
            services.versioning.increment_view(asset.id)

        assert services.queries.get_asset(asset.id).metadata.view_count == 7

    def test_concurrent_increments_are_not_lost(self, services, make_asset):
        asset = make_asset()
        workers, per_worker = 8, 5
        barrier = threading.Barrier(workers)

        def _worker():
            barrier.wait()
            for _ in range(per_worker):
                services.versioning.increment_view(asset.id)

        threads = [threading.Thread(target=_worker) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert services.queries.get_asset(asset.id).metadata.view_count == workers * per_worker

    def test_increment_on_missing_asset(self, services):
        with pytest.raises(NotFoundError):
            services.versioning.increment_view("missing")

    def test_open_content_counts_a_view_per_download(self, services, make_asset):
        asset = make_asset()
        services.versioning.add_version(asset.id, io.BytesIO(b"one"))
        services.versioning.add_version(asset.id, io.BytesIO(b"two"))

        version, stream = services.versioning.open_content(asset.id)
        with stream:
            assert stream.read() == b"two"
        assert version.version_number == 2

        version, stream = services.versioning.open_content(asset.id, 1)
        with stream:
            assert stream.read() == b"one"

        assert services.queries.get_asset(asset.id).metadata.view_count == 2

    def test_open_missing_version_counts_nothing(self, services, make_asset):
        asset = make_asset()
        services.versioning.add_version(asset.id, io.BytesIO(b"one"))

        with pytest.raises(NotFoundError):
            services.versioning.open_content(asset.id, 4)
        assert services.queries.get_asset(asset.id).metadata.view_count == 0


def test_demo_scenario(services, make_asset):
    asset = make_asset("Demo")
    services.versioning.add_version(asset.id, io.BytesIO(b"1" * 100), "v1")
    services.versioning.add_version(asset.id, io.BytesIO(b"2" * 200), "v2")

    active = services.versioning.get_active_version(asset.id)
    read = services.queries.get_asset(asset.id)
    assert active.version_number == 2
    assert active.file_size_bytes == 200
    assert read.version_count == 2
    assert read.current_version == 2

    services.versioning.soft_delete(asset.id)

    assert services.queries.query(QueryParameters(search_term="Demo")).items == []
    with pytest.raises(NotFoundError):
        services.versioning.get_version(asset.id, 1)
    retained = services.catalog.find_asset_including_deleted(asset.id)
    assert [v.version_number for v in retained.versions] == [1, 2]
