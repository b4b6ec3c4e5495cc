import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO

from ..core.errors import ContentExistsError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


class ContentStore:
    """Append-only byte storage for version payloads, keyed by (asset id, version number)."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def location_for(asset_id: str, version_number: int) -> str:
        return f"{asset_id}/v{version_number}"

    def _resolve(self, location: str) -> Path:
        path = (self.base_path / location).resolve()
        if self.base_path.resolve() not in path.parents:
            raise NotFoundError(f"Location outside content root: {location}", operation="resolve")
        return path

    def stage(self, asset_id: str, data: BinaryIO) -> Path:
        """Copy ``data`` into a temporary file in the asset's directory.

        The staged file is not addressable until ``publish`` moves it to a
        keyed location. A failed copy leaves nothing behind.
        """
        asset_dir = self._resolve(asset_id)
        try:
            asset_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".upload-", suffix=".part", dir=asset_dir)
        except OSError as exc:
            raise StorageError(f"Failed to stage content: {exc}", asset_id=asset_id, operation="stage") from exc
        staged = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as buffer:
                shutil.copyfileobj(data, buffer, _CHUNK_SIZE)
                buffer.flush()
                os.fsync(buffer.fileno())
        except OSError as exc:
            self.discard(staged)
            raise StorageError(f"Failed to store content: {exc}", asset_id=asset_id, operation="stage") from exc
        except BaseException:
            self.discard(staged)
            raise
        return staged

    def publish(self, staged: Path, asset_id: str, version_number: int, *, replace: bool = False) -> str:
        """Move a staged file to the location for this version and return the location.

        By default an occupied location raises ``ContentExistsError``. With
        ``replace`` the file at the location is swapped out atomically; only
        pass it when the catalog guarantees the number was never committed, so
        anything already there is left over from an interrupted write.
        """
        location = self.location_for(asset_id, version_number)
        dest_path = self._resolve(location)
        try:
            if replace:
                if dest_path.exists():
                    logger.warning("Replacing uncommitted content at %s", location)
                os.replace(staged, dest_path)
            else:
                os.link(staged, dest_path)
        except FileExistsError as exc:
            raise ContentExistsError(
                f"Content already stored for version {version_number}", asset_id=asset_id, operation="publish"
            ) from exc
        except OSError as exc:
            raise StorageError(f"Failed to publish content: {exc}", asset_id=asset_id, operation="publish") from exc
        logger.debug("Stored content at %s", location)
        return location

    def discard(self, staged: Path) -> None:
        try:
            staged.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove staged file %s: %s", staged, exc)

    def put(self, asset_id: str, version_number: int, data: BinaryIO) -> str:
        """Write ``data`` to the location for this version and return the location.

        The bytes are staged first and published with a hard link, which fails
        if the destination already exists. An interrupted copy therefore never
        leaves a partial file at the keyed location.
        """
        staged = self.stage(asset_id, data)
        try:
            return self.publish(staged, asset_id, version_number)
        finally:
            self.discard(staged)

    def get(self, location: str) -> BinaryIO:
        path = self._resolve(location)
        try:
            return path.open("rb")
        except FileNotFoundError as exc:
            raise NotFoundError(f"Content not found at {location}", operation="get") from exc
        except OSError as exc:
            raise StorageError(f"Failed to open content at {location}: {exc}", operation="get") from exc

    def exists(self, location: str) -> bool:
        return self._resolve(location).is_file()

    def size(self, location: str) -> int:
        try:
            return self._resolve(location).stat().st_size
        except FileNotFoundError as exc:
            raise NotFoundError(f"Content not found at {location}", operation="size") from exc

    def delete(self, location: str) -> bool:
        path = self._resolve(location)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Could not delete content at %s: %s", location, exc)
            return False
        return True

    @staticmethod
    def hash(data: BinaryIO) -> str:
        """SHA-256 hex digest of the full stream; seekable streams are rewound."""
        seekable = getattr(data, "seekable", None)
        start = data.tell() if seekable and seekable() else None
        digest = hashlib.sha256()
        for chunk in iter(lambda: data.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
        if start is not None:
            data.seek(start)
        return digest.hexdigest()
