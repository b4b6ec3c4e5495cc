"""Error kinds raised at the core boundary.

Every error carries the asset id (when known) and the operation that failed so
callers can log and report without re-deriving context. The HTTP layer maps
each kind to a status code in one place (see ``factory.register_error_handlers``).
"""

from typing import Optional


class CatalogError(Exception):
    kind = "catalog_error"

    def __init__(self, message: str, *, asset_id: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.asset_id = asset_id
        self.operation = operation

    def __str__(self) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.asset_id:
            context.append(f"asset_id={self.asset_id}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class NotFoundError(CatalogError):
    """Asset or version is absent, or the asset is soft-deleted."""

    kind = "not_found"


class ConflictError(CatalogError):
    """Version number collision under concurrent writes."""

    kind = "conflict"


class ContentExistsError(ConflictError):
    """A content location is already occupied; content is append-only."""

    kind = "content_exists"


class ValidationError(CatalogError):
    kind = "validation_error"


class StorageError(CatalogError):
    """Content store I/O failure."""

    kind = "storage_error"


class PersistenceError(CatalogError):
    """Catalog store transaction failure."""

    kind = "persistence_error"
