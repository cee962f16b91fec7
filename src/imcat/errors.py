from __future__ import annotations


class CatalogError(Exception):
    """Base class for failures raised by the catalog layer."""


class NotFound(CatalogError):
    """An operation needed an existing row and it is gone."""


class InvalidRange(CatalogError, ValueError):
    """Arguments that are inconsistent on their own, rejected before any query runs."""


class StorageUnavailable(CatalogError):
    """The SQLite database could not be opened or failed mid-operation."""
