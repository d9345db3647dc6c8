from __future__ import annotations


class InvalidInputError(ValueError):
    """Caller-supplied parameters failed a precondition; nothing touched storage."""


class StorageError(RuntimeError):
    """The database failed while running a query or a write."""


class UsdaApiError(RuntimeError):
    """FoodData Central could not be reached or answered with something unusable."""
