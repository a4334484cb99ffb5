"""
Fixture generator exceptions.

Store and engine failures are raised as JobStoreError subclasses from
src.jobstore.errors and are not wrapped here.
"""

from typing import Optional


class FixtureError(Exception):
    """Base exception for all fixture generator errors."""
    pass


class SignalTimeoutError(FixtureError):
    """
    Raised when a gate wait with an explicit timeout expires.

    A gate that never opens means the engine stalled or a handler failed.
    """

    def __init__(self, category: str, timeout: float):
        self.category = category
        self.timeout = timeout
        super().__init__(
            f"Gate '{category}' was not set within {timeout}s"
        )


class ExportInvariantViolation(FixtureError, AssertionError):
    """
    Raised when a collection is empty and its emptiness is not allowed
    for the schema version being exported.
    """

    def __init__(self, collection_name: str, schema_version: Optional[int] = None):
        self.collection_name = collection_name
        self.schema_version = schema_version
        version = f" (schema version {schema_version})" if schema_version is not None else ""
        super().__init__(
            f"Collection '{collection_name}' is empty{version}; "
            f"every collection must contain at least one document"
        )
