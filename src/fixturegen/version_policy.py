"""
Version Policy - archive naming and allowed-empty collections per schema version.

Exceptions are a declarative table of EmptyCollectionRule entries. A rule
allows the listed collections to be empty for every schema version in
[min_version, max_version].

Default table:
- signal may be empty for versions 9..11 (collection exists but the engine
  did not write to it yet)
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from src.infra.config import DEFAULT_FIXTURE_PREFIX
from src.jobstore.schema import CollectionNames, DEFAULT_COLLECTION_PREFIX


class EmptyCollectionRule(BaseModel):
    """Collections allowed to be empty for a range of schema versions."""

    min_version: int = Field(..., ge=1, description="First schema version (inclusive)")
    max_version: int = Field(..., ge=1, description="Last schema version (inclusive)")
    collections: list[str] = Field(..., min_length=1, description="Collection name suffixes")
    reason: Optional[str] = Field(default=None, description="Why the collections may be empty")

    @model_validator(mode="after")
    def _check_range(self) -> "EmptyCollectionRule":
        if self.min_version > self.max_version:
            raise ValueError(
                f"min_version ({self.min_version}) must be <= max_version ({self.max_version})"
            )
        return self

    def applies_to(self, version: int) -> bool:
        return self.min_version <= version <= self.max_version


DEFAULT_RULES = (
    EmptyCollectionRule(
        min_version=9,
        max_version=11,
        collections=[CollectionNames.SIGNAL],
        reason="signal collection exists but is not written to before version 12",
    ),
)


class VersionRule(BaseModel):
    """Resolved policy for one schema version."""

    version: int
    archive_name: str
    allowed_empty: frozenset[str]


class VersionPolicy:
    """Maps a schema version to its archive name and allowed-empty set."""

    def __init__(
        self,
        fixture_prefix: str = DEFAULT_FIXTURE_PREFIX,
        collection_prefix: str = DEFAULT_COLLECTION_PREFIX,
        rules: Optional[list[EmptyCollectionRule]] = None,
    ):
        self.fixture_prefix = fixture_prefix
        self.collection_names = CollectionNames(collection_prefix)
        self.rules = list(DEFAULT_RULES if rules is None else rules)

    def archive_name(self, version: int) -> str:
        return f"{self.fixture_prefix}-Schema-{version:03d}.zip"

    def allowed_empty_collections(self, version: int) -> frozenset[str]:
        """Fully qualified collection names that may be empty at this version."""
        return frozenset(
            self.collection_names.qualify(suffix)
            for rule in self.rules
            if rule.applies_to(version)
            for suffix in rule.collections
        )

    def resolve(self, version: int) -> VersionRule:
        return VersionRule(
            version=version,
            archive_name=self.archive_name(version),
            allowed_empty=self.allowed_empty_collections(version),
        )
