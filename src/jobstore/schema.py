"""
Store schema versions and collection naming.

The schema version is fixed by this package; fixture generation reads it
but never changes it.
"""

from enum import IntEnum


class SchemaVersion(IntEnum):
    """
    Known store schema versions.

    - V09: signal collection introduced (not yet written to)
    - V12: workers wake on queue signals; signal collection populated
    """

    V01 = 1
    V05 = 5
    V08 = 8
    V09 = 9
    V10 = 10
    V11 = 11
    V12 = 12


REQUIRED_SCHEMA_VERSION = SchemaVersion.V12

DEFAULT_COLLECTION_PREFIX = "jobstore"


class CollectionNames:
    """Fully qualified collection names for a collection prefix."""

    JOB = "job"
    STATE_DATA = "stateData"
    LOCKS = "locks"
    SERVER = "server"
    SCHEMA = "schema"
    SIGNAL = "signal"

    SUFFIXES = (JOB, STATE_DATA, LOCKS, SERVER, SCHEMA, SIGNAL)

    def __init__(self, prefix: str = DEFAULT_COLLECTION_PREFIX):
        self.prefix = prefix

    def qualify(self, suffix: str) -> str:
        return f"{self.prefix}.{suffix}"

    @property
    def job(self) -> str:
        return self.qualify(self.JOB)

    @property
    def state_data(self) -> str:
        return self.qualify(self.STATE_DATA)

    @property
    def locks(self) -> str:
        return self.qualify(self.LOCKS)

    @property
    def server(self) -> str:
        return self.qualify(self.SERVER)

    @property
    def schema(self) -> str:
        return self.qualify(self.SCHEMA)

    @property
    def signal(self) -> str:
        return self.qualify(self.SIGNAL)

    def all(self) -> list[str]:
        return [self.qualify(suffix) for suffix in self.SUFFIXES]
