"""
Store Exporter - serialize every collection of a quiescent store into a zip.

Archive layout:
- One entry <collection>.json per collection
- Entry body: JSON array of canonical documents, "[" + ",".join(docs) + "]"

Every collection must hold at least one document unless its name is in
the allowed-empty set. The check runs before the entry is written; on
violation, or any other failure while writing, the partial archive is
removed.

The exporter only reads from the store.
"""

import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Union

from src.jobstore.database import DocumentStore

from .errors import ExportInvariantViolation


logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Archive written by an export and its per-collection document counts."""

    path: Optional[Path]
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def collections(self) -> list[str]:
        return list(self.counts)


def render_collection(documents: Iterable) -> str:
    """JSON array text of canonical documents, no whitespace between items."""
    return "[" + ",".join(doc.to_canonical_text() for doc in documents) + "]"


class StoreExporter:
    """Writes a store snapshot archive."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def export_to_stream(
        self,
        stream: BinaryIO,
        allowed_empty: Iterable[str] = (),
        schema_version: Optional[int] = None,
    ) -> dict[str, int]:
        """
        Write the archive to a binary stream.

        Args:
            stream: Writable binary stream (file or BytesIO)
            allowed_empty: Fully qualified collection names that may be empty
            schema_version: Version reported in invariant errors

        Returns:
            Document count per collection, in export order

        Raises:
            ExportInvariantViolation: If a collection is empty and not allowed
        """
        allowed = frozenset(allowed_empty)
        counts: dict[str, int] = {}

        with zipfile.ZipFile(stream, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name in self.store.list_collection_names():
                documents = self.store.get_collection(name).find_all()

                if not documents and name not in allowed:
                    raise ExportInvariantViolation(name, schema_version)

                archive.writestr(f"{name}.json", render_collection(documents).encode("utf-8"))
                counts[name] = len(documents)
                logger.debug(f"Exported {name}: {len(documents)} document(s)")

        return counts

    def export(
        self,
        path: Union[str, Path],
        allowed_empty: Iterable[str] = (),
        schema_version: Optional[int] = None,
    ) -> ExportResult:
        """
        Write the archive to a file.

        Args:
            path: Archive path; parent directories are created
            allowed_empty: Fully qualified collection names that may be empty
            schema_version: Version reported in invariant errors

        Returns:
            ExportResult with the archive path and counts

        Raises:
            ExportInvariantViolation: If a collection is empty and not allowed
            JobStoreError: If the store fails while being read
            OSError: If the archive cannot be written
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(path, "wb") as stream:
                counts = self.export_to_stream(stream, allowed_empty, schema_version)
        except BaseException:
            # No partial archive survives a failed export
            path.unlink(missing_ok=True)
            raise

        total = sum(counts.values())
        logger.info(f"Exported {len(counts)} collection(s), {total} document(s) to {path}")
        return ExportResult(path=path, counts=counts)
