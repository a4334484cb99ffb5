"""
Collection-oriented document store on SQLite.

- One SQLite file per database: <directory>/<database_name>.db
- One table per collection: (_id TEXT PRIMARY KEY, doc TEXT NOT NULL)
- Documents are JSON objects; _id is kept both as the key column and
  inside the document body
- WAL mode, one connection per operation
- Writes run under BEGIN IMMEDIATE so read-modify-write is atomic
  across threads and processes
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Iterator, Any

from .entities import generate_uuid
from .errors import StoreConnectionError, DuplicateKeyError


logger = logging.getLogger(__name__)

SQLITE_URI_PREFIX = "sqlite:///"

# Seconds a connection waits on a locked database before failing
DEFAULT_BUSY_TIMEOUT = 30.0

_COMPARISON_OPERATORS = {
    "$lt": "<",
    "$lte": "<=",
    "$gt": ">",
    "$gte": ">=",
    "$ne": "IS NOT",
}


class Document(dict):
    """A stored document."""

    def to_canonical_text(self) -> str:
        """Render as compact JSON with sorted keys."""
        return json.dumps(
            self,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _field_expr(key: str) -> tuple[str, list]:
    if key == "_id":
        return "_id", []
    return "json_extract(doc, ?)", [f"$.{key}"]


def _build_where(filter: Optional[dict]) -> tuple[str, list]:
    """
    Translate a filter dict into a WHERE clause.

    Supports top-level equality, None for missing/null fields and the
    comparison operators in _COMPARISON_OPERATORS.
    """
    if not filter:
        return "", []

    clauses = []
    values: list = []

    for key, condition in filter.items():
        expr, expr_values = _field_expr(key)

        if isinstance(condition, dict):
            for op, operand in condition.items():
                if op not in _COMPARISON_OPERATORS:
                    raise ValueError(f"Unsupported filter operator: {op}")
                clauses.append(f"{expr} {_COMPARISON_OPERATORS[op]} ?")
                values.extend(expr_values)
                values.append(operand)
        elif condition is None:
            clauses.append(f"{expr} IS NULL")
            values.extend(expr_values)
        else:
            clauses.append(f"{expr} = ?")
            values.extend(expr_values)
            values.append(condition)

    return " WHERE " + " AND ".join(clauses), values


def _build_order(sort: Optional[str]) -> tuple[str, list]:
    if not sort:
        return " ORDER BY rowid ASC", []
    descending = sort.startswith("-")
    expr, values = _field_expr(sort.lstrip("-"))
    direction = "DESC" if descending else "ASC"
    return f" ORDER BY {expr} {direction}, rowid ASC", values


class Collection:
    """
    A named collection of JSON documents.

    Reads on a collection that does not exist return nothing and do not
    create it. Writes create it.
    """

    def __init__(self, store: "DocumentStore", name: str):
        self.store = store
        self.name = name
        self._table = _quote(name)

    def _ensure(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            f"CREATE TABLE IF NOT EXISTS {self._table} "
            "(_id TEXT PRIMARY KEY, doc TEXT NOT NULL)"
        )

    def _exists(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (self.name,),
        ).fetchone()
        return row is not None

    @staticmethod
    def _to_document(raw: str) -> Document:
        return Document(json.loads(raw))

    # =========================================================================
    # Reads
    # =========================================================================

    def find(
        self,
        filter: Optional[dict] = None,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """
        Find documents matching a filter.

        Args:
            filter: Field conditions (see _build_where)
            sort: Field to order by; prefix with "-" for descending
            limit: Maximum number of documents

        Returns:
            Matching documents in sort order (insertion order by default)
        """
        where, values = _build_where(filter)
        order, order_values = _build_order(sort)
        sql = f"SELECT doc FROM {self._table}{where}{order}"
        values = values + order_values
        if limit is not None:
            sql += " LIMIT ?"
            values.append(limit)

        with self.store._connection() as conn:
            if not self._exists(conn):
                return []
            rows = conn.execute(sql, values).fetchall()

        return [self._to_document(row["doc"]) for row in rows]

    def find_all(self) -> list[Document]:
        """Read every document in the collection."""
        return self.find()

    def find_one(
        self,
        filter: Optional[dict] = None,
        sort: Optional[str] = None,
    ) -> Optional[Document]:
        docs = self.find(filter, sort=sort, limit=1)
        return docs[0] if docs else None

    def find_by_id(self, document_id: str) -> Optional[Document]:
        return self.find_one({"_id": document_id})

    def count(self, filter: Optional[dict] = None) -> int:
        where, values = _build_where(filter)
        with self.store._connection() as conn:
            if not self._exists(conn):
                return 0
            row = conn.execute(
                f"SELECT COUNT(*) AS count FROM {self._table}{where}",
                values,
            ).fetchone()
        return row["count"]

    # =========================================================================
    # Writes
    # =========================================================================

    def insert_one(self, document: dict) -> Document:
        """
        Insert a document, assigning an _id when missing.

        Raises:
            DuplicateKeyError: If a document with the same _id exists
        """
        doc = Document(document)
        doc.setdefault("_id", generate_uuid())

        with self.store._transaction() as conn:
            self._ensure(conn)
            try:
                conn.execute(
                    f"INSERT INTO {self._table} (_id, doc) VALUES (?, ?)",
                    (doc["_id"], json.dumps(doc)),
                )
            except sqlite3.IntegrityError:
                raise DuplicateKeyError(self.name, doc["_id"])

        return doc

    def replace_one(self, document: dict, upsert: bool = False) -> bool:
        """
        Replace the document with the same _id.

        Returns:
            True if a document was written
        """
        doc = Document(document)
        payload = json.dumps(doc)

        with self.store._transaction() as conn:
            self._ensure(conn)
            if upsert:
                conn.execute(
                    f"INSERT INTO {self._table} (_id, doc) VALUES (?, ?) "
                    "ON CONFLICT(_id) DO UPDATE SET doc = excluded.doc",
                    (doc["_id"], payload),
                )
                return True

            cursor = conn.execute(
                f"UPDATE {self._table} SET doc = ? WHERE _id = ?",
                (payload, doc["_id"]),
            )
            return cursor.rowcount > 0

    def find_one_and_update(
        self,
        filter: dict,
        set: Optional[dict] = None,
        push: Optional[dict] = None,
        sort: Optional[str] = None,
    ) -> Optional[Document]:
        """
        Atomically update the first matching document.

        Args:
            filter: Selects the document
            set: Top-level fields to overwrite
            push: Top-level list fields to append one value to
            sort: Picks the first document when several match

        Returns:
            The updated document, or None if nothing matched
        """
        where, values = _build_where(filter)
        order, order_values = _build_order(sort)

        with self.store._transaction() as conn:
            if not self._exists(conn):
                return None

            row = conn.execute(
                f"SELECT _id, doc FROM {self._table}{where}{order} LIMIT 1",
                values + order_values,
            ).fetchone()

            if row is None:
                return None

            doc = self._to_document(row["doc"])
            if set:
                doc.update(set)
            if push:
                for key, value in push.items():
                    doc[key] = list(doc.get(key) or []) + [value]

            conn.execute(
                f"UPDATE {self._table} SET doc = ? WHERE _id = ?",
                (json.dumps(doc), row["_id"]),
            )

        return doc

    def increment(
        self,
        document_id: str,
        field: str,
        amount: int = 1,
        defaults: Optional[dict] = None,
    ) -> Document:
        """Add to a numeric field, creating the document from defaults if missing."""
        with self.store._transaction() as conn:
            self._ensure(conn)
            row = conn.execute(
                f"SELECT doc FROM {self._table} WHERE _id = ?",
                (document_id,),
            ).fetchone()

            if row is None:
                doc = Document(defaults or {})
                doc["_id"] = document_id
                doc[field] = amount
                conn.execute(
                    f"INSERT INTO {self._table} (_id, doc) VALUES (?, ?)",
                    (document_id, json.dumps(doc)),
                )
            else:
                doc = self._to_document(row["doc"])
                doc[field] = doc.get(field, 0) + amount
                conn.execute(
                    f"UPDATE {self._table} SET doc = ? WHERE _id = ?",
                    (json.dumps(doc), document_id),
                )

        return doc

    def delete_one(self, document_id: str) -> bool:
        """Delete by _id. Returns True if a document was removed."""
        with self.store._transaction() as conn:
            if not self._exists(conn):
                return False
            cursor = conn.execute(
                f"DELETE FROM {self._table} WHERE _id = ?",
                (document_id,),
            )
            return cursor.rowcount > 0

    def delete_many(self, filter: Optional[dict] = None) -> int:
        where, values = _build_where(filter)
        with self.store._transaction() as conn:
            if not self._exists(conn):
                return 0
            cursor = conn.execute(f"DELETE FROM {self._table}{where}", values)
            return cursor.rowcount


class DocumentStore:
    """
    SQLite-backed store of named document collections.

    Usage:
        with DocumentStore.connect("sqlite:///data", "JobStore") as store:
            store.get_collection("jobstore.job").find_all()
    """

    def __init__(
        self,
        connection_string: str | Path,
        database_name: str,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ):
        """
        Initialize the store.

        Args:
            connection_string: Directory holding database files, optionally
                prefixed with "sqlite:///"
            database_name: Database file name without extension
            busy_timeout: Seconds to wait on a locked database
        """
        self.connection_string = str(connection_string)
        self.database_name = database_name
        self.busy_timeout = busy_timeout
        self.directory = Path(self._strip_scheme(self.connection_string))
        self._closed = False

    @staticmethod
    def _strip_scheme(connection_string: str) -> str:
        if connection_string.startswith(SQLITE_URI_PREFIX):
            return connection_string[len(SQLITE_URI_PREFIX):]
        return connection_string

    @classmethod
    def connect(
        cls,
        connection_string: str | Path,
        database_name: str,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ) -> "DocumentStore":
        """
        Open a store, verifying the target directory is usable.

        Raises:
            StoreConnectionError: If the directory does not exist
        """
        store = cls(connection_string, database_name, busy_timeout=busy_timeout)
        if not database_name:
            raise StoreConnectionError(store.connection_string, "database name is empty")
        if not store.directory.is_dir():
            raise StoreConnectionError(
                store.connection_string,
                f"directory does not exist: {store.directory}",
            )
        return store

    @property
    def db_path(self) -> Path:
        return self.directory / f"{self.database_name}.db"

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with WAL mode enabled."""
        if self._closed:
            raise StoreConnectionError(self.connection_string, "store is closed")

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout,
                isolation_level=None,
            )
        except sqlite3.OperationalError as e:
            raise StoreConnectionError(self.connection_string, str(e)) from e

        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for read connections."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for write transactions (BEGIN IMMEDIATE)."""
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # =========================================================================
    # Database Operations
    # =========================================================================

    def drop_database(self) -> None:
        """Delete the database file and its WAL/SHM companions."""
        for suffix in ("", "-wal", "-shm"):
            Path(f"{self.db_path}{suffix}").unlink(missing_ok=True)
        logger.info(f"Dropped database {self.database_name} ({self.db_path})")

    def list_collection_names(self) -> list[str]:
        """List every collection currently present in the database."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT name FROM sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' "
                "ORDER BY name"
            ).fetchall()
        return [row["name"] for row in rows]

    def create_collection(self, name: str) -> Collection:
        """Create a collection if missing and return it."""
        collection = Collection(self, name)
        with self._transaction() as conn:
            collection._ensure(conn)
        return collection

    def get_collection(self, name: str) -> Collection:
        """Get a collection handle. Does not create the collection."""
        return Collection(self, name)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        self._closed = True

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()
