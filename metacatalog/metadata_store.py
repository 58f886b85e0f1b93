"""
Metadata store using SQLite.

Holds the authoritative ``(entity, scope) -> (properties, tags)`` records
and the inverted index that search runs against. Records keep the
original casing for display; index terms are case-folded.

Every mutation is a single ``BEGIN IMMEDIATE`` transaction covering both
the record rows and their index terms, so a concurrent search sees either
none or all of a mutation. Index rows remember their source (one property
key or one tag), which lets a rewrite drop exactly the terms of the value
it replaces.

Writers share one connection behind a lock. Readers use per-thread
connections; in WAL mode they never block the writer.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .entity import EntityId, entity_from_key
from .errors import BadRequestError, InternalError, MetadataError
from .indexer import property_terms, tag_terms
from .types import MetadataRecord, MetadataScope

logger = logging.getLogger(__name__)

# Above every valid code point; bounds prefix range scans
_PREFIX_UPPER = "\U0010ffff"


def _property_source(key: str) -> str:
    return f"p:{key}"


def _tag_source(tag: str) -> str:
    return f"t:{tag}"


class MetadataStore:
    """
    SQLite-backed store for metadata records and their search index.

    The store does no validation and knows nothing about entity
    existence; callers (MetadataCatalog, SystemMetadataWriter) do that.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = Path(store_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._local = threading.local()
        # Read connection per live thread
        self._readers: dict[threading.Thread, sqlite3.Connection] = {}
        self._readers_lock = threading.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None gives manual transaction control (BEGIN IMMEDIATE)
        conn = sqlite3.connect(
            str(self._db_path), check_same_thread=False, isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = self._connect()
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS properties (
                entity TEXT NOT NULL,
                scope TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                namespace TEXT NOT NULL,
                PRIMARY KEY (entity, scope, key)
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS tags (
                entity TEXT NOT NULL,
                scope TEXT NOT NULL,
                tag TEXT NOT NULL,
                namespace TEXT NOT NULL,
                PRIMARY KEY (entity, scope, tag)
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS terms (
                entity TEXT NOT NULL,
                scope TEXT NOT NULL,
                source TEXT NOT NULL,
                term TEXT NOT NULL,
                namespace TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                PRIMARY KEY (entity, scope, source, term)
            )
        """)

        # Term lookups (exact and prefix range) filtered by namespace
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_terms_term
            ON terms(term, namespace)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_properties_namespace
            ON properties(namespace)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tags_namespace
            ON tags(namespace)
        """)

    def _reader(self) -> sqlite3.Connection:
        """Per-thread read connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
            with self._readers_lock:
                self._prune_readers()
                self._readers[threading.current_thread()] = conn
        return conn

    def _prune_readers(self) -> None:
        """Close the read connections of threads that have ended. Caller holds _readers_lock."""
        for thread in [t for t in self._readers if not t.is_alive()]:
            self._readers.pop(thread).close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a mutation atomically.

        Catalog errors roll back and propagate as-is; anything else rolls
        back and surfaces as InternalError.
        """
        with self._lock:
            if self._conn is None:
                raise InternalError("Metadata store is closed")
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
                self._conn.commit()
            except MetadataError:
                self._conn.rollback()
                raise
            except Exception as e:
                self._conn.rollback()
                logger.warning("Metadata write rolled back: %s", e)
                raise InternalError(f"Metadata write failed: {e}") from e

    # -------------------------------------------------------------------------
    # Index maintenance (inside a transaction)
    # -------------------------------------------------------------------------

    def _write_terms(
        self,
        conn: sqlite3.Connection,
        entity: EntityId,
        scope: MetadataScope,
        source: str,
        terms: Iterable[str],
    ) -> None:
        conn.execute("""
            DELETE FROM terms WHERE entity = ? AND scope = ? AND source = ?
        """, (entity.key, scope.value, source))
        conn.executemany("""
            INSERT OR IGNORE INTO terms
            (entity, scope, source, term, namespace, entity_type)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [
            (entity.key, scope.value, source, term, entity.namespace, entity.entity_type)
            for term in terms
        ])

    def _drop_terms(
        self,
        conn: sqlite3.Connection,
        entity: EntityId,
        scope: MetadataScope,
        source: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> None:
        if source is not None:
            conn.execute("""
                DELETE FROM terms WHERE entity = ? AND scope = ? AND source = ?
            """, (entity.key, scope.value, source))
        elif kind is not None:
            conn.execute("""
                DELETE FROM terms
                WHERE entity = ? AND scope = ? AND substr(source, 1, 2) = ?
            """, (entity.key, scope.value, f"{kind}:"))
        else:
            conn.execute("""
                DELETE FROM terms WHERE entity = ? AND scope = ?
            """, (entity.key, scope.value))

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def set_properties(
        self,
        entity: EntityId,
        scope: MetadataScope,
        properties: dict[str, str],
        *,
        max_properties: Optional[int] = None,
    ) -> None:
        """
        Add or replace properties.

        An existing key gets its value and index terms replaced in the
        same transaction.

        Raises:
            BadRequestError: if the record would exceed max_properties
        """
        with self._transaction() as conn:
            for key, value in properties.items():
                conn.execute("""
                    INSERT OR REPLACE INTO properties
                    (entity, scope, key, value, namespace)
                    VALUES (?, ?, ?, ?, ?)
                """, (entity.key, scope.value, key, value, entity.namespace))
                self._write_terms(
                    conn, entity, scope, _property_source(key), property_terms(key, value)
                )
            if max_properties is not None:
                count = self._count(conn, "properties", entity, scope)
                if count > max_properties:
                    raise BadRequestError(
                        f"{entity} would have {count} {scope.value} properties "
                        f"(limit {max_properties})"
                    )
        logger.debug("Set %d %s properties on %s", len(properties), scope.value, entity)

    def add_tags(
        self,
        entity: EntityId,
        scope: MetadataScope,
        tags: Iterable[str],
        *,
        max_tags: Optional[int] = None,
    ) -> None:
        """
        Add tags. Re-adding an existing tag is a no-op.

        Raises:
            BadRequestError: if the record would exceed max_tags
        """
        tags = list(tags)
        with self._transaction() as conn:
            for tag in tags:
                conn.execute("""
                    INSERT OR IGNORE INTO tags (entity, scope, tag, namespace)
                    VALUES (?, ?, ?, ?)
                """, (entity.key, scope.value, tag, entity.namespace))
                self._write_terms(conn, entity, scope, _tag_source(tag), tag_terms(tag))
            if max_tags is not None:
                count = self._count(conn, "tags", entity, scope)
                if count > max_tags:
                    raise BadRequestError(
                        f"{entity} would have {count} {scope.value} tags (limit {max_tags})"
                    )
        logger.debug("Added %d %s tags on %s", len(tags), scope.value, entity)

    def replace_metadata(
        self,
        entity: EntityId,
        scope: MetadataScope,
        properties: dict[str, str],
        tags: Iterable[str],
    ) -> None:
        """Replace the whole record for (entity, scope) in one transaction."""
        tags = list(tags)
        with self._transaction() as conn:
            self._delete_record(conn, entity, scope)
            conn.executemany("""
                INSERT INTO properties (entity, scope, key, value, namespace)
                VALUES (?, ?, ?, ?, ?)
            """, [
                (entity.key, scope.value, k, v, entity.namespace)
                for k, v in properties.items()
            ])
            conn.executemany("""
                INSERT OR IGNORE INTO tags (entity, scope, tag, namespace)
                VALUES (?, ?, ?, ?)
            """, [(entity.key, scope.value, t, entity.namespace) for t in tags])
            for key, value in properties.items():
                self._write_terms(
                    conn, entity, scope, _property_source(key), property_terms(key, value)
                )
            for tag in tags:
                self._write_terms(conn, entity, scope, _tag_source(tag), tag_terms(tag))

    def remove_property(self, entity: EntityId, scope: MetadataScope, key: str) -> bool:
        """Remove one property. Returns True if it existed."""
        with self._transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM properties WHERE entity = ? AND scope = ? AND key = ?
            """, (entity.key, scope.value, key))
            self._drop_terms(conn, entity, scope, source=_property_source(key))
        return cursor.rowcount > 0

    def remove_properties(self, entity: EntityId, scope: MetadataScope) -> int:
        """Remove all properties in a scope. Returns the number removed."""
        with self._transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM properties WHERE entity = ? AND scope = ?
            """, (entity.key, scope.value))
            self._drop_terms(conn, entity, scope, kind="p")
        return cursor.rowcount

    def remove_tag(self, entity: EntityId, scope: MetadataScope, tag: str) -> bool:
        """Remove one tag. Returns True if it existed."""
        with self._transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM tags WHERE entity = ? AND scope = ? AND tag = ?
            """, (entity.key, scope.value, tag))
            self._drop_terms(conn, entity, scope, source=_tag_source(tag))
        return cursor.rowcount > 0

    def remove_tags(self, entity: EntityId, scope: MetadataScope) -> int:
        """Remove all tags in a scope. Returns the number removed."""
        with self._transaction() as conn:
            cursor = conn.execute("""
                DELETE FROM tags WHERE entity = ? AND scope = ?
            """, (entity.key, scope.value))
            self._drop_terms(conn, entity, scope, kind="t")
        return cursor.rowcount

    def remove_metadata(
        self, entity: EntityId, scope: Optional[MetadataScope] = None
    ) -> None:
        """Clear properties and tags in one scope, or both when scope is None."""
        scopes = [scope] if scope is not None else list(MetadataScope)
        with self._transaction() as conn:
            for s in scopes:
                self._delete_record(conn, entity, s)

    def remove_namespace(self, namespace: str) -> None:
        """Drop every record and index term in a namespace."""
        with self._transaction() as conn:
            for table in ("properties", "tags", "terms"):
                conn.execute(f"DELETE FROM {table} WHERE namespace = ?", (namespace,))
        logger.info("Removed all metadata in namespace %s", namespace)

    def _delete_record(
        self, conn: sqlite3.Connection, entity: EntityId, scope: MetadataScope
    ) -> None:
        for table in ("properties", "tags", "terms"):
            conn.execute(
                f"DELETE FROM {table} WHERE entity = ? AND scope = ?",
                (entity.key, scope.value),
            )

    def _count(
        self, conn: sqlite3.Connection, table: str, entity: EntityId, scope: MetadataScope
    ) -> int:
        cursor = conn.execute(
            f"SELECT COUNT(*) FROM {table} WHERE entity = ? AND scope = ?",
            (entity.key, scope.value),
        )
        return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def _read(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        try:
            return self._reader().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise InternalError(f"Metadata read failed: {e}") from e

    def get_properties(self, entity: EntityId, scope: MetadataScope) -> dict[str, str]:
        rows = self._read("""
            SELECT key, value FROM properties
            WHERE entity = ? AND scope = ?
            ORDER BY key
        """, (entity.key, scope.value))
        return {row["key"]: row["value"] for row in rows}

    def get_tags(self, entity: EntityId, scope: MetadataScope) -> set[str]:
        rows = self._read("""
            SELECT tag FROM tags WHERE entity = ? AND scope = ?
        """, (entity.key, scope.value))
        return {row["tag"] for row in rows}

    def get_metadata(self, entity: EntityId, scope: MetadataScope) -> MetadataRecord:
        """
        Read one record.

        Properties and tags are read separately; callers that need a single
        snapshot hold no lock across them, matching per-statement isolation.
        """
        return MetadataRecord(
            entity=entity,
            scope=scope,
            properties=self.get_properties(entity, scope),
            tags=self.get_tags(entity, scope),
        )

    def get_terms(
        self, entity: EntityId, scope: Optional[MetadataScope] = None
    ) -> set[str]:
        """Index terms currently pointing at an entity."""
        if scope is None:
            rows = self._read("""
                SELECT DISTINCT term FROM terms WHERE entity = ?
            """, (entity.key,))
        else:
            rows = self._read("""
                SELECT DISTINCT term FROM terms WHERE entity = ? AND scope = ?
            """, (entity.key, scope.value))
        return {row["term"] for row in rows}

    # -------------------------------------------------------------------------
    # Index Queries
    # -------------------------------------------------------------------------

    def find_entities(
        self,
        term: str,
        *,
        prefix: bool = False,
        namespaces: Optional[Iterable[str]] = None,
    ) -> set[EntityId]:
        """
        Look up entities by a case-folded index term.

        Args:
            term: Term to match (folded by the caller)
            prefix: Match every term starting with ``term``
            namespaces: Restrict to these namespaces (None for all)

        Returns:
            Set of matching entities (either scope)
        """
        if prefix:
            where = "term >= ? AND term < ?"
            params: list = [term, term + _PREFIX_UPPER]
        else:
            where = "term = ?"
            params = [term]
        if namespaces is not None:
            namespaces = list(namespaces)
            if not namespaces:
                return set()
            placeholders = ",".join("?" * len(namespaces))
            where += f" AND namespace IN ({placeholders})"
            params.extend(namespaces)

        rows = self._read(f"SELECT DISTINCT entity FROM terms WHERE {where}", tuple(params))
        return {entity_from_key(row["entity"]) for row in rows}

    def list_entities(self, namespace: Optional[str] = None) -> list[EntityId]:
        """Entities that have any metadata, in key order."""
        if namespace is None:
            rows = self._read("""
                SELECT entity FROM properties
                UNION SELECT entity FROM tags
                ORDER BY entity
            """, ())
        else:
            rows = self._read("""
                SELECT entity FROM properties WHERE namespace = ?
                UNION SELECT entity FROM tags WHERE namespace = ?
                ORDER BY entity
            """, (namespace, namespace))
        return [entity_from_key(row["entity"]) for row in rows]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close all database connections."""
        if not hasattr(self, "_readers_lock"):
            return  # __init__ did not finish
        with self._readers_lock:
            for conn in self._readers.values():
                conn.close()
            self._readers.clear()
        self._local = threading.local()
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
