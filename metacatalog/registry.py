"""
Registry of namespaces and the entities that exist in them.

Metadata may only be attached to an entity the registry knows about; the
catalog reports anything else as not found. The registry is populated by
the lifecycle hooks (deploy, create, delete) rather than by metadata calls.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .entity import (
    DEFAULT_NAMESPACE,
    SYSTEM_NAMESPACE,
    EntityId,
    NamespaceId,
    entity_from_key,
)
from .errors import BadRequestError, InternalError, NotFoundError

logger = logging.getLogger(__name__)

# Always present; cannot be created or deleted by callers
RESERVED_NAMESPACES = (DEFAULT_NAMESPACE, SYSTEM_NAMESPACE)


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


class EntityRegistry:
    """
    SQLite-backed set of existing namespaces and entities.

    Child entities (programs of an application, views of a stream) record
    their parent, so removing a parent removes its children too.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = Path(store_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(self._db_path), check_same_thread=False, isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS namespaces (
                name TEXT PRIMARY KEY,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS entities (
                entity TEXT PRIMARY KEY,
                namespace TEXT NOT NULL,
                entity_type TEXT NOT NULL,
                parent TEXT,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entities_namespace
            ON entities(namespace, entity_type)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entities_parent
            ON entities(parent)
        """)
        now = _utc_now()
        self._conn.executemany(
            "INSERT OR IGNORE INTO namespaces (name, created_at) VALUES (?, ?)",
            [(ns, now) for ns in RESERVED_NAMESPACES],
        )

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            if self._conn is None:
                raise InternalError("Entity registry is closed")
            try:
                return self._conn.execute(sql, params)
            except sqlite3.Error as e:
                raise InternalError(f"Entity registry failed: {e}") from e

    # -------------------------------------------------------------------------
    # Namespaces
    # -------------------------------------------------------------------------

    def create_namespace(self, namespace: str) -> bool:
        """
        Create a namespace. Returns False if it already existed.

        Raises:
            BadRequestError: for reserved or malformed names
        """
        if namespace in RESERVED_NAMESPACES:
            raise BadRequestError(f"Namespace {namespace!r} is reserved")
        NamespaceId(namespace)  # validates the name
        cursor = self._execute(
            "INSERT OR IGNORE INTO namespaces (name, created_at) VALUES (?, ?)",
            (namespace, _utc_now()),
        )
        return cursor.rowcount > 0

    def delete_namespace(self, namespace: str) -> list[EntityId]:
        """
        Delete a namespace and every entity in it.

        Returns:
            The entities that were removed

        Raises:
            BadRequestError: for reserved namespaces
            NotFoundError: if the namespace does not exist
        """
        if namespace in RESERVED_NAMESPACES:
            raise BadRequestError(f"Namespace {namespace!r} is reserved")
        if not self.namespace_exists(namespace):
            raise NotFoundError(f"Namespace {namespace} not found")
        removed = self.list_entities(namespace)
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                self._conn.execute("DELETE FROM entities WHERE namespace = ?", (namespace,))
                self._conn.execute("DELETE FROM namespaces WHERE name = ?", (namespace,))
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise InternalError(f"Failed to delete namespace {namespace}: {e}") from e
        return removed

    def namespace_exists(self, namespace: str) -> bool:
        cursor = self._execute("SELECT 1 FROM namespaces WHERE name = ?", (namespace,))
        return cursor.fetchone() is not None

    def list_namespaces(self) -> list[str]:
        cursor = self._execute("SELECT name FROM namespaces ORDER BY name")
        return [row["name"] for row in cursor.fetchall()]

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def add(self, entity: EntityId) -> bool:
        """
        Register an entity. Returns False if it was already registered.

        Raises:
            NotFoundError: if its namespace (or parent entity) does not exist
        """
        if not self.namespace_exists(entity.namespace):
            raise NotFoundError(f"Namespace {entity.namespace} not found")
        parent = entity.parent
        parent_key = None
        if parent is not None and not isinstance(parent, NamespaceId):
            if not self.exists(parent):
                raise NotFoundError(f"Parent {parent} not found")
            parent_key = parent.key
        cursor = self._execute("""
            INSERT OR IGNORE INTO entities
            (entity, namespace, entity_type, parent, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (entity.key, entity.namespace, entity.entity_type, parent_key, _utc_now()))
        return cursor.rowcount > 0

    def remove(self, entity: EntityId) -> list[EntityId]:
        """
        Unregister an entity and its children.

        Returns:
            The entities removed, children first; empty if it was unknown
        """
        removed = [*self.children(entity)]
        if self.exists(entity):
            removed.append(entity)
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                self._conn.execute("DELETE FROM entities WHERE parent = ?", (entity.key,))
                self._conn.execute("DELETE FROM entities WHERE entity = ?", (entity.key,))
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise InternalError(f"Failed to remove {entity}: {e}") from e
        return removed

    def exists(self, entity: EntityId) -> bool:
        """True for known namespaces and registered entities."""
        if isinstance(entity, NamespaceId):
            return self.namespace_exists(entity.namespace)
        cursor = self._execute("SELECT 1 FROM entities WHERE entity = ?", (entity.key,))
        return cursor.fetchone() is not None

    def children(self, entity: EntityId) -> list[EntityId]:
        cursor = self._execute(
            "SELECT entity FROM entities WHERE parent = ? ORDER BY entity",
            (entity.key,),
        )
        return [entity_from_key(row["entity"]) for row in cursor.fetchall()]

    def list_entities(
        self, namespace: str, entity_type: Optional[str] = None
    ) -> list[EntityId]:
        if entity_type is None:
            cursor = self._execute(
                "SELECT entity FROM entities WHERE namespace = ? ORDER BY entity",
                (namespace,),
            )
        else:
            cursor = self._execute("""
                SELECT entity FROM entities
                WHERE namespace = ? AND entity_type = ?
                ORDER BY entity
            """, (namespace, entity_type))
        return [entity_from_key(row["entity"]) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if getattr(self, "_conn", None) is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
