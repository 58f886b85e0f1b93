"""
Core API for the metadata catalog.

This is the surface the HTTP server and the CLI bind to. It validates
input, checks that the target entity exists, keeps callers out of the
SYSTEM scope, and hands off to the store and the search planner.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from .config import CatalogConfig, get_default_store_path, load_or_create_config
from .entity import EntityId, NamespaceId
from .errors import BadRequestError, NotFoundError
from .lifecycle import EntityLifecycle
from .logging_config import configure_ops_log, detach_ops_log
from .metadata_store import MetadataStore
from .protocol import EntityRegistryProtocol, MetadataStoreProtocol
from .registry import EntityRegistry
from .search import SearchPlanner
from .system_metadata import SystemMetadataWriter
from .types import (
    MetadataRecord,
    MetadataScope,
    SearchResultRecord,
    TargetType,
    parse_scope,
    validate_property,
    validate_tag,
)

logger = logging.getLogger(__name__)


class MetadataCatalog:
    """
    User and system metadata for platform entities, with search.

    Example:
        catalog = MetadataCatalog()
        app = ApplicationId("default", "PurchaseApp")
        catalog.add_properties(app, {"owner": "alice"})
        results = catalog.search("default", "owner:al*")
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[CatalogConfig] = None,
        store: Optional[MetadataStoreProtocol] = None,
        registry: Optional[EntityRegistryProtocol] = None,
    ) -> None:
        """
        Open or create a catalog store.

        Args:
            store_path: Path to store directory. Uses default if not specified.
            config: Pre-loaded CatalogConfig (skips filesystem config discovery).
            store: Injected metadata store (skips default backend creation).
            registry: Injected entity registry (skips default backend creation).
        """
        if config is not None:
            self._config = config
            self._store_path = config.path
        else:
            self._store_path = get_default_store_path(store_path)
            self._config = load_or_create_config(self._store_path)

        # --- Persistent operations log ---
        self._ops_log_handler = configure_ops_log(self._store_path)

        # --- Storage backends (injected or created) ---
        self._store = store if store is not None else MetadataStore(self._config.metadata_db_path)
        self._registry = (
            registry if registry is not None else EntityRegistry(self._config.entities_db_path)
        )

        self._writer = SystemMetadataWriter(self._store)
        self._planner = SearchPlanner(self._store, self._registry)
        self.lifecycle = EntityLifecycle(self._registry, self._store, self._writer)

        logger.info("Opened metadata catalog at %s", self._store_path)

    @property
    def config(self) -> CatalogConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_entity(self, entity: EntityId) -> None:
        """Raise NotFoundError unless the entity (and its namespace) exists."""
        if not self._registry.namespace_exists(entity.namespace):
            raise NotFoundError(f"Namespace {entity.namespace} not found")
        if isinstance(entity, NamespaceId):
            return
        if not self._registry.exists(entity):
            raise NotFoundError(f"{entity.entity_type.capitalize()} {entity} not found")

    @staticmethod
    def _writable_scope(scope: Optional[str | MetadataScope]) -> MetadataScope:
        resolved = parse_scope(scope)
        if resolved is MetadataScope.SYSTEM:
            raise BadRequestError("System metadata is read-only")
        return MetadataScope.USER

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add_properties(
        self,
        entity: EntityId,
        properties: Optional[dict[str, str]],
        scope: Optional[str | MetadataScope] = None,
    ) -> None:
        """
        Add or replace user properties on an entity.

        All pairs are written in one transaction, or none are.

        Raises:
            BadRequestError: empty or invalid properties, SYSTEM scope,
                or more properties than the configured limit
            NotFoundError: the entity does not exist
        """
        target = self._writable_scope(scope)
        if not properties:
            raise BadRequestError("Properties must be a non-empty JSON object")
        if not isinstance(properties, dict):
            raise BadRequestError("Properties must be a JSON object of key to value")
        limits = self._config.limits
        with self.lifecycle.lock:
            self._require_entity(entity)
            for key, value in properties.items():
                validate_property(
                    key, value,
                    max_key_length=limits.max_key_length,
                    max_value_length=limits.max_value_length,
                )
            self._store.set_properties(
                entity, target, dict(properties), max_properties=limits.max_properties
            )

    def add_tags(
        self,
        entity: EntityId,
        tags: Optional[Iterable[str]],
        scope: Optional[str | MetadataScope] = None,
    ) -> None:
        """
        Add user tags to an entity. Tags already present are left as is.

        Raises:
            BadRequestError: empty or invalid tags, SYSTEM scope, or more
                tags than the configured limit
            NotFoundError: the entity does not exist
        """
        target = self._writable_scope(scope)
        if tags is None or isinstance(tags, (str, dict)):
            raise BadRequestError("Tags must be a non-empty JSON array of strings")
        tags = list(tags)
        if not tags:
            raise BadRequestError("Tags must be a non-empty JSON array of strings")
        limits = self._config.limits
        with self.lifecycle.lock:
            self._require_entity(entity)
            for tag in tags:
                validate_tag(tag, max_length=limits.max_tag_length)
            self._store.add_tags(entity, target, dict.fromkeys(tags), max_tags=limits.max_tags)

    def remove_metadata(self, entity: EntityId) -> None:
        """Clear all user properties and tags. System metadata is untouched."""
        self._require_entity(entity)
        self._store.remove_metadata(entity, MetadataScope.USER)

    def remove_properties(self, entity: EntityId) -> None:
        self._require_entity(entity)
        self._store.remove_properties(entity, MetadataScope.USER)

    def remove_property(self, entity: EntityId, key: str) -> None:
        """Remove one user property. Removing an absent key is not an error."""
        self._require_entity(entity)
        self._store.remove_property(entity, MetadataScope.USER, key)

    def remove_tags(self, entity: EntityId) -> None:
        self._require_entity(entity)
        self._store.remove_tags(entity, MetadataScope.USER)

    def remove_tag(self, entity: EntityId, tag: str) -> None:
        """Remove one user tag. Removing an absent tag is not an error."""
        self._require_entity(entity)
        self._store.remove_tag(entity, MetadataScope.USER, tag)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_metadata(
        self,
        entity: EntityId,
        scope: Optional[str | MetadataScope] = None,
    ) -> list[MetadataRecord]:
        """
        Get the metadata records of an entity.

        Returns one record for the given scope, or two (USER, SYSTEM) when
        no scope is given. Records may be empty.
        """
        resolved = parse_scope(scope)
        self._require_entity(entity)
        scopes = [resolved] if resolved is not None else list(MetadataScope)
        return [self._store.get_metadata(entity, s) for s in scopes]

    def get_properties(
        self,
        entity: EntityId,
        scope: Optional[str | MetadataScope] = None,
    ) -> dict[str, str]:
        """
        Get properties in one scope, or merged across both.

        When merged, a user value wins over a system value for the same key.
        """
        resolved = parse_scope(scope)
        self._require_entity(entity)
        if resolved is not None:
            return self._store.get_properties(entity, resolved)
        merged = self._store.get_properties(entity, MetadataScope.SYSTEM)
        merged.update(self._store.get_properties(entity, MetadataScope.USER))
        return merged

    def get_tags(
        self,
        entity: EntityId,
        scope: Optional[str | MetadataScope] = None,
    ) -> set[str]:
        """Get tags in one scope, or the union of both."""
        resolved = parse_scope(scope)
        self._require_entity(entity)
        if resolved is not None:
            return self._store.get_tags(entity, resolved)
        return (
            self._store.get_tags(entity, MetadataScope.SYSTEM)
            | self._store.get_tags(entity, MetadataScope.USER)
        )

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def search(
        self,
        namespace: str,
        query: str,
        target: Optional[str | TargetType] = None,
    ) -> set[SearchResultRecord]:
        """
        Search user and system metadata visible from a namespace.

        Args:
            namespace: Namespace to search; system entities are always included
            query: Terms separated by whitespace or '+', all of which must match
            target: Entity kind to return (APP, PROGRAM, ...); None for all

        Returns:
            Set of matching entities, empty for an unknown namespace
        """
        results = self._planner.search(namespace, query, target)
        logger.debug("Search %r in %s: %d results", query, namespace, len(results))
        return results

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close stores and detach the operations log."""
        handler = getattr(self, "_ops_log_handler", None)
        if handler is not None:
            detach_ops_log(handler)
            self._ops_log_handler = None
        if getattr(self, "_store", None) is not None:
            self._store.close()
        if getattr(self, "_registry", None) is not None:
            self._registry.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close resources."""
        self.close()
        return False

    def __del__(self):
        """Cleanup on deletion."""
        try:
            self.close()
        except Exception:
            pass  # Suppress errors during garbage collection
