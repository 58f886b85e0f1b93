"""
Protocol definitions for the catalog's storage backends.

The catalog, system writer and search planner depend on these contracts
rather than on the SQLite classes, so another backend can be dropped in.
"""

from typing import Iterable, Optional, Protocol, runtime_checkable

from .entity import EntityId
from .types import MetadataRecord, MetadataScope


@runtime_checkable
class MetadataStoreProtocol(Protocol):
    """
    Records of properties and tags per (entity, scope), plus the index.

    Implemented by:
    - MetadataStore (SQLite)
    """

    # -- Write operations --

    def set_properties(
        self,
        entity: EntityId,
        scope: MetadataScope,
        properties: dict[str, str],
        *,
        max_properties: Optional[int] = None,
    ) -> None: ...

    def add_tags(
        self,
        entity: EntityId,
        scope: MetadataScope,
        tags: Iterable[str],
        *,
        max_tags: Optional[int] = None,
    ) -> None: ...

    def replace_metadata(
        self,
        entity: EntityId,
        scope: MetadataScope,
        properties: dict[str, str],
        tags: Iterable[str],
    ) -> None: ...

    def remove_property(self, entity: EntityId, scope: MetadataScope, key: str) -> bool: ...

    def remove_properties(self, entity: EntityId, scope: MetadataScope) -> int: ...

    def remove_tag(self, entity: EntityId, scope: MetadataScope, tag: str) -> bool: ...

    def remove_tags(self, entity: EntityId, scope: MetadataScope) -> int: ...

    def remove_metadata(
        self, entity: EntityId, scope: Optional[MetadataScope] = None
    ) -> None: ...

    def remove_namespace(self, namespace: str) -> None: ...

    # -- Read operations --

    def get_properties(self, entity: EntityId, scope: MetadataScope) -> dict[str, str]: ...

    def get_tags(self, entity: EntityId, scope: MetadataScope) -> set[str]: ...

    def get_metadata(self, entity: EntityId, scope: MetadataScope) -> MetadataRecord: ...

    def find_entities(
        self,
        term: str,
        *,
        prefix: bool = False,
        namespaces: Optional[Iterable[str]] = None,
    ) -> set[EntityId]: ...

    # -- Lifecycle --

    def close(self) -> None: ...


@runtime_checkable
class EntityRegistryProtocol(Protocol):
    """
    The set of namespaces and entities that exist on the platform.

    Implemented by:
    - EntityRegistry (SQLite)
    """

    def create_namespace(self, namespace: str) -> bool: ...

    def delete_namespace(self, namespace: str) -> list[EntityId]: ...

    def namespace_exists(self, namespace: str) -> bool: ...

    def add(self, entity: EntityId) -> bool: ...

    def remove(self, entity: EntityId) -> list[EntityId]: ...

    def exists(self, entity: EntityId) -> bool: ...

    def children(self, entity: EntityId) -> list[EntityId]: ...

    def close(self) -> None: ...
