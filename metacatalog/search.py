"""
Search execution against the metadata index.
"""

import logging
from typing import Optional

from .entity import SYSTEM_NAMESPACE, EntityId
from .protocol import EntityRegistryProtocol, MetadataStoreProtocol
from .query import QueryTerm, parse_query
from .types import SearchResultRecord, TargetType, parse_target

logger = logging.getLogger(__name__)


class SearchPlanner:
    """
    Runs parsed queries: one index lookup per term, intersected.

    Lookups are restricted to the querying namespace plus the system
    namespace, whose entities are visible everywhere. Each term is one
    indexed statement; an empty intersection stops early.
    """

    def __init__(
        self,
        store: MetadataStoreProtocol,
        registry: EntityRegistryProtocol,
    ):
        self._store = store
        self._registry = registry

    def search(
        self,
        namespace: str,
        query: str,
        target: Optional[TargetType | str] = None,
    ) -> set[SearchResultRecord]:
        """
        Search metadata visible from a namespace.

        Args:
            namespace: The querying namespace
            query: Query text (see ``metacatalog.query``)
            target: Restrict results to one entity kind (None or ALL for any)

        Returns:
            Set of matching entities; empty for an unknown namespace

        Raises:
            BadRequestError: for malformed queries or targets
        """
        terms = parse_query(query)
        target_type = parse_target(target)
        if not self._registry.namespace_exists(namespace):
            logger.debug("Search in unknown namespace %s", namespace)
            return set()

        namespaces = sorted({namespace, SYSTEM_NAMESPACE})
        matches: Optional[set[EntityId]] = None
        for term in terms:
            hits = self._lookup(term, namespaces)
            matches = hits if matches is None else matches & hits
            if not matches:
                return set()

        return {
            SearchResultRecord(entity)
            for entity in matches
            if target_type.matches(entity)
        }

    def _lookup(self, term: QueryTerm, namespaces: list[str]) -> set[EntityId]:
        return self._store.find_entities(
            term.lookup, prefix=term.prefix, namespaces=namespaces
        )
