"""
Entity lifecycle hooks.

The platform calls these when namespaces and entities are created, changed
or destroyed. Each hook keeps the registry, the SYSTEM records and the
index in step; deleting an entity removes both of its records and every
index term pointing at it.
"""

import logging
import threading

from .entity import (
    ApplicationId,
    ArtifactId,
    DatasetId,
    EntityId,
    StreamId,
    StreamViewId,
)
from .errors import NotFoundError
from .protocol import EntityRegistryProtocol, MetadataStoreProtocol
from .specs import (
    ApplicationSpec,
    ArtifactInfo,
    DatasetSpec,
    StreamSpec,
    ViewSpec,
)
from .system_metadata import SystemMetadataWriter

logger = logging.getLogger(__name__)


class EntityLifecycle:
    """
    Applies platform lifecycle events to the catalog.

    Example:
        lifecycle = catalog.lifecycle
        app = lifecycle.deploy_application("default", spec)
        lifecycle.delete_application(app)
    """

    def __init__(
        self,
        registry: EntityRegistryProtocol,
        store: MetadataStoreProtocol,
        writer: SystemMetadataWriter,
        lock=None,
    ):
        self._registry = registry
        self._store = store
        self._writer = writer
        # Held while entities are registered or destroyed. User writes take
        # it too, so an entity cannot vanish between their check and commit.
        self.lock = lock if lock is not None else threading.RLock()

    def _require(self, entity: EntityId) -> None:
        if not self._registry.exists(entity):
            raise NotFoundError(f"{entity.entity_type.capitalize()} {entity} not found")

    def _destroy(self, entity: EntityId) -> list[EntityId]:
        """Unregister an entity and its children and drop all their metadata."""
        with self.lock:
            self._require(entity)
            removed = self._registry.remove(entity)
            for e in removed:
                self._store.remove_metadata(e)
        return removed

    # -------------------------------------------------------------------------
    # Namespaces
    # -------------------------------------------------------------------------

    def create_namespace(self, namespace: str) -> bool:
        created = self._registry.create_namespace(namespace)
        if created:
            logger.info("Created namespace %s", namespace)
        return created

    def delete_namespace(self, namespace: str) -> None:
        with self.lock:
            removed = self._registry.delete_namespace(namespace)
            self._store.remove_namespace(namespace)
        logger.info("Deleted namespace %s (%d entities)", namespace, len(removed))

    # -------------------------------------------------------------------------
    # Applications and programs
    # -------------------------------------------------------------------------

    def deploy_application(self, namespace: str, spec: ApplicationSpec) -> ApplicationId:
        """
        Deploy or redeploy an application.

        Streams and datasets the application declares are created if they
        do not exist. On redeploy, programs dropped from the definition are
        removed along with their metadata.
        """
        app = ApplicationId(namespace, spec.name)
        programs = {app.program(p.type, p.name): p for p in spec.programs}

        with self.lock:
            if self._registry.exists(app):
                for old in self._registry.children(app):
                    if old not in programs:
                        self._registry.remove(old)
                        self._store.remove_metadata(old)
                        logger.info("Removed program %s dropped by redeploy", old)
        self._registry.add(app)

        for stream_spec in spec.streams:
            stream = StreamId(namespace, stream_spec.name)
            if not self._registry.exists(stream):
                self.create_stream(namespace, stream_spec)
        for dataset_spec in spec.datasets:
            dataset = DatasetId(namespace, dataset_spec.name)
            if not self._registry.exists(dataset):
                self.create_dataset(namespace, dataset_spec)

        for program, program_spec in programs.items():
            self._registry.add(program)
            self._writer.write_program(program, program_spec)
        self._writer.write_application(app, spec)

        logger.info("Deployed application %s with %d programs", app, len(programs))
        return app

    def delete_application(self, app: ApplicationId) -> None:
        """Delete an application and its programs. Streams and datasets stay."""
        removed = self._destroy(app)
        logger.info("Deleted application %s (%d entities)", app, len(removed))

    # -------------------------------------------------------------------------
    # Artifacts
    # -------------------------------------------------------------------------

    def add_artifact(self, namespace: str, info: ArtifactInfo) -> ArtifactId:
        artifact = ArtifactId(namespace, info.name, info.version)
        self._registry.add(artifact)
        self._writer.write_artifact(artifact, info)
        logger.info("Added artifact %s", artifact)
        return artifact

    def delete_artifact(self, artifact: ArtifactId) -> None:
        self._destroy(artifact)
        logger.info("Deleted artifact %s", artifact)

    # -------------------------------------------------------------------------
    # Streams and views
    # -------------------------------------------------------------------------

    def create_stream(self, namespace: str, spec: StreamSpec) -> StreamId:
        """Create a stream, or refresh its system metadata if it exists."""
        stream = StreamId(namespace, spec.name)
        self._registry.add(stream)
        self._writer.write_stream(stream, spec)
        logger.info("Created stream %s", stream)
        return stream

    def update_stream(self, stream: StreamId, spec: StreamSpec) -> None:
        """Apply new stream properties (schema, TTL)."""
        self._require(stream)
        self._writer.write_stream(stream, spec)
        logger.info("Updated stream %s", stream)

    def drop_stream(self, stream: StreamId) -> None:
        """Delete a stream and its views."""
        removed = self._destroy(stream)
        logger.info("Dropped stream %s (%d entities)", stream, len(removed))

    def create_or_update_view(self, view: StreamViewId, spec: ViewSpec) -> bool:
        """
        Create a view over an existing stream, or replace its definition.

        Returns:
            True if the view was created, False if it was updated

        Raises:
            NotFoundError: if the stream does not exist
        """
        self._require(view.parent)
        created = self._registry.add(view)
        self._writer.write_view(view, spec)
        logger.info("%s view %s", "Created" if created else "Updated", view)
        return created

    def delete_view(self, view: StreamViewId) -> None:
        self._destroy(view)
        logger.info("Deleted view %s", view)

    # -------------------------------------------------------------------------
    # Datasets
    # -------------------------------------------------------------------------

    def create_dataset(self, namespace: str, spec: DatasetSpec) -> DatasetId:
        dataset = DatasetId(namespace, spec.name)
        self._registry.add(dataset)
        self._writer.write_dataset(dataset, spec)
        logger.info("Created dataset %s", dataset)
        return dataset

    def update_dataset(self, dataset: DatasetId, spec: DatasetSpec) -> None:
        self._require(dataset)
        self._writer.write_dataset(dataset, spec)
        logger.info("Updated dataset %s", dataset)

    def delete_dataset(self, dataset: DatasetId) -> None:
        self._destroy(dataset)
        logger.info("Deleted dataset %s", dataset)
