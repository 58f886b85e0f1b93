"""
System metadata derived from entity definitions.

One rule function per entity kind turns a definition into
``(properties, tags)``. SystemMetadataWriter applies the result as the
entity's whole SYSTEM record, so renamed children or schema changes never
leave stale entries behind.
"""

import logging

from .entity import (
    ApplicationId,
    ArtifactId,
    DatasetId,
    EntityId,
    ProgramId,
    ProgramType,
    StreamId,
    StreamViewId,
)
from .indexer import KEYVALUE_SEPARATOR, SCHEMA_KEY
from .protocol import MetadataStoreProtocol
from .specs import (
    ApplicationSpec,
    ArtifactInfo,
    DatasetSpec,
    ProgramSpec,
    StreamSpec,
    ViewSpec,
    schema_to_text,
    simple_class_name,
)
from .types import MetadataScope

logger = logging.getLogger(__name__)

TTL_KEY = "ttl"
TYPE_KEY = "type"
SCHEDULE_KEY = "schedule"
PLUGIN_KEY = "plugin"

BATCH_TAG = "batch"
EXPLORE_TAG = "explore"

SystemMetadata = tuple[dict[str, str], set[str]]


def _join(*parts: str) -> str:
    return KEYVALUE_SEPARATOR.join(parts)


def stream_metadata(stream: StreamId, spec: StreamSpec) -> SystemMetadata:
    properties = {
        SCHEMA_KEY: schema_to_text(spec.schema),
        TTL_KEY: str(spec.ttl),
    }
    return properties, {stream.stream}


def view_metadata(view: StreamViewId, spec: ViewSpec) -> SystemMetadata:
    properties = {}
    if spec.schema is not None:
        properties[SCHEMA_KEY] = schema_to_text(spec.schema)
    return properties, {view.view, view.stream}


def dataset_metadata(dataset: DatasetId, spec: DatasetSpec) -> SystemMetadata:
    properties = {TYPE_KEY: spec.type}
    if spec.schema is not None:
        properties[SCHEMA_KEY] = schema_to_text(spec.schema)
    tags = {dataset.dataset}
    if spec.batch:
        tags.add(BATCH_TAG)
    if spec.explore:
        tags.add(EXPLORE_TAG)
    return properties, tags


def artifact_metadata(artifact: ArtifactId, info: ArtifactInfo) -> SystemMetadata:
    """
    Tags: the artifact name and the simple names of its application
    classes. Each plugin becomes ``plugin:<name>:<type> = <name>:<type>``.
    """
    properties = {
        _join(PLUGIN_KEY, p.name, p.type): _join(p.name, p.type)
        for p in info.plugins
    }
    tags = {artifact.artifact}
    tags.update(simple_class_name(c) for c in info.app_classes)
    return properties, tags


def application_metadata(app: ApplicationId, spec: ApplicationSpec) -> SystemMetadata:
    properties = {}
    for p in spec.programs:
        properties[_join(p.type.pretty_name, p.name)] = p.name
    for s in spec.schedules:
        properties[_join(SCHEDULE_KEY, s.name)] = _join(s.name, s.description)
    return properties, {simple_class_name(spec.main_class), app.application}


def program_metadata(program: ProgramId, spec: ProgramSpec) -> SystemMetadata:
    program_type = program.program_type
    tags = {program.program, program_type.pretty_name, program_type.mode}
    if program_type is ProgramType.WORKFLOW:
        tags.update(simple_class_name(n) for n in spec.nodes)
    return {}, tags


class SystemMetadataWriter:
    """Writes the SYSTEM record of an entity from its definition."""

    def __init__(self, store: MetadataStoreProtocol):
        self._store = store

    def _write(self, entity: EntityId, metadata: SystemMetadata) -> None:
        properties, tags = metadata
        self._store.replace_metadata(entity, MetadataScope.SYSTEM, properties, tags)
        logger.debug(
            "Wrote system metadata for %s: %d properties, %d tags",
            entity, len(properties), len(tags),
        )

    def write_stream(self, stream: StreamId, spec: StreamSpec) -> None:
        self._write(stream, stream_metadata(stream, spec))

    def write_view(self, view: StreamViewId, spec: ViewSpec) -> None:
        self._write(view, view_metadata(view, spec))

    def write_dataset(self, dataset: DatasetId, spec: DatasetSpec) -> None:
        self._write(dataset, dataset_metadata(dataset, spec))

    def write_artifact(self, artifact: ArtifactId, info: ArtifactInfo) -> None:
        self._write(artifact, artifact_metadata(artifact, info))

    def write_application(self, app: ApplicationId, spec: ApplicationSpec) -> None:
        self._write(app, application_metadata(app, spec))

    def write_program(self, program: ProgramId, spec: ProgramSpec) -> None:
        self._write(program, program_metadata(program, spec))
