"""
Typed, namespaced references to platform entities.

Each entity kind is a frozen dataclass carrying its structural fields, so
equality and hashing are structural. Three encodings are supported:

- canonical key: ``program:default/PurchaseApp/service/PingService``
  (used as the storage key; ``entity_from_key`` inverts it)
- JSON dict: ``{"type": "program", "namespace": "default", ...}``
- URL path relative to a namespace: ``apps/PurchaseApp/services/PingService``
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import ClassVar, Optional

from .errors import BadRequestError

DEFAULT_NAMESPACE = "default"
SYSTEM_NAMESPACE = "system"


class ProgramType(Enum):
    """Program kinds, with display name, URL category and processing mode."""

    FLOW = ("flow", "Flow", "flows", "Realtime")
    MAPREDUCE = ("mapreduce", "MapReduce", "mapreduce", "Batch")
    SERVICE = ("service", "Service", "services", "Realtime")
    SPARK = ("spark", "Spark", "spark", "Batch")
    WORKER = ("worker", "Worker", "workers", "Realtime")
    WORKFLOW = ("workflow", "Workflow", "workflows", "Batch")

    def __init__(self, id_: str, pretty_name: str, category: str, mode: str):
        self.id = id_
        self.pretty_name = pretty_name
        self.category = category
        self.mode = mode

    @classmethod
    def parse(cls, text: str) -> "ProgramType":
        """Resolve an id, pretty name or URL category, case-insensitively."""
        folded = text.casefold()
        for member in cls:
            if folded in (member.id, member.pretty_name.casefold(), member.category):
                return member
        raise BadRequestError(f"Unknown program type: {text!r}")


class EntityId:
    """Base for entity references. Subclasses are frozen dataclasses."""

    entity_type: ClassVar[str] = ""

    def components(self) -> tuple[str, ...]:
        """Structural fields as strings, namespace first."""
        out = []
        for f in fields(self):
            value = getattr(self, f.name)
            out.append(value.id if isinstance(value, ProgramType) else value)
        return tuple(out)

    def _check(self) -> None:
        for part in self.components():
            if not isinstance(part, str) or not part or "/" in part:
                raise BadRequestError(
                    f"Invalid {self.entity_type} reference component: {part!r}"
                )

    def __post_init__(self):
        self._check()

    @property
    def key(self) -> str:
        return f"{self.entity_type}:{'/'.join(self.components())}"

    @property
    def parent(self) -> Optional["EntityId"]:
        return NamespaceId(self.namespace)

    @property
    def path(self) -> str:
        raise NotImplementedError

    def to_dict(self) -> dict:
        d = {"type": self.entity_type}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, ProgramType):
                d["programType"] = value.pretty_name
            else:
                d[f.name] = value
        return d

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class NamespaceId(EntityId):
    namespace: str

    entity_type: ClassVar[str] = "namespace"

    @property
    def parent(self) -> None:
        return None

    @property
    def path(self) -> str:
        return ""


@dataclass(frozen=True)
class ApplicationId(EntityId):
    namespace: str
    application: str

    entity_type: ClassVar[str] = "application"

    @property
    def path(self) -> str:
        return f"apps/{self.application}"

    def program(self, program_type: ProgramType, name: str) -> "ProgramId":
        return ProgramId(self.namespace, self.application, program_type, name)


@dataclass(frozen=True)
class ProgramId(EntityId):
    namespace: str
    application: str
    program_type: ProgramType
    program: str

    entity_type: ClassVar[str] = "program"

    @property
    def parent(self) -> ApplicationId:
        return ApplicationId(self.namespace, self.application)

    @property
    def path(self) -> str:
        return f"apps/{self.application}/{self.program_type.category}/{self.program}"


@dataclass(frozen=True)
class DatasetId(EntityId):
    namespace: str
    dataset: str

    entity_type: ClassVar[str] = "dataset"

    @property
    def path(self) -> str:
        return f"datasets/{self.dataset}"


@dataclass(frozen=True)
class StreamId(EntityId):
    namespace: str
    stream: str

    entity_type: ClassVar[str] = "stream"

    @property
    def path(self) -> str:
        return f"streams/{self.stream}"

    def view(self, name: str) -> "StreamViewId":
        return StreamViewId(self.namespace, self.stream, name)


@dataclass(frozen=True)
class StreamViewId(EntityId):
    namespace: str
    stream: str
    view: str

    entity_type: ClassVar[str] = "view"

    @property
    def parent(self) -> StreamId:
        return StreamId(self.namespace, self.stream)

    @property
    def path(self) -> str:
        return f"streams/{self.stream}/views/{self.view}"


@dataclass(frozen=True)
class ArtifactId(EntityId):
    namespace: str
    artifact: str
    version: str

    entity_type: ClassVar[str] = "artifact"

    @property
    def path(self) -> str:
        return f"artifacts/{self.artifact}/versions/{self.version}"


_ENTITY_CLASSES: dict[str, type[EntityId]] = {
    cls.entity_type: cls
    for cls in (NamespaceId, ApplicationId, ProgramId, DatasetId,
                StreamId, StreamViewId, ArtifactId)
}


def _build(entity_type: str, parts: list[str]) -> EntityId:
    cls = _ENTITY_CLASSES.get(entity_type)
    if cls is None:
        raise BadRequestError(f"Unknown entity type: {entity_type!r}")
    if len(parts) != len(fields(cls)):
        raise BadRequestError(f"Malformed {entity_type} reference: {parts!r}")
    if cls is ProgramId:
        parts = [parts[0], parts[1], ProgramType.parse(parts[2]), parts[3]]
    return cls(*parts)


def entity_from_key(key: str) -> EntityId:
    """Inverse of ``EntityId.key``."""
    entity_type, sep, rest = key.partition(":")
    if not sep:
        raise BadRequestError(f"Malformed entity key: {key!r}")
    return _build(entity_type, rest.split("/"))


def entity_from_dict(d: dict) -> EntityId:
    """Inverse of ``EntityId.to_dict``."""
    entity_type = d.get("type", "")
    cls = _ENTITY_CLASSES.get(entity_type)
    if cls is None:
        raise BadRequestError(f"Unknown entity type: {entity_type!r}")
    parts = []
    for f in fields(cls):
        name = "programType" if f.name == "program_type" else f.name
        if name not in d:
            raise BadRequestError(f"Missing {name!r} in {entity_type} reference")
        parts.append(str(d[name]))
    return _build(entity_type, parts)


def parse_entity_path(namespace: str, path: str) -> EntityId:
    """
    Parse a URL entity path relative to ``/namespaces/{namespace}/``.

    Accepted shapes::

        apps/{app}
        apps/{app}/{flows|mapreduce|services|spark|workers|workflows}/{program}
        datasets/{dataset}
        streams/{stream}
        streams/{stream}/views/{view}
        artifacts/{name}/versions/{version}

    Raises:
        BadRequestError: if the path matches none of these
    """
    parts = [p for p in path.strip("/").split("/") if p]
    n = len(parts)
    head = parts[0] if parts else ""

    if head == "apps" and n == 2:
        return ApplicationId(namespace, parts[1])
    if head == "apps" and n == 4:
        return ProgramId(namespace, parts[1], ProgramType.parse(parts[2]), parts[3])
    if head == "datasets" and n == 2:
        return DatasetId(namespace, parts[1])
    if head == "streams" and n == 2:
        return StreamId(namespace, parts[1])
    if head == "streams" and n == 4 and parts[2] == "views":
        return StreamViewId(namespace, parts[1], parts[3])
    if head == "artifacts" and n == 4 and parts[2] == "versions":
        return ArtifactId(namespace, parts[1], parts[3])
    raise BadRequestError(f"Unrecognized entity path: {path!r}")
