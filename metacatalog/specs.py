"""
Descriptions of platform entities, as handed over by the lifecycle hooks.

These carry just what system metadata is derived from. Schemas are plain
JSON-compatible dicts in record form::

    {"type": "record", "name": "stringBody",
     "fields": [{"name": "body", "type": "string"}]}
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .entity import ProgramType
from .errors import BadRequestError

# Default body schema of a stream
DEFAULT_STREAM_SCHEMA: dict[str, Any] = {
    "type": "record",
    "name": "stringBody",
    "fields": [{"name": "body", "type": "string"}],
}

# Streams keep events forever unless a TTL is set
DEFAULT_STREAM_TTL = 9223372036854775807


def schema_to_text(schema: dict) -> str:
    """Compact JSON, key order preserved."""
    return json.dumps(schema, separators=(",", ":"))


def simple_class_name(class_name: str) -> str:
    """``com.example.PurchaseApp`` -> ``PurchaseApp``"""
    return class_name.rsplit(".", 1)[-1]


@dataclass
class StreamSpec:
    name: str
    schema: dict = field(default_factory=lambda: dict(DEFAULT_STREAM_SCHEMA))
    ttl: int = DEFAULT_STREAM_TTL
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "StreamSpec":
        spec = cls(data["name"], description=data.get("description", ""))
        if data.get("schema") is not None:
            spec.schema = data["schema"]
        if data.get("ttl") is not None:
            spec.ttl = int(data["ttl"])
        return spec


@dataclass
class ViewSpec:
    """A read view over a stream, with its own format and optional schema."""
    name: str
    format: str = "text"
    schema: Optional[dict] = None


@dataclass
class DatasetSpec:
    """
    A dataset instance.

    ``type`` is the implementation class name. ``batch`` and ``explore``
    say whether the dataset type supports batch jobs and ad-hoc queries.
    """
    name: str
    type: str = "table"
    schema: Optional[dict] = None
    batch: bool = True
    explore: bool = True
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "DatasetSpec":
        return cls(
            name=data["name"],
            type=data.get("type", "table"),
            schema=data.get("schema"),
            batch=bool(data.get("batch", True)),
            explore=bool(data.get("explore", True)),
            description=data.get("description", ""),
        )


@dataclass
class ProgramSpec:
    type: ProgramType
    name: str
    description: str = ""
    # Workflow only: names of the actions and programs it runs
    nodes: list[str] = field(default_factory=list)


@dataclass
class ScheduleSpec:
    name: str
    description: str = ""
    program: Optional[str] = None


@dataclass
class ApplicationSpec:
    """
    A deployable application.

    Deploying it registers its programs and creates the streams and
    datasets it declares, if they do not exist yet.
    """
    name: str
    main_class: str
    description: str = ""
    programs: list[ProgramSpec] = field(default_factory=list)
    schedules: list[ScheduleSpec] = field(default_factory=list)
    streams: list[StreamSpec] = field(default_factory=list)
    datasets: list[DatasetSpec] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ApplicationSpec":
        """
        Build from the JSON form read by ``metacatalog deploy``::

            {"name": "PurchaseApp", "mainClass": "com.example.PurchaseApp",
             "programs": [{"type": "flow", "name": "PurchaseFlow"}],
             "schedules": [{"name": "Nightly", "description": "Every night"}],
             "streams": [{"name": "purchases"}],
             "datasets": [{"name": "history", "type": "table"}]}

        Raises:
            BadRequestError: a required field is missing or has the wrong type
        """
        try:
            return cls(
                name=data["name"],
                main_class=data.get("mainClass", data["name"]),
                description=data.get("description", ""),
                programs=[
                    ProgramSpec(
                        ProgramType.parse(p["type"]), p["name"],
                        p.get("description", ""), list(p.get("nodes", [])),
                    )
                    for p in data.get("programs", [])
                ],
                schedules=[
                    ScheduleSpec(s["name"], s.get("description", ""), s.get("program"))
                    for s in data.get("schedules", [])
                ],
                streams=[StreamSpec.from_dict(s) for s in data.get("streams", [])],
                datasets=[DatasetSpec.from_dict(d) for d in data.get("datasets", [])],
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise BadRequestError(f"Invalid application definition: {e!r}") from None


@dataclass
class PluginClass:
    name: str
    type: str
    class_name: str = ""
    description: str = ""


@dataclass
class ArtifactInfo:
    """Contents of an artifact: application classes and plugin classes."""
    name: str
    version: str
    app_classes: list[str] = field(default_factory=list)
    plugins: list[PluginClass] = field(default_factory=list)
