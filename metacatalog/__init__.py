"""
Metadata Catalog

User and system metadata (properties and tags) for platform entities:
applications, programs, datasets, streams, stream views and artifacts,
with case-insensitive keyed, prefix and schema-field search.

Quick Start:
    from metacatalog import MetadataCatalog, ApplicationId

    catalog = MetadataCatalog()  # uses ~/.metacatalog/
    app = catalog.lifecycle.deploy_application("default", spec)
    catalog.add_properties(app, {"owner": "alice"})
    results = catalog.search("default", "owner:al*")

CLI Usage:
    metacatalog search "owner:al*"
    metacatalog show apps/PurchaseApp --scope system
    metacatalog serve

Default Store:
    ~/.metacatalog/ (created automatically).
    Override with METACATALOG_STORE_PATH or explicit path argument.

Environment Variables:
    METACATALOG_STORE_PATH  - Override default store location
    METACATALOG_VERBOSE     - Enable debug logging in the CLI

Configuration is persisted in a TOML file within the store directory.
"""

from .api import MetadataCatalog
from .entity import (
    DEFAULT_NAMESPACE,
    SYSTEM_NAMESPACE,
    ApplicationId,
    ArtifactId,
    DatasetId,
    EntityId,
    NamespaceId,
    ProgramId,
    ProgramType,
    StreamId,
    StreamViewId,
)
from .errors import BadRequestError, InternalError, MetadataError, NotFoundError
from .types import MetadataRecord, MetadataScope, SearchResultRecord, TargetType

__version__ = "0.1.0"
__all__ = [
    "MetadataCatalog",
    "EntityId",
    "NamespaceId",
    "ApplicationId",
    "ProgramId",
    "ProgramType",
    "DatasetId",
    "StreamId",
    "StreamViewId",
    "ArtifactId",
    "DEFAULT_NAMESPACE",
    "SYSTEM_NAMESPACE",
    "MetadataRecord",
    "MetadataScope",
    "SearchResultRecord",
    "TargetType",
    "MetadataError",
    "BadRequestError",
    "NotFoundError",
    "InternalError",
]
