"""
CLI interface for the metadata catalog.

Usage:
    metacatalog search "owner:al*"
    metacatalog show apps/PurchaseApp
    metacatalog deploy purchase-app.json
    metacatalog set apps/PurchaseApp owner=alice team=sales
    metacatalog serve --port 11015
"""

import atexit
import json
import os
from pathlib import Path
from typing import NoReturn, Optional

import typer
from typing_extensions import Annotated

from .api import MetadataCatalog
from .entity import DEFAULT_NAMESPACE, EntityId, parse_entity_path
from .errors import MetadataError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .specs import ApplicationSpec, DatasetSpec, StreamSpec
from .types import MetadataRecord

# Configure quiet mode by default (suppress verbose library output)
# Set METACATALOG_VERBOSE=1 to enable debug mode via environment
if os.environ.get("METACATALOG_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="metacatalog",
    help="Metadata catalog for platform entities.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="METACATALOG_STORE_PATH",
        help="Path to the store directory (default: ~/.metacatalog/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Metadata catalog for platform entities."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

NamespaceOption = Annotated[
    str,
    typer.Option(
        "--namespace", "-n",
        help="Namespace of the entity or search"
    )
]

EntityPathArgument = Annotated[
    str,
    typer.Argument(
        help="Entity path, e.g. apps/PurchaseApp or streams/purchases/views/v1"
    )
]


def _fail(message: str) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _get_catalog() -> MetadataCatalog:
    """Open the catalog, handling errors gracefully."""
    try:
        catalog = MetadataCatalog(_store_override)
    except (OSError, ValueError) as e:
        _fail(f"Cannot open store: {e}")
    atexit.register(catalog.close)
    return catalog


def _entity(namespace: str, path: str) -> EntityId:
    try:
        return parse_entity_path(namespace, path)
    except MetadataError as e:
        _fail(str(e))


def _parse_pairs(pairs: list[str]) -> dict[str, str]:
    """Parse key=value arguments."""
    properties = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            _fail(f"Expected key=value, got {pair!r}")
        properties[key] = value
    return properties


def _format_record(record: MetadataRecord) -> str:
    lines = [f"{record.scope.value}:"]
    if record.properties:
        lines.append("  properties:")
        for key in sorted(record.properties):
            lines.append(f"    {key}: {record.properties[key]}")
    if record.tags:
        lines.append(f"  tags: {', '.join(sorted(record.tags))}")
    if record.is_empty():
        lines.append("  (empty)")
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query, e.g. 'owner:al*' or 'body:string'")],
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    target: Annotated[Optional[str], typer.Option(
        "--target", "-t",
        help="Entity kind: app, program, dataset, stream, view, artifact, all"
    )] = None,
):
    """
    Search metadata visible from a namespace.

    \b
    Examples:
        metacatalog search purchase              # Value or tag token
        metacatalog search "owner:al*"           # Keyed prefix
        metacatalog search Batch -t program      # Batch programs only
    """
    catalog = _get_catalog()
    try:
        results = catalog.search(namespace, query, target)
    except MetadataError as e:
        _fail(str(e))
    ordered = sorted(results, key=lambda r: r.entity.key)
    if _get_json_output():
        typer.echo(json.dumps([r.to_dict() for r in ordered], indent=2))
    else:
        for r in ordered:
            typer.echo(r.entity.key)


@app.command()
def show(
    path: EntityPathArgument,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    scope: Annotated[Optional[str], typer.Option(
        "--scope",
        help="user or system (default: both)"
    )] = None,
):
    """Show the metadata of an entity."""
    catalog = _get_catalog()
    entity = _entity(namespace, path)
    try:
        records = catalog.get_metadata(entity, scope)
    except MetadataError as e:
        _fail(str(e))
    if _get_json_output():
        typer.echo(json.dumps([r.to_dict() for r in records], indent=2))
    else:
        typer.echo(entity.key)
        for record in records:
            typer.echo(_format_record(record))


@app.command("set")
def set_properties(
    path: EntityPathArgument,
    pairs: Annotated[list[str], typer.Argument(help="Properties as key=value")],
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
):
    """Add or replace user properties."""
    catalog = _get_catalog()
    entity = _entity(namespace, path)
    try:
        catalog.add_properties(entity, _parse_pairs(pairs))
    except MetadataError as e:
        _fail(str(e))
    typer.echo(f"Set {len(pairs)} properties on {entity.key}")


@app.command()
def tag(
    path: EntityPathArgument,
    tags: Annotated[list[str], typer.Argument(help="Tags to add")],
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
):
    """Add user tags."""
    catalog = _get_catalog()
    entity = _entity(namespace, path)
    try:
        catalog.add_tags(entity, tags)
    except MetadataError as e:
        _fail(str(e))
    typer.echo(f"Tagged {entity.key}: {', '.join(tags)}")


@app.command()
def unset(
    path: EntityPathArgument,
    keys: Annotated[Optional[list[str]], typer.Argument(
        help="Property keys to remove (default: all user properties)"
    )] = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
):
    """Remove user properties."""
    catalog = _get_catalog()
    entity = _entity(namespace, path)
    try:
        if keys:
            for key in keys:
                catalog.remove_property(entity, key)
        else:
            catalog.remove_properties(entity)
    except MetadataError as e:
        _fail(str(e))
    typer.echo(f"Removed properties from {entity.key}")


@app.command()
def untag(
    path: EntityPathArgument,
    tags: Annotated[Optional[list[str]], typer.Argument(
        help="Tags to remove (default: all user tags)"
    )] = None,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
):
    """Remove user tags."""
    catalog = _get_catalog()
    entity = _entity(namespace, path)
    try:
        if tags:
            for t in tags:
                catalog.remove_tag(entity, t)
        else:
            catalog.remove_tags(entity)
    except MetadataError as e:
        _fail(str(e))
    typer.echo(f"Removed tags from {entity.key}")


@app.command()
def clear(
    path: EntityPathArgument,
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
):
    """Remove all user properties and tags. System metadata is kept."""
    catalog = _get_catalog()
    entity = _entity(namespace, path)
    try:
        catalog.remove_metadata(entity)
    except MetadataError as e:
        _fail(str(e))
    typer.echo(f"Cleared user metadata on {entity.key}")


# -----------------------------------------------------------------------------
# Entity registration
# -----------------------------------------------------------------------------

@app.command("create-namespace")
def create_namespace(
    name: Annotated[str, typer.Argument(help="Namespace to create")],
):
    """Create a namespace."""
    catalog = _get_catalog()
    if catalog.lifecycle.create_namespace(name):
        typer.echo(f"Created namespace {name}")
    else:
        typer.echo(f"Namespace {name} already exists")


@app.command()
def deploy(
    definition: Annotated[Path, typer.Argument(
        help="Application definition (JSON)", exists=True, dir_okay=False,
    )],
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
):
    """
    Deploy or redeploy an application from a JSON definition.

    \b
    Example definition:
        {"name": "PurchaseApp", "mainClass": "com.example.PurchaseApp",
         "programs": [{"type": "flow", "name": "PurchaseFlow"}],
         "streams": [{"name": "purchases"}]}
    """
    try:
        data = json.loads(definition.read_text())
    except (OSError, ValueError) as e:
        _fail(f"Cannot read {definition}: {e}")
    catalog = _get_catalog()
    try:
        app_id = catalog.lifecycle.deploy_application(namespace, ApplicationSpec.from_dict(data))
    except MetadataError as e:
        _fail(str(e))
    typer.echo(f"Deployed {app_id.key}")


@app.command("create-stream")
def create_stream(
    name: Annotated[str, typer.Argument(help="Stream name")],
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    ttl: Annotated[Optional[int], typer.Option(
        "--ttl", help="Retention in seconds (default: forever)"
    )] = None,
):
    """Create a stream with the default body schema."""
    catalog = _get_catalog()
    spec = StreamSpec(name) if ttl is None else StreamSpec(name, ttl=ttl)
    try:
        stream = catalog.lifecycle.create_stream(namespace, spec)
    except MetadataError as e:
        _fail(str(e))
    typer.echo(f"Created {stream.key}")


@app.command("create-dataset")
def create_dataset(
    name: Annotated[str, typer.Argument(help="Dataset name")],
    namespace: NamespaceOption = DEFAULT_NAMESPACE,
    dataset_type: Annotated[str, typer.Option(
        "--type", help="Dataset implementation, e.g. table or keyValueTable"
    )] = "table",
):
    """Create a dataset instance."""
    catalog = _get_catalog()
    try:
        dataset = catalog.lifecycle.create_dataset(namespace, DatasetSpec(name, type=dataset_type))
    except MetadataError as e:
        _fail(str(e))
    typer.echo(f"Created {dataset.key}")


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------

@app.command()
def config():
    """Show the store location and configuration."""
    catalog = _get_catalog()
    cfg = catalog.config
    data = {
        "store": str(catalog.store_path),
        "config_file": str(cfg.config_path),
        "limits": {
            "max_key_length": cfg.limits.max_key_length,
            "max_value_length": cfg.limits.max_value_length,
            "max_tag_length": cfg.limits.max_tag_length,
            "max_properties": cfg.limits.max_properties,
            "max_tags": cfg.limits.max_tags,
        },
        "server": {"host": cfg.server.host, "port": cfg.server.port},
    }
    if _get_json_output():
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(f"store: {data['store']}")
        typer.echo(f"config: {data['config_file']}")
        for key, value in data["limits"].items():
            typer.echo(f"{key}: {value}")
        typer.echo(f"server: {cfg.server.host}:{cfg.server.port}")


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option(
        "--host",
        help="Bind address (default from config)"
    )] = None,
    port: Annotated[Optional[int], typer.Option(
        "--port", "-p",
        help="Port (default from config)"
    )] = None,
):
    """Serve the HTTP API."""
    from .server import serve as run_server

    catalog = _get_catalog()
    typer.echo(f"Serving {catalog.store_path}", err=True)
    run_server(catalog, host=host, port=port)


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="metacatalog CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
