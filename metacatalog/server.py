"""
HTTP surface for the metadata catalog (FastAPI + Uvicorn).

Entity routes live under ``/v3/namespaces/{namespace}/{entity path}/metadata``
where the entity path is one of the shapes accepted by
``metacatalog.entity.parse_entity_path``. Handlers are plain ``def`` so
requests run concurrently in the server's threadpool.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from .api import MetadataCatalog
from .entity import EntityId, parse_entity_path
from .errors import InternalError, MetadataError, log_exception

logger = logging.getLogger(__name__)

API_PREFIX = "/v3"

router = APIRouter(prefix=f"{API_PREFIX}/namespaces/{{namespace}}", tags=["metadata"])


def get_catalog(request: Request) -> MetadataCatalog:
    return request.app.state.catalog


def _entity(namespace: str, entity_path: str) -> EntityId:
    return parse_entity_path(namespace, entity_path)


def _ok() -> Response:
    return Response(status_code=200)


# ─── Search ───
# Registered before the entity routes so "metadata/search" is never read as
# an entity path.

@router.get("/metadata/search")
def search_metadata(
    namespace: str,
    query: Optional[str] = None,
    target: Optional[str] = None,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    """Search metadata visible from a namespace."""
    results = catalog.search(namespace, query, target)
    return [r.to_dict() for r in sorted(results, key=lambda r: r.entity.key)]


# ─── Read ───

@router.get("/{entity_path:path}/metadata")
def get_metadata(
    namespace: str,
    entity_path: str,
    scope: Optional[str] = None,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    records = catalog.get_metadata(_entity(namespace, entity_path), scope)
    return [r.to_dict() for r in records]


@router.get("/{entity_path:path}/metadata/properties")
def get_properties(
    namespace: str,
    entity_path: str,
    scope: Optional[str] = None,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    return catalog.get_properties(_entity(namespace, entity_path), scope)


@router.get("/{entity_path:path}/metadata/tags")
def get_tags(
    namespace: str,
    entity_path: str,
    scope: Optional[str] = None,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    return sorted(catalog.get_tags(_entity(namespace, entity_path), scope))


# ─── Write ───

@router.post("/{entity_path:path}/metadata/properties")
def add_properties(
    namespace: str,
    entity_path: str,
    properties: Optional[dict[str, str]] = Body(default=None),
    scope: Optional[str] = None,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    catalog.add_properties(_entity(namespace, entity_path), properties, scope)
    return _ok()


@router.post("/{entity_path:path}/metadata/tags")
def add_tags(
    namespace: str,
    entity_path: str,
    tags: Optional[list[str]] = Body(default=None),
    scope: Optional[str] = None,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    catalog.add_tags(_entity(namespace, entity_path), tags, scope)
    return _ok()


# ─── Delete ───
# Starlette tries routes in order and ``path`` is greedy: a key or tag
# named "metadata" must reach the targeted routes before the bulk ones.

@router.delete("/{entity_path:path}/metadata/properties/{key}")
def remove_property(
    namespace: str,
    entity_path: str,
    key: str,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    catalog.remove_property(_entity(namespace, entity_path), key)
    return _ok()


@router.delete("/{entity_path:path}/metadata/tags/{tag}")
def remove_tag(
    namespace: str,
    entity_path: str,
    tag: str,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    catalog.remove_tag(_entity(namespace, entity_path), tag)
    return _ok()


@router.delete("/{entity_path:path}/metadata/properties")
def remove_properties(
    namespace: str,
    entity_path: str,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    catalog.remove_properties(_entity(namespace, entity_path))
    return _ok()


@router.delete("/{entity_path:path}/metadata/tags")
def remove_tags(
    namespace: str,
    entity_path: str,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    catalog.remove_tags(_entity(namespace, entity_path))
    return _ok()


@router.delete("/{entity_path:path}/metadata")
def remove_metadata(
    namespace: str,
    entity_path: str,
    catalog: MetadataCatalog = Depends(get_catalog),
):
    catalog.remove_metadata(_entity(namespace, entity_path))
    return _ok()


def _error_response(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Map catalog errors to 400/404/500."""

    @app.exception_handler(MetadataError)
    async def metadata_error_handler(request: Request, exc: MetadataError) -> JSONResponse:
        if isinstance(exc, InternalError):
            log_path = log_exception(exc, f"{request.method} {request.url.path}")
            logger.warning("Internal error on %s (details in %s)", request.url.path, log_path)
        return _error_response(exc.status_code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Malformed bodies are bad requests like any other validation failure
        messages = []
        for error in exc.errors():
            loc = ".".join(str(part) for part in error.get("loc", []))
            messages.append(f"{loc}: {error.get('msg', '')}")
        return _error_response(400, "; ".join(messages) or "Invalid request")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log_path = log_exception(exc, f"{request.method} {request.url.path}")
        logger.error("Unexpected error on %s (details in %s)", request.url.path, log_path)
        return _error_response(500, str(exc))


def create_app(catalog: Optional[MetadataCatalog] = None) -> FastAPI:
    """
    Factory function to create the FastAPI application.

    Args:
        catalog: Catalog to serve. When omitted one is opened at the default
            store path and closed on shutdown.
    """
    owned = catalog is None
    if catalog is None:
        catalog = MetadataCatalog()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owned:
            app.state.catalog.close()

    app = FastAPI(
        title="Metadata Catalog",
        description="User and system metadata for platform entities, with search",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.catalog = catalog

    register_exception_handlers(app)

    @app.get("/ping")
    def ping():
        return {"status": "ok"}

    app.include_router(router)
    return app


def serve(catalog: MetadataCatalog, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the HTTP server until interrupted."""
    import uvicorn

    server_config = catalog.config.server
    host = host or server_config.host
    port = port or server_config.port
    logger.info("Serving metadata catalog on %s:%d", host, port)
    uvicorn.run(create_app(catalog), host=host, port=port, log_level="warning")
