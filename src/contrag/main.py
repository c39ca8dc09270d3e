"""HTTP service exposing ingestion, search and namespace management."""
from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from .app_context import AppContext
from .entity import EntityRelationship, MappingEntity, RelationshipType
from .errors import (
    CancellationRequestedError,
    ConfigurationError,
    ContragError,
    DimensionMismatchError,
    EntityNotFoundError,
    InvalidEntityTypeError,
    NamespaceNotFoundError,
    ProviderError,
)
from .logging_config import configure_logging
from .pipeline import IngestResult
from .vectorstore import SearchResult

LOGGER = logging.getLogger(__name__)


class IngestRequest(BaseModel):
    """Request body accepted by the text ingest endpoint."""

    entity_type: str = Field(..., min_length=1)
    entity_id: str = Field(..., min_length=1)
    text: str = Field(..., description="Text to chunk, embed and store.")
    custom: dict[str, Any] | None = None


class IngestResponse(BaseModel):
    namespace: str
    entity_type: str
    entity_id: str
    chunk_count: int
    vector_ids: list[str]
    removed_ids: list[str]
    duration_seconds: float


class RelationshipPayload(BaseModel):
    field_name: str = Field(..., min_length=1)
    target_entity_type: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1)
    relationship_type: RelationshipType = RelationshipType.ONE_TO_MANY


class EntityPayload(BaseModel):
    """Structured record registered for graph-aware ingestion."""

    entity_type: str = Field(..., min_length=1)
    entity_id: str = Field(..., min_length=1)
    fields: dict[str, Any] = Field(default_factory=dict)
    relationships: list[RelationshipPayload] = Field(default_factory=list)


class EntityIngestRequest(BaseModel):
    follow_relationships: bool | None = Field(
        None, description="Defaults to the entity type's configured auto_include setting."
    )
    custom: dict[str, Any] | None = None


class SearchRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Query text to search for similar chunks.")
    k: int = Field(5, ge=1, le=100, description="Number of results to return.")
    timeout_ms: float | None = Field(None, gt=0, description="Abort the scan after this many milliseconds.")


class SearchResponseItem(BaseModel):
    id: str
    score: float
    source_text: str
    metadata: dict[str, Any]


class SearchResponse(BaseModel):
    namespace: str
    results: list[SearchResponseItem]


class NamespaceInfo(BaseModel):
    name: str
    count: int
    dimension: int | None


def _to_http_error(error: ContragError) -> HTTPException:
    if isinstance(error, (NamespaceNotFoundError, EntityNotFoundError)):
        status = 404
    elif isinstance(error, (DimensionMismatchError, ConfigurationError, InvalidEntityTypeError)):
        status = 422
    elif isinstance(error, ProviderError):
        status = 502
    elif isinstance(error, CancellationRequestedError):
        status = 504
    else:
        status = 500
    return HTTPException(status_code=status, detail=str(error))


def get_app_context(request: Request) -> AppContext:
    """FastAPI dependency returning the shared :class:`AppContext`."""

    context: AppContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service is not initialised")
    return context


def _serialize_ingest(result: IngestResult) -> IngestResponse:
    return IngestResponse(
        namespace=result.namespace,
        entity_type=result.entity_type,
        entity_id=result.entity_id,
        chunk_count=result.chunk_count,
        vector_ids=result.vector_ids,
        removed_ids=result.removed_ids,
        duration_seconds=result.duration_seconds,
    )


def _serialize_result(result: SearchResult) -> SearchResponseItem:
    return SearchResponseItem(
        id=result.vector_id,
        score=result.score,
        source_text=result.source_text,
        metadata=result.metadata.to_dict(),
    )


def create_app(context: AppContext | None = None) -> FastAPI:
    """Build the service around *context*, or a context loaded from config at startup."""

    app = FastAPI(title="contrag")
    app.state.context = context

    @app.on_event("startup")
    def _startup() -> None:
        if app.state.context is None:
            app.state.context = AppContext.from_config()
        app.state.context.init()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        ctx: AppContext | None = app.state.context
        if ctx is None:
            return
        try:
            ctx.checkpoint()
        except ContragError:
            LOGGER.exception("Failed to write checkpoint on shutdown")

    @app.get("/", response_class=PlainTextResponse)
    def read_root() -> str:
        """Healthcheck endpoint for the service."""
        return "ok"

    @app.get("/healthz")
    def healthcheck(ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
        result = ctx.provider.test_connection()
        if not result.connected:
            raise HTTPException(status_code=503, detail=result.error or "embedding provider unavailable")
        return {
            "status": "ok",
            "provider": result.plugin,
            "latency_ms": result.latency_ms,
            "namespaces": len(ctx.store.list_namespaces()),
        }

    @app.get("/namespaces", response_model=list[NamespaceInfo])
    def list_namespaces(ctx: AppContext = Depends(get_app_context)) -> list[NamespaceInfo]:
        infos: list[NamespaceInfo] = []
        for name in ctx.store.list_namespaces():
            try:
                infos.append(NamespaceInfo(name=name, count=ctx.store.count(name), dimension=ctx.store.dimension(name)))
            except NamespaceNotFoundError:
                continue
        return infos

    @app.get("/namespaces/{namespace}")
    def namespace_stats(namespace: str, ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
        stats = ctx.pipeline.namespace_stats(namespace)
        if not stats["exists"]:
            raise HTTPException(status_code=404, detail=f"Namespace not found: {namespace}")
        return stats

    @app.post("/namespaces/{namespace}/ingest", response_model=IngestResponse)
    def ingest_text(
        namespace: str,
        request: IngestRequest,
        ctx: AppContext = Depends(get_app_context),
    ) -> IngestResponse:
        """Chunk, embed and store one entity's text."""

        try:
            result = ctx.pipeline.ingest_text(
                namespace,
                request.entity_type,
                request.entity_id,
                request.text,
                custom=request.custom,
            )
        except ContragError as exc:
            raise _to_http_error(exc) from exc
        return _serialize_ingest(result)

    @app.post("/entities", status_code=201)
    def register_entity(payload: EntityPayload, ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
        links = [
            EntityRelationship(
                field_name=link.field_name,
                target_entity_type=link.target_entity_type,
                target_id=link.target_id,
                relationship_type=link.relationship_type,
            )
            for link in payload.relationships
        ]
        for link in ctx.entity_links(payload.entity_type, payload.fields):
            if link not in links:
                links.append(link)
        ctx.registry.register(
            MappingEntity(
                entity_type=payload.entity_type,
                entity_id=payload.entity_id,
                fields=payload.fields,
                links=links,
            )
        )
        return {
            "entity_type": payload.entity_type,
            "entity_id": payload.entity_id,
            "relationships": len(links),
        }

    @app.post("/namespaces/{namespace}/entities/{entity_type}/{entity_id}", response_model=IngestResponse)
    def ingest_entity(
        namespace: str,
        entity_type: str,
        entity_id: str,
        request: EntityIngestRequest | None = None,
        ctx: AppContext = Depends(get_app_context),
    ) -> IngestResponse:
        """Ingest a registered entity together with its related entities."""

        options = request or EntityIngestRequest()
        follow = options.follow_relationships
        if follow is None:
            follow = ctx.follows_relationships(entity_type)
        try:
            result = ctx.pipeline.ingest_entity(
                namespace,
                ctx.registry,
                entity_type,
                entity_id,
                follow_relationships=follow,
                custom=options.custom,
            )
        except ContragError as exc:
            raise _to_http_error(exc) from exc
        return _serialize_ingest(result)

    @app.post("/namespaces/{namespace}/search", response_model=SearchResponse)
    def search(
        namespace: str,
        request: SearchRequest,
        ctx: AppContext = Depends(get_app_context),
    ) -> SearchResponse:
        """Return the chunks most similar to the query text."""

        deadline = time.monotonic() + request.timeout_ms / 1000.0 if request.timeout_ms else None
        try:
            results = ctx.pipeline.query(namespace, request.text, request.k, deadline=deadline)
        except ContragError as exc:
            raise _to_http_error(exc) from exc
        return SearchResponse(namespace=namespace, results=[_serialize_result(item) for item in results])

    @app.delete("/namespaces/{namespace}")
    def delete_namespace(namespace: str, ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
        if not ctx.store.delete_namespace(namespace):
            raise HTTPException(status_code=404, detail=f"Namespace not found: {namespace}")
        return {"namespace": namespace, "deleted": True}

    @app.delete("/namespaces/{namespace}/vectors/{vector_id}")
    def delete_vector(namespace: str, vector_id: str, ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
        if not ctx.store.delete(namespace, vector_id):
            raise HTTPException(status_code=404, detail=f"Vector not found: {vector_id}")
        return {"namespace": namespace, "id": vector_id, "deleted": True}

    @app.post("/checkpoint")
    def checkpoint(ctx: AppContext = Depends(get_app_context)) -> dict[str, bool]:
        try:
            saved = ctx.checkpoint()
        except ContragError as exc:
            raise _to_http_error(exc) from exc
        return {"saved": saved}

    return app


def build_app() -> FastAPI:
    """Entry point for ``uvicorn --factory contrag.main:build_app``."""

    configure_logging()
    return create_app()


__all__ = ["create_app", "build_app", "get_app_context"]
