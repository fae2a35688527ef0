"""FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncEngine

from cmstools.audit import AuditLogger, AuditLogReader, RequestInfo
from cmstools.auth import JWTService, PermissionResolver, UserContext
from cmstools.auth.dependencies import require_admin, require_authenticated
from cmstools.auth.middleware import authenticate_request
from cmstools.config import Settings
from cmstools.errors import CmsError, ConflictError, TargetDatabaseError
from cmstools.lookups import LookupResolver, MemoryLookupCache
from cmstools.metadata.store import MetadataStore
from cmstools.persistence.engines import EngineRegistry, create_async_engine_pooled
from cmstools.router.router import DEFAULT_PAGE_SIZE, QueryRouter
from cmstools.services.data import DataService

logger = logging.getLogger(__name__)

FILTER_PREFIX = "f_"

# Global instances (initialized on startup)
settings: Settings | None = None
metadata_engine: AsyncEngine | None = None
engines: EngineRegistry | None = None
store: MetadataStore | None = None
data_service: DataService | None = None
audit_reader: AuditLogReader | None = None
jwt_service: JWTService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    global settings, metadata_engine, engines, store, data_service, audit_reader
    global jwt_service

    settings = Settings.from_env()
    metadata_engine = create_async_engine_pooled(settings.database_url)
    engines = EngineRegistry()
    store = MetadataStore(metadata_engine)

    router = QueryRouter(engines)
    lookup_cache = MemoryLookupCache(ttl_seconds=settings.lookup_ttl_minutes * 60)
    data_service = DataService(
        store=store,
        permissions=PermissionResolver(metadata_engine),
        router=router,
        lookups=LookupResolver(engines, lookup_cache),
        audit=AuditLogger(metadata_engine, store),
    )
    audit_reader = AuditLogReader(metadata_engine)

    if settings.disable_auth:
        logger.warning("Authentication disabled; trusting X-CMS-User-Id headers")
        jwt_service = None
    else:
        jwt_service = JWTService(settings.secret_key)

    yield

    # Cleanup
    await engines.dispose()
    await metadata_engine.dispose()


app = FastAPI(title="CMS Tools API", lifespan=lifespan)


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    """Extract the acting user from the request."""
    authenticate_request(
        request,
        jwt_service,
        disable_auth=bool(settings and settings.disable_auth),
    )
    return await call_next(request)


@app.exception_handler(CmsError)
async def cms_error_handler(request: Request, exc: CmsError) -> JSONResponse:
    detail = exc.message
    if isinstance(exc, (ConflictError, TargetDatabaseError)) and not (
        settings and settings.expose_db_errors
    ):
        detail = (
            "The change conflicts with existing data."
            if isinstance(exc, ConflictError)
            else "The target database rejected the request."
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})


def _services() -> tuple[MetadataStore, DataService]:
    if not store or not data_service:
        raise HTTPException(500, "Not initialized")
    return store, data_service


def _request_info(request: Request) -> RequestInfo:
    client_host = request.client.host if request.client else None
    return RequestInfo.from_headers(client_host, request.headers)


def _raw_filters(request: Request) -> dict[str, str]:
    """Query parameters named f_<column> are list filters."""
    return {
        key[len(FILTER_PREFIX):]: value
        for key, value in request.query_params.items()
        if key.startswith(FILTER_PREFIX) and len(key) > len(FILTER_PREFIX)
    }


class RowValues(BaseModel):
    values: dict[str, Any]


class StatusChange(BaseModel):
    status: Any


# --- Health ---


@app.get("/api/health/live")
async def live():
    return {"status": "ok"}


@app.get("/api/health/connections")
async def connection_health(user: UserContext = Depends(require_admin)):
    """SELECT 1 against every active connection."""
    meta, _ = _services()
    results = []
    for connection in await meta.get_all_connections():
        health = await engines.check_health(connection)
        results.append(health.to_dict())
    return {"data": results}


# --- Metadata ---


@app.get("/api/me")
async def me(user: UserContext = Depends(require_authenticated)):
    return user.to_dict()


@app.get("/api/connections")
async def list_connections(user: UserContext = Depends(require_authenticated)):
    meta, _ = _services()
    connections = await meta.get_all_connections()
    return {"data": [c.to_dict() for c in connections]}


@app.get("/api/connections/{connection_id}/tables")
async def list_tables(connection_id: int, user: UserContext = Depends(require_authenticated)):
    meta, _ = _services()
    connection = await meta.get_connection(connection_id)
    if connection is None:
        raise HTTPException(404, "Connection not found or inactive")
    tables = await meta.get_tables_for_connection(connection_id)
    return {"data": [t.to_dict() for t in tables]}


@app.get("/api/tables/{table_id}")
async def describe_table(table_id: int, user: UserContext = Depends(require_authenticated)):
    _, service = _services()
    ctx = await service.describe_table(user, table_id)
    return ctx.to_dict()


# --- Rows ---


@app.get("/api/tables/{table_id}/rows")
async def list_rows(
    table_id: int,
    request: Request,
    page: int = 1,
    pageSize: int = DEFAULT_PAGE_SIZE,
    user: UserContext = Depends(require_authenticated),
):
    """List rows. Filters are passed as f_<column>=<value>."""
    _, service = _services()
    result = await service.list_rows(user, table_id, _raw_filters(request), page, pageSize)
    return result.to_dict()


@app.get("/api/tables/{table_id}/rows/{pk}")
async def get_row(table_id: int, pk: str, user: UserContext = Depends(require_authenticated)):
    _, service = _services()
    row = await service.get_row(user, table_id, pk)
    return {"data": row}


@app.post("/api/tables/{table_id}/rows", status_code=201)
async def create_row(
    table_id: int,
    body: RowValues,
    request: Request,
    user: UserContext = Depends(require_authenticated),
):
    _, service = _services()
    key, row = await service.create_row(user, table_id, body.values, _request_info(request))
    return {"id": key, "data": row}


@app.put("/api/tables/{table_id}/rows/{pk}")
async def update_row(
    table_id: int,
    pk: str,
    body: RowValues,
    request: Request,
    user: UserContext = Depends(require_authenticated),
):
    _, service = _services()
    row = await service.update_row(user, table_id, pk, body.values, _request_info(request))
    return {"data": row}


@app.post("/api/tables/{table_id}/rows/{pk}/status")
async def set_status(
    table_id: int,
    pk: str,
    body: StatusChange,
    request: Request,
    user: UserContext = Depends(require_authenticated),
):
    _, service = _services()
    row = await service.set_status(user, table_id, pk, body.status, _request_info(request))
    return {"data": row}


@app.get("/api/tables/{table_id}/lookups")
async def lookups(table_id: int, user: UserContext = Depends(require_authenticated)):
    _, service = _services()
    options = await service.lookups(user, table_id)
    return {"data": {name: [o.to_dict() for o in opts] for name, opts in options.items()}}


@app.get("/api/tables/{table_id}/export.csv")
async def export_csv(
    table_id: int,
    request: Request,
    user: UserContext = Depends(require_authenticated),
):
    _, service = _services()
    body = await service.export_csv(user, table_id, _raw_filters(request))
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="table_{table_id}.csv"'},
    )


# --- Audit ---


@app.get("/api/audit")
async def list_audit(
    op: str | None = None,
    table: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    pageSize: int = 100,
    user: UserContext = Depends(require_admin),
):
    if not audit_reader:
        raise HTTPException(500, "Not initialized")
    result = await audit_reader.list_entries(op, table, date_from, date_to, page, pageSize)
    return {
        "data": [e.to_dict() for e in result.entries],
        "total": result.total,
        "page": result.page,
        "pageSize": result.page_size,
    }


@app.get("/api/audit/{entry_id}")
async def get_audit_entry(entry_id: int, user: UserContext = Depends(require_admin)):
    if not audit_reader:
        raise HTTPException(500, "Not initialized")
    entry = await audit_reader.get_entry(entry_id)
    if entry is None:
        raise HTTPException(404, "Audit entry not found")
    return {"data": entry.to_dict()}
