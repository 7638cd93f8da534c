"""Federated tables API router.

Provides REST endpoints for:
1. Registering, updating and removing federated servers
2. Browsing remote schemas and tables of a server
3. Importing remote tables as local views
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from federated_tables_backend.app.api.deps import get_request_context
from federated_tables_backend.app.services.federation import (
    REMOTE_SCHEMA_LISTING,
    REMOTE_TABLE_LISTING,
    SERVER_LISTING,
    Created,
    FederatedServer,
    FederationError,
    Page,
    RemoteTable,
    RequestContext,
    get_federation_service,
    page_links,
)


router = APIRouter(prefix="/federated_servers", tags=["federated_tables"])


# =============================================================================
# Response Models
# =============================================================================


class FederatedServerResponse(BaseModel):
    """A federated server; the password is always masked."""

    federated_server_name: str
    mode: str
    dbname: Optional[str] = None
    host: str
    port: Optional[int] = None
    username: str
    password: str


class RemoteSchemaResponse(BaseModel):
    remote_schema_name: str


class RemoteColumnResponse(BaseModel):
    name: str
    type: str


class RemoteTableResponse(BaseModel):
    """A remote table. Unregistered tables only carry discovery fields."""

    registered: bool
    federated_server_name: Optional[str] = None
    remote_schema_name: str
    remote_table_name: str
    local_table_name_override: Optional[str] = None
    id_column_name: Optional[str] = None
    geom_column_name: Optional[str] = None
    webmercator_column_name: Optional[str] = None
    columns: List[RemoteColumnResponse] = Field(default_factory=list)


class _PageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    count: int
    total_count: int
    links: Dict[str, Dict[str, str]] = Field(alias="_links")


class FederatedServerPage(_PageResponse):
    items: List[FederatedServerResponse]


class RemoteSchemaPage(_PageResponse):
    items: List[RemoteSchemaResponse]


class RemoteTablePage(_PageResponse):
    items: List[RemoteTableResponse]


# =============================================================================
# Helpers
# =============================================================================


def _http_error(error: FederationError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


def _body(payload: Any) -> Any:
    """An absent body counts as an empty object; anything else goes to validation."""
    return {} if payload is None else payload


def _page_payload(page: Page[Any], request: Request) -> Dict[str, Any]:
    return {
        "items": [item.to_dict() for item in page.items],
        "count": len(page.items),
        "total_count": page.total_count,
        "_links": page_links(
            page, lambda number: str(request.url.include_query_params(page=number))
        ),
    }


def _server_response(server: FederatedServer) -> FederatedServerResponse:
    return FederatedServerResponse(**server.to_dict())


def _table_response(table: RemoteTable) -> RemoteTableResponse:
    return RemoteTableResponse(**table.to_dict())


def _created_response(result: Created[Any], request: Request, content: BaseModel) -> JSONResponse:
    location = request.url.path
    if result.location:
        location = f"{location.rstrip('/')}/{result.location}"
    return JSONResponse(
        status_code=201,
        content=content.model_dump(exclude_unset=True),
        headers={"Content-Location": location},
    )


# =============================================================================
# Federated Servers
# =============================================================================


@router.get("", response_model=FederatedServerPage, response_model_by_alias=True)
def list_federated_servers(
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
) -> FederatedServerPage:
    """List the tenant's federated servers."""
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        pagination = service.build_pagination(request.query_params, SERVER_LISTING)
        page = service.list_servers(ctx, pagination)
    except FederationError as e:
        raise _http_error(e) from e
    return FederatedServerPage.model_validate(_page_payload(page, request))


@router.post("", response_model=FederatedServerResponse, status_code=201)
def register_federated_server(
    request: Request,
    payload: Any = Body(None),
    ctx: RequestContext = Depends(get_request_context),
):
    """Register a federated server and grant the tenant role access to it."""
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        result = service.register_server(ctx, _body(payload))
    except FederationError as e:
        raise _http_error(e) from e
    return _created_response(result, request, _server_response(result.value))


@router.get("/{federated_server_name}", response_model=FederatedServerResponse)
def show_federated_server(
    federated_server_name: str,
    ctx: RequestContext = Depends(get_request_context),
) -> FederatedServerResponse:
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        server = service.get_server(ctx, federated_server_name)
    except FederationError as e:
        raise _http_error(e) from e
    return _server_response(server)


@router.put("/{federated_server_name}", status_code=204)
def update_federated_server(
    federated_server_name: str,
    request: Request,
    payload: Any = Body(None),
    ctx: RequestContext = Depends(get_request_context),
):
    """Update a federated server, registering it when it does not exist."""
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        result = service.update_server(ctx, federated_server_name, _body(payload))
    except FederationError as e:
        raise _http_error(e) from e
    if isinstance(result, Created):
        return _created_response(result, request, _server_response(result.value))
    return Response(status_code=204)


@router.delete("/{federated_server_name}", status_code=204)
def unregister_federated_server(
    federated_server_name: str,
    ctx: RequestContext = Depends(get_request_context),
):
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        service.unregister_server(ctx, federated_server_name)
    except FederationError as e:
        raise _http_error(e) from e
    return Response(status_code=204)


# =============================================================================
# Remote Schemas and Tables
# =============================================================================


@router.get(
    "/{federated_server_name}/remote_schemas",
    response_model=RemoteSchemaPage,
    response_model_by_alias=True,
)
def list_remote_schemas(
    federated_server_name: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
) -> RemoteSchemaPage:
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        pagination = service.build_pagination(request.query_params, REMOTE_SCHEMA_LISTING)
        page = service.list_remote_schemas(ctx, federated_server_name, pagination)
    except FederationError as e:
        raise _http_error(e) from e
    return RemoteSchemaPage.model_validate(_page_payload(page, request))


@router.get(
    "/{federated_server_name}/remote_schemas/{remote_schema_name}/remote_tables",
    response_model=RemoteTablePage,
    response_model_by_alias=True,
    response_model_exclude_unset=True,
)
def list_remote_tables(
    federated_server_name: str,
    remote_schema_name: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
) -> RemoteTablePage:
    """List tables of a remote schema; unregistered tables only show discovery fields."""
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        pagination = service.build_pagination(request.query_params, REMOTE_TABLE_LISTING)
        page = service.list_remote_tables(
            ctx, federated_server_name, remote_schema_name, pagination
        )
    except FederationError as e:
        raise _http_error(e) from e
    return RemoteTablePage.model_validate(_page_payload(page, request))


@router.post(
    "/{federated_server_name}/remote_schemas/{remote_schema_name}/remote_tables",
    response_model=RemoteTableResponse,
    status_code=201,
)
def register_remote_table(
    federated_server_name: str,
    remote_schema_name: str,
    request: Request,
    payload: Any = Body(None),
    ctx: RequestContext = Depends(get_request_context),
):
    """Import a remote table as a local view."""
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        result = service.register_table(
            ctx, federated_server_name, remote_schema_name, _body(payload)
        )
    except FederationError as e:
        raise _http_error(e) from e
    return _created_response(result, request, _table_response(result.value))


@router.get(
    "/{federated_server_name}/remote_schemas/{remote_schema_name}/remote_tables/{remote_table_name}",
    response_model=RemoteTableResponse,
    response_model_exclude_unset=True,
)
def show_remote_table(
    federated_server_name: str,
    remote_schema_name: str,
    remote_table_name: str,
    ctx: RequestContext = Depends(get_request_context),
) -> RemoteTableResponse:
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        table = service.get_remote_table(
            ctx, federated_server_name, remote_schema_name, remote_table_name
        )
    except FederationError as e:
        raise _http_error(e) from e
    return _table_response(table)


@router.put(
    "/{federated_server_name}/remote_schemas/{remote_schema_name}/remote_tables/{remote_table_name}",
    status_code=204,
)
def update_remote_table(
    federated_server_name: str,
    remote_schema_name: str,
    remote_table_name: str,
    request: Request,
    payload: Any = Body(None),
    ctx: RequestContext = Depends(get_request_context),
):
    """Update a table mapping, registering the table when it is not registered."""
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        result = service.update_table(
            ctx, federated_server_name, remote_schema_name, remote_table_name, _body(payload)
        )
    except FederationError as e:
        raise _http_error(e) from e
    if isinstance(result, Created):
        return _created_response(result, request, _table_response(result.value))
    return Response(status_code=204)


@router.delete(
    "/{federated_server_name}/remote_schemas/{remote_schema_name}/remote_tables/{remote_table_name}",
    status_code=204,
)
def unregister_remote_table(
    federated_server_name: str,
    remote_schema_name: str,
    remote_table_name: str,
    ctx: RequestContext = Depends(get_request_context),
):
    service = get_federation_service(ctx.tenant_id, ctx.db_role)
    try:
        service.unregister_table(
            ctx, federated_server_name, remote_schema_name, remote_table_name
        )
    except FederationError as e:
        raise _http_error(e) from e
    return Response(status_code=204)
