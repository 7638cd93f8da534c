"""Federated tables registry.

Registers external database servers for a tenant, exposes their schemas and
tables, and imports individual remote tables as local views. Every operation
receives the caller's ``RequestContext`` and refuses callers without
federation capabilities before doing anything else.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, Mapping, TypeVar

from federated_tables_backend.app.core.config import FederationSettings, get_settings

from .classifier import classify_store_error
from .errors import NotFoundError, UnauthorizedError
from .models import (
    Created,
    FederatedServer,
    RemoteSchema,
    RemoteTable,
    RequestContext,
    ServerAttributes,
    TableAttributes,
    Updated,
    UpsertResult,
)
from .pagination import (
    REMOTE_SCHEMA_LISTING,
    REMOTE_TABLE_LISTING,
    SERVER_LISTING,
    ListingSpec,
    Page,
    Pagination,
    paginate,
    parse_pagination,
)
from .steps import FederationStep, run_steps
from .store import DuckDBFederationStore, FederationStore
from .validation import (
    validate_server_registration,
    validate_server_update,
    validate_table_registration,
    validate_table_update,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")


class FederatedTablesService:
    """Registry operations for one tenant's federation store."""

    def __init__(self, store: FederationStore, settings: FederationSettings):
        self.store = store
        self.settings = settings

    # =========================================================================
    # Helpers
    # =========================================================================

    def _authorize(self, ctx: RequestContext) -> None:
        if not ctx.can_manage_federation:
            logger.warning("Federation access refused tenant=%s role=%s", ctx.tenant_id, ctx.db_role)
            raise UnauthorizedError("Unauthorized: missing federation permissions")

    def _call(self, action: Callable[[], R]) -> R:
        """Run a store call, translating engine errors into registry errors."""
        try:
            return action()
        except Exception as exc:
            raise classify_store_error(exc) from exc

    def _mask(self, server: FederatedServer) -> FederatedServer:
        return server.masked(self.settings.password_mask)

    def build_pagination(self, params: Mapping[str, Any], listing: ListingSpec) -> Pagination:
        return parse_pagination(
            params,
            listing,
            default_per_page=self.settings.default_per_page,
            max_per_page=self.settings.max_per_page,
        )

    # =========================================================================
    # Federated servers
    # =========================================================================

    def list_servers(self, ctx: RequestContext, pagination: Pagination) -> Page[FederatedServer]:
        self._authorize(ctx)
        servers = self._call(self.store.list_servers)
        total = self._call(self.store.count_servers)
        page = paginate(servers, pagination, SERVER_LISTING, total_count=total)
        return Page(
            items=[self._mask(s) for s in page.items],
            total_count=page.total_count,
            pagination=page.pagination,
        )

    def _register(self, ctx: RequestContext, attrs: ServerAttributes) -> FederatedServer:
        server = attrs.to_server()
        created, _ = run_steps(
            "register_server",
            [
                FederationStep("create_server", lambda: self.store.create_server(server)),
                FederationStep(
                    "grant_access",
                    lambda: self.store.grant_server_access(server.name, ctx.db_role),
                ),
            ],
        )
        logger.info("Registered federated server name=%s tenant=%s", server.name, ctx.tenant_id)
        return self._mask(created)

    def register_server(
        self, ctx: RequestContext, params: Mapping[str, Any]
    ) -> Created[FederatedServer]:
        """Create a federated server and grant the caller's role access to it."""
        self._authorize(ctx)
        attrs = validate_server_registration(params, read_only_mode=self.settings.read_only_mode)
        server = self._register(ctx, attrs)
        return Created(server, location=server.name)

    def get_server(self, ctx: RequestContext, name: str) -> FederatedServer:
        self._authorize(ctx)
        server = self._call(lambda: self.store.get_server(name))
        if server is None:
            raise NotFoundError(f"Federated server key not found: {name}")
        return self._mask(server)

    def update_server(
        self, ctx: RequestContext, name: str, params: Mapping[str, Any]
    ) -> UpsertResult[FederatedServer]:
        """Alter a server in place, or register it when it does not exist yet."""
        self._authorize(ctx)
        attrs = validate_server_update(name, params, read_only_mode=self.settings.read_only_mode)
        existing = self._call(lambda: self.store.get_server(name))
        if existing is None:
            return Created(self._register(ctx, attrs))
        server = self._call(lambda: self.store.alter_server(attrs.to_server()))
        logger.info("Updated federated server name=%s tenant=%s", name, ctx.tenant_id)
        return Updated(self._mask(server))

    def unregister_server(self, ctx: RequestContext, name: str) -> None:
        """Revoke the caller's role access, then drop the server."""
        self._authorize(ctx)
        if self._call(lambda: self.store.get_server(name)) is None:
            raise NotFoundError(f"Federated server key not found: {name}")
        run_steps(
            "unregister_server",
            [
                FederationStep(
                    "revoke_access",
                    lambda: self.store.revoke_server_access(name, ctx.db_role),
                ),
                FederationStep("drop_server", lambda: self.store.drop_server(name)),
            ],
        )
        logger.info("Unregistered federated server name=%s tenant=%s", name, ctx.tenant_id)

    # =========================================================================
    # Remote schemas and tables
    # =========================================================================

    def list_remote_schemas(
        self, ctx: RequestContext, server_name: str, pagination: Pagination
    ) -> Page[RemoteSchema]:
        self._authorize(ctx)
        schemas = self._call(lambda: self.store.list_remote_schemas(server_name))
        total = self._call(lambda: self.store.count_remote_schemas(server_name))
        return paginate(schemas, pagination, REMOTE_SCHEMA_LISTING, total_count=total)

    def list_remote_tables(
        self,
        ctx: RequestContext,
        server_name: str,
        schema_name: str,
        pagination: Pagination,
    ) -> Page[RemoteTable]:
        self._authorize(ctx)
        tables = self._call(lambda: self.store.list_remote_tables(server_name, schema_name))
        total = self._call(lambda: self.store.count_remote_tables(server_name, schema_name))
        return paginate(tables, pagination, REMOTE_TABLE_LISTING, total_count=total)

    def _import(self, attrs: TableAttributes) -> RemoteTable:
        table = self._call(lambda: self.store.import_table(attrs))
        logger.info(
            "Registered remote table server=%s table=%s.%s",
            attrs.federated_server_name,
            attrs.remote_schema_name,
            attrs.remote_table_name,
        )
        return table

    def register_table(
        self,
        ctx: RequestContext,
        server_name: str,
        schema_name: str,
        params: Mapping[str, Any],
    ) -> Created[RemoteTable]:
        """Import a remote table as a local view."""
        self._authorize(ctx)
        attrs = validate_table_registration(server_name, schema_name, params)
        table = self._import(attrs)
        return Created(table, location=table.remote_table_name)

    def get_remote_table(
        self,
        ctx: RequestContext,
        server_name: str,
        schema_name: str,
        table_name: str,
    ) -> RemoteTable:
        self._authorize(ctx)
        table = self._call(
            lambda: self.store.get_remote_table(server_name, schema_name, table_name)
        )
        if table is None:
            raise NotFoundError(
                f"Remote table key not found: {server_name}/{schema_name}.{table_name}"
            )
        return table

    def update_table(
        self,
        ctx: RequestContext,
        server_name: str,
        schema_name: str,
        table_name: str,
        params: Mapping[str, Any],
    ) -> UpsertResult[RemoteTable]:
        """Re-map a registered table, or register it when it is not registered yet."""
        self._authorize(ctx)
        attrs = validate_table_update(server_name, schema_name, table_name, params)
        existing = self._call(
            lambda: self.store.get_remote_table(server_name, schema_name, table_name)
        )
        if existing is None or not existing.registered:
            return Created(self._import(attrs))
        table = self._call(lambda: self.store.alter_table_mapping(attrs))
        logger.info(
            "Updated remote table server=%s table=%s.%s", server_name, schema_name, table_name
        )
        return Updated(table)

    def unregister_table(
        self,
        ctx: RequestContext,
        server_name: str,
        schema_name: str,
        table_name: str,
    ) -> None:
        self._authorize(ctx)
        table = self._call(
            lambda: self.store.get_remote_table(server_name, schema_name, table_name)
        )
        if table is None:
            raise NotFoundError(
                f"Remote table key not found: {server_name}/{schema_name}.{table_name}"
            )
        self._call(lambda: self.store.drop_table_mapping(server_name, schema_name, table_name))
        logger.info(
            "Unregistered remote table server=%s table=%s.%s", server_name, schema_name, table_name
        )


@lru_cache(maxsize=32)
def get_federation_service(tenant_id: str, db_role: str) -> FederatedTablesService:
    """Get the registry service bound to a tenant's warehouse and database role."""
    settings = get_settings()
    store = DuckDBFederationStore(
        settings.tenant_warehouse(tenant_id),
        db_role=db_role,
        import_schema=settings.federation.import_schema,
    )
    return FederatedTablesService(store, settings.federation)
