"""Shared fixtures for the federated tables backend tests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

os.environ.setdefault(
    "FEDTABLES_DATA_DIR__ROOT", tempfile.mkdtemp(prefix="federated-tables-tests-")
)

import duckdb
import pytest

from federated_tables_backend.app.core.config import FederationSettings, get_settings
from federated_tables_backend.app.services.duckdb_utils import quote_identifier, quote_literal
from federated_tables_backend.app.services.federation import (
    DuckDBFederationStore,
    EngineError,
    FederatedServer,
    FederatedTablesService,
    RemoteColumn,
    RemoteSchema,
    RemoteTable,
    RequestContext,
)
from federated_tables_backend.app.services.federation.models import TableAttributes
from federated_tables_backend.app.services.federation.service import get_federation_service
from federated_tables_backend.app.services.federation.store import server_alias


@pytest.fixture(autouse=True)
def clear_caches():
    get_settings.cache_clear()
    get_federation_service.cache_clear()
    yield
    get_settings.cache_clear()
    get_federation_service.cache_clear()


class LocalAttachStore(DuckDBFederationStore):
    """DuckDB store that attaches local DuckDB files instead of Postgres servers.

    ``remotes`` maps a server host to the DuckDB file standing in for it.
    """

    def __init__(self, warehouse_path: Path, remotes: Dict[str, Path], **kwargs):
        self.remotes = remotes
        super().__init__(warehouse_path, **kwargs)

    def _attach(self, con, server):
        path = self.remotes.get(server.host)
        if path is None:
            raise duckdb.IOException(f"IO Error: Unable to connect to {server.host}")
        con.execute(
            f"ATTACH {quote_literal(str(path))} "
            f"AS {quote_identifier(server_alias(server.name))} (READ_ONLY)"
        )


@pytest.fixture
def remote_db(tmp_path: Path) -> Path:
    """Create a DuckDB file playing the part of a remote database."""
    path = tmp_path / "remote.duckdb"
    con = duckdb.connect(str(path))
    try:
        con.execute("CREATE SCHEMA public")
        con.execute("CREATE SCHEMA archive")
        con.execute("CREATE TABLE public.parcels (id INTEGER, name VARCHAR, area DOUBLE)")
        con.execute("INSERT INTO public.parcels VALUES (1, 'north', 1.5), (2, 'south', 2.5)")
        con.execute("CREATE TABLE public.roads (road_id BIGINT, label VARCHAR)")
        con.execute("CREATE TABLE archive.old_parcels (id INTEGER)")
    finally:
        con.close()
    return path


@pytest.fixture
def warehouse_path(tmp_path: Path) -> Path:
    return tmp_path / "tenants" / "acme" / "warehouse.duckdb"


@pytest.fixture
def duckdb_store(warehouse_path: Path, remote_db: Path) -> LocalAttachStore:
    return LocalAttachStore(
        warehouse_path,
        {"db.example.com": remote_db},
        db_role="acme_role",
    )


# =============================================================================
# In-memory store double
# =============================================================================

_INTEGER_TYPES = {"INTEGER", "BIGINT", "SMALLINT"}


class FakeFederationStore:
    """In-memory ``FederationStore`` that records every call.

    ``failures`` maps an operation name to the exception it raises.
    """

    def __init__(self):
        self.servers: Dict[str, FederatedServer] = {}
        self.grants: Dict[str, Set[str]] = {}
        self.remote: Dict[str, Dict[str, Dict[str, List[RemoteColumn]]]] = {}
        self.mappings: Dict[Tuple[str, str, str], TableAttributes] = {}
        self.calls: List[Tuple] = []
        self.failures: Dict[str, Exception] = {}

    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation,) + args)
        if operation in self.failures:
            raise self.failures[operation]

    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]

    def add_remote_table(self, server: str, schema: str, table: str, columns: Dict[str, str]):
        tables = self.remote.setdefault(server, {}).setdefault(schema, {})
        tables[table] = [RemoteColumn(name=n, type=t) for n, t in columns.items()]

    def _require_server(self, name: str) -> None:
        if name not in self.servers:
            raise EngineError(f"Server {name} does not exist")

    def create_server(self, server: FederatedServer) -> FederatedServer:
        self._record("create_server", server.name)
        if server.name in self.servers:
            raise EngineError(f"Server {server.name} already exists")
        self.servers[server.name] = server
        return server

    def alter_server(self, server: FederatedServer) -> FederatedServer:
        self._record("alter_server", server.name)
        self._require_server(server.name)
        self.servers[server.name] = server
        return server

    def drop_server(self, name: str) -> None:
        self._record("drop_server", name)
        self._require_server(name)
        del self.servers[name]
        self.grants.pop(name, None)
        for key in [k for k in self.mappings if k[0] == name]:
            del self.mappings[key]

    def get_server(self, name: str) -> Optional[FederatedServer]:
        self._record("get_server", name)
        return self.servers.get(name)

    def grant_server_access(self, name: str, db_role: str) -> None:
        self._record("grant_server_access", name, db_role)
        self._require_server(name)
        self.grants.setdefault(name, set()).add(db_role)

    def revoke_server_access(self, name: str, db_role: str) -> None:
        self._record("revoke_server_access", name, db_role)
        self._require_server(name)
        self.grants.get(name, set()).discard(db_role)

    def list_server_grants(self, name: str) -> List[str]:
        return sorted(self.grants.get(name, set()))

    def list_servers(self) -> List[FederatedServer]:
        self._record("list_servers")
        return list(self.servers.values())

    def count_servers(self) -> int:
        self._record("count_servers")
        return len(self.servers)

    def list_remote_schemas(self, server_name: str) -> List[RemoteSchema]:
        self._record("list_remote_schemas", server_name)
        self._require_server(server_name)
        return [RemoteSchema(name) for name in self.remote.get(server_name, {})]

    def count_remote_schemas(self, server_name: str) -> int:
        self._record("count_remote_schemas", server_name)
        self._require_server(server_name)
        return len(self.remote.get(server_name, {}))

    def _table(self, server: str, schema: str, table: str) -> Optional[RemoteTable]:
        columns = self.remote.get(server, {}).get(schema, {}).get(table)
        mapping = self.mappings.get((server, schema, table))
        if mapping is None and columns is None:
            return None
        if mapping is None:
            return RemoteTable(server, schema, table, registered=False, columns=columns)
        return RemoteTable(
            server,
            schema,
            table,
            registered=True,
            local_table_name_override=mapping.local_table_name_override,
            id_column_name=mapping.id_column_name,
            geom_column_name=mapping.geom_column_name,
            webmercator_column_name=mapping.webmercator_column_name,
            columns=columns or [],
        )

    def list_remote_tables(self, server_name: str, schema_name: str) -> List[RemoteTable]:
        self._record("list_remote_tables", server_name, schema_name)
        self._require_server(server_name)
        names = set(self.remote.get(server_name, {}).get(schema_name, {}))
        names |= {k[2] for k in self.mappings if k[:2] == (server_name, schema_name)}
        return [self._table(server_name, schema_name, name) for name in sorted(names)]

    def count_remote_tables(self, server_name: str, schema_name: str) -> int:
        self._record("count_remote_tables", server_name, schema_name)
        self._require_server(server_name)
        names = set(self.remote.get(server_name, {}).get(schema_name, {}))
        names |= {k[2] for k in self.mappings if k[:2] == (server_name, schema_name)}
        return len(names)

    def get_remote_table(
        self, server_name: str, schema_name: str, table_name: str
    ) -> Optional[RemoteTable]:
        self._record("get_remote_table", server_name, schema_name, table_name)
        self._require_server(server_name)
        return self._table(server_name, schema_name, table_name)

    def _check(self, attrs: TableAttributes) -> None:
        columns = self.remote.get(attrs.federated_server_name, {}).get(
            attrs.remote_schema_name, {}
        ).get(attrs.remote_table_name)
        if columns is None:
            raise EngineError(
                f"Could not import table {attrs.remote_table_name} "
                f"of server {attrs.federated_server_name}"
            )
        types = {c.name: c.type for c in columns}
        if types.get(attrs.id_column_name) not in _INTEGER_TYPES:
            raise EngineError(f"non integer id_column {attrs.id_column_name}")
        if attrs.geom_column_name and types.get(attrs.geom_column_name) != "GEOMETRY":
            raise EngineError(f"non geometry column {attrs.geom_column_name}")

    def _key(self, attrs: TableAttributes) -> Tuple[str, str, str]:
        return (attrs.federated_server_name, attrs.remote_schema_name, attrs.remote_table_name)

    def import_table(self, attrs: TableAttributes) -> RemoteTable:
        self._record("import_table", attrs.remote_table_name)
        self._require_server(attrs.federated_server_name)
        self._check(attrs)
        self.mappings[self._key(attrs)] = attrs
        return self._table(*self._key(attrs))

    def alter_table_mapping(self, attrs: TableAttributes) -> RemoteTable:
        self._record("alter_table_mapping", attrs.remote_table_name)
        self._require_server(attrs.federated_server_name)
        self._check(attrs)
        self.mappings[self._key(attrs)] = attrs
        return self._table(*self._key(attrs))

    def drop_table_mapping(self, server_name: str, schema_name: str, table_name: str) -> None:
        self._record("drop_table_mapping", server_name, schema_name, table_name)
        key = (server_name, schema_name, table_name)
        if key not in self.mappings:
            raise EngineError(
                f"Registration of table {schema_name}.{table_name} "
                f"of server {server_name} does not exist"
            )
        del self.mappings[key]


@pytest.fixture
def fake_store() -> FakeFederationStore:
    return FakeFederationStore()


@pytest.fixture
def federation_settings() -> FederationSettings:
    return FederationSettings()


@pytest.fixture
def service(fake_store: FakeFederationStore, federation_settings: FederationSettings):
    return FederatedTablesService(fake_store, federation_settings)


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(tenant_id="acme", db_role="acme_role", master=True)


@pytest.fixture
def server_params() -> Dict[str, str]:
    return {
        "federated_server_name": "geoserv",
        "mode": "read-only",
        "host": "db.example.com",
        "username": "u",
        "password": "p",
    }
