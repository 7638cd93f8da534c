"""Federation store: the only place engine state is changed.

``FederationStore`` is the contract the registry service depends on.
``DuckDBFederationStore`` implements it on a per-tenant DuckDB warehouse:

* server definitions, role grants and table mappings live in the
  ``_federation`` schema of the warehouse;
* a federated server is ATTACHed read-only (postgres extension) on each
  connection that needs it, under the alias ``fs_<name>``;
* a registered table is a view in the import schema over the attached table,
  exposing the id column as ``cartodb_id`` and the geometry columns as
  ``the_geom`` / ``the_geom_webmercator``.

Errors detected by the store itself are raised as ``EngineError`` with the
same wording the registry classifier expects from a Postgres engine.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol

import duckdb

from ..duckdb_utils import connect_warehouse, quote_identifier, quote_literal
from .errors import EngineError
from .models import (
    DEFAULT_POSTGRES_PORT,
    FederatedServer,
    RemoteColumn,
    RemoteSchema,
    RemoteTable,
    TableAttributes,
)

logger = logging.getLogger(__name__)

SERVER_ALIAS_PREFIX = "fs_"
MAX_IDENTIFIER_LENGTH = 63

_INTEGER_TYPES = {
    "TINYINT",
    "SMALLINT",
    "INTEGER",
    "BIGINT",
    "HUGEINT",
    "UTINYINT",
    "USMALLINT",
    "UINTEGER",
    "UBIGINT",
    "UHUGEINT",
}
_SYSTEM_SCHEMAS = {"information_schema", "pg_catalog"}

# Column names the local view reserves for the mapped columns.
_ID_ALIAS = "cartodb_id"
_GEOM_ALIAS = "the_geom"
_WEBMERCATOR_ALIAS = "the_geom_webmercator"


class FederationStore(Protocol):
    """Engine capability consumed by the registry service.

    Calls are not idempotent and fail with engine errors.
    """

    def create_server(self, server: FederatedServer) -> FederatedServer: ...

    def alter_server(self, server: FederatedServer) -> FederatedServer: ...

    def drop_server(self, name: str) -> None: ...

    def get_server(self, name: str) -> Optional[FederatedServer]: ...

    def grant_server_access(self, name: str, db_role: str) -> None: ...

    def revoke_server_access(self, name: str, db_role: str) -> None: ...

    def list_server_grants(self, name: str) -> List[str]: ...

    def list_servers(self) -> List[FederatedServer]: ...

    def count_servers(self) -> int: ...

    def list_remote_schemas(self, server_name: str) -> List[RemoteSchema]: ...

    def count_remote_schemas(self, server_name: str) -> int: ...

    def list_remote_tables(self, server_name: str, schema_name: str) -> List[RemoteTable]: ...

    def count_remote_tables(self, server_name: str, schema_name: str) -> int: ...

    def get_remote_table(
        self, server_name: str, schema_name: str, table_name: str
    ) -> Optional[RemoteTable]: ...

    def import_table(self, attrs: TableAttributes) -> RemoteTable: ...

    def alter_table_mapping(self, attrs: TableAttributes) -> RemoteTable: ...

    def drop_table_mapping(self, server_name: str, schema_name: str, table_name: str) -> None: ...


_DDL_STATEMENTS = [
    """
    CREATE SCHEMA IF NOT EXISTS _federation
    """,
    """
    CREATE TABLE IF NOT EXISTS _federation.servers (
        name VARCHAR PRIMARY KEY,
        mode VARCHAR NOT NULL,
        host VARCHAR NOT NULL,
        port INTEGER,
        dbname VARCHAR,
        username VARCHAR NOT NULL,
        password VARCHAR NOT NULL,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS _federation.server_grants (
        server_name VARCHAR NOT NULL,
        db_role VARCHAR NOT NULL,
        granted_at TIMESTAMP NOT NULL,
        PRIMARY KEY (server_name, db_role)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS _federation.remote_tables (
        server_name VARCHAR NOT NULL,
        remote_schema_name VARCHAR NOT NULL,
        remote_table_name VARCHAR NOT NULL,
        local_table_name VARCHAR NOT NULL,
        id_column_name VARCHAR NOT NULL,
        geom_column_name VARCHAR,
        webmercator_column_name VARCHAR,
        registered_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL,
        PRIMARY KEY (server_name, remote_schema_name, remote_table_name)
    )
    """,
]

_SERVER_COLUMNS = "name, mode, host, port, dbname, username, password"
_MAPPING_COLUMNS = (
    "server_name, remote_schema_name, remote_table_name, local_table_name, "
    "id_column_name, geom_column_name, webmercator_column_name"
)


def server_alias(name: str) -> str:
    """Catalog alias a federated server is attached under."""
    return f"{SERVER_ALIAS_PREFIX}{name}"


def _libpq_value(value: str) -> str:
    if value and not any(c in value for c in " '\\="):
        return value
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def build_connection_string(server: FederatedServer) -> str:
    """libpq keyword/value connection string for a federated server."""
    parts = {
        "host": server.host,
        "port": str(server.port or DEFAULT_POSTGRES_PORT),
        "dbname": server.dbname,
        "user": server.username,
        "password": server.password,
    }
    return " ".join(f"{k}={_libpq_value(v)}" for k, v in parts.items() if v)


def _is_geometry(data_type: str) -> bool:
    return data_type.upper().startswith("GEOMETRY")


@contextmanager
def _transaction(con: duckdb.DuckDBPyConnection) -> Iterator[None]:
    """Keep local views and their mapping rows in step."""
    con.begin()
    try:
        yield
    except BaseException:
        con.rollback()
        raise
    con.commit()


class DuckDBFederationStore:
    """``FederationStore`` backed by a DuckDB warehouse file.

    Each instance acts on behalf of one database role; discovery and table
    mapping operations require that role to hold a grant on the server.
    """

    def __init__(self, warehouse_path: Path, *, db_role: str, import_schema: str = "main"):
        self.warehouse_path = warehouse_path
        self.db_role = db_role
        self.import_schema = import_schema
        self._ensure_metadata_tables()

    def _connect(self):
        return connect_warehouse(self.warehouse_path)

    def _ensure_metadata_tables(self) -> None:
        with self._connect() as con:
            for ddl in _DDL_STATEMENTS:
                con.execute(ddl)
            con.execute(f"CREATE SCHEMA IF NOT EXISTS {quote_identifier(self.import_schema)}")

    # =========================================================================
    # Engine helpers
    # =========================================================================

    def _attach(self, con: duckdb.DuckDBPyConnection, server: FederatedServer) -> None:
        """Attach a federated server to ``con`` in read-only mode."""
        con.execute("INSTALL postgres")
        con.execute("LOAD postgres")
        con.execute(
            f"ATTACH {quote_literal(build_connection_string(server))} "
            f"AS {quote_identifier(server_alias(server.name))} (TYPE POSTGRES, READ_ONLY)"
        )

    @contextmanager
    def _connect_with_server(self, server_name: str) -> Iterator[duckdb.DuckDBPyConnection]:
        """Connection with ``server_name`` attached, after existence and grant checks."""
        with self._connect() as con:
            server = self._require_server(con, server_name)
            self._require_grant(con, server_name)
            logger.debug("Attaching federated server name=%s", server_name)
            self._attach(con, server)
            yield con

    @contextmanager
    def connect_federated(
        self, server_names: Optional[List[str]] = None
    ) -> Iterator[duckdb.DuckDBPyConnection]:
        """Warehouse connection with federated servers re-attached.

        Imported tables are views over the attached servers, so this is the
        connection to query them with. By default every server that has table
        mappings and a grant for this role is attached; servers that cannot be
        reached are skipped and their views fail when queried.
        """
        with self._connect() as con:
            query = f"""
                SELECT {_SERVER_COLUMNS}
                FROM _federation.servers s
                WHERE EXISTS (
                    SELECT 1 FROM _federation.remote_tables m WHERE m.server_name = s.name
                )
                AND EXISTS (
                    SELECT 1 FROM _federation.server_grants g
                    WHERE g.server_name = s.name AND g.db_role = ?
                )
            """
            params: List[object] = [self.db_role]
            if server_names is not None:
                if not server_names:
                    yield con
                    return
                placeholders = ",".join(["?" for _ in server_names])
                query += f" AND s.name IN ({placeholders})"
                params.extend(server_names)

            for row in con.execute(query, params).fetchall():
                server = self._row_to_server(row)
                try:
                    self._attach(con, server)
                except duckdb.Error as exc:
                    logger.warning(
                        "Federated server unavailable name=%s error=%s",
                        server.name,
                        type(exc).__name__,
                    )
            yield con

    def _fetch_server(
        self, con: duckdb.DuckDBPyConnection, name: str
    ) -> Optional[FederatedServer]:
        row = con.execute(
            f"SELECT {_SERVER_COLUMNS} FROM _federation.servers WHERE name = ?",
            [name],
        ).fetchone()
        return self._row_to_server(row) if row else None

    def _require_server(self, con: duckdb.DuckDBPyConnection, name: str) -> FederatedServer:
        server = self._fetch_server(con, name)
        if server is None:
            raise EngineError(f"Server {name} does not exist")
        return server

    def _require_grant(self, con: duckdb.DuckDBPyConnection, name: str) -> None:
        granted = con.execute(
            "SELECT 1 FROM _federation.server_grants WHERE server_name = ? AND db_role = ?",
            [name, self.db_role],
        ).fetchone()
        if not granted:
            raise EngineError(f"Not enough permissions to access the server {name}")

    def _row_to_server(self, row: tuple) -> FederatedServer:
        return FederatedServer(
            name=row[0],
            mode=row[1],
            host=row[2],
            port=row[3],
            dbname=row[4],
            username=row[5],
            password=row[6],
        )

    # =========================================================================
    # Federated servers
    # =========================================================================

    def create_server(self, server: FederatedServer) -> FederatedServer:
        if len(server_alias(server.name)) > MAX_IDENTIFIER_LENGTH:
            raise EngineError(f"Server name {server.name} is too long to be used as identifier")
        now = datetime.now(UTC)
        with self._connect() as con:
            if self._fetch_server(con, server.name) is not None:
                raise EngineError(f"Server {server.name} already exists")
            con.execute(
                f"""
                INSERT INTO _federation.servers ({_SERVER_COLUMNS}, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    server.name,
                    server.mode,
                    server.host,
                    server.port,
                    server.dbname,
                    server.username,
                    server.password,
                    now,
                    now,
                ],
            )
        logger.info("Created federated server name=%s host=%s", server.name, server.host)
        return server

    def alter_server(self, server: FederatedServer) -> FederatedServer:
        with self._connect() as con:
            self._require_server(con, server.name)
            con.execute(
                """
                UPDATE _federation.servers
                SET mode = ?, host = ?, port = ?, dbname = ?,
                    username = ?, password = ?, updated_at = ?
                WHERE name = ?
                """,
                [
                    server.mode,
                    server.host,
                    server.port,
                    server.dbname,
                    server.username,
                    server.password,
                    datetime.now(UTC),
                    server.name,
                ],
            )
        logger.info("Altered federated server name=%s", server.name)
        return server

    def drop_server(self, name: str) -> None:
        """Drop a server together with every table mapped from it."""
        with self._connect() as con:
            self._require_server(con, name)
            mappings = con.execute(
                "SELECT local_table_name FROM _federation.remote_tables WHERE server_name = ?",
                [name],
            ).fetchall()
            with _transaction(con):
                for (local_table,) in mappings:
                    con.execute(f"DROP VIEW IF EXISTS {self._local_ref(local_table)}")
                con.execute("DELETE FROM _federation.remote_tables WHERE server_name = ?", [name])
                con.execute("DELETE FROM _federation.server_grants WHERE server_name = ?", [name])
                con.execute("DELETE FROM _federation.servers WHERE name = ?", [name])
        logger.info("Dropped federated server name=%s mappings=%s", name, len(mappings))

    def get_server(self, name: str) -> Optional[FederatedServer]:
        with self._connect() as con:
            return self._fetch_server(con, name)

    def grant_server_access(self, name: str, db_role: str) -> None:
        with self._connect() as con:
            self._require_server(con, name)
            con.execute(
                """
                INSERT INTO _federation.server_grants (server_name, db_role, granted_at)
                VALUES (?, ?, ?)
                ON CONFLICT DO NOTHING
                """,
                [name, db_role, datetime.now(UTC)],
            )
        logger.info("Granted federated server access name=%s role=%s", name, db_role)

    def revoke_server_access(self, name: str, db_role: str) -> None:
        with self._connect() as con:
            self._require_server(con, name)
            con.execute(
                "DELETE FROM _federation.server_grants WHERE server_name = ? AND db_role = ?",
                [name, db_role],
            )
        logger.info("Revoked federated server access name=%s role=%s", name, db_role)

    def list_server_grants(self, name: str) -> List[str]:
        with self._connect() as con:
            rows = con.execute(
                """
                SELECT db_role FROM _federation.server_grants
                WHERE server_name = ?
                ORDER BY db_role
                """,
                [name],
            ).fetchall()
        return [row[0] for row in rows]

    def list_servers(self) -> List[FederatedServer]:
        with self._connect() as con:
            rows = con.execute(f"SELECT {_SERVER_COLUMNS} FROM _federation.servers").fetchall()
        return [self._row_to_server(row) for row in rows]

    def count_servers(self) -> int:
        with self._connect() as con:
            return con.execute("SELECT COUNT(*) FROM _federation.servers").fetchone()[0]

    # =========================================================================
    # Discovery
    # =========================================================================

    def list_remote_schemas(self, server_name: str) -> List[RemoteSchema]:
        with self._connect_with_server(server_name) as con:
            rows = con.execute(
                """
                SELECT DISTINCT schema_name
                FROM duckdb_schemas()
                WHERE database_name = ?
                """,
                [server_alias(server_name)],
            ).fetchall()
        return [
            RemoteSchema(remote_schema_name=name)
            for (name,) in rows
            if name not in _SYSTEM_SCHEMAS and not name.startswith("pg_")
        ]

    def count_remote_schemas(self, server_name: str) -> int:
        with self._connect_with_server(server_name) as con:
            return con.execute(
                """
                SELECT COUNT(DISTINCT schema_name)
                FROM duckdb_schemas()
                WHERE database_name = ?
                  AND schema_name NOT IN ('information_schema', 'pg_catalog')
                  AND NOT starts_with(schema_name, 'pg_')
                """,
                [server_alias(server_name)],
            ).fetchone()[0]

    def _remote_columns(
        self,
        con: duckdb.DuckDBPyConnection,
        server_name: str,
        schema_name: str,
        table_name: Optional[str] = None,
    ) -> Dict[str, List[RemoteColumn]]:
        query = """
            SELECT table_name, column_name, data_type
            FROM duckdb_columns()
            WHERE database_name = ? AND schema_name = ?
        """
        params = [server_alias(server_name), schema_name]
        if table_name is not None:
            query += " AND table_name = ?"
            params.append(table_name)
        query += " ORDER BY table_name, column_index"

        columns: Dict[str, List[RemoteColumn]] = {}
        for table, column, data_type in con.execute(query, params).fetchall():
            columns.setdefault(table, []).append(RemoteColumn(name=column, type=data_type))
        return columns

    def _mappings(
        self,
        con: duckdb.DuckDBPyConnection,
        server_name: str,
        schema_name: str,
        table_name: Optional[str] = None,
    ) -> Dict[str, tuple]:
        query = f"""
            SELECT {_MAPPING_COLUMNS}
            FROM _federation.remote_tables
            WHERE server_name = ? AND remote_schema_name = ?
        """
        params = [server_name, schema_name]
        if table_name is not None:
            query += " AND remote_table_name = ?"
            params.append(table_name)
        return {row[2]: row for row in con.execute(query, params).fetchall()}

    def _merge_tables(
        self,
        server_name: str,
        schema_name: str,
        columns: Dict[str, List[RemoteColumn]],
        mappings: Dict[str, tuple],
    ) -> List[RemoteTable]:
        tables = []
        for table_name in sorted(set(columns) | set(mappings)):
            mapping = mappings.get(table_name)
            if mapping is None:
                tables.append(
                    RemoteTable(
                        federated_server_name=server_name,
                        remote_schema_name=schema_name,
                        remote_table_name=table_name,
                        registered=False,
                        columns=columns.get(table_name, []),
                    )
                )
                continue
            tables.append(
                RemoteTable(
                    federated_server_name=server_name,
                    remote_schema_name=schema_name,
                    remote_table_name=table_name,
                    registered=True,
                    local_table_name_override=mapping[3],
                    id_column_name=mapping[4],
                    geom_column_name=mapping[5],
                    webmercator_column_name=mapping[6],
                    columns=columns.get(table_name, []),
                )
            )
        return tables

    def list_remote_tables(self, server_name: str, schema_name: str) -> List[RemoteTable]:
        with self._connect_with_server(server_name) as con:
            columns = self._remote_columns(con, server_name, schema_name)
            mappings = self._mappings(con, server_name, schema_name)
        return self._merge_tables(server_name, schema_name, columns, mappings)

    def count_remote_tables(self, server_name: str, schema_name: str) -> int:
        """Discovered tables plus mappings whose remote table is gone."""
        with self._connect_with_server(server_name) as con:
            return con.execute(
                """
                SELECT COUNT(*) FROM (
                    SELECT table_name FROM duckdb_columns()
                    WHERE database_name = ? AND schema_name = ?
                    UNION
                    SELECT remote_table_name FROM _federation.remote_tables
                    WHERE server_name = ? AND remote_schema_name = ?
                )
                """,
                [server_alias(server_name), schema_name, server_name, schema_name],
            ).fetchone()[0]

    def get_remote_table(
        self, server_name: str, schema_name: str, table_name: str
    ) -> Optional[RemoteTable]:
        with self._connect_with_server(server_name) as con:
            columns = self._remote_columns(con, server_name, schema_name, table_name)
            mappings = self._mappings(con, server_name, schema_name, table_name)
        tables = self._merge_tables(server_name, schema_name, columns, mappings)
        return tables[0] if tables else None

    # =========================================================================
    # Table mappings
    # =========================================================================

    def _local_ref(self, local_table: str) -> str:
        return f"{quote_identifier(self.import_schema)}.{quote_identifier(local_table)}"

    def _local_name_taken(self, con: duckdb.DuckDBPyConnection, local_table: str) -> bool:
        row = con.execute(
            """
            SELECT 1 FROM duckdb_tables()
            WHERE database_name = current_database() AND schema_name = ? AND table_name = ?
            UNION ALL
            SELECT 1 FROM duckdb_views()
            WHERE database_name = current_database() AND schema_name = ? AND view_name = ?
            """,
            [self.import_schema, local_table, self.import_schema, local_table],
        ).fetchone()
        return row is not None

    def _check_column_types(self, attrs: TableAttributes, columns: List[RemoteColumn]) -> None:
        types = {c.name: c.type for c in columns}
        if types.get(attrs.id_column_name, "").upper() not in _INTEGER_TYPES:
            raise EngineError(f"non integer id_column {attrs.id_column_name}")
        for column in (attrs.geom_column_name, attrs.webmercator_column_name):
            if column and not _is_geometry(types.get(column, "")):
                raise EngineError(f"non geometry column {column}")

    def _view_select(self, attrs: TableAttributes, columns: List[RemoteColumn]) -> str:
        items = [f"{quote_identifier(attrs.id_column_name)} AS {_ID_ALIAS}"]
        mapped = {attrs.id_column_name}
        if attrs.geom_column_name:
            items.append(f"{quote_identifier(attrs.geom_column_name)} AS {_GEOM_ALIAS}")
            mapped.add(attrs.geom_column_name)
        if attrs.webmercator_column_name:
            items.append(
                f"{quote_identifier(attrs.webmercator_column_name)} AS {_WEBMERCATOR_ALIAS}"
            )
            mapped.add(attrs.webmercator_column_name)
        reserved = {_ID_ALIAS, _GEOM_ALIAS, _WEBMERCATOR_ALIAS}
        items.extend(
            quote_identifier(c.name)
            for c in columns
            if c.name not in mapped and c.name not in reserved
        )
        source = ".".join(
            quote_identifier(part)
            for part in (
                server_alias(attrs.federated_server_name),
                attrs.remote_schema_name,
                attrs.remote_table_name,
            )
        )
        return f"SELECT {', '.join(items)} FROM {source}"

    def _remote_table_columns(
        self, con: duckdb.DuckDBPyConnection, attrs: TableAttributes
    ) -> List[RemoteColumn]:
        columns = self._remote_columns(
            con, attrs.federated_server_name, attrs.remote_schema_name, attrs.remote_table_name
        ).get(attrs.remote_table_name)
        if not columns:
            raise EngineError(
                f"Could not import table {attrs.remote_table_name} "
                f"of server {attrs.federated_server_name}"
            )
        return columns

    def _registered(self, attrs: TableAttributes, columns: List[RemoteColumn]) -> RemoteTable:
        return RemoteTable(
            federated_server_name=attrs.federated_server_name,
            remote_schema_name=attrs.remote_schema_name,
            remote_table_name=attrs.remote_table_name,
            registered=True,
            local_table_name_override=attrs.local_table_name_override,
            id_column_name=attrs.id_column_name,
            geom_column_name=attrs.geom_column_name,
            webmercator_column_name=attrs.webmercator_column_name,
            columns=columns,
        )

    def import_table(self, attrs: TableAttributes) -> RemoteTable:
        local_table = attrs.local_table_name_override
        with self._connect_with_server(attrs.federated_server_name) as con:
            columns = self._remote_table_columns(con, attrs)
            existing = self._mappings(
                con, attrs.federated_server_name, attrs.remote_schema_name, attrs.remote_table_name
            )
            if existing or self._local_name_taken(con, local_table):
                raise EngineError(
                    f"Could not import table {attrs.remote_table_name} as {local_table} already exists"
                )
            self._check_column_types(attrs, columns)

            now = datetime.now(UTC)
            with _transaction(con):
                con.execute(
                    f"CREATE VIEW {self._local_ref(local_table)} AS {self._view_select(attrs, columns)}"
                )
                con.execute(
                    f"""
                    INSERT INTO _federation.remote_tables ({_MAPPING_COLUMNS}, registered_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        attrs.federated_server_name,
                        attrs.remote_schema_name,
                        attrs.remote_table_name,
                        local_table,
                        attrs.id_column_name,
                        attrs.geom_column_name,
                        attrs.webmercator_column_name,
                        now,
                        now,
                    ],
                )
        logger.info(
            "Imported remote table server=%s table=%s.%s as=%s",
            attrs.federated_server_name,
            attrs.remote_schema_name,
            attrs.remote_table_name,
            local_table,
        )
        return self._registered(attrs, columns)

    def alter_table_mapping(self, attrs: TableAttributes) -> RemoteTable:
        local_table = attrs.local_table_name_override
        with self._connect_with_server(attrs.federated_server_name) as con:
            mapping = self._require_mapping(
                con, attrs.federated_server_name, attrs.remote_schema_name, attrs.remote_table_name
            )
            columns = self._remote_table_columns(con, attrs)
            previous_local = mapping[3]
            if local_table != previous_local and self._local_name_taken(con, local_table):
                raise EngineError(
                    f"Could not import table {attrs.remote_table_name} as {local_table} already exists"
                )
            self._check_column_types(attrs, columns)

            with _transaction(con):
                if local_table != previous_local:
                    con.execute(f"DROP VIEW IF EXISTS {self._local_ref(previous_local)}")
                con.execute(
                    f"CREATE OR REPLACE VIEW {self._local_ref(local_table)} AS "
                    f"{self._view_select(attrs, columns)}"
                )
                con.execute(
                    """
                    UPDATE _federation.remote_tables
                    SET local_table_name = ?, id_column_name = ?, geom_column_name = ?,
                        webmercator_column_name = ?, updated_at = ?
                    WHERE server_name = ? AND remote_schema_name = ? AND remote_table_name = ?
                    """,
                    [
                        local_table,
                        attrs.id_column_name,
                        attrs.geom_column_name,
                        attrs.webmercator_column_name,
                        datetime.now(UTC),
                        attrs.federated_server_name,
                        attrs.remote_schema_name,
                        attrs.remote_table_name,
                    ],
                )
        logger.info(
            "Altered table mapping server=%s table=%s.%s as=%s",
            attrs.federated_server_name,
            attrs.remote_schema_name,
            attrs.remote_table_name,
            local_table,
        )
        return self._registered(attrs, columns)

    def _require_mapping(
        self,
        con: duckdb.DuckDBPyConnection,
        server_name: str,
        schema_name: str,
        table_name: str,
    ) -> tuple:
        mapping = self._mappings(con, server_name, schema_name, table_name).get(table_name)
        if mapping is None:
            raise EngineError(
                f"Registration of table {schema_name}.{table_name} "
                f"of server {server_name} does not exist"
            )
        return mapping

    def drop_table_mapping(self, server_name: str, schema_name: str, table_name: str) -> None:
        with self._connect() as con:
            self._require_server(con, server_name)
            self._require_grant(con, server_name)
            mapping = self._require_mapping(con, server_name, schema_name, table_name)
            with _transaction(con):
                con.execute(f"DROP VIEW IF EXISTS {self._local_ref(mapping[3])}")
                con.execute(
                    """
                    DELETE FROM _federation.remote_tables
                    WHERE server_name = ? AND remote_schema_name = ? AND remote_table_name = ?
                    """,
                    [server_name, schema_name, table_name],
                )
        logger.info(
            "Dropped table mapping server=%s table=%s.%s", server_name, schema_name, table_name
        )
