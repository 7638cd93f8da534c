"""Registry records and request context."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

T = TypeVar("T")

DEFAULT_POSTGRES_PORT = 5432

# Fields an unregistered (discovered only) remote table exposes.
DISCOVERY_FIELDS = ("registered", "remote_schema_name", "remote_table_name", "columns")


@dataclass(frozen=True)
class RequestContext:
    """Caller identity and capabilities, passed explicitly into every service call."""

    tenant_id: str
    db_role: str
    master: bool = False
    dataset_metadata: bool = False

    @property
    def can_manage_federation(self) -> bool:
        return self.master or self.dataset_metadata


@dataclass(frozen=True)
class FederatedServer:
    """A named connection to an external database."""

    name: str
    mode: str
    host: str
    username: str
    password: str
    dbname: Optional[str] = None
    port: Optional[int] = None

    def masked(self, mask: str) -> "FederatedServer":
        return replace(self, password=mask)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "federated_server_name": self.name,
            "mode": self.mode,
            "dbname": self.dbname,
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "password": self.password,
        }


@dataclass(frozen=True)
class RemoteSchema:
    """A schema visible on a federated server."""

    remote_schema_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"remote_schema_name": self.remote_schema_name}


@dataclass(frozen=True)
class RemoteColumn:
    name: str
    type: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "type": self.type}


@dataclass(frozen=True)
class RemoteTable:
    """A table under (server, schema), either discovered or registered locally."""

    federated_server_name: str
    remote_schema_name: str
    remote_table_name: str
    registered: bool = False
    local_table_name_override: Optional[str] = None
    id_column_name: Optional[str] = None
    geom_column_name: Optional[str] = None
    webmercator_column_name: Optional[str] = None
    columns: List[RemoteColumn] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, hiding configuration until the table is registered."""
        payload: Dict[str, Any] = {
            "registered": self.registered,
            "federated_server_name": self.federated_server_name,
            "remote_schema_name": self.remote_schema_name,
            "remote_table_name": self.remote_table_name,
            "local_table_name_override": self.local_table_name_override,
            "id_column_name": self.id_column_name,
            "geom_column_name": self.geom_column_name,
            "webmercator_column_name": self.webmercator_column_name,
            "columns": [c.to_dict() for c in self.columns],
        }
        if not self.registered:
            payload = {k: v for k, v in payload.items() if k in DISCOVERY_FIELDS}
        return payload


@dataclass(frozen=True)
class ServerAttributes:
    """Validated attributes for creating or altering a federated server."""

    name: str
    mode: str
    host: str
    username: str
    password: str
    dbname: Optional[str] = None
    port: Optional[int] = None

    def to_server(self) -> FederatedServer:
        return FederatedServer(
            name=self.name,
            mode=self.mode,
            host=self.host,
            username=self.username,
            password=self.password,
            dbname=self.dbname,
            port=self.port,
        )


@dataclass(frozen=True)
class TableAttributes:
    """Validated attributes for importing or re-mapping a remote table."""

    federated_server_name: str
    remote_schema_name: str
    remote_table_name: str
    id_column_name: str
    local_table_name_override: str
    geom_column_name: Optional[str] = None
    webmercator_column_name: Optional[str] = None


@dataclass(frozen=True)
class Created(Generic[T]):
    """Upsert outcome: the resource did not exist and was created.

    ``location`` is the reference to append to the request path, or ``None``
    when the request path already identifies the resource.
    """

    value: T
    location: Optional[str] = None


@dataclass(frozen=True)
class Updated(Generic[T]):
    """Upsert outcome: an existing resource was modified."""

    value: T


UpsertResult = Union[Created[T], Updated[T]]
