"""Federated tables registry - external servers, discovery and table import."""

from .errors import (
    EngineError,
    FederationError,
    NotFoundError,
    PartialFailureError,
    UnauthorizedError,
    UnprocessableError,
    ValidationError,
)
from .models import (
    Created,
    FederatedServer,
    RemoteColumn,
    RemoteSchema,
    RemoteTable,
    RequestContext,
    Updated,
)
from .pagination import (
    REMOTE_SCHEMA_LISTING,
    REMOTE_TABLE_LISTING,
    SERVER_LISTING,
    Page,
    Pagination,
    page_links,
)
from .service import FederatedTablesService, get_federation_service
from .store import DuckDBFederationStore, FederationStore

__all__ = [
    "EngineError",
    "FederationError",
    "NotFoundError",
    "PartialFailureError",
    "UnauthorizedError",
    "UnprocessableError",
    "ValidationError",
    "Created",
    "FederatedServer",
    "RemoteColumn",
    "RemoteSchema",
    "RemoteTable",
    "RequestContext",
    "Updated",
    "REMOTE_SCHEMA_LISTING",
    "REMOTE_TABLE_LISTING",
    "SERVER_LISTING",
    "Page",
    "Pagination",
    "page_links",
    "FederatedTablesService",
    "get_federation_service",
    "DuckDBFederationStore",
    "FederationStore",
]
