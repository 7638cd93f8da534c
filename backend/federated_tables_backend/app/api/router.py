"""Top-level API router."""

from fastapi import APIRouter

from federated_tables_backend.app.api.v4.federated_tables.router import (
    router as federated_tables_router,
)

api_router = APIRouter(prefix="/api")

v4_router = APIRouter(prefix="/v4")
v4_router.include_router(federated_tables_router)

api_router.include_router(v4_router)
