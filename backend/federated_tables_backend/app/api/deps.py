"""Shared request dependencies."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import HTTPException, Query

from federated_tables_backend.app.core.config import get_settings
from federated_tables_backend.app.services.federation import RequestContext, UnauthorizedError

logger = logging.getLogger(__name__)


def get_request_context(
    api_key: Optional[str] = Query(None, description="API key with federation capabilities"),
) -> RequestContext:
    """Resolve the caller's API key into a request context.

    Keys that are unknown, or that carry neither the master nor the dataset
    metadata capability, are refused before any registry logic runs.
    """
    grant = get_settings().resolve_api_key(api_key)
    if grant is None or not (grant.master or grant.dataset_metadata):
        logger.info("Rejected request with missing or insufficient api_key")
        error = UnauthorizedError("Unauthorized: invalid or insufficient api_key")
        raise HTTPException(status_code=error.status_code, detail=error.to_dict())
    return RequestContext(
        tenant_id=grant.tenant_id,
        db_role=grant.db_role,
        master=grant.master,
        dataset_metadata=grant.dataset_metadata,
    )
