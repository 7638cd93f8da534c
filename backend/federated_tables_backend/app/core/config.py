"""Application settings resolved from the environment.

Every value can be overridden with an ``FEDTABLES_`` prefixed variable. Nested
sections use ``__`` as delimiter, e.g. ``FEDTABLES_DATA_DIR__ROOT=/srv/fed`` or
``FEDTABLES_FEDERATION__MAX_PER_PAGE=200``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataDirSettings(BaseModel):
    """Filesystem layout for warehouses and logs."""

    root: Path = Field(default_factory=lambda: Path.home() / ".federated_tables")

    @property
    def logs(self) -> Path:
        return self.root / "logs"

    @property
    def tenants(self) -> Path:
        return self.root / "data" / "tenants"


class ApiKeyGrant(BaseModel):
    """Capabilities attached to an API key.

    API-key storage lives outside this service; keys are provisioned through
    configuration so the permission gate has something to resolve against.
    """

    tenant_id: str
    db_role: str
    master: bool = False
    dataset_metadata: bool = False


class FederationSettings(BaseModel):
    """Federated server / remote table registry settings."""

    read_only_mode: str = "read-only"
    password_mask: str = "********"
    default_per_page: int = 20
    max_per_page: int = 1000
    import_schema: str = "main"
    api_keys: Dict[str, ApiKeyGrant] = Field(default_factory=dict)


class FederatedTablesSettings(BaseSettings):
    """Top-level settings object."""

    model_config = SettingsConfigDict(
        env_prefix="FEDTABLES_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"
    data_dir: DataDirSettings = Field(default_factory=DataDirSettings)
    federation: FederationSettings = Field(default_factory=FederationSettings)

    def tenant_warehouse(self, tenant_id: str) -> Path:
        return self.data_dir.tenants / tenant_id / "warehouse.duckdb"

    def resolve_api_key(self, token: Optional[str]) -> Optional[ApiKeyGrant]:
        if not token:
            return None
        return self.federation.api_keys.get(token)


@lru_cache(maxsize=1)
def get_settings() -> FederatedTablesSettings:
    """Return the process-wide settings, creating data directories on first use."""
    settings = FederatedTablesSettings()
    settings.data_dir.root.mkdir(parents=True, exist_ok=True)
    return settings
