"""Core configuration for the backend."""

from .config import FederatedTablesSettings, get_settings

__all__ = ["FederatedTablesSettings", "get_settings"]
