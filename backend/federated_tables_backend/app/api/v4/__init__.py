"""API v4 package."""

from . import federated_tables

__all__ = ["federated_tables"]
