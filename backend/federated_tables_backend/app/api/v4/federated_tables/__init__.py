"""Federated servers, remote schemas and remote tables endpoints."""
