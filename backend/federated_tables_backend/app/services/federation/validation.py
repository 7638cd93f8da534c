"""Request attribute contracts for federated servers and remote tables.

All checks run before the store is touched.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

from .errors import (
    InvalidAccessModeError,
    InvalidParameterFormatError,
    MissingParametersError,
    UnexpectedParametersError,
)
from .models import ServerAttributes, TableAttributes

FEDERATED_SERVER_ATTRIBUTES = (
    "federated_server_name",
    "mode",
    "dbname",
    "host",
    "port",
    "username",
    "password",
)
REMOTE_TABLE_ATTRIBUTES = (
    "federated_server_name",
    "remote_schema_name",
    "remote_table_name",
    "local_table_name_override",
    "id_column_name",
    "geom_column_name",
    "webmercator_column_name",
)

REQUIRED_POST_FEDERATED_SERVER_ATTRIBUTES = (
    "federated_server_name",
    "mode",
    "host",
    "username",
    "password",
)
REQUIRED_PUT_FEDERATED_SERVER_ATTRIBUTES = ("mode", "host", "username", "password")
ALLOWED_PUT_FEDERATED_SERVER_ATTRIBUTES = ("mode", "dbname", "host", "port", "username", "password")

REQUIRED_POST_REMOTE_TABLE_ATTRIBUTES = ("remote_table_name", "id_column_name")
REQUIRED_PUT_REMOTE_TABLE_ATTRIBUTES = ("id_column_name",)


def ensure_object(params: Any) -> Mapping[str, Any]:
    """Request bodies must be JSON objects."""
    if not isinstance(params, Mapping):
        raise InvalidParameterFormatError("body", "must be a JSON object")
    return params


def slice_attributes(params: Mapping[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    """Keep only the known attributes of a request body."""
    return {key: params[key] for key in allowed if key in params}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def ensure_required(params: Mapping[str, Any], required: Iterable[str]) -> None:
    missing = [key for key in required if _is_blank(params.get(key))]
    if missing:
        raise MissingParametersError(missing)


def ensure_no_extra(params: Mapping[str, Any], allowed: Iterable[str]) -> None:
    allowed_set = set(allowed)
    extra = sorted(key for key in params if key not in allowed_set)
    if extra:
        raise UnexpectedParametersError(extra)


def ensure_lowercase_name(name: Any) -> str:
    if not isinstance(name, str):
        raise InvalidParameterFormatError("federated_server_name", "must be a string")
    if name.strip().lower() != name:
        raise InvalidParameterFormatError(
            "federated_server_name", f"The value {name} must be lowercase"
        )
    return name


def ensure_read_only_mode(mode: Any, accepted: str) -> str:
    if not isinstance(mode, str) or mode.casefold() != accepted.casefold():
        raise InvalidAccessModeError(mode, accepted)
    return accepted


def _string(params: Mapping[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    if _is_blank(value):
        return None
    if not isinstance(value, str):
        raise InvalidParameterFormatError(key, "must be a string")
    return value


def _port(params: Mapping[str, Any]) -> Optional[int]:
    value = params.get("port")
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise InvalidParameterFormatError("port", "must be an integer")
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterFormatError("port", "must be an integer") from exc
    if not 0 < port < 65536:
        raise InvalidParameterFormatError("port", "must be between 1 and 65535")
    return port


def _server_attributes(name: str, mode: str, attrs: Mapping[str, Any]) -> ServerAttributes:
    return ServerAttributes(
        name=name,
        mode=mode,
        host=_string(attrs, "host"),
        username=_string(attrs, "username"),
        password=_string(attrs, "password"),
        dbname=_string(attrs, "dbname"),
        port=_port(attrs),
    )


def validate_server_registration(
    params: Mapping[str, Any], *, read_only_mode: str
) -> ServerAttributes:
    """Validate a POST body for a new federated server."""
    params = ensure_object(params)
    attrs = slice_attributes(params, FEDERATED_SERVER_ATTRIBUTES)
    ensure_required(attrs, REQUIRED_POST_FEDERATED_SERVER_ATTRIBUTES)
    name = ensure_lowercase_name(attrs["federated_server_name"])
    mode = ensure_read_only_mode(attrs["mode"], read_only_mode)
    return _server_attributes(name, mode, attrs)


def validate_server_update(
    name: str, params: Mapping[str, Any], *, read_only_mode: str
) -> ServerAttributes:
    """Validate a PUT body; the server name comes from the resource path."""
    params = ensure_object(params)
    ensure_required(params, REQUIRED_PUT_FEDERATED_SERVER_ATTRIBUTES)
    ensure_no_extra(params, ALLOWED_PUT_FEDERATED_SERVER_ATTRIBUTES)
    name = ensure_lowercase_name(name)
    mode = ensure_read_only_mode(params["mode"], read_only_mode)
    return _server_attributes(name, mode, params)


def _table_attributes(
    server_name: str,
    schema_name: str,
    table_name: Any,
    attrs: Mapping[str, Any],
) -> TableAttributes:
    if not isinstance(table_name, str):
        raise InvalidParameterFormatError("remote_table_name", "must be a string")
    id_column = _string(attrs, "id_column_name")
    local_name = _string(attrs, "local_table_name_override") or table_name
    return TableAttributes(
        federated_server_name=server_name,
        remote_schema_name=schema_name,
        remote_table_name=table_name,
        id_column_name=id_column,
        local_table_name_override=local_name,
        geom_column_name=_string(attrs, "geom_column_name"),
        webmercator_column_name=_string(attrs, "webmercator_column_name"),
    )


def validate_table_registration(
    server_name: str, schema_name: str, params: Mapping[str, Any]
) -> TableAttributes:
    """Validate a POST body for importing a remote table."""
    params = ensure_object(params)
    attrs = slice_attributes(params, REMOTE_TABLE_ATTRIBUTES)
    ensure_required(attrs, REQUIRED_POST_REMOTE_TABLE_ATTRIBUTES)
    return _table_attributes(server_name, schema_name, attrs["remote_table_name"], attrs)


def validate_table_update(
    server_name: str, schema_name: str, table_name: str, params: Mapping[str, Any]
) -> TableAttributes:
    """Validate a PUT body; the table identity comes from the resource path."""
    params = ensure_object(params)
    attrs = slice_attributes(params, REMOTE_TABLE_ATTRIBUTES)
    ensure_required(attrs, REQUIRED_PUT_REMOTE_TABLE_ATTRIBUTES)
    return _table_attributes(server_name, schema_name, table_name, attrs)
