"""Translate engine error text into registry errors.

Engine errors only carry free text, so classification is a table of message
patterns. Everything goes through ``classify_store_error`` so the table can be
swapped for structured error codes without touching the service.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple, Type

from .errors import (
    FederationError,
    NotFoundError,
    UnauthorizedError,
    UnprocessableError,
)

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    UNPROCESSABLE = "unprocessable"


# Postgres ("PG::UndefinedTable: ERROR:  ...", "ERROR:  ...") and DuckDB
# ("Catalog Error: ...") message prefixes.
_ENGINE_MARKER = re.compile(r"^(?:PG::\w+: )?ERROR:\s+|^(?:[A-Z][A-Za-z]* )+Error: ")

_RULES: List[Tuple[ErrorKind, Pattern[str]]] = [
    (ErrorKind.NOT_FOUND, re.compile(r"(.*) does not exist")),
    (ErrorKind.UNAUTHORIZED, re.compile(r"Not enough permissions to access the server (.*)")),
    (ErrorKind.UNPROCESSABLE, re.compile(r"Server name (.*) is too long to be used as identifier")),
    (ErrorKind.UNPROCESSABLE, re.compile(r"Server (.*) already exists")),
    (ErrorKind.UNPROCESSABLE, re.compile(r"Could not import table (.*) of server (.*)")),
    (ErrorKind.UNPROCESSABLE, re.compile(r"Could not import table (.*) as (.*) already exists")),
    (ErrorKind.UNPROCESSABLE, re.compile(r"non integer id_column (.*)")),
    (ErrorKind.UNPROCESSABLE, re.compile(r"non geometry column (.*)")),
]

_ERROR_TYPES: Dict[ErrorKind, Type[FederationError]] = {
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.UNAUTHORIZED: UnauthorizedError,
    ErrorKind.UNPROCESSABLE: UnprocessableError,
}

_SECRET_PATTERNS = [
    re.compile(r"(password\s*=\s*)('(?:[^'\\]|\\.)*'|\S+)", re.IGNORECASE),
    re.compile(r"(://[^:/@\s]+:)([^@\s]+)(@)"),
]


def sanitize_error_message(message: str) -> str:
    """Mask credentials that engines echo back from connection strings."""
    sanitized = _SECRET_PATTERNS[0].sub(r"\1***", message)
    return _SECRET_PATTERNS[1].sub(r"\1***\3", sanitized)


def extract_engine_message(exc: BaseException) -> Optional[str]:
    """Return the first engine-marked line of ``exc`` without its marker."""
    for line in str(exc).split("\n"):
        match = _ENGINE_MARKER.match(line)
        if match:
            return line[match.end():].strip()
    return None


def classify_message(message: str) -> Optional[ErrorKind]:
    """Match an unmarked engine message against the classification rules."""
    for kind, pattern in _RULES:
        if pattern.search(message):
            return kind
    return None


def to_domain_error(exc: BaseException) -> Optional[FederationError]:
    """Build the registry error for ``exc``, or ``None`` when it is unclassified."""
    if isinstance(exc, FederationError):
        return exc
    message = extract_engine_message(exc)
    if not message:
        return None
    kind = classify_message(message)
    if kind is None:
        return None
    return _ERROR_TYPES[kind](sanitize_error_message(message))


def classify_store_error(exc: Exception) -> FederationError:
    """Return the registry error for a store failure.

    Unclassified errors are re-raised unchanged.
    """
    error = to_domain_error(exc)
    if error is None:
        logger.error("Unclassified federation store error: %s", type(exc).__name__)
        raise exc
    logger.info("Classified store error code=%s message=%s", error.error_code, error.message)
    return error
