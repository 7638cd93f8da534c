from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import duckdb

logger = logging.getLogger(__name__)

_duckdb_conn_lock = threading.RLock()


@contextmanager
def connect_warehouse(path: Path) -> Iterator[duckdb.DuckDBPyConnection]:
    """Serialize DuckDB connections to avoid unique file handle conflicts."""
    with _duckdb_conn_lock:
        path.parent.mkdir(parents=True, exist_ok=True)
        con = duckdb.connect(str(path))
        try:
            yield con
        finally:
            try:
                con.close()
            except duckdb.Error:
                logger.debug("Closing warehouse connection failed path=%s", path, exc_info=True)


def quote_identifier(identifier: str) -> str:
    """Safely quote a SQL identifier."""
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def quote_literal(value: str) -> str:
    """Quote a SQL string literal."""
    escaped = value.replace("'", "''")
    return f"'{escaped}'"
