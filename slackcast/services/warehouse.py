"""Query engine adapter — runs template SQL against the analytics warehouse.

The warehouse is any SQLAlchemy-reachable database (``WAREHOUSE_URL``). A
query runs on its own background thread and is polled until it finishes or the
bounded wait runs out; there is no retry.
"""

from __future__ import annotations

import base64
import logging
import re
import threading
import time
from concurrent.futures import Future
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from slackcast import metrics
from slackcast.config import settings
from slackcast.errors import DependencyError

logger = logging.getLogger(__name__)

SCOPE_PARAM = "company_id"
_SCOPE_RE = re.compile(r":company_id\b")


def normalize_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


class WarehouseClient:
    def __init__(
        self,
        engine: Engine | None = None,
        *,
        poll_interval_ms: int | None = None,
        max_poll_ms: int | None = None,
    ) -> None:
        self._engine = engine
        self.poll_interval_ms = poll_interval_ms or settings.QUERY_POLL_INTERVAL_MS
        self.max_poll_ms = max_poll_ms or settings.QUERY_MAX_POLL_MS

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            if not settings.WAREHOUSE_URL:
                raise DependencyError("warehouse", "WAREHOUSE_URL is not configured")
            self._engine = create_engine(settings.WAREHOUSE_URL, pool_pre_ping=True)
        return self._engine

    def execute(
        self, sql_text: str, scope_id: str | None, timeout_ms: int | None = None
    ) -> list[dict[str, Any]] | None:
        """Rows as dicts, or None for an empty result.

        Raises DependencyError on timeout or driver error. A query still
        running at the deadline is cancelled through its DBAPI connection.
        """
        wait_ms = min(timeout_ms or settings.QUERY_TIMEOUT_MS, self.max_poll_ms)
        logger.info("Executing warehouse SQL (%d chars) for scope %s", len(sql_text), scope_id)

        future: Future = Future()
        connections: list[Connection] = []
        threading.Thread(
            target=self._run_into,
            args=(future, sql_text, scope_id, connections),
            name="warehouse-query",
            daemon=True,
        ).start()

        deadline = time.monotonic() + wait_ms / 1000
        while not future.done():
            if time.monotonic() >= deadline:
                if not future.cancel():
                    _interrupt(connections)
                metrics.dependency_failures.labels("warehouse").inc()
                raise DependencyError("warehouse", f"Query timed out after {wait_ms}ms")
            time.sleep(self.poll_interval_ms / 1000)

        try:
            rows = future.result()
        except DependencyError:
            raise
        except Exception as exc:
            metrics.dependency_failures.labels("warehouse").inc()
            raise DependencyError("warehouse", f"Query failed: {exc}") from exc

        logger.info("Warehouse SQL returned %d row(s)", len(rows))
        return rows or None

    def _run_into(
        self, future: Future, sql_text: str, scope_id: str | None, connections: list[Connection]
    ) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            rows = self._run(sql_text, scope_id, connections)
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(rows)

    def _run(
        self, sql_text: str, scope_id: str | None, connections: list[Connection]
    ) -> list[dict[str, Any]]:
        params = {SCOPE_PARAM: scope_id} if _SCOPE_RE.search(sql_text) else {}
        with self.engine.connect() as conn:
            connections.append(conn)
            result = conn.execute(text(sql_text), params)
            if not result.returns_rows:
                return []
            return [
                {key: normalize_value(value) for key, value in row.items()}
                for row in result.mappings()
            ]


def _interrupt(connections: list[Connection]) -> None:
    """Ask the driver to abort the in-flight statement (psycopg ``cancel``,
    sqlite3 ``interrupt``). Drivers without either keep running to completion."""
    for conn in connections:
        try:
            dbapi_conn = conn.connection.dbapi_connection
            abort = getattr(dbapi_conn, "cancel", None) or getattr(dbapi_conn, "interrupt", None)
            if abort is None:
                logger.warning("Warehouse driver cannot cancel a running query")
                continue
            abort()
        except Exception:
            logger.warning("Failed to cancel timed-out warehouse query", exc_info=True)
