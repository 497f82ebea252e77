"""TokenCache — per-process cache of workspace Slack tokens."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from slackcast.services.records import TokenRecord

logger = logging.getLogger(__name__)

_DEFAULT_TTL = 60


def utc_timestamp(dt: datetime) -> float:
    return dt.replace(tzinfo=timezone.utc).timestamp()


class TokenCache:
    """Workspace id -> access token, for at most *ttl* seconds.

    A row's own ``expires_at`` caps the TTL. Concurrent misses may both hit the
    store; the writes are identical so no lock is taken.
    """

    def __init__(
        self,
        loader: Callable[[str], TokenRecord],
        ttl: float = _DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._loader = loader
        self._ttl = ttl
        self._clock = clock
        self._cache: dict[str, tuple[str, float]] = {}

    def get(self, workspace_id: str) -> str:
        now = self._clock()
        cached = self._cache.get(workspace_id)
        if cached and cached[1] > now:
            return cached[0]

        record = self._loader(workspace_id)
        expire_at = now + self._ttl
        if record.expires_at is not None:
            expire_at = min(expire_at, utc_timestamp(record.expires_at))
        self._cache[workspace_id] = (record.access_token, expire_at)
        return record.access_token

    def invalidate(self, workspace_id: str) -> None:
        self._cache.pop(workspace_id, None)


def load_token_from_store(workspace_id: str) -> TokenRecord:
    from slackcast.database import SessionLocal
    from slackcast.services.records import get_workspace_token

    db = SessionLocal()
    try:
        return get_workspace_token(db, workspace_id)
    finally:
        db.close()
