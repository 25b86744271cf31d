"""Side channel for inventory adjustment audit rows.

The authoritative part of a stock change is the stock procedure call. The
audit row is written through this outbox: when the store rejects it (missing
table, schema drift, a transient failure) the row is parked and can be
retried later with `flush()` instead of failing the stock change.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ...common.errors import StoreError
from ...common.store import RemoteStore, Row

logger = logging.getLogger(__name__)

ADJUSTMENTS_TABLE = "inventory_adjustments"


@dataclass
class PendingAudit:
    temp_id: str
    values: Row
    attempts: int = 1
    last_error: Optional[str] = field(default=None, repr=False)


class AuditOutbox:
    def __init__(self, store: RemoteStore, table: str = ADJUSTMENTS_TABLE):
        self.store = store
        self.table = table
        self._pending: list[PendingAudit] = []

    @property
    def pending(self) -> tuple[PendingAudit, ...]:
        return tuple(self._pending)

    async def record(self, values: Row, temp_id: str) -> Optional[Row]:
        """Insert an audit row; on store failure queue it under `temp_id` and return None."""
        try:
            return await self.store.insert(self.table, values)
        except StoreError as e:
            logger.warning(f"Could not write audit row to {self.table} ({e}); queued as {temp_id}")
            self._pending.append(PendingAudit(temp_id=temp_id, values=dict(values), last_error=e.message))
            return None

    async def flush(self) -> dict[str, Row]:
        """Retry every queued row.

        Returns:
            A mapping of temporary id to the row the store finally accepted.
            Rows that fail again stay queued.
        """
        written: dict[str, Row] = {}
        still_pending: list[PendingAudit] = []
        for entry in self._pending:
            try:
                written[entry.temp_id] = await self.store.insert(self.table, entry.values)
            except StoreError as e:
                entry.attempts += 1
                entry.last_error = e.message
                still_pending.append(entry)
        self._pending = still_pending
        if written:
            logger.info(f"Flushed {len(written)} queued audit row(s), {len(still_pending)} still pending")
        return written
