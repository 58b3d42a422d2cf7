"""
Configuration persistence — one owner's TemplateStore in PostgreSQL.

Each TemplateStore collection (templates, team, multipliers, stages, building
and action types) is one ``fee_config`` row per owner, payload stored whole as
JSONB. ``load`` builds a working TemplateStore from the owner's rows, falling
back to the file seed / built-in defaults for collections the owner never
changed; ``save`` writes back only the collections that differ from what was
loaded, so read-only requests never touch the table.

The session is owned by the caller (``get_db`` commits or rolls back); this
repository only flushes.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm_models import FeeConfigRecord
from app.services.perf_monitor import timed_async
from app.services.template_store import COLLECTIONS, TemplateStore, file_seed

logger = logging.getLogger("archfee-config")


class ConfigRepository:

    def __init__(self, session: AsyncSession, owner_id: str) -> None:
        self.session = session
        self.owner_id = owner_id
        self._rows: Dict[str, FeeConfigRecord] = {}
        self._baseline: Dict[str, Any] = {}

    @timed_async
    async def load(self) -> TemplateStore:
        result = await self.session.execute(
            select(FeeConfigRecord).where(FeeConfigRecord.owner_id == self.owner_id)
        )
        self._rows = {r.collection: r for r in result.scalars().all() if r.collection in COLLECTIONS}
        seed = file_seed()
        seed.update({name: record.payload for name, record in self._rows.items()})
        store = TemplateStore(seed=seed)
        self._baseline = store.export()
        return store

    @timed_async
    async def save(self, store: TemplateStore) -> List[str]:
        """Persist the collections changed since ``load``; returns their names."""
        current = store.export()
        changed = [name for name in COLLECTIONS if current[name] != self._baseline.get(name)]
        if not changed:
            return []
        for name in changed:
            record = self._rows.get(name)
            if record is None:
                record = FeeConfigRecord(owner_id=self.owner_id, collection=name)
                self.session.add(record)
                self._rows[name] = record
            record.payload = current[name]
        await self.session.flush()
        self._baseline = current
        logger.info("Configuration saved: %s", changed, extra={"user_id": self.owner_id})
        return changed
