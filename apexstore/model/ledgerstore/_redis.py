# model/ledgerstore/_redis.py
from __future__ import annotations
import logging
import time
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ...errors import StorageError
from ..ledger import Ledger

log = logging.getLogger(__name__)


# ---- keys
def k_corrupt(key: str, ts_ms: int) -> str: return f"{key}:corrupt:{ts_ms}"


class LedgerStore:
    # the whole ledger lives under one key; SET replaces it atomically
    def __init__(self, r: redis.Redis, key: str) -> None:
        self.r = r
        self.key = key

    async def read(self) -> Ledger:
        raw = await self.r.get(self.key)
        try:
            return Ledger.loads(raw)
        except StorageError as e:
            moved = await self._quarantine()
            log.error("ledger at redis key %s unreadable (%s); moved to %s, "
                      "continuing with an empty ledger", self.key, e, moved)
            return Ledger()

    async def write(self, ledger: Ledger) -> None:
        await self.r.set(self.key, ledger.dumps())

    async def _quarantine(self) -> Optional[str]:
        dest = k_corrupt(self.key, int(time.time() * 1000))
        try:
            await self.r.rename(self.key, dest)
        except RedisError:
            log.exception("could not move corrupt ledger key %s", self.key)
            return None
        return dest
