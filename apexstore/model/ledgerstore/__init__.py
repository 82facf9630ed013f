# model/ledgerstore/__init__.py
from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

import redis.asyncio as redis

from ..ledger import Ledger
from ...infra.gate import Gated, make_gate
from ...infra.timings import timeit
from ._file import LedgerStore as FileLedgerStore
from ._memory import LedgerStore as MemoryLedgerStore
from ._redis import LedgerStore as RedisLedgerStore


class LedgerStore(Protocol):
    """
    read() never fails: missing or unreadable state yields an empty Ledger.
    write() replaces the persisted document wholesale; readers never observe
    a partial document.
    """
    async def read(self) -> Ledger: ...

    async def write(self, ledger: Ledger) -> None: ...


# Factory keeps server.py simple and constructor-agnostic:
def new_store(backend: str, *,
              path: Optional[str] = None,
              r: Optional[redis.Redis] = None,
              key: Optional[str] = None) -> LedgerStore:
    backend = backend.lower()
    if backend == "memory":
        return MemoryLedgerStore()
    if backend == "file":
        if not path:
            raise RuntimeError("LedgerStore(file) requires path=")
        return FileLedgerStore(path=path)
    if backend == "redis":
        if r is None:
            raise RuntimeError("LedgerStore(redis) requires r=redis.Redis")
        return RedisLedgerStore(r=r, key=key or "apexstore:ledger")
    raise RuntimeError(f"unknown ledger backend: {backend!r}")


class SerializedLedger:
    """
    Front door to a LedgerStore. All read-modify-write sequences run through
    `mutate()`, which holds the process-wide gate from read to write:

        async with ledgers.mutate() as ledger:
            ledger.add_donation("Steve", Decimal("12.50"))

    Leaving the block with an exception skips the write.
    """

    def __init__(self, store: LedgerStore,
                 gated: Optional[Gated] = None) -> None:
        self.store = store
        self.gated = gated or make_gate()

    async def read(self) -> Ledger:
        async with timeit("ledger.read"):
            return await self.store.read()

    @asynccontextmanager
    async def mutate(self) -> AsyncIterator[Ledger]:
        async with timeit("ledger.mutate"):
            async with self.gated():
                ledger = await self.store.read()
                yield ledger
                await self.store.write(ledger)


__all__ = [
    "LedgerStore", "SerializedLedger", "new_store",
    "FileLedgerStore", "MemoryLedgerStore", "RedisLedgerStore",
]
