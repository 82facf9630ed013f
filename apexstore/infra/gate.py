# apexstore/infra/gate.py
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Callable

Gated = Callable[[], AsyncContextManager[None]]


# LEDGER-GATE
# Process-wide mutual exclusion for read -> mutate -> write sequences.
# Two interleaved webhook deliveries must never both read the same prior
# ledger and clobber each other's write.
@asynccontextmanager
async def _gated(lock: asyncio.Lock):
    await lock.acquire()
    try:
        yield
    finally:
        lock.release()


def make_gate() -> Gated:
    lock = asyncio.Lock()

    # tiny helper for `async with gated(): ...`
    def gated():
        return _gated(lock)

    return gated
