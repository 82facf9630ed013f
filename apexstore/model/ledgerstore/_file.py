# model/ledgerstore/_file.py
from __future__ import annotations
import asyncio
import logging
import os
import tempfile
import time
from typing import Optional

from ...errors import StorageError
from ..ledger import Ledger

log = logging.getLogger(__name__)


class LedgerStore:
    """
    The ledger as one JSON document on disk.

    Writes go to a temp file in the same directory, get fsynced and are then
    renamed over the target, so a reader sees either the old or the new
    document, never half of one.
    """

    def __init__(self, path: str) -> None:
        self.path = os.path.abspath(path)

    async def read(self) -> Ledger:
        return await asyncio.to_thread(self._read)

    async def write(self, ledger: Ledger) -> None:
        await asyncio.to_thread(self._write, ledger.dumps())

    def _read(self) -> Ledger:
        raw = self._read_raw()
        try:
            return Ledger.loads(raw)
        except StorageError as e:
            moved = self._quarantine()
            log.error("ledger at %s unreadable (%s); moved to %s, "
                      "continuing with an empty ledger",
                      self.path, e, moved)
            return Ledger()

    def _read_raw(self) -> Optional[bytes]:
        try:
            with open(self.path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def _quarantine(self) -> Optional[str]:
        # keep the bad document around instead of overwriting it on the
        # next write
        dest = f"{self.path}.corrupt-{int(time.time() * 1000)}"
        try:
            os.replace(self.path, dest)
        except OSError:
            log.exception("could not move corrupt ledger %s", self.path)
            return None
        return dest

    def _write(self, data: str) -> None:
        directory = os.path.dirname(self.path)
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".ledger-", suffix=".json",
                                   dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise
