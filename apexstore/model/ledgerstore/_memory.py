# model/ledgerstore/_memory.py
import copy
from typing import Any, Dict, Optional

from ..ledger import Ledger


class LedgerStore:
    """In-process document. Copies on the way in and out, like a real
    store would, so an un-written mutation never leaks."""

    def __init__(self, doc: Optional[Dict[str, Any]] = None) -> None:
        self.doc = copy.deepcopy(doc) if doc is not None else None
        self.writes = 0

    async def read(self) -> Ledger:
        if self.doc is None:
            return Ledger()
        return Ledger.from_dict(copy.deepcopy(self.doc))

    async def write(self, ledger: Ledger) -> None:
        self.doc = ledger.to_dict()
        self.writes += 1
