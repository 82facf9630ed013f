from typing import List

from .model.ledger import DonationRecord
from .model.ledgerstore import SerializedLedger


# read-only; no gate needed, a single write is atomic for readers
async def top_donors(ledgers: SerializedLedger) -> List[DonationRecord]:
    ledger = await ledgers.read()
    return ledger.donations
