from typing import Any, Mapping, Optional

from .model.ledger import FeedbackRecord
from .model.ledgerstore import SerializedLedger


def _field(payload: Mapping[str, Any], name: str) -> Optional[str]:
    value = payload.get(name)
    if value is None:
        return None
    return str(value).strip()


async def submit_feedback(payload: Mapping[str, Any],
                          ledgers: SerializedLedger) -> FeedbackRecord:
    # newest first, latest 200 kept (see Ledger.add_feedback)
    async with ledgers.mutate() as ledger:
        return ledger.add_feedback(
            name=_field(payload, "name"),
            contact_handle=_field(payload, "discord"),
            category=_field(payload, "type"),
            message=_field(payload, "message"),
        )
