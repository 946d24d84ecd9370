from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionRecord:
    tx_hash: str
    summary: str
    sender: Optional[str] = None
    added_at: float = field(default_factory=time.time)


class TransactionLog:
    """In-memory record of submitted transactions, newest last."""

    def __init__(self) -> None:
        self._records: dict[str, TransactionRecord] = {}

    def add(self, tx_hash: str, summary: str, sender: Optional[str] = None) -> TransactionRecord:
        if not tx_hash:
            raise ValueError("tx_hash must not be empty")
        record = TransactionRecord(tx_hash=tx_hash, summary=summary, sender=sender)
        self._records[tx_hash] = record
        logger.info("submitted %s: %s", tx_hash, summary)
        return record

    def get(self, tx_hash: str) -> Optional[TransactionRecord]:
        return self._records.get(tx_hash)

    @property
    def latest(self) -> Optional[TransactionRecord]:
        if not self._records:
            return None
        return next(reversed(self._records.values()))

    def all(self) -> list[TransactionRecord]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)
