from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List

from braid.ledger.transactions import LedgerTransaction


class Persistence(ABC):
    """Outbox for ledger transactions plus the accepted-turn log."""

    @abstractmethod
    def record_transaction(self, tx: LedgerTransaction) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_transactions(self, limit: int = 100) -> List[Dict]:
        raise NotImplementedError

    @abstractmethod
    def record_turn(self, turn: int, player_id: int, treasure: float, commitment: bytes) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_turns(self, start_turn: int = 0, limit: int = 100) -> List[Dict]:
        raise NotImplementedError
