from __future__ import annotations

from enum import Enum, IntEnum
from typing import List, Tuple

Coord = Tuple[int, int]
Path = List[Coord]
VisibilityMask = List[List[bool]]


class Wall(IntEnum):
    """Index of a wall flag inside ``Cell.walls``."""

    NORTH = 0
    EAST = 1
    SOUTH = 2
    WEST = 3

    @property
    def opposite(self) -> Wall:
        return Wall((self + 2) % 4)


class SessionPhase(str, Enum):
    IDLE = "idle"
    AWAITING_REQUEST = "awaiting_request"
    PROCESSING = "processing"
    RESPOND_SENT = "respond_sent"
    CLOSED = "closed"


class TransactionKind(str, Enum):
    COMMIT_ANTE = "commit_ante"
    SUBMIT_PATH = "submit_path"
    CLAIM_TREASURE = "claim_treasure"
    SLASH_CLAIM = "slash_claim"
    AUDIT_TRANSACTION = "audit_transaction"
    OPEN_STATE_CHANNEL = "open_state_channel"
    CLOSE_STATE_CHANNEL = "close_state_channel"
    COMMIT_MOVE_ON_CHAIN = "commit_move_on_chain"
