from __future__ import annotations

from typing import List, Optional, Tuple

from pydantic import BaseModel, Field


class JoinRequest(BaseModel):
    address: str
    player_id: Optional[int] = None


class JoinResponse(BaseModel):
    player_id: int
    server_address: str
    width: int
    height: int
    max_turns: int


class GameStatusResponse(BaseModel):
    turn: int
    max_turns: int
    treasure: float
    game_over: bool
    width: int
    height: int
    server_address: str
    player_ids: List[int] = Field(default_factory=list)


class CosignRequest(BaseModel):
    move_hash: str
    turn_number: int = Field(ge=0)
    player_signature: str


class CosignResponse(BaseModel):
    turn_number: int
    server_signature: str


class DisputeRequest(BaseModel):
    proof: str = ""


class AmountRequest(BaseModel):
    amount: float


class PathRequest(BaseModel):
    path: List[Tuple[int, int]]


class PathCommitRequest(BaseModel):
    commitment: str


class AuditRequest(BaseModel):
    auditor: str


class SlashRequest(BaseModel):
    accuser: str
    accused: str
    reason: str


class TransactionResponse(BaseModel):
    kind: str
    sender: str
    receiver: str
    amount: float
    data: str


class TurnEntry(BaseModel):
    turn: int
    player_id: int
    treasure: float
    commitment: str
