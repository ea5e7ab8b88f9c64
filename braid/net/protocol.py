"""Wire records exchanged on a player session.

Every frame body is a UTF-8 JSON object. The client sends
``PlayerRequest``; the server answers with ``MazeResponse`` or, right
before closing the connection, an ``ErrorResponse``.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, ValidationError, field_validator

from braid.common.constants import HASH_SIZE
from braid.common.errors import BraidError, ProtocolError
from braid.engine.maze import Cell, Maze
from braid.engine.state import PlayerView


class PlayerRequest(BaseModel):
    id: int
    exploration_mask: List[List[bool]]
    commitment: str

    @field_validator("commitment")
    @classmethod
    def _commitment_is_hash(cls, value: str) -> str:
        raw = bytes.fromhex(value)
        if len(raw) != HASH_SIZE:
            raise ValueError(f"commitment must be {HASH_SIZE} bytes")
        return value.lower()

    @property
    def commitment_bytes(self) -> bytes:
        return bytes.fromhex(self.commitment)


class CellModel(BaseModel):
    x: int
    y: int
    visited: bool
    walls: List[bool] = Field(min_length=4, max_length=4)


class MazeResponse(BaseModel):
    width: int
    height: int
    grid: List[List[CellModel]]
    turn: int
    treasure: float
    game_over: bool

    @classmethod
    def from_view(cls, view: PlayerView) -> MazeResponse:
        return cls(**view.to_dict())

    def to_maze(self) -> Maze:
        grid = [
            [Cell(x=c.x, y=c.y, visited=c.visited, walls=list(c.walls)) for c in column]
            for column in self.grid
        ]
        return Maze(width=self.width, height=self.height, grid=grid)


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail

    @classmethod
    def from_exc(cls, exc: BraidError) -> ErrorResponse:
        return cls(error=ErrorDetail(code=exc.code, message=str(exc)))


def parse_request(payload: bytes) -> PlayerRequest:
    try:
        return PlayerRequest.model_validate_json(payload)
    except ValidationError as exc:
        raise ProtocolError(f"Malformed player request: {exc.error_count()} error(s)") from exc


def encode(model: BaseModel) -> bytes:
    return model.model_dump_json().encode("utf-8")
