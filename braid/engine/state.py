from __future__ import annotations

from dataclasses import dataclass, field

from braid.common.types import VisibilityMask
from braid.engine.maze import Maze


@dataclass
class PlayerSession:
    player_id: int
    address: str
    mask: VisibilityMask
    # Covers the merged mask, not the last request's mask.
    commitment: bytes = b""
    path_commitment: bytes = b""
    turns_taken: int = 0


@dataclass
class PlayerView:
    """Masked maze plus the shared clock reading it was produced at."""

    player_id: int
    maze: Maze
    turn: int
    treasure: float
    game_over: bool

    def to_dict(self) -> dict:
        payload = self.maze.to_dict()
        payload.update(turn=self.turn, treasure=self.treasure, game_over=self.game_over)
        return payload


@dataclass
class ServerStatus:
    turn: int
    max_turns: int
    treasure: float
    game_over: bool
    width: int
    height: int
    server_address: str
    player_ids: list[int] = field(default_factory=list)
