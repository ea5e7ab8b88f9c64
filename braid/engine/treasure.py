from __future__ import annotations

import threading
from dataclasses import dataclass, field

from braid.common.constants import TREASURE_DECAY_PER_TURN
from braid.common.errors import GameOver


def treasure_at(turn: int, initial_treasure: float, max_turns: int) -> float:
    """Treasure left in the pool after ``turn`` accepted turns.

    Flat for the first half of the game, then decays by 0.1 per turn.
    Never negative.
    """
    decay_start = max_turns // 2
    decay = max(0, turn - decay_start) * TREASURE_DECAY_PER_TURN
    return max(0.0, initial_treasure - decay)


@dataclass(frozen=True)
class ClockTick:
    turn: int
    treasure: float
    game_over: bool


@dataclass
class TreasureClock:
    """Shared turn counter; the only state serialized across sessions."""

    initial_treasure: float
    max_turns: int
    current_turn: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def treasure(self) -> float:
        return treasure_at(self.current_turn, self.initial_treasure, self.max_turns)

    @property
    def game_over(self) -> bool:
        return self.current_turn >= self.max_turns

    def advance(self) -> ClockTick:
        with self._lock:
            if self.current_turn >= self.max_turns:
                raise GameOver(f"Turn limit {self.max_turns} reached")
            self.current_turn += 1
            return self._tick()

    def snapshot(self) -> ClockTick:
        with self._lock:
            return self._tick()

    def _tick(self) -> ClockTick:
        return ClockTick(
            turn=self.current_turn,
            treasure=self.treasure,
            game_over=self.current_turn >= self.max_turns,
        )
