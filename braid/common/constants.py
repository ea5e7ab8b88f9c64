from __future__ import annotations

from braid.common.types import Wall

# Wall deltas: north is y - 1, south is y + 1.
WALL_DELTAS = {
    Wall.NORTH: (0, -1),
    Wall.EAST: (1, 0),
    Wall.SOUTH: (0, 1),
    Wall.WEST: (-1, 0),
}

HASH_SIZE = 32
TREASURE_DECAY_PER_TURN = 0.1

TREASURE_POOL = "treasure_pool"
GAME_CONTRACT = "game_contract"
AUDIT_CONTRACT = "audit_contract"

FRAME_HEADER_SIZE = 4
