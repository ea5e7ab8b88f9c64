from __future__ import annotations

import asyncio
import json
import logging
import random
from collections import deque

from braid.channel.commitment import commit_exploration, commit_path
from braid.common.errors import ProtocolError
from braid.common.types import Coord, Path
from braid.engine.view import empty_mask
from braid.net.framing import read_frame, write_frame
from braid.net.protocol import ErrorResponse, MazeResponse, PlayerRequest, encode

logger = logging.getLogger(__name__)


async def connect_with_retry(
    host: str, port: int, attempts: int = 3, backoff: float = 0.5
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a TCP connection, retrying with exponential backoff."""
    delay = backoff
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.open_connection(host, port)
        except OSError as exc:
            if attempt == attempts:
                raise
            logger.warning("Connect attempt %s to %s:%s failed: %s", attempt, host, port, exc)
            await asyncio.sleep(delay)
            delay *= 2
    raise ConnectionError(f"Could not connect to {host}:{port}")


class PlayerClient:
    """Player side of a session: local exploration mask and its commitment."""

    def __init__(self, player_id: int, width: int, height: int) -> None:
        self.player_id = player_id
        self.width = width
        self.height = height
        self.exploration_mask = empty_mask(width, height)
        self.commitment = bytes(32)
        self.solution_path: Path = []
        self.path_commitment = b""

    def commit_solution(self, path: Path) -> bytes:
        """Commit to a solution path before revealing it with ``submit_path``."""
        self.solution_path = list(path)
        self.path_commitment = commit_path(self.solution_path)
        return self.path_commitment

    def reveal(self, x: int, y: int) -> None:
        self.exploration_mask[x][y] = True

    def commit_current_state(self) -> bytes:
        self.commitment = commit_exploration(self.exploration_mask)
        return self.commitment

    def build_request(self) -> PlayerRequest:
        self.commit_current_state()
        return PlayerRequest(
            id=self.player_id,
            exploration_mask=[list(column) for column in self.exploration_mask],
            commitment=self.commitment.hex(),
        )

    async def explore(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, timeout: float | None = None
    ) -> MazeResponse:
        """Send the current exploration state and return the server's view."""
        await write_frame(writer, encode(self.build_request()))
        data = json.loads(await read_frame(reader, timeout))
        if "error" in data:
            error = ErrorResponse.model_validate(data)
            raise ProtocolError(f"{error.error.code}: {error.error.message}")
        return MazeResponse.model_validate(data)

    def simulate_exploration(self, rng: random.Random | None = None) -> None:
        """Reveal cells with a growing-tree walk from a random start."""
        rng = rng or random.Random()
        start = (rng.randrange(self.width), rng.randrange(self.height))
        self.reveal(*start)
        frontier: deque[Coord] = deque([start])
        while frontier:
            cx, cy = frontier.popleft()
            hidden = self._hidden_neighbors(cx, cy)
            if not hidden:
                continue
            frontier.append((cx, cy))
            nx, ny = rng.choice(hidden)
            self.reveal(nx, ny)
            frontier.append((nx, ny))

    def _hidden_neighbors(self, x: int, y: int) -> list[Coord]:
        neighbors: list[Coord] = []
        for nx, ny in ((x - 1, y), (x + 1, y), (x, y - 1), (x, y + 1)):
            if 0 <= nx < self.width and 0 <= ny < self.height:
                if not self.exploration_mask[nx][ny]:
                    neighbors.append((nx, ny))
        return neighbors

