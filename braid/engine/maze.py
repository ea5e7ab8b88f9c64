from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass, field

from braid.common.constants import WALL_DELTAS
from braid.common.types import Coord


@dataclass
class Cell:
    x: int
    y: int
    visited: bool = False
    walls: list[bool] = field(default_factory=lambda: [True, True, True, True])

    def copy(self) -> Cell:
        return Cell(self.x, self.y, self.visited, list(self.walls))

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "visited": self.visited, "walls": list(self.walls)}

    @classmethod
    def from_dict(cls, data: dict) -> Cell:
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            visited=bool(data["visited"]),
            walls=[bool(w) for w in data["walls"]],
        )


@dataclass
class Maze:
    """Grid of cells addressed as ``grid[x][y]``."""

    width: int
    height: int
    grid: list[list[Cell]]

    @classmethod
    def blank(cls, width: int, height: int) -> Maze:
        if width < 1 or height < 1:
            raise ValueError("Maze dimensions must be positive")
        grid = [[Cell(x, y) for y in range(height)] for x in range(width)]
        return cls(width=width, height=height, grid=grid)

    def cell(self, x: int, y: int) -> Cell:
        return self.grid[x][y]

    def in_bounds(self, tile: Coord) -> bool:
        x, y = tile
        return 0 <= x < self.width and 0 <= y < self.height

    def cells(self):
        for column in self.grid:
            yield from column

    def unvisited_neighbors(self, x: int, y: int) -> list[Coord]:
        # West, east, north, south.
        neighbors: list[Coord] = []
        for n in ((x - 1, y), (x + 1, y), (x, y - 1), (x, y + 1)):
            if self.in_bounds(n) and not self.grid[n[0]][n[1]].visited:
                neighbors.append(n)
        return neighbors

    def open_neighbors(self, x: int, y: int) -> list[Coord]:
        """Neighbors reachable from (x, y) through an open wall."""
        cell = self.grid[x][y]
        neighbors: list[Coord] = []
        for wall, (dx, dy) in WALL_DELTAS.items():
            n = (x + dx, y + dy)
            if not cell.walls[wall] and self.in_bounds(n):
                neighbors.append(n)
        return neighbors

    def remove_wall(self, a: Coord, b: Coord) -> None:
        """Remove the wall pair separating two orthogonal neighbors."""
        dx = b[0] - a[0]
        dy = b[1] - a[1]
        if abs(dx) + abs(dy) != 1:
            raise ValueError("Wall removal requires orthogonal adjacent cells")
        wall = next(w for w, delta in WALL_DELTAS.items() if delta == (dx, dy))
        self.grid[a[0]][a[1]].walls[wall] = False
        self.grid[b[0]][b[1]].walls[wall.opposite] = False

    def wall_between(self, a: Coord, b: Coord) -> bool:
        dx = b[0] - a[0]
        dy = b[1] - a[1]
        wall = next((w for w, delta in WALL_DELTAS.items() if delta == (dx, dy)), None)
        if wall is None:
            raise ValueError("Cells are not orthogonal neighbors")
        return self.grid[a[0]][a[1]].walls[wall]

    def removed_wall_count(self) -> int:
        """Number of inter-cell walls removed (each shared wall counted once)."""
        count = 0
        for x in range(self.width):
            for y in range(self.height):
                if x + 1 < self.width and not self.wall_between((x, y), (x + 1, y)):
                    count += 1
                if y + 1 < self.height and not self.wall_between((x, y), (x, y + 1)):
                    count += 1
        return count

    def walls_symmetric(self) -> bool:
        for x in range(self.width):
            for y in range(self.height):
                cell = self.grid[x][y]
                for wall, (dx, dy) in WALL_DELTAS.items():
                    n = (x + dx, y + dy)
                    if not self.in_bounds(n):
                        continue
                    if cell.walls[wall] != self.grid[n[0]][n[1]].walls[wall.opposite]:
                        return False
        return True

    def reachable_from(self, start: Coord) -> set[Coord]:
        visited: set[Coord] = set()
        stack = [start]
        while stack:
            cur = stack.pop()
            if cur in visited:
                continue
            visited.add(cur)
            for n in self.open_neighbors(*cur):
                if n not in visited:
                    stack.append(n)
        return visited

    def is_fully_connected(self) -> bool:
        return len(self.reachable_from((0, 0))) == self.width * self.height

    def is_spanning_tree(self) -> bool:
        # A connected graph on N nodes with N - 1 edges has no cycles.
        return (
            self.walls_symmetric()
            and self.is_fully_connected()
            and self.removed_wall_count() == self.width * self.height - 1
        )

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "grid": [[cell.to_dict() for cell in column] for column in self.grid],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Maze:
        grid = [[Cell.from_dict(c) for c in column] for column in data["grid"]]
        return cls(width=int(data["width"]), height=int(data["height"]), grid=grid)


def generate(width: int, height: int, rng: random.Random | None = None) -> Maze:
    """Carve a spanning-tree maze with a randomized growing-tree walk.

    Start from a random visited cell on a FIFO frontier. Each popped cell
    with unvisited neighbors opens a wall to one of them at random, and both
    cells go back on the frontier; a cell with no unvisited neighbors is
    dropped. Every cell is visited exactly once, so exactly
    ``width * height - 1`` walls are removed.
    """
    rng = rng or random.Random()
    maze = Maze.blank(width, height)
    start = (rng.randrange(width), rng.randrange(height))
    maze.grid[start[0]][start[1]].visited = True
    frontier: deque[Coord] = deque([start])
    while frontier:
        cx, cy = frontier.popleft()
        neighbors = maze.unvisited_neighbors(cx, cy)
        if not neighbors:
            continue
        frontier.append((cx, cy))
        nx, ny = rng.choice(neighbors)
        maze.remove_wall((cx, cy), (nx, ny))
        maze.grid[nx][ny].visited = True
        frontier.append((nx, ny))
    return maze
