from __future__ import annotations

from braid.common.errors import DimensionMismatch
from braid.common.types import Coord, VisibilityMask
from braid.engine.maze import Cell, Maze


def empty_mask(width: int, height: int) -> VisibilityMask:
    return [[False] * height for _ in range(width)]


def check_dimensions(mask: VisibilityMask, width: int, height: int) -> None:
    if len(mask) != width or any(len(column) != height for column in mask):
        raise DimensionMismatch(
            f"Visibility mask does not match maze dimensions {width}x{height}"
        )


def mask(maze: Maze, visibility: VisibilityMask) -> Maze:
    """Return the player's view of ``maze``.

    Visible cells are copied verbatim. Hidden cells are replaced by pristine
    cells (not visited, all four walls) so unexplored topology never leaks.
    """
    check_dimensions(visibility, maze.width, maze.height)
    grid: list[list[Cell]] = []
    for x in range(maze.width):
        column: list[Cell] = []
        for y in range(maze.height):
            if visibility[x][y]:
                column.append(maze.grid[x][y].copy())
            else:
                column.append(Cell(x, y))
        grid.append(column)
    return Maze(width=maze.width, height=maze.height, grid=grid)


def merge_masks(stored: VisibilityMask, incoming: VisibilityMask) -> VisibilityMask:
    """Logical OR of two masks; a revealed cell stays revealed."""
    width = len(stored)
    height = len(stored[0]) if stored else 0
    check_dimensions(incoming, width, height)
    return [
        [old or bool(new) for old, new in zip(stored_column, incoming_column)]
        for stored_column, incoming_column in zip(stored, incoming)
    ]


def revealed_cells(visibility: VisibilityMask) -> list[Coord]:
    return [
        (x, y)
        for x, column in enumerate(visibility)
        for y, visible in enumerate(column)
        if visible
    ]
