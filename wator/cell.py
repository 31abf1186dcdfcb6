"""Cells of the Wa-Tor ocean: sharks, fish and empty water."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

MAX_ENERGY = 30
REPRODUCTION_TIME = 40


class CellType(IntEnum):
    """What occupies a cell, ordered shark < fish < empty.

    The value doubles as the RGB channel a creature is drawn in.
    """

    SHARK = 0
    FISH = 1
    EMPTY = 2


@dataclass
class Cell:
    """One square of the ocean and the creature living on it."""

    i: int = 0
    j: int = 0
    type: CellType = CellType.EMPTY
    reproduction_time: int = 0
    energy: int = MAX_ENERGY
    has_moved: bool = False

    @property
    def is_empty(self) -> bool:
        return self.type is CellType.EMPTY

    def birth(self) -> Cell:
        """Return a newborn of the same kind at the same recorded position."""
        return Cell(self.i, self.j, self.type)