"""The Wa-Tor predator-prey simulation on a toroidal grid."""

from __future__ import annotations

import os
import random
import threading
import time
from contextlib import ExitStack, nullcontext
from functools import partial
from typing import Callable

from .cell import MAX_ENERGY, REPRODUCTION_TIME, Cell, CellType
from .gifwriter import GifWriter

_DIRECTIONS = ((-1, 0), (0, 1), (1, 0), (0, -1))


class Grid:
    """An ocean of ``height`` rows by ``width`` columns that wraps at the edges."""

    def __init__(self, width: int, height: int, num_fish: int, num_sharks: int,
                 num_frames: int, frame_len: int = 4, rng: random.Random | None = None) -> None:
        if width < 0 or height < 0:
            raise ValueError("width and height must not be negative")
        self.width = width
        self.height = height
        self.num_fish = num_fish
        self.num_sharks = num_sharks
        self.num_frames = num_frames + 1
        self.frame_len = frame_len
        self.rng = rng if rng is not None else random.Random()
        self.cells: list[list[Cell]] = [[Cell(i, j) for j in range(width)] for i in range(height)]

    def populate(self) -> None:
        """Place the fish and then the sharks on distinct random cells."""
        print("Populating grid")
        if self.num_fish + self.num_sharks > self.width * self.height:
            raise ValueError(
                f"cannot place {self.num_fish} fish and {self.num_sharks} sharks on a "
                f"{self.width}x{self.height} grid"
            )
        taken: set[tuple[int, int]] = set()
        for kind, count in ((CellType.FISH, self.num_fish), (CellType.SHARK, self.num_sharks)):
            placed = 0
            while placed < count:
                row = self.rng.randrange(self.height)
                col = self.rng.randrange(self.width)
                if (row, col) in taken:
                    continue
                taken.add((row, col))
                self.cells[row][col] = Cell(row, col, kind)
                placed += 1

    def _neighbours(self, i: int, j: int):
        for di, dj in _DIRECTIONS:
            yield (i + di) % self.height, (j + dj) % self.width

    def _target(self, i: int, j: int) -> tuple[int, int]:
        """Pick where the creature at ``(i, j)`` goes; its own position if nowhere."""
        own = self.cells[i][j].type
        if own is CellType.FISH:
            free = [(ni, nj) for ni, nj in self._neighbours(i, j) if own < self.cells[ni][nj].type]
            return self.rng.choice(free) if free else (i, j)

        prey: list[tuple[int, int]] = []
        free = []
        for ni, nj in self._neighbours(i, j):
            kind = self.cells[ni][nj].type
            if kind is CellType.FISH:
                prey.append((ni, nj))
            elif kind is CellType.EMPTY:
                free.append((ni, nj))
        if prey:
            return self.rng.choice(prey)
        if free:
            return self.rng.choice(free)
        return i, j

    def _update(self, i: int, j: int) -> None:
        cell = self.cells[i][j]
        if cell.type is CellType.EMPTY or cell.has_moved:
            return
        ni, nj = self._target(i, j)

        if (ni, nj) != (i, j):
            if cell.type is CellType.SHARK and self.cells[ni][nj].type is CellType.FISH:
                cell.energy = MAX_ENERGY
            cell.has_moved = True
            self.cells[ni][nj] = cell
            if cell.reproduction_time == REPRODUCTION_TIME:
                cell.reproduction_time = 0
                child = cell.birth()
                child.has_moved = True
                self.cells[i][j] = child
            else:
                cell.reproduction_time += 1
                self.cells[i][j] = Cell(i, j, CellType.EMPTY)

        target = self.cells[ni][nj]
        if target.type is CellType.SHARK:
            if target.energy == 0:
                self.cells[ni][nj] = Cell(ni, nj, CellType.EMPTY)
            else:
                target.energy -= 1

    def _process_row(self, i: int) -> None:
        for j in range(self.width):
            self._update(i, j)

    def _do_work(self, row_begin: int, row_end: int, locks: list[threading.Lock],
                 current: int, following: int) -> None:
        # The first and last rows border other workers' rows and are guarded.
        for i in range(row_begin, row_end + 1):
            needed = set()
            if i == row_begin:
                needed.add(current)
            if i == row_end:
                needed.add(following)
            with ExitStack() as stack:
                for index in sorted(needed):
                    stack.enter_context(locks[index])
                self._process_row(i)

    def _do_work_alternate(self, row_begin: int, row_end: int) -> None:
        for i in range(row_begin, row_end + 1):
            self._process_row(i)

    @staticmethod
    def _run(jobs: list[Callable[[], None]]) -> None:
        """Run all jobs but the last on new threads and the last on this one."""
        threads = [threading.Thread(target=job) for job in jobs[:-1]]
        for thread in threads:
            thread.start()
        try:
            jobs[-1]()
        finally:
            for thread in threads:
                thread.join()

    @staticmethod
    def _check_threads(num_threads: int) -> None:
        if num_threads < 1:
            raise ValueError(f"the number of threads must be positive, got {num_threads}")

    def time_step(self, num_threads: int = 1) -> None:
        """Advance one chronon, splitting rows into bands with locked borders."""
        self._check_threads(num_threads)
        rows = self.height // num_threads
        spawned = num_threads - 1
        locks = [threading.Lock() for _ in range(spawned + 1)]
        jobs: list[Callable[[], None]] = []
        begin = 0
        for index in range(spawned):
            jobs.append(partial(self._do_work, begin, begin + rows - 1, locks, index, index + 1))
            begin += rows
        jobs.append(partial(self._do_work, begin, self.height - 1, locks, spawned, 0))
        self._run(jobs)

    def time_step_alternate(self, num_threads: int = 1) -> None:
        """Advance one chronon, working on alternating bands in two phases."""
        self._check_threads(num_threads)
        if num_threads == 1:
            self._do_work_alternate(0, self.height - 1)
            return
        spawned = num_threads - 1
        rows = self.height // (2 * num_threads)
        remainder = self.height % (2 * num_threads)

        for phase in (1, 2):
            begin = 0 if phase == 1 else rows
            jobs: list[Callable[[], None]] = []
            for _ in range(spawned):
                jobs.append(partial(self._do_work_alternate, begin, begin + rows - 1))
                begin += 2 * rows
            if phase == 1:
                main_range = (begin, begin + rows - 1 + remainder // 2)
            else:
                main_range = (begin + remainder // 2, self.height - 1)
            jobs.append(partial(self._do_work_alternate, *main_range))
            self._run(jobs)

    def _reset_moves(self) -> None:
        for row in self.cells:
            for cell in row:
                cell.has_moved = False

    def to_display(self) -> bytearray:
        """Render the grid as RGBA: sharks red, fish green, water black."""
        display = bytearray()
        for row in self.cells:
            for cell in row:
                pixel = [0, 0, 0, 255]
                if cell.type is not CellType.EMPTY:
                    pixel[cell.type] = 255
                display += bytes(pixel)
        return display

    def simulate(self, num_threads: int = 1, timeit: bool = False, alternate: bool = False,
                 filename: str | os.PathLike = "watorParallel3.gif") -> float:
        """Run every frame, writing a GIF unless timing; return elapsed milliseconds."""
        self._check_threads(num_threads)
        step = self.time_step_alternate if alternate else self.time_step
        output = nullcontext() if timeit else GifWriter(filename, self.width, self.height, self.frame_len)

        start = time.perf_counter()
        with output as gif:
            for frame in range(self.num_frames):
                if frame:
                    step(num_threads)
                    self._reset_moves()
                if gif is not None:
                    gif.write_frame(self.to_display(), self.width, self.height, self.frame_len)
        elapsed = (time.perf_counter() - start) * 1000.0

        if timeit:
            print(f"TIME: {elapsed} ms")
        return elapsed