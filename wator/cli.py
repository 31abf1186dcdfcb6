"""Command line entry point for the Wa-Tor simulation."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass

from .grid import Grid

OUTPUT_FILE = "watorParallel3.gif"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class Settings:
    """Simulation parameters gathered from the command line."""

    width: int = 1920
    height: int = 1080
    num_fish: int = 200000
    num_sharks: int = 30000
    num_frames: int = 1000
    frame_len: int = 4
    num_threads: int = 2
    alternate: bool = False
    timeit: bool = True


_NUMERIC_FLAGS = {
    "w": "width",
    "h": "height",
    "f": "num_fish",
    "s": "num_sharks",
    "c": "num_frames",
    "p": "num_threads",
}


def _leading_int(text: str) -> int:
    """Read the integer at the start of ``text``; 0 when there is none."""
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def parse_arguments(argv) -> Settings:
    """Build settings from two-character flags such as ``-w 640`` or ``-a``."""
    settings = Settings()
    args = iter(argv)
    for arg in args:
        if len(arg) != 2 or arg[0] != "-":
            continue
        flag = arg[1]
        if flag == "t":
            settings.timeit = True
            continue
        if flag == "a":
            settings.alternate = True
            continue
        value = next(args, None)
        if value is None:
            continue
        number = _leading_int(value)
        if number < 0:
            raise ValueError("Cannot have negative numbers as arguments")
        if flag not in _NUMERIC_FLAGS:
            raise ValueError("Invalid flag")
        setattr(settings, _NUMERIC_FLAGS[flag], number)
    return settings


def _flag(value: bool) -> str:
    return str(value).lower()


def main(argv=None) -> int:
    """Run the simulation with the given command line arguments."""
    if argv is None:
        argv = sys.argv[1:]
    try:
        settings = parse_arguments(argv)
    except ValueError as error:
        print(f"error: {error}", file=sys.stderr)
        return 2

    print(f"Width: {settings.width}")
    print(f"Height: {settings.height}")
    print(f"Number of fish: {settings.num_fish}")
    print(f"Number of sharks: {settings.num_sharks}")
    print(f"Number of chronons: {settings.num_frames}")
    print(f"Parallelism: {settings.num_threads}")
    print(f"Should time it: {_flag(settings.timeit)}")
    print(f"Alternate implementation: {_flag(settings.alternate)}")
    print()

    grid = Grid(settings.width, settings.height, settings.num_fish, settings.num_sharks,
                settings.num_frames, settings.frame_len)
    try:
        grid.populate()
        grid.simulate(settings.num_threads, settings.timeit, settings.alternate, OUTPUT_FILE)
    except ValueError as error:
        print(f"error: {error}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())