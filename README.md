# wator

A Wa-Tor simulation. Fish and sharks live on a grid that wraps around at the edges.
On every step each creature tries to move to one of its four neighbouring cells:

- Fish move only into empty cells.
- Sharks move onto a neighbouring fish if there is one, eating it and refilling
  their energy. Otherwise they move into an empty cell.
- A creature that has moved often enough leaves a newborn of its kind behind in
  the cell it came from.
- Sharks lose one unit of energy on each step and die when it reaches zero.

A run can be timed, or written out as an animated GIF in which sharks are red and
fish are green on a black background.

No third-party libraries are needed.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Command line

```
wator [-w WIDTH] [-h HEIGHT] [-f FISH] [-s SHARKS] [-c STEPS] [-p PARALLELISM] [-t] [-a]
```

| Flag | Meaning | Default |
|------|---------|---------|
| `-w` | grid width | 1920 |
| `-h` | grid height | 1080 |
| `-f` | number of fish at the start | 200000 |
| `-s` | number of sharks at the start | 30000 |
| `-c` | number of steps (chronons) | 1000 |
| `-p` | number of row bands, each worked on by its own thread | 2 |
| `-t` | time the run | on |
| `-a` | use the alternate band scheme | off |

The command prints the settings it will use, prints `Populating grid`, runs the
simulation and prints the elapsed time as `TIME: <milliseconds> ms`.

Arguments that are not exactly two characters starting with `-` are ignored, and so
is a numeric flag given as the last argument with no value after it. A value is read
as the integer it starts with, or 0 if it starts with none. A negative value, an
unknown flag, a parallelism of 0, or more fish and sharks than the grid has cells
make the command print an error and exit with status 2.

### What the command does not do

Timing is always on from the command line and cannot be switched off there, so the
command never writes a GIF. To get an animation, use `Grid.simulate` from Python
with `timeit` set to false, as shown below; it then writes `watorParallel3.gif`
unless another file name is given.

## Library use

```python
import random

from wator.grid import Grid

grid = Grid(64, 48, 400, 60, 100, 4, random.Random(1))
grid.populate()
grid.simulate(2, False, False, "wator.gif")
```

- `Grid(width, height, num_fish, num_sharks, num_frames, frame_len, rng)` builds an
  empty grid; `frame_len` is the GIF frame delay in hundredths of a second and `rng`
  an optional `random.Random`.
- `Grid.populate()` places the fish and sharks on distinct random cells.
- `Grid.time_step(num_threads)` and `Grid.time_step_alternate(num_threads)` advance
  the world by one step.
- `Grid.to_display()` returns the current state as RGBA bytes.
- `Grid.simulate(num_threads, timeit, alternate, filename)` runs every step, writes
  a GIF unless `timeit` is true, and returns the elapsed milliseconds.

The cells themselves are `wator.cell.Cell` objects with a `wator.cell.CellType` of
`SHARK`, `FISH` or `EMPTY`.

### GIF encoder

The GIF encoder in `wator.gifwriter` can be used on its own:

```python
from wator.gifwriter import GifWriter

with GifWriter("out.gif", width, height, 4, 8, False) as gif:
    gif.write_frame(rgba_bytes, width, height, 4, 8, False)
```

Frames are RGBA with eight bits per channel; the alpha channel is ignored. Each
frame gets its own palette, built with a median split (`wator.palette.make_palette`),
and only the pixels that changed since the previous frame are encoded. Passing
`dither=True` quantises with Floyd-Steinberg dithering (`wator.palette.dither_image`)
instead of nearest-colour thresholding (`wator.palette.threshold_image`). A non-zero
delay makes the animation loop forever.