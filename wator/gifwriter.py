"""Animated GIF output: LZW-compressed frames with per-frame palettes.

Each frame gets its own local colour table. Pixels that did not change
since the previous frame are written as the transparent index, so only
the changed parts of the picture are stored.
"""

from __future__ import annotations

import os
from typing import BinaryIO

from .palette import TRANSPARENT_INDEX, Palette, dither_image, make_palette, threshold_image

_MAX_CODE = 4095
_CHUNK_LIMIT = 255


def _u16(value: int) -> bytes:
    return bytes((value & 0xFF, (value >> 8) & 0xFF))


class _CodeWriter:
    """Packs variable-length codes least significant bit first into GIF sub-blocks."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._bits = 0
        self._bit_count = 0
        self._chunk = bytearray()

    def write(self, code: int, length: int) -> None:
        self._bits |= (code & ((1 << length) - 1)) << self._bit_count
        self._bit_count += length
        while self._bit_count >= 8:
            self._push(self._bits & 0xFF)
            self._bits >>= 8
            self._bit_count -= 8

    def _push(self, byte: int) -> None:
        self._chunk.append(byte)
        if len(self._chunk) == _CHUNK_LIMIT:
            self._flush()

    def _flush(self) -> None:
        self._stream.write(bytes((len(self._chunk),)) + bytes(self._chunk))
        self._chunk.clear()

    def finish(self) -> None:
        """Pad the partial byte with zero bits and write what is left."""
        if self._bit_count:
            self._push(self._bits & 0xFF)
            self._bits = 0
            self._bit_count = 0
        if self._chunk:
            self._flush()


def write_palette(palette: Palette, stream: BinaryIO) -> None:
    """Write the colour table of ``palette``; entry 0 is always black (transparent)."""
    table = bytearray(3)
    for index in range(1, palette.size):
        table += bytes(palette.color(index))
    stream.write(bytes(table))


def write_lzw_image(stream: BinaryIO, image, left: int, top: int, width: int, height: int,
                    delay: int, palette: Palette) -> None:
    """Write one image block whose pixel indices are the alpha bytes of ``image``."""
    data = bytes(image)
    needed = width * height * 4
    if width < 0 or height < 0:
        raise ValueError("width and height must not be negative")
    if len(data) < needed:
        raise ValueError(f"image holds {len(data)} bytes, expected at least {needed}")

    header = bytearray((0x21, 0xF9, 0x04, 0x05))  # keep previous frame, has transparency
    header += _u16(delay)
    header += bytes((TRANSPARENT_INDEX, 0, 0x2C))
    header += _u16(left) + _u16(top) + _u16(width) + _u16(height)
    header.append(0x80 + palette.bit_depth - 1)  # local colour table of 2 ** bit_depth entries
    stream.write(bytes(header))
    write_palette(palette, stream)

    min_code_size = palette.bit_depth
    clear_code = 1 << min_code_size
    stream.write(bytes((min_code_size,)))

    codes = _CodeWriter(stream)
    code_size = min_code_size + 1
    max_code = clear_code + 1
    dictionary: dict[tuple[int, int], int] = {}
    current = -1

    codes.write(clear_code, code_size)
    for value in data[3:needed:4]:
        if current < 0:
            current = value
            continue
        known = dictionary.get((current, value))
        if known is not None:
            current = known
            continue
        codes.write(current, code_size)
        max_code += 1
        dictionary[(current, value)] = max_code
        if max_code >= 1 << code_size:
            code_size += 1
        if max_code == _MAX_CODE:
            codes.write(clear_code, code_size)
            dictionary.clear()
            code_size = min_code_size + 1
            max_code = clear_code + 1
        current = value

    codes.write(current, code_size)
    codes.write(clear_code, code_size)
    codes.write(clear_code + 1, min_code_size + 1)
    codes.finish()
    stream.write(b"\x00")


class GifWriter:
    """Writes an animated GIF file frame by frame.

    ``delay`` is the time between frames in hundredths of a second; a
    non-zero delay adds a loop-forever animation header.
    """

    def __init__(self, path: str | os.PathLike, width: int, height: int, delay: int,
                 bit_depth: int = 8, dither: bool = False) -> None:
        self.width = width
        self.height = height
        self._stream: BinaryIO | None = open(path, "wb")
        self._previous: bytearray | None = None

        header = bytearray(b"GIF89a")
        header += _u16(width) + _u16(height)
        header += bytes((0xF0, 0, 0))  # global table of two entries, background 0, square pixels
        header += bytes(6)  # both global colours black
        if delay != 0:
            header += bytes((0x21, 0xFF, 11)) + b"NETSCAPE2.0"
            header += bytes((3, 1, 0, 0, 0))  # loop forever
        self._stream.write(bytes(header))

    @property
    def closed(self) -> bool:
        return self._stream is None

    def write_frame(self, image, width: int, height: int, delay: int,
                    bit_depth: int = 8, dither: bool = False) -> None:
        """Quantise an RGBA frame and append it to the file."""
        if self._stream is None:
            raise ValueError("cannot write a frame to a closed GIF")
        previous = self._previous
        palette = make_palette(None if dither else previous, image, width, height, bit_depth, dither)
        quantise = dither_image if dither else threshold_image
        self._previous = quantise(previous, image, width, height, palette)
        write_lzw_image(self._stream, self._previous, 0, 0, width, height, delay, palette)

    def close(self) -> None:
        """Write the trailer and close the file."""
        if self._stream is None:
            raise ValueError("GIF is already closed")
        try:
            self._stream.write(b"\x3B")
        finally:
            self._stream.close()
            self._stream = None
            self._previous = None

    def __enter__(self) -> GifWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._stream is not None:
            self.close()