"""Palette construction and colour quantisation for GIF frames.

Frames are flat RGBA byte sequences, four bytes per pixel, rows top to
bottom. Quantised frames keep the chosen palette colour in the RGB bytes
and the palette index in the alpha byte.
"""

from __future__ import annotations

from dataclasses import dataclass, field

TRANSPARENT_INDEX = 0
_NO_MATCH = 1_000_000


def _zeros() -> list[int]:
    return [0] * 256


def _cdiv(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(numerator) // abs(denominator)
    return -quotient if (numerator < 0) != (denominator < 0) else quotient


@dataclass
class Palette:
    """Colour table plus a k-d tree over RGB space stored in heap order.

    The left child of node ``i`` is ``2 * i`` and the right child ``2 * i + 1``;
    nodes from ``2 ** bit_depth`` upwards are the leaves, one per colour.
    """

    bit_depth: int = 8
    r: list[int] = field(default_factory=_zeros)
    g: list[int] = field(default_factory=_zeros)
    b: list[int] = field(default_factory=_zeros)
    tree_split_elt: list[int] = field(default_factory=_zeros)
    tree_split: list[int] = field(default_factory=_zeros)

    @property
    def size(self) -> int:
        return 1 << self.bit_depth

    def color(self, index: int) -> tuple[int, int, int]:
        return self.r[index], self.g[index], self.b[index]

    def closest_color(self, r: int, g: int, b: int, best_index: int = TRANSPARENT_INDEX) -> int:
        """Return the index of the palette entry nearest to ``(r, g, b)``.

        The transparent entry is never chosen; ``best_index`` is returned if
        no entry is found at all.
        """
        index, _ = self._search(r, g, b, best_index, _NO_MATCH, 1)
        return index

    def _search(self, r: int, g: int, b: int, best_index: int, best_diff: int, node: int) -> tuple[int, int]:
        size = self.size
        if node > size - 1:
            entry = node - size
            if entry == TRANSPARENT_INDEX:
                return best_index, best_diff
            diff = abs(r - self.r[entry]) + abs(g - self.g[entry]) + abs(b - self.b[entry])
            if diff < best_diff:
                return entry, diff
            return best_index, best_diff

        split_comp = (r, g, b)[self.tree_split_elt[node]]
        split_pos = self.tree_split[node]
        if split_pos > split_comp:
            best_index, best_diff = self._search(r, g, b, best_index, best_diff, node * 2)
            if best_diff > split_pos - split_comp:
                best_index, best_diff = self._search(r, g, b, best_index, best_diff, node * 2 + 1)
        else:
            best_index, best_diff = self._search(r, g, b, best_index, best_diff, node * 2 + 1)
            if best_diff > split_comp - split_pos:
                best_index, best_diff = self._search(r, g, b, best_index, best_diff, node * 2)
        return best_index, best_diff


def _check_bit_depth(bit_depth: int) -> None:
    if not 1 <= bit_depth <= 8:
        raise ValueError(f"bit depth must be between 1 and 8, got {bit_depth}")


def _check_frame(frame, width: int, height: int, name: str) -> bytes:
    if width < 0 or height < 0:
        raise ValueError("width and height must not be negative")
    data = bytes(frame)
    if len(data) != width * height * 4:
        raise ValueError(
            f"{name} holds {len(data)} bytes, expected {width * height * 4} for a {width}x{height} RGBA frame"
        )
    return data


def _swap_pixels(image: bytearray, a: int, b: int) -> None:
    ia, ib = a * 4, b * 4
    pixel_a = image[ia:ia + 4]
    pixel_b = image[ib:ib + 4]
    # Pixel a keeps its own alpha byte; pixel b receives a's full RGBA.
    image[ia:ia + 3] = pixel_b[:3]
    image[ib:ib + 4] = pixel_a


def _partition(image: bytearray, base: int, left: int, right: int, elt: int, pivot: int) -> int:
    store = left
    split = False
    for ii in range(left, right):
        value = image[(base + ii) * 4 + elt]
        if value < pivot:
            _swap_pixels(image, base + ii, base + store)
            store += 1
        elif value == pivot:
            if split:
                _swap_pixels(image, base + ii, base + store)
                store += 1
            split = not split
    return store


def _partition_by_median(image: bytearray, base: int, left: int, right: int, com: int, center: int) -> None:
    while left < right - 1:
        pivot = image[(base + center) * 4 + com]
        _swap_pixels(image, base + center, base + right - 1)
        pivot_index = _partition(image, base, left, right - 1, com, pivot)
        _swap_pixels(image, base + pivot_index, base + right - 1)
        if pivot_index > center:
            right = pivot_index
        elif pivot_index < center:
            left = pivot_index + 1
        else:
            break


def _partition_by_mean(image: bytearray, base: int, left: int, right: int, com: int, mean: int) -> int:
    if left < right - 1:
        return _partition(image, base, left, right - 1, com, mean)
    return left


def _channels(image: bytearray, base: int, count: int) -> tuple[bytearray, bytearray, bytearray]:
    start, stop = base * 4, (base + count) * 4
    return image[start:stop:4], image[start + 1:stop:4], image[start + 2:stop:4]


def _split_palette(
    image: bytearray, base: int, count: int, node: int, level: int, for_dither: bool, palette: Palette
) -> None:
    if count == 0:
        return
    size = palette.size
    reds, greens, blues = _channels(image, base, count)

    if node >= size:
        entry = node - size
        if for_dither and entry == 1:
            palette.r[entry], palette.g[entry], palette.b[entry] = min(reds), min(greens), min(blues)
            return
        if for_dither and entry == size - 1:
            palette.r[entry], palette.g[entry], palette.b[entry] = max(reds), max(greens), max(blues)
            return
        half = count // 2
        palette.r[entry] = (sum(reds) + half) // count
        palette.g[entry] = (sum(greens) + half) // count
        palette.b[entry] = (sum(blues) + half) // count
        return

    min_r, max_r = min(reds), max(reds)
    min_g, max_g = min(greens), max(greens)
    min_b, max_b = min(blues), max(blues)
    r_range, g_range, b_range = max_r - min_r, max_g - min_g, max_b - min_b

    split_com, range_min, range_max = 1, min_g, max_g
    if b_range > g_range:
        split_com, range_min, range_max = 2, min_b, max_b
    if r_range > b_range and r_range > g_range:
        split_com, range_min, range_max = 0, min_r, max_r

    sub_a = count // 2
    _partition_by_median(image, base, 0, count, split_com, sub_a)
    split_value = image[(base + sub_a) * 4 + split_com]

    # A very lopsided median split loses rare colours; split at the mean instead.
    unbalance = abs((split_value - range_min) - (range_max - split_value))
    if unbalance > (1536 >> level):
        split_value = range_min + (range_max - range_min) // 2
        sub_a = _partition_by_mean(image, base, 0, count, split_com, split_value)

    # Reserve the leftmost leaf for the transparency index.
    if node == size // 2:
        sub_a = 0
        split_value = 0

    palette.tree_split_elt[node] = split_com
    palette.tree_split[node] = split_value & 0xFF

    _split_palette(image, base, sub_a, node * 2, level + 1, for_dither, palette)
    _split_palette(image, base + sub_a, count - sub_a, node * 2 + 1, level + 1, for_dither, palette)


def _pick_changed_pixels(last_frame: bytes, image: bytearray, count: int) -> int:
    """Move the RGB of every pixel differing from ``last_frame`` to the front."""
    changed = 0
    for offset in range(0, count * 4, 4):
        rgb = image[offset:offset + 3]
        if last_frame[offset:offset + 3] != rgb:
            write = changed * 4
            image[write:write + 3] = rgb
            changed += 1
    return changed


def make_palette(last_frame, next_frame, width: int, height: int, bit_depth: int = 8,
                 build_for_dither: bool = False) -> Palette:
    """Build a median-split palette for ``next_frame``.

    When ``last_frame`` is given, only the pixels that changed since it are
    used to choose the colours.
    """
    _check_bit_depth(bit_depth)
    image = bytearray(_check_frame(next_frame, width, height, "next_frame"))
    palette = Palette(bit_depth=bit_depth)

    count = width * height
    if last_frame is not None:
        previous = _check_frame(last_frame, width, height, "last_frame")
        count = _pick_changed_pixels(previous, image, count)

    _split_palette(image, 0, count, 1, 0, build_for_dither, palette)

    transparent_node = 1 << (bit_depth - 1)
    palette.tree_split[transparent_node] = 0
    palette.tree_split_elt[transparent_node] = 0
    palette.r[0] = palette.g[0] = palette.b[0] = 0
    return palette


def dither_image(last_frame, next_frame, width: int, height: int, palette: Palette) -> bytearray:
    """Quantise ``next_frame`` to ``palette`` with Floyd-Steinberg dithering.

    Pixels whose wanted colour equals the one in ``last_frame`` become
    transparent.
    """
    frame = _check_frame(next_frame, width, height, "next_frame")
    previous = None if last_frame is None else _check_frame(last_frame, width, height, "last_frame")
    count = width * height

    # Colours carry eight extra bits so sub-unit errors can propagate.
    quant = [value * 256 for value in frame]

    def spread(location: int, errors: tuple[int, int, int], weight: int) -> None:
        if location >= count:
            return
        base = location * 4
        for channel, error in enumerate(errors):
            current = quant[base + channel]
            quant[base + channel] = current + max(-current, _cdiv(error * weight, 16))

    for yy in range(height):
        for xx in range(width):
            pixel = yy * width + xx
            base = pixel * 4
            rr = _cdiv(quant[base] + 127, 256)
            gg = _cdiv(quant[base + 1] + 127, 256)
            bb = _cdiv(quant[base + 2] + 127, 256)

            if previous is not None and (previous[base], previous[base + 1], previous[base + 2]) == (rr, gg, bb):
                quant[base:base + 4] = [rr, gg, bb, TRANSPARENT_INDEX]
                continue

            index = palette.closest_color(rr, gg, bb, TRANSPARENT_INDEX)
            pr, pg, pb = palette.color(index)
            errors = (quant[base] - pr * 256, quant[base + 1] - pg * 256, quant[base + 2] - pb * 256)
            quant[base:base + 4] = [pr, pg, pb, index]

            spread(pixel + 1, errors, 7)
            spread(pixel + width - 1, errors, 3)
            spread(pixel + width, errors, 5)
            spread(pixel + width + 1, errors, 1)

    return bytearray(value & 0xFF for value in quant)


def threshold_image(last_frame, next_frame, width: int, height: int, palette: Palette) -> bytearray:
    """Quantise ``next_frame`` to the nearest palette colours without dithering.

    Pixels unchanged from ``last_frame`` become transparent.
    """
    frame = _check_frame(next_frame, width, height, "next_frame")
    previous = None if last_frame is None else _check_frame(last_frame, width, height, "last_frame")
    out = bytearray(len(frame))

    for base in range(0, len(frame), 4):
        rgb = frame[base:base + 3]
        if previous is not None and previous[base:base + 3] == rgb:
            out[base:base + 3] = rgb
            out[base + 3] = TRANSPARENT_INDEX
            continue
        index = palette.closest_color(rgb[0], rgb[1], rgb[2], 1)
        out[base:base + 3] = bytes(palette.color(index))
        out[base + 3] = index
    return out