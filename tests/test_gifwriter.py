import io
import random

import pytest

from wator.gifwriter import GifWriter, write_lzw_image, write_palette
from wator.palette import Palette, make_palette

RED = (255, 0, 0)
BLUE = (0, 0, 255)


def _read_sub_blocks(data, pos):
    out = bytearray()
    while True:
        size = data[pos]
        pos += 1
        if size == 0:
            return bytes(out), pos
        out += data[pos:pos + size]
        pos += size


def _sub_block_sizes(data, pos):
    sizes = []
    while True:
        size = data[pos]
        pos += 1
        if size == 0:
            return sizes
        sizes.append(size)
        pos += size


def _lzw_decode(min_code_size, payload):
    clear = 1 << min_code_size
    eoi = clear + 1
    bits = int.from_bytes(payload, "little")
    total = len(payload) * 8
    pos = 0
    size = min_code_size + 1
    table = [[i] for i in range(clear)] + [None, None]
    prev = None
    out = []
    while pos + size <= total:
        code = (bits >> pos) & ((1 << size) - 1)
        pos += size
        if code == clear:
            table = [[i] for i in range(clear)] + [None, None]
            size = min_code_size + 1
            prev = None
            continue
        if code == eoi:
            break
        if prev is None:
            entry = table[code]
        else:
            if code < len(table):
                entry = table[code]
                new = table[prev] + [entry[0]]
            else:
                entry = table[prev] + [table[prev][0]]
                new = entry
            table.append(new)
            if len(table) == 1 << size and size < 12:
                size += 1
        out.extend(entry)
        prev = code
    return out


def _parse_image_block(data, pos):
    assert data[pos] == 0x2C
    pos += 1
    desc = data[pos:pos + 9]
    pos += 9
    table_size = 1 << ((desc[8] & 7) + 1)
    table = data[pos:pos + 3 * table_size]
    pos += 3 * table_size
    min_code = data[pos]
    pos += 1
    sizes = _sub_block_sizes(data, pos)
    payload, pos = _read_sub_blocks(data, pos)
    return {
        "left": int.from_bytes(desc[0:2], "little"),
        "top": int.from_bytes(desc[2:4], "little"),
        "width": int.from_bytes(desc[4:6], "little"),
        "height": int.from_bytes(desc[6:8], "little"),
        "table": table,
        "min_code": min_code,
        "sizes": sizes,
        "indices": _lzw_decode(min_code, payload),
    }, pos


def _parse_gif(data):
    assert data[:6] == b"GIF89a"
    pos = 13 + 6
    frames = []
    extensions = []
    while True:
        tag = data[pos]
        pos += 1
        if tag == 0x3B:
            break
        if tag == 0x21:
            label = data[pos]
            pos += 1
            body, pos = _read_sub_blocks(data, pos)
            extensions.append((label, body))
        elif tag == 0x2C:
            frame, pos = _parse_image_block(data, pos - 1)
            frames.append(frame)
        else:
            raise AssertionError(f"unexpected block tag {tag}")
    return pos, frames, extensions


def _rgba(pixels):
    out = bytearray()
    for r, g, b in pixels:
        out += bytes((r, g, b, 255))
    return bytes(out)


def _indexed(indices):
    out = bytearray()
    for index in indices:
        out += bytes((0, 0, 0, index))
    return bytes(out)


def test_write_palette_starts_with_transparent_black():
    palette = Palette(bit_depth=2)
    palette.r[1], palette.g[1], palette.b[1] = 10, 20, 30
    palette.r[2], palette.g[2], palette.b[2] = 40, 50, 60
    palette.r[3], palette.g[3], palette.b[3] = 70, 80, 90
    palette.r[0] = 99
    stream = io.BytesIO()
    write_palette(palette, stream)
    assert stream.getvalue() == bytes((0, 0, 0, 10, 20, 30, 40, 50, 60, 70, 80, 90))


def test_write_palette_length_matches_bit_depth():
    stream = io.BytesIO()
    write_palette(Palette(bit_depth=8), stream)
    assert len(stream.getvalue()) == 3 * 256


def test_lzw_image_header_fields():
    palette = Palette(bit_depth=8)
    stream = io.BytesIO()
    write_lzw_image(stream, _indexed([1, 2]), 3, 5, 2, 1, 0x0104, palette)
    data = stream.getvalue()
    assert data[:4] == bytes((0x21, 0xF9, 0x04, 0x05))
    assert data[4:6] == bytes((0x04, 0x01))
    assert data[6] == 0
    assert data[7] == 0
    frame, end = _parse_image_block(data, 8)
    assert (frame["left"], frame["top"], frame["width"], frame["height"]) == (3, 5, 2, 1)
    assert frame["min_code"] == 8
    assert end == len(data)


def test_lzw_round_trip_through_dictionary_reset():
    rng = random.Random(7)
    width, height = 96, 96
    indices = [rng.randrange(256) for _ in range(width * height)]
    stream = io.BytesIO()
    write_lzw_image(stream, _indexed(indices), 0, 0, width, height, 0, Palette())
    frame, _ = _parse_image_block(stream.getvalue(), 8)
    assert frame["indices"] == indices
    assert all(size <= 255 for size in frame["sizes"])


def test_lzw_round_trip_repetitive_image():
    indices = [5] * 3000 + [6, 7] * 500
    stream = io.BytesIO()
    write_lzw_image(stream, _indexed(indices), 0, 0, len(indices), 1, 0, Palette())
    frame, _ = _parse_image_block(stream.getvalue(), 8)
    assert frame["indices"] == indices
    assert len(stream.getvalue()) < len(indices)


def test_lzw_rejects_short_image():
    with pytest.raises(ValueError):
        write_lzw_image(io.BytesIO(), bytes(4), 0, 0, 2, 2, 0, Palette())


def test_header_and_trailer(tmp_path):
    path = tmp_path / "empty.gif"
    writer = GifWriter(path, 300, 2, 0)
    writer.close()
    data = path.read_bytes()
    assert data[:6] == b"GIF89a"
    assert data[6:10] == bytes((300 & 0xFF, 300 >> 8, 2, 0))
    assert data[10] == 0xF0
    assert data[13:19] == bytes(6)
    assert data[-1] == 0x3B
    assert len(data) == 20


def test_animation_header_only_with_delay(tmp_path):
    animated = tmp_path / "animated.gif"
    still = tmp_path / "still.gif"
    GifWriter(animated, 2, 2, 4).close()
    GifWriter(still, 2, 2, 0).close()
    assert b"NETSCAPE2.0" in animated.read_bytes()
    assert b"NETSCAPE2.0" not in still.read_bytes()
    _, _, extensions = _parse_gif(animated.read_bytes())
    assert extensions == [(0xFF, b"NETSCAPE2.0" + bytes((1, 0, 0)))]


def test_frames_decode_to_input_colours(tmp_path):
    path = tmp_path / "frames.gif"
    pixels = [RED, BLUE, BLUE, RED] * 4
    with GifWriter(path, 4, 4, 3) as writer:
        writer.write_frame(_rgba(pixels), 4, 4, 3)
        writer.write_frame(_rgba(pixels), 4, 4, 3)
    assert writer.closed
    data = path.read_bytes()
    end, frames, extensions = _parse_gif(data)
    assert end == len(data)
    assert len(frames) == 2

    first = frames[0]
    decoded = [tuple(first["table"][3 * i:3 * i + 3]) for i in first["indices"]]
    assert decoded == pixels
    assert 0 not in first["indices"]

    # An unchanged frame is entirely transparent.
    assert frames[1]["indices"] == [0] * 16

    delays = [int.from_bytes(body[1:3], "little") for label, body in extensions if label == 0xF9]
    assert delays == [3, 3]


def test_changed_pixels_only_are_opaque(tmp_path):
    path = tmp_path / "delta.gif"
    before = [RED] * 4
    after = [RED, BLUE, RED, RED]
    with GifWriter(path, 2, 2, 1) as writer:
        writer.write_frame(_rgba(before), 2, 2, 1)
        writer.write_frame(_rgba(after), 2, 2, 1)
    _, frames, _ = _parse_gif(path.read_bytes())
    second = frames[1]
    assert second["indices"][0] == 0
    assert second["indices"][2:] == [0, 0]
    changed = second["indices"][1]
    assert tuple(second["table"][3 * changed:3 * changed + 3]) == BLUE


def test_dithered_frame_is_valid(tmp_path):
    path = tmp_path / "dither.gif"
    rng = random.Random(3)
    pixels = [(rng.randrange(256), rng.randrange(256), rng.randrange(256)) for _ in range(36)]
    with GifWriter(path, 6, 6, 2, dither=True) as writer:
        writer.write_frame(_rgba(pixels), 6, 6, 2, dither=True)
    data = path.read_bytes()
    end, frames, _ = _parse_gif(data)
    assert end == len(data)
    assert len(frames[0]["indices"]) == 36


def test_palette_used_matches_make_palette():
    pixels = [RED, BLUE, RED, BLUE]
    image = _rgba(pixels)
    palette = make_palette(None, image, 2, 2)
    stream = io.BytesIO()
    write_palette(palette, stream)
    table = stream.getvalue()
    colours = {tuple(table[3 * i:3 * i + 3]) for i in range(1, 256)}
    assert RED in colours
    assert BLUE in colours


def test_write_after_close_raises(tmp_path):
    writer = GifWriter(tmp_path / "closed.gif", 1, 1, 0)
    writer.close()
    with pytest.raises(ValueError):
        writer.write_frame(_rgba([RED]), 1, 1, 0)


def test_close_twice_raises(tmp_path):
    writer = GifWriter(tmp_path / "twice.gif", 1, 1, 0)
    writer.close()
    with pytest.raises(ValueError):
        writer.close()


def test_unopenable_path_raises(tmp_path):
    with pytest.raises(OSError):
        GifWriter(tmp_path / "missing" / "out.gif", 1, 1, 0)


def test_frame_size_mismatch_raises(tmp_path):
    with GifWriter(tmp_path / "bad.gif", 2, 2, 0) as writer:
        with pytest.raises(ValueError):
            writer.write_frame(_rgba([RED]), 2, 2, 0)