import struct
import zlib

import numpy as np
import pytest

from aseimport.core.binary_reader import BinaryReader
from aseimport.core.errors import AllocationError, DecompressionError, InvalidEnumError
from aseimport.parsers.record_parser import (
    AnimationDirection,
    BlendMode,
    CelExtra,
    CelType,
    ColorDepth,
    ColorProfileFlags,
    ColorProfileType,
    ImageCel,
    LayerFlags,
    LayerType,
    LinkedCel,
    SliceCenter,
    SliceFlags,
    SlicePivot,
    TilemapCel,
    UserData,
    read_cel,
    read_cel_extra,
    read_color_profile,
    read_layer,
    read_slice,
    read_tags,
    read_user_data,
)

from ase_builder import (
    cel_extra_chunk,
    color_profile_chunk,
    compressed_cel_chunk,
    layer_chunk,
    linked_cel_chunk,
    raw_cel_chunk,
    slice_chunk,
    tags_chunk,
    user_data_chunk,
    chunk,
)


def chunk_reader(chunk_bytes):
    reader = BinaryReader.from_bytes(chunk_bytes)
    reader.skip(6)
    return reader


def test_read_layer():
    layer = read_layer(chunk_reader(layer_chunk(
        'Body', flags=0x0003, layer_type=1, child_level=2, blend=1, opacity=128,
    )))
    assert layer.name == 'Body'
    assert layer.flags == LayerFlags.VISIBLE | LayerFlags.EDITABLE
    assert layer.layer_type is LayerType.GROUP
    assert layer.child_level == 2
    assert layer.blend_mode is BlendMode.MULTIPLY
    assert layer.opacity == 128
    assert layer.user_data == UserData()


def test_read_layer_rejects_unknown_blend_mode():
    with pytest.raises(InvalidEnumError):
        read_layer(chunk_reader(layer_chunk('Bad', blend=99)))


def test_raw_cel_pixels_sized_by_depth():
    pixels = bytes(range(2 * 3 * 4))
    cel = read_cel(chunk_reader(raw_cel_chunk(pixels, 2, 3, layer=1, x=-4, y=7, opacity=90)),
                   ColorDepth.RGBA)
    assert cel.cel_type is CelType.RAW_IMAGE
    assert cel.layer_index == 1
    assert (cel.x, cel.y, cel.opacity) == (-4, 7, 90)
    assert cel.data == ImageCel(2, 3, pixels)
    assert cel.extra.is_empty()


def test_linked_cel_has_no_pixel_buffer():
    cel = read_cel(chunk_reader(linked_cel_chunk(5)), ColorDepth.INDEXED)
    assert cel.is_linked()
    assert cel.data == LinkedCel(frame=5)
    assert cel.get_image() is None
    assert not hasattr(cel.data, 'pixels')


def test_compressed_cel_is_inflated():
    pixels = bytes([7, 8] * 6)
    data = compressed_cel_chunk(zlib.compress(pixels), 3, 2)
    cel = read_cel(chunk_reader(data), ColorDepth.GRAYSCALE)
    assert cel.cel_type is CelType.COMPRESSED_IMAGE
    assert cel.data.pixels == pixels
    assert (cel.data.width, cel.data.height) == (3, 2)


@pytest.mark.parametrize('read_size', [64, 4096])
def test_compressed_cel_short_output_fails(read_size):
    # 5 bytes inflated where 2x2 RGBA needs 16
    data = compressed_cel_chunk(zlib.compress(b'\x01' * 5), 2, 2)
    with pytest.raises(DecompressionError):
        read_cel(chunk_reader(data), ColorDepth.RGBA, zlib_read_size=read_size)


def test_compressed_cel_corrupt_stream_fails():
    data = compressed_cel_chunk(b'not a zlib stream', 1, 1)
    with pytest.raises(DecompressionError):
        read_cel(chunk_reader(data), ColorDepth.INDEXED)


def test_compressed_cel_does_not_consume_trailing_data_beyond_output():
    pixels = b'\x02' * 4
    data = compressed_cel_chunk(zlib.compress(pixels), 2, 2) + b'trailing'
    cel = read_cel(chunk_reader(data), ColorDepth.INDEXED)
    assert cel.data.pixels == pixels


def test_pixel_buffer_limit():
    data = raw_cel_chunk(b'\x00' * 16, 2, 2)
    with pytest.raises(AllocationError):
        read_cel(chunk_reader(data), ColorDepth.RGBA, max_buffer_bytes=8)


def test_tilemap_cel_is_placeholder():
    payload = struct.pack('<HhhBH7x', 0, 0, 0, 255, 3) + b'\xff' * 10
    cel = read_cel(chunk_reader(chunk(0x2005, payload)), ColorDepth.RGBA)
    assert cel.cel_type is CelType.COMPRESSED_TILEMAP
    assert isinstance(cel.data, TilemapCel)


def test_cel_extra_present_and_absent():
    extra = read_cel_extra(chunk_reader(cel_extra_chunk(0x10000, 0x20000, 0x30000, 0x8000)))
    assert extra == CelExtra(0x10000, 0x20000, 0x30000, 0x8000)

    absent = read_cel_extra(BinaryReader.from_bytes(struct.pack('<I', 0)))
    assert absent.is_empty()


def test_color_profile_srgb_and_icc():
    srgb = read_color_profile(chunk_reader(color_profile_chunk(1, flags=1, gamma=0x23333)))
    assert srgb.profile_type is ColorProfileType.SRGB
    assert srgb.flags & ColorProfileFlags.FIXED_GAMMA
    assert srgb.gamma == 0x23333
    assert srgb.icc_data == b''

    icc = read_color_profile(chunk_reader(color_profile_chunk(2, icc=b'ICCDATA')))
    assert icc.profile_type is ColorProfileType.ICC
    assert icc.icc_data == b'ICCDATA'


def test_read_tags():
    tags = read_tags(chunk_reader(tags_chunk([
        (0, 3, 0, (255, 0, 0), 'walk'),
        (4, 4, 2, (0, 0, 255), 'idle'),
    ])))
    assert [t.name for t in tags] == ['walk', 'idle']
    assert tags[0].get_frame_count() == 4
    assert tags[0].color == (255, 0, 0)
    assert tags[1].direction is AnimationDirection.PINGPONG


@pytest.mark.parametrize('direction', [3, 200])
def test_read_tags_rejects_unknown_direction(direction):
    data = tags_chunk([(0, 1, direction, (0, 0, 0), 'odd')])
    with pytest.raises(InvalidEnumError):
        read_tags(chunk_reader(data))


def test_read_user_data_variants():
    both = read_user_data(chunk_reader(user_data_chunk('hello', (1, 2, 3, 4))))
    assert both == UserData('hello', (1, 2, 3, 4))

    color_only = read_user_data(chunk_reader(user_data_chunk(color=(9, 9, 9, 9))))
    assert color_only == UserData('', (9, 9, 9, 9))

    empty = read_user_data(chunk_reader(user_data_chunk()))
    assert empty.is_empty()


def test_read_slice_with_nine_patch_and_pivot():
    data = slice_chunk('button', [
        {'bounds': (0, 1, 2, 16, 8), 'center': (2, 2, 12, 4), 'pivot': (8, 4)},
        {'bounds': (3, -1, -2, 20, 10), 'center': (3, 3, 14, 4), 'pivot': (10, 5)},
    ], flags=3)
    slice_ = read_slice(chunk_reader(data))

    assert slice_.name == 'button'
    assert slice_.flags == SliceFlags.NINE_PATCH | SliceFlags.HAS_PIVOT
    assert len(slice_.keys) == 2
    assert slice_.keys[1].x == -1
    assert slice_.keys[0].center == SliceCenter(2, 2, 12, 4)
    assert slice_.keys[1].pivot == SlicePivot(10, 5)
    assert slice_.get_key(2) is slice_.keys[0]
    assert slice_.get_key(7) is slice_.keys[1]


def test_read_slice_without_optional_geometry():
    slice_ = read_slice(chunk_reader(slice_chunk('plain', [{'bounds': (0, 0, 0, 4, 4)}])))
    assert slice_.keys[0].center == SliceCenter()
    assert slice_.keys[0].pivot == SlicePivot()


def test_image_cel_array_and_image_views():
    image = ImageCel(2, 1, bytes([1, 2, 3, 4, 5, 6, 7, 8]))

    arr = image.as_array(ColorDepth.RGBA)
    assert arr.shape == (1, 2, 4)
    assert arr.dtype == np.uint8
    assert arr[0, 1].tolist() == [5, 6, 7, 8]

    img = image.to_image(ColorDepth.RGBA)
    assert img.mode == 'RGBA'
    assert img.size == (2, 1)
    assert img.getpixel((0, 0)) == (1, 2, 3, 4)

    gray = ImageCel(2, 2, bytes(8)).to_image(ColorDepth.GRAYSCALE)
    assert gray.mode == 'LA'
