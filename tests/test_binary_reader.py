import io
import struct

import pytest

from aseimport.core.binary_reader import BinaryReader
from aseimport.core.errors import InvalidEnumError, TruncatedError
from aseimport.parsers.record_parser import ColorDepth, LayerFlags


def test_little_endian_integers():
    data = struct.pack('<BHIhi', 0xAB, 0x1234, 0xDEADBEEF, -2, -70000)
    reader = BinaryReader.from_bytes(data)

    assert reader.u8() == 0xAB
    assert reader.u16() == 0x1234
    assert reader.u32() == 0xDEADBEEF
    assert reader.i16() == -2
    assert reader.i32() == -70000
    assert reader.tell() == len(data)


def test_short_read_raises_truncated():
    reader = BinaryReader.from_bytes(b'\x01')
    with pytest.raises(TruncatedError) as info:
        reader.u16()
    assert info.value.requested == 2
    assert info.value.available == 1
    assert isinstance(info.value, EOFError)


def test_skip_past_end_is_truncation():
    reader = BinaryReader.from_bytes(b'\x00' * 4)
    reader.skip(4)
    with pytest.raises(TruncatedError):
        reader.skip(1)


def test_length_prefixed_reads_with_varying_prefix_widths():
    data = (
        struct.pack('<B', 2) + b'ab'
        + struct.pack('<H', 3) + b'cde'
        + struct.pack('<I', 1) + b'f'
    )
    reader = BinaryReader.from_bytes(data)

    assert reader.read_slice(8) == b'ab'
    assert reader.read_string(16) == 'cde'
    assert reader.read_slice(32) == b'f'


def test_read_slice_with_element_size():
    reader = BinaryReader.from_bytes(struct.pack('<H', 2) + b'\x01\x02\x03\x04')
    assert reader.read_slice(16, element_size=2) == b'\x01\x02\x03\x04'


def test_length_prefix_longer_than_data_is_truncation():
    reader = BinaryReader.from_bytes(struct.pack('<H', 10) + b'abc')
    with pytest.raises(TruncatedError):
        reader.read_string(16)


def test_enum_and_flags():
    reader = BinaryReader.from_bytes(struct.pack('<HHH', 32, 0x0009, 12))

    assert reader.read_enum(ColorDepth, 16) is ColorDepth.RGBA
    flags = reader.read_flags(LayerFlags, 16)
    assert flags & LayerFlags.VISIBLE
    assert flags & LayerFlags.BACKGROUND
    assert not flags & LayerFlags.EDITABLE

    with pytest.raises(InvalidEnumError) as info:
        reader.read_enum(ColorDepth, 16)
    assert info.value.value == 12


def test_seek_and_stream_position():
    stream = io.BytesIO(b'\x00\x01\x02\x03')
    reader = BinaryReader(stream)
    reader.seek(2)
    assert reader.u8() == 2
    assert stream.tell() == 3
