# ==============================================================================
# BINARY READER MODULE
# ==============================================================================
# Forward-only little-endian cursor over a seekable binary stream.
#
# All Aseprite structures are little-endian. Length-prefixed arrays use a
# leading count whose width changes from site to site (8, 16 or 32 bits), so
# the prefix width is a parameter of read_slice()/read_string().
#
# Any read that cannot be fully satisfied raises TruncatedError. The reader
# never pads short reads.
#
# Usage:
#   reader = BinaryReader.from_bytes(data)
#   magic = reader.u16()
#   name = reader.read_string(16)
#   reader.seek(chunk_end)
# ==============================================================================

import io
import struct
from enum import Enum, IntFlag
from typing import BinaryIO, Type, TypeVar

from .errors import InvalidEnumError, TruncatedError


# ==============================================================================
# CONSTANTS
# ==============================================================================

# struct format for each supported unsigned integer width (in bits)
_UNSIGNED_FORMATS = {
    8: '<B',
    16: '<H',
    32: '<I',
}

_SIGNED_FORMATS = {
    8: '<b',
    16: '<h',
    32: '<i',
}

E = TypeVar('E', bound=Enum)
F = TypeVar('F', bound=IntFlag)


# ==============================================================================
# BINARY READER
# ==============================================================================

class BinaryReader:
    """
    Typed little-endian reads over a seekable stream.

    The reader does not own the stream; closing it is the caller's job.

    Attributes:
        stream: Underlying binary stream (needs read, seek and tell)
    """

    def __init__(self, stream: BinaryIO):
        self.stream = stream

    @classmethod
    def from_bytes(cls, data: bytes) -> 'BinaryReader':
        """Create a reader over an in-memory buffer."""
        return cls(io.BytesIO(data))

    # --------------------------------------------------------------------------
    # POSITIONING
    # --------------------------------------------------------------------------

    def tell(self) -> int:
        """Current absolute position."""
        return self.stream.tell()

    def seek(self, position: int):
        """Move to an absolute position."""
        self.stream.seek(position, io.SEEK_SET)

    def skip(self, count: int):
        """
        Skip reserved bytes.

        The skipped region must exist: skipping past the end of the data is a
        truncation just like reading it.
        """
        if count <= 0:
            return
        self.read_bytes(count)

    # --------------------------------------------------------------------------
    # RAW BYTES
    # --------------------------------------------------------------------------

    def read_bytes(self, count: int) -> bytes:
        """
        Read exactly `count` bytes.

        Raises:
            TruncatedError: if fewer bytes are available
        """
        offset = self.tell()
        data = self.stream.read(count)
        if len(data) != count:
            raise TruncatedError(count, len(data), offset)
        return data

    def read_some(self, count: int) -> bytes:
        """Read up to `count` bytes; may return fewer (or none) at the end."""
        return self.stream.read(count)

    # --------------------------------------------------------------------------
    # INTEGERS
    # --------------------------------------------------------------------------

    def read_uint(self, bits: int) -> int:
        """Read an unsigned integer of 8, 16 or 32 bits."""
        fmt = _UNSIGNED_FORMATS[bits]
        return struct.unpack(fmt, self.read_bytes(bits // 8))[0]

    def read_int(self, bits: int) -> int:
        """Read a signed integer of 8, 16 or 32 bits."""
        fmt = _SIGNED_FORMATS[bits]
        return struct.unpack(fmt, self.read_bytes(bits // 8))[0]

    def u8(self) -> int:
        return self.read_uint(8)

    def u16(self) -> int:
        return self.read_uint(16)

    def u32(self) -> int:
        return self.read_uint(32)

    def i16(self) -> int:
        return self.read_int(16)

    def i32(self) -> int:
        return self.read_int(32)

    # --------------------------------------------------------------------------
    # ENUMS AND FLAGS
    # --------------------------------------------------------------------------

    def read_enum(self, enum_cls: Type[E], bits: int = 16) -> E:
        """
        Read an integer and map it onto `enum_cls`.

        Raises:
            InvalidEnumError: if the value is not a member of the enum
        """
        value = self.read_uint(bits)
        try:
            return enum_cls(value)
        except ValueError:
            raise InvalidEnumError(enum_cls.__name__, value) from None

    def read_flags(self, flag_cls: Type[F], bits: int = 16) -> F:
        """
        Read a packed bit-flag record.

        Undeclared bits are kept as-is (they are padding in the format).
        """
        return flag_cls(self.read_uint(bits))

    # --------------------------------------------------------------------------
    # LENGTH-PREFIXED DATA
    # --------------------------------------------------------------------------

    def read_slice(self, prefix_bits: int, element_size: int = 1) -> bytes:
        """
        Read a length-prefixed array of fixed-size elements.

        Args:
            prefix_bits: Width of the leading count (8, 16 or 32)
            element_size: Size in bytes of one element

        Returns:
            The raw bytes of all elements (count * element_size bytes)
        """
        count = self.read_uint(prefix_bits)
        if count == 0:
            return b""
        return self.read_bytes(count * element_size)

    def read_string(self, prefix_bits: int = 16) -> str:
        """Read a length-prefixed UTF-8 string."""
        raw = self.read_slice(prefix_bits)
        if not raw:
            return ""
        return raw.decode('utf-8', errors='replace')
