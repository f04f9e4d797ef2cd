# ==============================================================================
# ASEIMPORT - ERROR TYPES
# ==============================================================================
# Exceptions raised while decoding Aseprite documents.
#
# Every fatal condition aborts the whole decode. Nothing here is retried: the
# byte source is a file or an in-memory buffer, not a flaky channel.
#
#   AsepriteError
#     +-- InvalidFileError          bad document magic (0xA5E0)
#     +-- InvalidFrameHeaderError   bad frame magic (0xF1FA)
#     +-- TruncatedError            read past the end of the byte source
#     +-- DecompressionError        zlib failure or short inflated output
#     +-- AllocationError           buffer growth failed or exceeded the limit
#     +-- InvalidEnumError          enum field holds an undeclared value
#     +-- MalformedRecordError      palette index range outside the palette
#     +-- DocumentReleasedError     release() called twice
# ==============================================================================

from typing import Optional


class AsepriteError(Exception):
    """Base class for all decode errors."""


class InvalidFileError(AsepriteError):
    """The document header does not carry the expected magic number."""

    def __init__(self, magic: int):
        super().__init__(f"Invalid Aseprite file: expected magic 0xA5E0, got 0x{magic:04X}")
        self.magic = magic


class InvalidFrameHeaderError(AsepriteError):
    """A frame header does not carry the expected magic number."""

    def __init__(self, frame_index: int, magic: int):
        super().__init__(
            f"Invalid header for frame {frame_index}: expected magic 0xF1FA, got 0x{magic:04X}"
        )
        self.frame_index = frame_index
        self.magic = magic


class TruncatedError(AsepriteError, EOFError):
    """The byte source ran out before a read could be satisfied."""

    def __init__(self, requested: int, available: int, offset: Optional[int] = None):
        where = f" at offset {offset}" if offset is not None else ""
        super().__init__(
            f"Unexpected end of data{where}: needed {requested} bytes, got {available}"
        )
        self.requested = requested
        self.available = available
        self.offset = offset


class DecompressionError(AsepriteError):
    """A compressed cel could not be inflated to its expected size."""


class AllocationError(AsepriteError):
    """A buffer could not be allocated or resized."""


class InvalidEnumError(AsepriteError):
    """An enumerated field holds a value outside its declared set."""

    def __init__(self, enum_name: str, value: int):
        super().__init__(f"Invalid {enum_name} value: {value}")
        self.enum_name = enum_name
        self.value = value


class MalformedRecordError(AsepriteError):
    """A record is structurally inconsistent with the document state."""


class DocumentReleasedError(AsepriteError):
    """The document was already released."""
