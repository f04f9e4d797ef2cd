# ==============================================================================
# CORE MODULE INIT
# ==============================================================================
# Building blocks shared by the record decoders and the chunk walker:
#   - BinaryReader: little-endian cursor over a seekable stream
#   - Errors: the AsepriteError exception hierarchy
#   - Config: decoder settings
#
# Usage:
#   from aseimport.core import BinaryReader, get_config
#   from aseimport.core.errors import TruncatedError
# ==============================================================================

from .binary_reader import BinaryReader
from .config import Config, get_config
from .errors import (
    AsepriteError,
    InvalidFileError,
    InvalidFrameHeaderError,
    TruncatedError,
    DecompressionError,
    AllocationError,
    InvalidEnumError,
    MalformedRecordError,
    DocumentReleasedError,
)

__all__ = [
    # Reader
    'BinaryReader',

    # Configuration
    'Config',
    'get_config',

    # Errors
    'AsepriteError',
    'InvalidFileError',
    'InvalidFrameHeaderError',
    'TruncatedError',
    'DecompressionError',
    'AllocationError',
    'InvalidEnumError',
    'MalformedRecordError',
    'DocumentReleasedError',
]
