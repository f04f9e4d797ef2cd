# ==============================================================================
# ASEIMPORT - SOURCE PACKAGE
# ==============================================================================
# Decoder for Aseprite animated sprite documents (.ase / .aseprite).
#
# Subpackages:
#   - core: binary reader, error types, configuration
#   - parsers: document, palette and record decoders
#
# Entry points:
#   - aseimport.import_file(path) / aseimport.import_bytes(data)
#   - aseimport.AsepriteParser(config).load_from_stream(stream)
# ==============================================================================

__version__ = "1.0.0"
__description__ = "Aseprite sprite document decoder"

# Convenience imports
from .core import (
    Config, get_config,
    AsepriteError, InvalidFileError, InvalidFrameHeaderError, TruncatedError,
    DecompressionError, AllocationError, InvalidEnumError, MalformedRecordError,
    DocumentReleasedError,
)
from .parsers import AsepriteParser, AseDocument, import_file, import_bytes

__all__ = [
    '__version__',
    '__description__',

    # Parser
    'AsepriteParser',
    'AseDocument',
    'import_file',
    'import_bytes',

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
