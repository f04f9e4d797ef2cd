# ==============================================================================
# PARSERS MODULE
# ==============================================================================
# Decoders for the Aseprite sprite document format.
#
# Modules:
#   - ase_parser: document header, frame/chunk walker, AseDocument
#   - palette_parser: old and new palette chunks
#   - record_parser: layer, cel, cel extra, color profile, tag, slice and
#     user data records
# ==============================================================================

from .ase_parser import (
    AsepriteParser, AseDocument, Frame, ChunkType, HeaderFlags,
    import_file, import_bytes,
)
from .palette_parser import Palette, RGBA
from .record_parser import (
    ColorDepth, LayerType, BlendMode, CelType, ColorProfileType, AnimationDirection,
    LayerFlags, CelExtraFlags, ColorProfileFlags, UserDataFlags, SliceFlags,
    UserData, Layer, Cel, ImageCel, LinkedCel, TilemapCel, CelExtra,
    ColorProfile, Tag, Slice, SliceKey, SliceCenter, SlicePivot,
)

__all__ = [
    # Parser
    'AsepriteParser', 'AseDocument', 'Frame', 'ChunkType', 'HeaderFlags',
    'import_file', 'import_bytes',

    # Palette
    'Palette', 'RGBA',

    # Enums and flags
    'ColorDepth', 'LayerType', 'BlendMode', 'CelType', 'ColorProfileType',
    'AnimationDirection', 'LayerFlags', 'CelExtraFlags', 'ColorProfileFlags',
    'UserDataFlags', 'SliceFlags',

    # Records
    'UserData', 'Layer', 'Cel', 'ImageCel', 'LinkedCel', 'TilemapCel', 'CelExtra',
    'ColorProfile', 'Tag', 'Slice', 'SliceKey', 'SliceCenter', 'SlicePivot',
]
