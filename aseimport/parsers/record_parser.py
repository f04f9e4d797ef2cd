# ==============================================================================
# RECORD PARSER MODULE
# ==============================================================================
# Decoders for the individual records carried by Aseprite chunks.
#
# Each read_* function consumes exactly its own record from the reader and
# returns a fully formed value, or raises. None of them know where the chunk
# ends: the frame walker seeks to the chunk end afterwards, so trailing fields
# added by later format revisions are simply never read.
#
# Records:
#   - Layer        (chunk 0x2004)
#   - Cel          (chunk 0x2005)  raw / linked / compressed / tilemap payload
#   - CelExtra     (chunk 0x2006)  precise bounds, fixed point
#   - ColorProfile (chunk 0x2007)
#   - Tag list     (chunk 0x2018)
#   - UserData     (chunk 0x2020)
#   - Slice        (chunk 0x2022)
#
# Strings are WORD length + UTF-8 bytes (no terminator).
#
# Release:
#   Every record that owns buffers (names, texts, pixels, ICC bytes) has a
#   release() method that drops them and returns how many non-empty buffers
#   were dropped. Empty placeholders ("" / b"") are not counted.
# ==============================================================================

import zlib
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import List, NamedTuple, Optional, Tuple, Union

import numpy as np
from PIL import Image

from ..core.binary_reader import BinaryReader
from ..core.errors import AllocationError, DecompressionError


# ==============================================================================
# ENUMS
# ==============================================================================

class ColorDepth(IntEnum):
    """Bits per pixel of the document."""
    INDEXED = 8
    GRAYSCALE = 16
    RGBA = 32

    @property
    def bytes_per_pixel(self) -> int:
        return self.value // 8


class LayerType(IntEnum):
    NORMAL = 0
    GROUP = 1
    TILEMAP = 2


class BlendMode(IntEnum):
    NORMAL = 0
    MULTIPLY = 1
    SCREEN = 2
    OVERLAY = 3
    DARKEN = 4
    LIGHTEN = 5
    COLOR_DODGE = 6
    COLOR_BURN = 7
    HARD_LIGHT = 8
    SOFT_LIGHT = 9
    DIFFERENCE = 10
    EXCLUSION = 11
    HUE = 12
    SATURATION = 13
    COLOR = 14
    LUMINOSITY = 15
    ADDITION = 16
    SUBTRACT = 17
    DIVIDE = 18


class CelType(IntEnum):
    RAW_IMAGE = 0
    LINKED = 1
    COMPRESSED_IMAGE = 2
    COMPRESSED_TILEMAP = 3


class ColorProfileType(IntEnum):
    NONE = 0
    SRGB = 1
    ICC = 2


class AnimationDirection(IntEnum):
    FORWARD = 0
    REVERSE = 1
    PINGPONG = 2


# ==============================================================================
# FLAGS
# ==============================================================================

class LayerFlags(IntFlag):
    VISIBLE = 0x0001
    EDITABLE = 0x0002
    LOCK_MOVEMENT = 0x0004
    BACKGROUND = 0x0008
    PREFER_LINKED_CELS = 0x0010
    COLLAPSED = 0x0020
    REFERENCE = 0x0040


class CelExtraFlags(IntFlag):
    PRECISE_BOUNDS = 0x0001


class ColorProfileFlags(IntFlag):
    FIXED_GAMMA = 0x0001


class UserDataFlags(IntFlag):
    HAS_TEXT = 0x0001
    HAS_COLOR = 0x0002


class SliceFlags(IntFlag):
    NINE_PATCH = 0x0001
    HAS_PIVOT = 0x0002


# Pillow mode matching each color depth byte layout
_IMAGE_MODES = {
    ColorDepth.INDEXED: 'P',
    ColorDepth.GRAYSCALE: 'LA',
    ColorDepth.RGBA: 'RGBA',
}


# ==============================================================================
# USER DATA
# ==============================================================================

@dataclass
class UserData:
    """
    Free-form annotation attached to a layer, cel or slice.

    Attributes:
        text: Annotation text ("" if absent)
        color: RGBA color bytes ((0, 0, 0, 0) if absent)
    """
    text: str = ""
    color: Tuple[int, int, int, int] = (0, 0, 0, 0)

    def is_empty(self) -> bool:
        return not self.text and self.color == (0, 0, 0, 0)

    def release(self) -> int:
        freed = 1 if self.text else 0
        self.text = ""
        return freed


# ==============================================================================
# LAYERS
# ==============================================================================

@dataclass
class Layer:
    """
    A document layer.

    Attributes:
        flags: Visibility / editing flags
        layer_type: Normal, group or tilemap
        child_level: Nesting depth relative to the preceding layers
        blend_mode: Blend mode used when compositing
        opacity: 0-255 (only meaningful with HeaderFlags.LAYER_OPACITY_VALID)
        name: Layer name
        user_data: Attached user data chunk, if any followed the layer
    """
    flags: LayerFlags = LayerFlags(0)
    layer_type: LayerType = LayerType.NORMAL
    child_level: int = 0
    blend_mode: BlendMode = BlendMode.NORMAL
    opacity: int = 255
    name: str = ""
    user_data: UserData = field(default_factory=UserData)

    def is_visible(self) -> bool:
        return bool(self.flags & LayerFlags.VISIBLE)

    def release(self) -> int:
        freed = 1 if self.name else 0
        self.name = ""
        return freed + self.user_data.release()


# ==============================================================================
# CELS
# ==============================================================================

@dataclass
class ImageCel:
    """
    Pixel payload of a raw or compressed cel.

    `pixels` always holds width * height * bytes-per-pixel bytes, already
    inflated for compressed cels.
    """
    width: int = 0
    height: int = 0
    pixels: bytes = b""

    def as_array(self, color_depth: ColorDepth) -> np.ndarray:
        """
        View the pixel buffer as a (height, width, channels) uint8 array.

        No pixel conversion happens: indexed cels have 1 channel, grayscale
        cels 2 (value, alpha) and RGBA cels 4.
        """
        channels = ColorDepth(color_depth).bytes_per_pixel
        arr = np.frombuffer(self.pixels, dtype=np.uint8)
        return arr.reshape((self.height, self.width, channels))

    def to_image(self, color_depth: ColorDepth) -> 'Image.Image':
        """
        Wrap the pixel buffer in a Pillow image of the matching mode.

        Indexed cels become 'P' images without a palette attached; the
        caller decides which palette to apply.
        """
        mode = _IMAGE_MODES[ColorDepth(color_depth)]
        return Image.frombytes(mode, (self.width, self.height), self.pixels)

    def release(self) -> int:
        freed = 1 if self.pixels else 0
        self.pixels = b""
        return freed


@dataclass
class LinkedCel:
    """A cel that reuses the cel of the same layer in another frame."""
    frame: int = 0


@dataclass
class TilemapCel:
    """Placeholder for compressed tilemap cels (not decoded)."""


CelData = Union[ImageCel, LinkedCel, TilemapCel]


@dataclass
class CelExtra:
    """
    Precise cel bounds.

    All four values are 16.16 fixed point numbers stored as DWORDs. They are
    kept as read; do not use them as plain integers.
    """
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def is_empty(self) -> bool:
        return self.x == 0 and self.y == 0 and self.width == 0 and self.height == 0


@dataclass
class Cel:
    """
    The content one layer contributes to one frame.

    Attributes:
        layer_index: Index into AseDocument.layers
        x, y: Signed pixel offset on the canvas
        opacity: 0-255
        cel_type: Which payload variant `data` holds
        data: ImageCel (raw / compressed), LinkedCel or TilemapCel
        extra: Precise bounds from a cel extra chunk (empty if none)
        user_data: Attached user data chunk, if any
    """
    layer_index: int = 0
    x: int = 0
    y: int = 0
    opacity: int = 255
    cel_type: CelType = CelType.RAW_IMAGE
    data: CelData = field(default_factory=ImageCel)
    extra: CelExtra = field(default_factory=CelExtra)
    user_data: UserData = field(default_factory=UserData)

    def is_linked(self) -> bool:
        return self.cel_type == CelType.LINKED

    def get_image(self) -> Optional[ImageCel]:
        """Get the pixel payload (None for linked and tilemap cels)."""
        if isinstance(self.data, ImageCel):
            return self.data
        return None

    def release(self) -> int:
        freed = self.user_data.release()
        if isinstance(self.data, ImageCel):
            freed += self.data.release()
        return freed


# ==============================================================================
# COLOR PROFILE
# ==============================================================================

@dataclass
class ColorProfile:
    """
    Document color profile.

    Attributes:
        profile_type: None, sRGB or embedded ICC
        flags: FIXED_GAMMA when `gamma` should be used
        gamma: 16.16 fixed point gamma, kept as read
        icc_data: Raw ICC profile (b"" unless profile_type is ICC)
    """
    profile_type: ColorProfileType = ColorProfileType.NONE
    flags: ColorProfileFlags = ColorProfileFlags(0)
    gamma: int = 0
    icc_data: bytes = b""

    def release(self) -> int:
        freed = 1 if self.icc_data else 0
        self.icc_data = b""
        return freed


# ==============================================================================
# TAGS
# ==============================================================================

@dataclass
class Tag:
    """
    A named playback range over frames [from_frame, to_frame] (inclusive).
    """
    from_frame: int = 0
    to_frame: int = 0
    direction: AnimationDirection = AnimationDirection.FORWARD
    color: Tuple[int, int, int] = (0, 0, 0)
    name: str = ""

    def get_frame_count(self) -> int:
        return self.to_frame - self.from_frame + 1

    def release(self) -> int:
        freed = 1 if self.name else 0
        self.name = ""
        return freed


# ==============================================================================
# SLICES
# ==============================================================================

class SliceCenter(NamedTuple):
    """Nine-patch center rectangle, relative to the slice bounds."""
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0


class SlicePivot(NamedTuple):
    """Pivot point, relative to the slice origin."""
    x: int = 0
    y: int = 0


@dataclass
class SliceKey:
    """Slice geometry valid from `frame` onwards."""
    frame: int = 0
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    center: SliceCenter = SliceCenter()
    pivot: SlicePivot = SlicePivot()


@dataclass
class Slice:
    """
    A named, time-varying region of the canvas.

    Attributes:
        flags: NINE_PATCH / HAS_PIVOT
        name: Slice name
        keys: Geometry keys in file order
        user_data: Attached user data chunk, if any
    """
    flags: SliceFlags = SliceFlags(0)
    name: str = ""
    keys: Tuple[SliceKey, ...] = ()
    user_data: UserData = field(default_factory=UserData)

    def get_key(self, frame: int) -> Optional[SliceKey]:
        """Get the key in effect at `frame` (the last key starting at or before it)."""
        current = None
        for key in self.keys:
            if key.frame <= frame:
                current = key
        return current

    def release(self) -> int:
        freed = (1 if self.name else 0) + (1 if self.keys else 0)
        self.name = ""
        self.keys = ()
        return freed + self.user_data.release()


# ==============================================================================
# RECORD DECODERS
# ==============================================================================

def read_user_data(reader: BinaryReader) -> UserData:
    """
    Read a user data record.

    Layout:
        DWORD  flags (bit 0 = has text, bit 1 = has color)
        [STRING text]
        [BYTE r, g, b, a]
    """
    flags = reader.read_flags(UserDataFlags, 32)
    user_data = UserData()
    if flags & UserDataFlags.HAS_TEXT:
        user_data.text = reader.read_string(16)
    if flags & UserDataFlags.HAS_COLOR:
        user_data.color = tuple(reader.read_bytes(4))
    return user_data


def read_layer(reader: BinaryReader) -> Layer:
    """
    Read a layer record.

    Layout:
        WORD   flags
        WORD   layer type
        WORD   child level
        WORD   default width  (ignored)
        WORD   default height (ignored)
        WORD   blend mode
        BYTE   opacity
        BYTE[3] reserved
        STRING name
    """
    layer = Layer()
    layer.flags = reader.read_flags(LayerFlags, 16)
    layer.layer_type = reader.read_enum(LayerType, 16)
    layer.child_level = reader.u16()
    reader.skip(4)
    layer.blend_mode = reader.read_enum(BlendMode, 16)
    layer.opacity = reader.u8()
    reader.skip(3)
    layer.name = reader.read_string(16)
    return layer


def read_cel(reader: BinaryReader, color_depth: ColorDepth,
             max_buffer_bytes: int = 0, zlib_read_size: int = 4096) -> Cel:
    """
    Read a cel record and its payload.

    Layout:
        WORD   layer index
        SHORT  x
        SHORT  y
        BYTE   opacity
        WORD   cel type
        BYTE[7] reserved
        payload (depends on cel type):
          raw:        WORD width, WORD height, PIXEL[]
          linked:     WORD frame position to link with
          compressed: WORD width, WORD height, zlib stream of PIXEL[]
          tilemap:    not decoded

    Args:
        reader: Positioned just after the chunk type
        color_depth: Document color depth (sets bytes per pixel)
        max_buffer_bytes: Pixel buffer limit (0 = no limit)
        zlib_read_size: Bytes pulled from the reader per inflate step
    """
    cel = Cel()
    cel.layer_index = reader.u16()
    cel.x = reader.i16()
    cel.y = reader.i16()
    cel.opacity = reader.u8()
    cel.cel_type = reader.read_enum(CelType, 16)
    reader.skip(7)

    if cel.cel_type == CelType.RAW_IMAGE:
        cel.data = _read_image(reader, color_depth, False, max_buffer_bytes, zlib_read_size)
    elif cel.cel_type == CelType.LINKED:
        cel.data = LinkedCel(frame=reader.u16())
    elif cel.cel_type == CelType.COMPRESSED_IMAGE:
        cel.data = _read_image(reader, color_depth, True, max_buffer_bytes, zlib_read_size)
    else:
        cel.data = TilemapCel()

    return cel


def _read_image(reader: BinaryReader, color_depth: ColorDepth, compressed: bool,
                max_buffer_bytes: int, zlib_read_size: int) -> ImageCel:
    """Read width, height and a pixel buffer of exactly w * h * bpp bytes."""
    width = reader.u16()
    height = reader.u16()
    size = width * height * ColorDepth(color_depth).bytes_per_pixel

    if max_buffer_bytes and size > max_buffer_bytes:
        raise AllocationError(
            f"Cel pixel buffer of {size} bytes exceeds limit of {max_buffer_bytes} bytes"
        )

    if compressed:
        pixels = _inflate(reader, size, zlib_read_size)
    else:
        try:
            pixels = reader.read_bytes(size)
        except MemoryError:
            raise AllocationError(f"Cannot allocate pixel buffer of {size} bytes") from None

    return ImageCel(width=width, height=height, pixels=pixels)


def _inflate(reader: BinaryReader, size: int, read_size: int) -> bytes:
    """
    Inflate a zlib stream from the reader into a buffer of `size` bytes.

    Input is pulled in `read_size` steps so that only the compressed bytes
    actually needed are consumed.

    Raises:
        DecompressionError: on a corrupt stream, or if the stream (or the
            source) ends before `size` bytes were produced
    """
    try:
        pixels = bytearray(size)
    except MemoryError:
        raise AllocationError(f"Cannot allocate pixel buffer of {size} bytes") from None

    decompressor = zlib.decompressobj()
    filled = 0

    try:
        while filled < size:
            if decompressor.unconsumed_tail:
                data = decompressor.unconsumed_tail
            elif decompressor.eof:
                break
            else:
                data = reader.read_some(read_size)
                if not data:
                    break
            out = decompressor.decompress(data, size - filled)
            pixels[filled:filled + len(out)] = out
            filled += len(out)
    except zlib.error as e:
        raise DecompressionError(f"Failed to inflate cel pixels: {e}") from e

    if filled < size:
        raise DecompressionError(
            f"Compressed cel inflated to {filled} bytes, expected {size}"
        )

    return bytes(pixels)


def read_cel_extra(reader: BinaryReader) -> CelExtra:
    """
    Read a cel extra record.

    Layout:
        DWORD  flags (bit 0 = precise bounds are set)
        FIXED  x, y, width, height   (only read when bit 0 is set)
    """
    flags = reader.read_flags(CelExtraFlags, 32)
    if not flags & CelExtraFlags.PRECISE_BOUNDS:
        return CelExtra()
    return CelExtra(
        x=reader.u32(),
        y=reader.u32(),
        width=reader.u32(),
        height=reader.u32(),
    )


def read_color_profile(reader: BinaryReader) -> ColorProfile:
    """
    Read a color profile record.

    Layout:
        WORD   type
        WORD   flags
        FIXED  gamma
        BYTE[8] reserved
        [DWORD length, BYTE[] ICC data]   (only for ICC profiles)
    """
    profile = ColorProfile()
    profile.profile_type = reader.read_enum(ColorProfileType, 16)
    profile.flags = reader.read_flags(ColorProfileFlags, 16)
    profile.gamma = reader.u32()
    reader.skip(8)
    if profile.profile_type == ColorProfileType.ICC:
        profile.icc_data = reader.read_slice(32)
    return profile


def read_tag(reader: BinaryReader) -> Tag:
    """
    Read one tag entry.

    Layout:
        WORD   from frame
        WORD   to frame
        BYTE   loop direction
        BYTE[8] reserved
        BYTE[3] RGB color
        BYTE   extra byte (zero)
        STRING name
    """
    tag = Tag()
    tag.from_frame = reader.u16()
    tag.to_frame = reader.u16()
    tag.direction = reader.read_enum(AnimationDirection, 8)
    reader.skip(8)
    tag.color = tuple(reader.read_bytes(3))
    reader.skip(1)
    tag.name = reader.read_string(16)
    return tag


def read_tags(reader: BinaryReader) -> Tuple[Tag, ...]:
    """
    Read a complete tags chunk.

    Layout:
        WORD   number of tags
        BYTE[8] reserved
        TAG[]  tags
    """
    count = reader.u16()
    reader.skip(8)
    tags: List[Tag] = []
    for _ in range(count):
        tags.append(read_tag(reader))
    return tuple(tags)


def read_slice_key(reader: BinaryReader, flags: SliceFlags) -> SliceKey:
    """
    Read one slice key.

    Layout:
        DWORD  frame number
        LONG   x, LONG y
        DWORD  width, DWORD height
        [LONG x, LONG y, DWORD width, DWORD height]   nine-patch center
        [LONG x, LONG y]                              pivot
    """
    key = SliceKey()
    key.frame = reader.u32()
    key.x = reader.i32()
    key.y = reader.i32()
    key.width = reader.u32()
    key.height = reader.u32()
    if flags & SliceFlags.NINE_PATCH:
        key.center = SliceCenter(reader.i32(), reader.i32(), reader.u32(), reader.u32())
    if flags & SliceFlags.HAS_PIVOT:
        key.pivot = SlicePivot(reader.i32(), reader.i32())
    return key


def read_slice(reader: BinaryReader) -> Slice:
    """
    Read a slice record.

    Layout:
        DWORD  number of keys
        DWORD  flags
        DWORD  reserved
        STRING name
        KEY[]  keys
    """
    key_count = reader.u32()
    slice_ = Slice()
    slice_.flags = reader.read_flags(SliceFlags, 32)
    reader.skip(4)
    slice_.name = reader.read_string(16)
    keys: List[SliceKey] = []
    for _ in range(key_count):
        keys.append(read_slice_key(reader, slice_.flags))
    slice_.keys = tuple(keys)
    return slice_
