# ==============================================================================
# ASEPRITE PARSER MODULE
# ==============================================================================
# Parser for Aseprite sprite documents (.ase / .aseprite).
#
# File Structure:
#   - Header (128 bytes): magic 0xA5E0, frame count, canvas size, color depth,
#     palette size, pixel aspect, grid
#   - Frames: each frame is a 16 byte header (magic 0xF1FA) followed by a
#     stream of chunks
#   - Chunks: DWORD size (counted from the start of the size field), WORD
#     type, then the record for that type
#
# Chunk walking rules:
#   - After every chunk the reader is moved to chunk start + chunk size, no
#     matter how much of the chunk the decoder read. Unknown chunk types and
#     fields appended by newer format revisions are skipped this way.
#   - A user data chunk belongs to the layer, cel or slice that was appended
#     last anywhere in the document so far. It is attached once.
#   - A cel extra chunk belongs to the last cel of the current frame. It is
#     attached once.
#   - Old palette chunks are merged into the palette until the first new
#     palette chunk shows up; from then on they are ignored.
#
# References:
#   - https://github.com/aseprite/aseprite/blob/main/docs/ase-file-specs.md
#
# Usage Example:
#   parser = AsepriteParser()
#   with parser.load("hero.aseprite") as doc:
#       for frame in doc.frames:
#           for cel in frame.cels:
#               print(doc.layers[cel.layer_index].name, cel.x, cel.y)
# ==============================================================================

import logging
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import BinaryIO, List, Optional, Tuple

from ..core.binary_reader import BinaryReader
from ..core.config import Config, get_config
from ..core.errors import (
    DocumentReleasedError,
    InvalidFileError,
    InvalidFrameHeaderError,
)
from .palette_parser import Palette
from .record_parser import (
    Cel,
    ColorDepth,
    ColorProfile,
    Layer,
    Slice,
    Tag,
    read_cel,
    read_cel_extra,
    read_color_profile,
    read_layer,
    read_slice,
    read_tags,
    read_user_data,
)

logger = logging.getLogger(__name__)


# ==============================================================================
# CONSTANTS
# ==============================================================================

FILE_MAGIC = 0xA5E0
FRAME_MAGIC = 0xF1FA

# Old WORD chunk count value meaning "look at the DWORD count"
CHUNK_COUNT_WIDENED = 0xFFFF

# Palette size used when the header declares 0 colors
DEFAULT_COLOR_COUNT = 256


class ChunkType(IntEnum):
    OLD_PALETTE_A = 0x0004
    OLD_PALETTE_B = 0x0011
    LAYER = 0x2004
    CEL = 0x2005
    CEL_EXTRA = 0x2006
    COLOR_PROFILE = 0x2007
    MASK = 0x2016
    PATH = 0x2017
    TAGS = 0x2018
    PALETTE = 0x2019
    USER_DATA = 0x2020
    SLICES = 0x2022
    TILESET = 0x2023


class HeaderFlags(IntFlag):
    LAYER_OPACITY_VALID = 0x0001


def chunk_type_name(value: int) -> str:
    """Readable name of a chunk type code (hex for unknown codes)."""
    try:
        return ChunkType(value).name
    except ValueError:
        return f"0x{value:04X}"


# ==============================================================================
# DATA CLASSES
# ==============================================================================

@dataclass
class Frame:
    """
    One animation frame.

    Attributes:
        duration: Display time in milliseconds
        cels: Cels of this frame in file order
    """
    duration: int = 0
    cels: Tuple[Cel, ...] = ()

    def get_cel_count(self) -> int:
        return len(self.cels)

    def get_cel(self, layer_index: int) -> Optional[Cel]:
        """Get the cel this frame holds for a layer, if any."""
        for cel in self.cels:
            if cel.layer_index == layer_index:
                return cel
        return None


@dataclass
class AseDocument:
    """
    A fully decoded Aseprite document.

    The document owns every buffer below it. Call release() exactly once
    when done (or use the document as a context manager).

    Attributes:
        width, height: Canvas size in pixels
        color_depth: Indexed, grayscale or RGBA
        flags: Header flags
        pixel_width, pixel_height: Pixel aspect ratio (never 0)
        grid_x, grid_y, grid_width, grid_height: Grid (width/height 0 = none)
        palette: Document palette
        color_profile: Color profile (NONE if no profile chunk)
        layers: Layers in file order
        slices: Slices in file order
        tags: Tags from the (last) tags chunk
        frames: Frames in file order
        file_size: File size as declared in the header
        filepath: Source path when loaded from disk
    """
    width: int = 0
    height: int = 0
    color_depth: ColorDepth = ColorDepth.RGBA
    flags: HeaderFlags = HeaderFlags(0)
    pixel_width: int = 1
    pixel_height: int = 1
    grid_x: int = 0
    grid_y: int = 0
    grid_width: int = 0
    grid_height: int = 0
    palette: Palette = field(default_factory=Palette)
    color_profile: ColorProfile = field(default_factory=ColorProfile)
    layers: Tuple[Layer, ...] = ()
    slices: Tuple[Slice, ...] = ()
    tags: Tuple[Tag, ...] = ()
    frames: Tuple[Frame, ...] = ()
    file_size: int = 0
    filepath: str = ""
    released: bool = field(default=False, compare=False, repr=False)

    def get_frame_count(self) -> int:
        return len(self.frames)

    def get_total_duration(self) -> int:
        """Sum of all frame durations in milliseconds."""
        return sum(frame.duration for frame in self.frames)

    def has_grid(self) -> bool:
        return self.grid_width > 0 and self.grid_height > 0

    def get_layer(self, index: int) -> Optional[Layer]:
        if 0 <= index < len(self.layers):
            return self.layers[index]
        return None

    def get_tag(self, name: str) -> Optional[Tag]:
        for tag in self.tags:
            if tag.name == name:
                return tag
        return None

    def get_slice(self, name: str) -> Optional[Slice]:
        for slice_ in self.slices:
            if slice_.name == name:
                return slice_
        return None

    # --------------------------------------------------------------------------
    # RELEASE
    # --------------------------------------------------------------------------

    def release(self) -> int:
        """
        Drop every buffer the document owns.

        Walks palette colors and names, the ICC profile, layer names and
        user data, slice names, keys and user data, tag names, and cel user
        data and pixel buffers. Empty placeholders are skipped.

        Returns:
            Number of non-empty buffers that were dropped

        Raises:
            DocumentReleasedError: if the document was already released
        """
        if self.released:
            raise DocumentReleasedError("Document was already released")
        self.released = True

        freed = 0

        # Palette: the two arrays plus every owned name
        if self.palette.colors:
            freed += 1
        if self.palette.names:
            freed += 1
            freed += sum(1 for name in self.palette.names if name)
        self.palette.colors = []
        self.palette.names = []

        freed += self.color_profile.release()

        for layer in self.layers:
            freed += layer.release()
        for slice_ in self.slices:
            freed += slice_.release()
        for tag in self.tags:
            freed += tag.release()
        for frame in self.frames:
            for cel in frame.cels:
                freed += cel.release()
            frame.cels = ()

        self.layers = ()
        self.slices = ()
        self.tags = ()
        self.frames = ()
        return freed

    def __enter__(self) -> 'AseDocument':
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self.released:
            self.release()
        return False


# ==============================================================================
# DOCUMENT BUILDER
# ==============================================================================

class _DocumentBuilder:
    """
    Running state of one decode.

    Holds the growable lists and the back-reference used by user data
    chunks. `user_data_target` is a (kind, entity) pair naming the layer,
    cel or slice appended last; it is cleared once a user data chunk has
    been attached to it.
    """

    def __init__(self, document: AseDocument):
        self.document = document
        self.layers: List[Layer] = []
        self.slices: List[Slice] = []
        self.frames: List[Frame] = []
        # Cels of the frame being walked, not yet frozen into a Frame
        self.current_cels: List[Cel] = []
        self.using_new_palette = False
        self.user_data_target: Optional[Tuple[str, object]] = None

    def add_layer(self, layer: Layer):
        self.layers.append(layer)
        self.user_data_target = ('layer', layer)

    def add_slice(self, slice_: Slice):
        self.slices.append(slice_)
        self.user_data_target = ('slice', slice_)

    def add_cel(self, cel: Cel):
        self.current_cels.append(cel)
        self.user_data_target = ('cel', cel)

    def end_frame(self, frame: Frame):
        frame.cels = tuple(self.current_cels)
        self.current_cels = []
        self.frames.append(frame)

    def set_color_profile(self, profile: ColorProfile):
        self.document.color_profile.release()
        self.document.color_profile = profile

    def set_tags(self, tags: Tuple[Tag, ...]):
        for tag in self.document.tags:
            tag.release()
        self.document.tags = tags

    def finish(self) -> AseDocument:
        """Freeze the accumulated lists into the document."""
        self.document.layers = tuple(self.layers)
        self.document.slices = tuple(self.slices)
        self.document.frames = tuple(self.frames)
        return self.document

    def discard(self):
        """Release whatever was decoded before a failure."""
        for cel in self.current_cels:
            cel.release()
        self.current_cels = []
        self.finish()
        self.document.release()


# ==============================================================================
# ASEPRITE PARSER CLASS
# ==============================================================================

class AsepriteParser:
    """
    Decoder for Aseprite documents.

    The parser itself holds only configuration, so one instance can decode
    many documents (also from several threads at once).

    Usage:
        parser = AsepriteParser()

        # Load from file path
        doc = parser.load("path/to/sprite.aseprite")

        # Or from bytes / an open binary stream
        doc = parser.load_from_bytes(data)
        doc = parser.load_from_stream(stream)

        # Free every buffer when done
        doc.release()
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config if config is not None else get_config()

    # --------------------------------------------------------------------------
    # ENTRY POINTS
    # --------------------------------------------------------------------------

    def load(self, filepath: str) -> AseDocument:
        """
        Load an Aseprite file from disk.

        Raises:
            OSError: if the file cannot be opened
            AsepriteError: if the file cannot be decoded
        """
        with open(filepath, 'rb') as f:
            document = self.load_from_stream(f)
        document.filepath = str(filepath)
        return document

    def load_from_bytes(self, data: bytes) -> AseDocument:
        """Load an Aseprite document from an in-memory buffer."""
        return self._parse(BinaryReader.from_bytes(data))

    def load_from_stream(self, stream: BinaryIO) -> AseDocument:
        """
        Load an Aseprite document from a seekable binary stream.

        The stream is read from its current position and is not closed.
        """
        return self._parse(BinaryReader(stream))

    # --------------------------------------------------------------------------
    # DOCUMENT
    # --------------------------------------------------------------------------

    def _parse(self, reader: BinaryReader) -> AseDocument:
        document, frame_count = self._read_header(reader)
        builder = _DocumentBuilder(document)

        try:
            for frame_index in range(frame_count):
                builder.end_frame(self._read_frame(reader, builder, frame_index))
        except Exception:
            builder.discard()
            raise

        return builder.finish()

    def _read_header(self, reader: BinaryReader) -> Tuple[AseDocument, int]:
        """
        Read the 128 byte document header.

        Layout:
            DWORD  file size
            WORD   magic (0xA5E0)
            WORD   frames
            WORD   width, WORD height
            WORD   color depth (8, 16, 32)
            DWORD  flags
            WORD   speed (deprecated) + DWORD[2] reserved
            BYTE   transparent palette index
            BYTE[3] reserved
            WORD   number of colors (0 means 256)
            BYTE   pixel width, BYTE pixel height
            SHORT  grid x, SHORT grid y
            WORD   grid width, WORD grid height
            BYTE[84] reserved

        Returns:
            Tuple of (document with palette sized, frame count)
        """
        document = AseDocument()
        document.file_size = reader.u32()

        magic = reader.u16()
        if magic != FILE_MAGIC:
            raise InvalidFileError(magic)

        frame_count = reader.u16()
        document.width = reader.u16()
        document.height = reader.u16()
        document.color_depth = reader.read_enum(ColorDepth, 16)
        document.flags = reader.read_flags(HeaderFlags, 32)
        reader.skip(10)
        transparent_index = reader.u8()
        reader.skip(3)
        color_count = reader.u16()
        document.pixel_width = reader.u8()
        document.pixel_height = reader.u8()
        document.grid_x = reader.i16()
        document.grid_y = reader.i16()
        document.grid_width = reader.u16()
        document.grid_height = reader.u16()
        reader.skip(84)

        if color_count == 0:
            color_count = DEFAULT_COLOR_COUNT

        if document.pixel_width == 0 or document.pixel_height == 0:
            document.pixel_width = 1
            document.pixel_height = 1

        document.palette = Palette.with_size(color_count, transparent_index)

        logger.debug(
            "Header: %dx%d, %s, %d frames, %d colors",
            document.width, document.height, document.color_depth.name,
            frame_count, color_count,
        )
        return document, frame_count

    # --------------------------------------------------------------------------
    # FRAMES
    # --------------------------------------------------------------------------

    def _read_frame(self, reader: BinaryReader, builder: _DocumentBuilder,
                    frame_index: int) -> Frame:
        """
        Read one frame header and walk its chunks.

        Cels are collected on the builder; `end_frame` freezes them into the
        returned frame.

        Layout:
            DWORD  bytes in this frame
            WORD   magic (0xF1FA)
            WORD   old chunk count (0xFFFF = see new count)
            WORD   duration (ms)
            BYTE[2] reserved
            DWORD  new chunk count
        """
        reader.skip(4)
        magic = reader.u16()
        if magic != FRAME_MAGIC:
            raise InvalidFrameHeaderError(frame_index, magic)

        old_chunks = reader.u16()
        frame = Frame(duration=reader.u16())
        reader.skip(2)
        new_chunks = reader.u32()

        if old_chunks == CHUNK_COUNT_WIDENED and old_chunks < new_chunks:
            chunk_count = new_chunks
        else:
            chunk_count = old_chunks

        # Cel extra chunks only attach to a cel of this frame
        last_cel: Optional[Cel] = None

        for _ in range(chunk_count):
            chunk_start = reader.tell()
            chunk_size = reader.u32()
            chunk_end = chunk_start + chunk_size
            chunk_type = reader.u16()

            if self.config.debug_mode:
                logger.debug(
                    "Frame %d: chunk %s at %d (%d bytes)",
                    frame_index, chunk_type_name(chunk_type), chunk_start, chunk_size,
                )

            last_cel = self._dispatch_chunk(reader, builder, chunk_type, last_cel)
            reader.seek(chunk_end)

        return frame

    # --------------------------------------------------------------------------
    # CHUNKS
    # --------------------------------------------------------------------------

    def _dispatch_chunk(self, reader: BinaryReader, builder: _DocumentBuilder,
                        chunk_type: int, last_cel: Optional[Cel]) -> Optional[Cel]:
        """
        Decode one chunk and attach the result to the document.

        Returns:
            The cel a following cel extra chunk would attach to
        """
        document = builder.document

        if chunk_type in (ChunkType.OLD_PALETTE_A, ChunkType.OLD_PALETTE_B):
            if not builder.using_new_palette:
                document.palette.merge_old(reader)

        elif chunk_type == ChunkType.LAYER:
            builder.add_layer(read_layer(reader))

        elif chunk_type == ChunkType.CEL:
            cel = read_cel(
                reader,
                document.color_depth,
                self.config.max_pixel_buffer_bytes,
                self.config.zlib_read_size,
            )
            builder.add_cel(cel)
            return cel

        elif chunk_type == ChunkType.CEL_EXTRA:
            extra = read_cel_extra(reader)
            if last_cel is not None:
                last_cel.extra = extra
                return None
            logger.warning("Found cel extra chunk without cel to attach it to")

        elif chunk_type == ChunkType.COLOR_PROFILE:
            builder.set_color_profile(read_color_profile(reader))

        elif chunk_type == ChunkType.TAGS:
            builder.set_tags(read_tags(reader))

        elif chunk_type == ChunkType.PALETTE:
            builder.using_new_palette = True
            document.palette.merge_new(reader)

        elif chunk_type == ChunkType.USER_DATA:
            user_data = read_user_data(reader)
            if builder.user_data_target is not None:
                _, entity = builder.user_data_target
                entity.user_data = user_data
                builder.user_data_target = None
            else:
                logger.warning("Found user data chunk without chunk to attach it to")

        elif chunk_type == ChunkType.SLICES:
            builder.add_slice(read_slice(reader))

        else:
            log = logger.warning if self.config.warn_unsupported_chunks else logger.debug
            log("Unsupported chunk type: %s", chunk_type_name(chunk_type))

        return last_cel


# ==============================================================================
# CONVENIENCE FUNCTIONS
# ==============================================================================

def import_file(filepath: str, config: Optional[Config] = None) -> AseDocument:
    """Decode an Aseprite file from disk."""
    return AsepriteParser(config).load(filepath)


def import_bytes(data: bytes, config: Optional[Config] = None) -> AseDocument:
    """Decode an Aseprite document held in memory."""
    return AsepriteParser(config).load_from_bytes(data)


# ==============================================================================
# MAIN (for testing)
# ==============================================================================

if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    if len(sys.argv) > 1:
        with import_file(sys.argv[1]) as doc:
            print(f"Canvas: {doc.width}x{doc.height} ({doc.color_depth.name})")
            print(f"Palette: {len(doc.palette)} colors")
            print(f"Layers: {len(doc.layers)}")
            for i, layer in enumerate(doc.layers):
                print(f"  Layer {i}: {layer.name!r} ({layer.layer_type.name})")
            print(f"Frames: {doc.get_frame_count()} ({doc.get_total_duration()} ms)")
            for tag in doc.tags:
                print(f"  Tag {tag.name!r}: {tag.from_frame}-{tag.to_frame} {tag.direction.name}")
            print(f"Slices: {len(doc.slices)}")
    else:
        print("Usage: python -m aseimport.parsers.ase_parser <sprite.aseprite>")
