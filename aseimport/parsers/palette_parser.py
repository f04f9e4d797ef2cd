# ==============================================================================
# PALETTE CHUNK PARSER
# ==============================================================================
# Decodes the two palette chunk generations of the Aseprite format.
#
# OLD FORMAT (chunk 0x0004 / 0x0011):
# -----------------------------------
# Sparse, additive update of an existing palette:
#   WORD   packet count
#   per packet:
#     BYTE  entries to skip (added to the running index)
#     BYTE  colors in this packet (0 means 256)
#     per color: BYTE r, BYTE g, BYTE b          (alpha is always 255)
#
# NEW FORMAT (chunk 0x2019):
# --------------------------
# Absolute palette size plus an inclusive range of entries to overwrite:
#   DWORD  new palette size
#   DWORD  first index to change
#   DWORD  last index to change
#   BYTE[8] reserved
#   per entry:
#     WORD  flags (bit 0 = has name)
#     BYTE  r, g, b, a
#     [STRING name]                              (only when bit 0 is set)
#
# The palette keeps two parallel lists, colors and names, which always have
# the same length. A name of "" is the unowned placeholder.
#
# Usage:
#   palette = Palette.with_size(256, transparent_index=0)
#   palette.merge_old(reader)
#   palette.merge_new(reader)
# ==============================================================================

from dataclasses import dataclass, field
from enum import IntFlag
from typing import List, NamedTuple

from ..core.binary_reader import BinaryReader
from ..core.errors import AllocationError, MalformedRecordError


# ==============================================================================
# CONSTANTS
# ==============================================================================

# Number of colors a run length byte of 0 stands for (old format)
OLD_PACKET_FULL_RUN = 256


# ==============================================================================
# DATA CLASSES
# ==============================================================================

class RGBA(NamedTuple):
    """One palette color."""
    r: int
    g: int
    b: int
    a: int = 255


TRANSPARENT_BLACK = RGBA(0, 0, 0, 0)


class PaletteEntryFlags(IntFlag):
    HAS_NAME = 0x0001


@dataclass
class Palette:
    """
    Document palette.

    Attributes:
        colors: RGBA colors, one per palette index
        names: Per-color names, index-aligned with colors ("" = no name)
        transparent_index: Index used as transparent in indexed sprites
    """
    colors: List[RGBA] = field(default_factory=list)
    names: List[str] = field(default_factory=list)
    transparent_index: int = 0

    @classmethod
    def with_size(cls, size: int, transparent_index: int = 0) -> 'Palette':
        """Create a palette of `size` transparent entries with no names."""
        palette = cls(transparent_index=transparent_index)
        palette.resize(size)
        return palette

    def __len__(self) -> int:
        return len(self.colors)

    def get_name(self, index: int) -> str:
        """Get the name of a palette entry ("" if unnamed or out of range)."""
        if 0 <= index < len(self.names):
            return self.names[index]
        return ""

    # --------------------------------------------------------------------------
    # RESIZING
    # --------------------------------------------------------------------------

    def resize(self, size: int):
        """
        Grow or shrink both parallel lists to `size` entries.

        New entries are transparent black with no name.

        Raises:
            AllocationError: if the lists cannot be grown
        """
        current = len(self.colors)
        if size == current:
            return
        if size < current:
            del self.colors[size:]
            del self.names[size:]
            return
        try:
            self.colors.extend([TRANSPARENT_BLACK] * (size - current))
            self.names.extend([""] * (size - current))
        except MemoryError:
            # keep the lists index-aligned even when growth fails halfway
            del self.colors[current:]
            del self.names[current:]
            raise AllocationError(f"Cannot grow palette to {size} entries") from None

    # --------------------------------------------------------------------------
    # CHUNK DECODERS
    # --------------------------------------------------------------------------

    def merge_old(self, reader: BinaryReader) -> 'Palette':
        """
        Apply an old-format palette chunk in place.

        Colors inside a packet overwrite the existing entries and clear their
        names. Entries that are skipped stay untouched.

        Raises:
            MalformedRecordError: if a packet runs past the end of the palette
        """
        packets = reader.u16()
        skip = 0

        for _ in range(packets):
            skip += reader.u8()
            size = reader.u8()
            if size == 0:
                size = OLD_PACKET_FULL_RUN

            if skip + size > len(self.colors):
                raise MalformedRecordError(
                    f"Old palette packet [{skip}, {skip + size}) exceeds palette size {len(self.colors)}"
                )

            for index in range(skip, skip + size):
                r = reader.u8()
                g = reader.u8()
                b = reader.u8()
                self.colors[index] = RGBA(r, g, b, 255)
                self.names[index] = ""

        return self

    def merge_new(self, reader: BinaryReader) -> 'Palette':
        """
        Apply a new-format palette chunk in place.

        The palette is resized first when the declared size differs from the
        current one, then entries [from, to] are overwritten.

        Raises:
            MalformedRecordError: if the range lies outside the declared size
            AllocationError: if the palette cannot be grown
        """
        size = reader.u32()
        if size != len(self.colors):
            self.resize(size)

        first = reader.u32()
        last = reader.u32()
        reader.skip(8)

        if first > last + 1 or last + 1 > size:
            raise MalformedRecordError(
                f"Palette range [{first}, {last}] outside palette of size {size}"
            )

        for index in range(first, last + 1):
            flags = reader.read_flags(PaletteEntryFlags, 16)
            r = reader.u8()
            g = reader.u8()
            b = reader.u8()
            a = reader.u8()
            self.colors[index] = RGBA(r, g, b, a)
            if flags & PaletteEntryFlags.HAS_NAME:
                self.names[index] = reader.read_string(16)
            else:
                self.names[index] = ""

        return self
