"""Flash regions as laid out by the Intel flash descriptor."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from .common import Firmware

REGION_BLOCK_SIZE = 0x1000


class FlashRegionType(enum.IntEnum):
    """Region types, numbered by their slot in the region section."""

    BIOS = 0
    ME = 1
    GBE = 2
    PD = 3
    DEV_EXP1 = 4
    BIOS2 = 5
    MICROCODE = 6
    EC = 7
    DEV_EXP2 = 8
    IE = 9
    TGBE1 = 10
    TGBE2 = 11
    RESERVED1 = 12
    RESERVED2 = 13
    PTT = 14
    UNKNOWN = -1

    def __str__(self) -> str:
        return region_type_name(self.value)


_REGION_TYPE_NAMES = {
    0: "BIOS",
    1: "ME",
    2: "GbE",
    3: "PD",
    4: "DevExp1",
    5: "BIOS2",
    6: "Microcode",
    7: "EC",
    8: "DevExp2",
    9: "IE",
    10: "10GbE1",
    11: "10GbE2",
    12: "Reserved1",
    13: "Reserved2",
    14: "PTT",
}


def region_type_name(value: int) -> str:
    """Human-readable name for a region type number."""
    return _REGION_TYPE_NAMES.get(int(value), f"Unknown Region ({int(value)})")


@dataclass
class FlashRegion:
    """Base and limit of a region, in 4 KiB blocks."""

    base: int = 0
    limit: int = 0

    def valid(self) -> bool:
        """True if the region has a non-zero, well-ordered extent."""
        return self.limit > 0 and self.limit >= self.base

    def base_offset(self) -> int:
        """Byte offset where the region begins."""
        return self.base * REGION_BLOCK_SIZE

    def end_offset(self) -> int:
        """Byte offset just past the end of the region."""
        return (self.limit + 1) * REGION_BLOCK_SIZE

    def __str__(self) -> str:
        return f"[{self.base:#x}, {self.limit:#x})"


class Region(Firmware):
    """A firmware node that occupies a flash region.

    Subclasses provide ``flash_region`` (a FlashRegion or None) and
    ``region_type`` (a FlashRegionType).
    """

    flash_region: FlashRegion | None = None
    region_type: FlashRegionType = FlashRegionType.UNKNOWN


@dataclass
class RawRegion(Region):
    """An opaque chunk of bytes in the flash image."""

    buf: bytes = b""
    flash_region: FlashRegion | None = None
    region_type: FlashRegionType = FlashRegionType.UNKNOWN
    extract_path: str = field(default="")

    def __post_init__(self) -> None:
        self.buf = bytes(self.buf)
        self.region_type = FlashRegionType(self.region_type)