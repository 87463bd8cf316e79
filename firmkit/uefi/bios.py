"""The BIOS region: firmware volumes and the padding between them."""

from __future__ import annotations

from dataclasses import dataclass, field

from .common import Firmware, TypedFirmware, UEFIError, make_typed
from .region import FlashRegion, FlashRegionType, Region
from .volume import FirmwareVolume, find_firmware_volume_offset, parse_firmware_volume


@dataclass
class BIOSPadding(Firmware):
    """Bytes between firmware volumes, kept because they may hold data."""

    buf: bytes = b""
    offset: int = 0
    extract_path: str = ""


@dataclass
class BIOSRegion(Region):
    """The BIOS region of a flash image, holding volumes and padding."""

    buf: bytes = b""
    elements: list[TypedFirmware] = field(default_factory=list)
    extract_path: str = ""
    length: int = 0
    flash_region: FlashRegion | None = None
    region_type: FlashRegionType = FlashRegionType.BIOS

    def apply_children(self, visitor) -> None:
        for typed in self.elements:
            typed.value.apply(visitor)

    def first_fv(self) -> FirmwareVolume:
        """Return the first firmware volume in the region."""
        for typed in self.elements:
            if isinstance(typed.value, FirmwareVolume):
                return typed.value
        raise UEFIError("no firmware volumes in BIOS Region")


def parse_bios_region(
    buf: bytes,
    flash_region: FlashRegion | None = None,
    region_type: FlashRegionType = FlashRegionType.BIOS,
) -> BIOSRegion:
    """Split a BIOS region into firmware volumes and padding."""
    buf = bytes(buf)
    region = BIOSRegion(
        buf=buf,
        flash_region=flash_region,
        length=len(buf),
        region_type=FlashRegionType.BIOS,
    )
    abs_offset = 0
    rest = buf
    while True:
        offset = find_firmware_volume_offset(rest)
        if offset < 0:
            if rest:
                region.elements.append(make_typed(BIOSPadding(rest, abs_offset)))
            return region
        if offset > 0:
            region.elements.append(make_typed(BIOSPadding(rest[:offset], abs_offset)))
        abs_offset += offset
        # Top level volumes are not resizable.
        volume = parse_firmware_volume(rest[offset:], abs_offset, False)
        if volume.length == 0:
            raise UEFIError(f"firmware volume at offset {abs_offset:#x} has zero length")
        abs_offset += volume.length
        rest = rest[offset + volume.length:]
        region.elements.append(make_typed(volume))