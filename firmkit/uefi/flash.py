"""Intel flash images: descriptor parsing and region layout."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .bios import BIOSRegion, parse_bios_region
from .common import Firmware, TypedFirmware, UEFIError, make_typed
from .descriptor import (
    FLASH_MASTER_SECTION_SIZE,
    FLASH_REGION_SECTION_SIZE,
    FlashDescriptorMap,
    FlashMasterSection,
    FlashRegionSection,
)
from .region import (
    REGION_BLOCK_SIZE,
    FlashRegion,
    FlashRegionType,
    RawRegion,
    Region,
    region_type_name,
)

log = logging.getLogger(__name__)

FLASH_SIGNATURE = b"\x5a\xa5\xf0\x0f"
FLASH_DESCRIPTOR_LENGTH = 0x1000
FLASH_SIGNATURE_LENGTH = 4
_PCH_SIGNATURE_OFFSET = 16


def hex_dump(data: bytes) -> str:
    """Classic hex dump: offset, 16 hex bytes and their printable characters."""
    lines = []
    for start in range(0, len(data), 16):
        chunk = data[start:start + 16]
        cells = []
        for i in range(16):
            cell = f"{chunk[i]:02x} " if i < len(chunk) else "   "
            if i == 7:
                cell += " "
            elif i == 15:
                cell += " |"
            cells.append(cell)
        text = "".join(chr(b) if 32 <= b <= 126 else "." for b in chunk)
        lines.append(f"{start:08x}  " + "".join(cells) + text + "|\n")
    return "".join(lines)


def find_signature(buf: bytes) -> int:
    """Return where the descriptor map starts, just after the flash signature."""
    pch = buf[_PCH_SIGNATURE_OFFSET:_PCH_SIGNATURE_OFFSET + FLASH_SIGNATURE_LENGTH]
    if bytes(pch) == FLASH_SIGNATURE:
        return _PCH_SIGNATURE_OFFSET + FLASH_SIGNATURE_LENGTH
    if bytes(buf[:FLASH_SIGNATURE_LENGTH]) == FLASH_SIGNATURE:
        return FLASH_SIGNATURE_LENGTH
    raise UEFIError(
        "Flash signature not found: first 20 bytes are:\n" + hex_dump(bytes(buf[:20]))
    )


@dataclass
class FlashDescriptor(Firmware):
    """The Intel flash descriptor occupying the first 4 KiB of the image."""

    buf: bytes = b""
    descriptor_map_start: int = 0
    region_start: int = 0
    master_start: int = 0
    descriptor_map: FlashDescriptorMap | None = None
    region: FlashRegionSection | None = None
    master: FlashMasterSection | None = None
    extract_path: str = ""

    @classmethod
    def parse(cls, buf: bytes) -> FlashDescriptor:
        """Parse the descriptor from exactly 4 KiB of data."""
        buf = bytes(buf)
        if len(buf) != FLASH_DESCRIPTOR_LENGTH:
            raise UEFIError(
                f"flash descriptor length not {FLASH_DESCRIPTOR_LENGTH:#x}, "
                f"was {len(buf):#x}"
            )
        map_start = find_signature(buf)
        descriptor_map = FlashDescriptorMap.parse(buf[map_start:])

        region_start = descriptor_map.region_base * 0x10
        region = FlashRegionSection.parse(
            buf[region_start:region_start + FLASH_REGION_SECTION_SIZE]
        )

        master_start = descriptor_map.master_base * 0x10
        master = FlashMasterSection.parse(
            buf[master_start:master_start + FLASH_MASTER_SECTION_SIZE]
        )
        return cls(
            buf=buf,
            descriptor_map_start=map_start,
            region_start=region_start,
            master_start=master_start,
            descriptor_map=descriptor_map,
            region=region,
            master=master,
        )


def _plain(region: FlashRegion) -> str:
    return f"{{{region.base} {region.limit}}}"


@dataclass
class FlashImage(Firmware):
    """An Intel flash image in descriptor mode."""

    buf: bytes = b""
    ifd: FlashDescriptor = field(default_factory=FlashDescriptor)
    regions: list[TypedFirmware] = field(default_factory=list)
    extract_path: str = ""
    flash_size: int = 0

    def apply_children(self, visitor) -> None:
        self.ifd.apply(visitor)
        for typed in self.regions:
            typed.value.apply(visitor)

    def is_pch(self) -> bool:
        """True if the signature sits at offset 16 (PCH layout)."""
        end = _PCH_SIGNATURE_OFFSET + len(FLASH_SIGNATURE)
        return bytes(self.buf[_PCH_SIGNATURE_OFFSET:end]) == FLASH_SIGNATURE

    def find_signature(self) -> int:
        """Offset of the descriptor map within this image."""
        return find_signature(self.buf)

    def fill_region_gaps(self) -> None:
        """Insert unknown raw regions wherever the regions leave a gap."""
        offset = FLASH_DESCRIPTOR_LENGTH
        filled: list[TypedFirmware] = []
        for typed in self.regions:
            region = typed.value
            if not isinstance(region, Region) or region.flash_region is None:
                raise UEFIError("region without flash region parameters")
            next_base = region.flash_region.base_offset()
            if next_base < offset:
                raise UEFIError(
                    f"overlapping regions! region type {FlashRegionType(region.region_type)} "
                    "overlaps with the previous region"
                )
            if next_base > offset:
                filled.append(self._gap(offset, next_base))
            offset = region.flash_region.end_offset()
            filled.append(typed)
        if offset != self.flash_size:
            filled.append(self._gap(offset, self.flash_size))
        self.regions = filled

    def _gap(self, start: int, end: int) -> TypedFirmware:
        flash_region = FlashRegion(
            base=start // REGION_BLOCK_SIZE,
            limit=end // REGION_BLOCK_SIZE - 1,
        )
        return make_typed(
            RawRegion(
                buf=self.buf[start:end],
                flash_region=flash_region,
                region_type=FlashRegionType.UNKNOWN,
            )
        )

    def __str__(self) -> str:
        return (
            f"FlashImage{{Size={len(self.buf)}, Descriptor={self.ifd.descriptor_map}, "
            f"Region={self.ifd.region}, Master={self.ifd.master}}}"
        )


def _build_region(buf: bytes, flash_region: FlashRegion, region_type: FlashRegionType) -> Region:
    if region_type == FlashRegionType.BIOS:
        return parse_bios_region(buf, flash_region, region_type)
    return RawRegion(buf=buf, flash_region=flash_region, region_type=region_type)


def parse_flash_image(buf: bytes) -> FlashImage:
    """Parse a descriptor-mode flash image into its regions."""
    buf = bytes(buf)
    if len(buf) < FLASH_DESCRIPTOR_LENGTH:
        raise UEFIError(
            f"Flash Descriptor Map size too small: expected {FLASH_DESCRIPTOR_LENGTH} "
            f"bytes, got {len(buf)}"
        )
    image = FlashImage(buf=buf, flash_size=len(buf))
    image.ifd = FlashDescriptor.parse(buf[:FLASH_DESCRIPTOR_LENGTH])

    regions = image.ifd.region.flash_regions
    bios = regions[FlashRegionType.BIOS]
    if not bios.valid():
        raise UEFIError(f"no BIOS region: invalid region parameters {_plain(bios)}")

    # Older descriptors count their regions and may hold bogus entries past
    # that count; newer ones leave the count at zero.
    count = image.ifd.descriptor_map.number_of_regions
    for index, flash_region in enumerate(regions):
        if count and index >= count:
            break
        if not flash_region.valid():
            continue
        name = region_type_name(index)
        base = flash_region.base_offset()
        if base >= image.flash_size:
            log.warning(
                "region %s (%d, %s) out of bounds: BaseOffset %#x, Flash size %#x, skipping...",
                name, index, _plain(flash_region), base, image.flash_size,
            )
            continue
        end = flash_region.end_offset()
        if end > image.flash_size:
            log.warning(
                "region %s (%d, %s) out of bounds: EndOffset %#x, Flash size %#x, skipping...",
                name, index, _plain(flash_region), end, image.flash_size,
            )
            continue
        region = _build_region(buf[base:end], flash_region, FlashRegionType(index))
        image.regions.append(make_typed(region))

    image.regions.sort(key=lambda typed: typed.value.flash_region.base)
    image.fill_region_gaps()
    return image


def parse(buf: bytes) -> FlashImage | BIOSRegion:
    """Parse an Intel flash image, or treat anything else as one BIOS region."""
    try:
        find_signature(buf)
    except UEFIError:
        return parse_bios_region(buf, None, FlashRegionType.BIOS)
    return parse_flash_image(buf)