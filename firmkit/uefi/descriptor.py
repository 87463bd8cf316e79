"""Intel flash descriptor map, region section and master section."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, fields

from .common import UEFIError
from .region import FlashRegion, region_type_name

FLASH_DESCRIPTOR_MAP_MAX_BASE = 0xE0
FLASH_DESCRIPTOR_MAP_SIZE = 16
FLASH_MASTER_SECTION_SIZE = 12
FLASH_REGION_SECTION_SIZE = 64
FLASH_REGION_COUNT = 15

_PERMISSIONS = struct.Struct("<HBB")


def _short_read(buf: bytes) -> UEFIError:
    return UEFIError("EOF" if not buf else "unexpected EOF")


@dataclass
class FlashDescriptorMap:
    """The FLMAP0..FLMAP3 words of an Intel flash descriptor."""

    component_base: int = 0
    number_of_flash_chips: int = 0
    region_base: int = 0
    number_of_regions: int = 0
    master_base: int = 0
    number_of_masters: int = 0
    pch_straps_base: int = 0
    number_of_pch_straps: int = 0
    proc_straps_base: int = 0
    number_of_proc_straps: int = 0
    icc_table_base: int = 0
    number_of_icc_table_entries: int = 0
    dmi_table_base: int = 0
    number_of_dmi_table_entries: int = 0
    reserved0: int = 0
    reserved1: int = 0

    @classmethod
    def parse(cls, buf: bytes) -> FlashDescriptorMap:
        """Read the map from the start of buf."""
        if len(buf) < FLASH_DESCRIPTOR_MAP_SIZE:
            raise _short_read(buf)
        return cls(*buf[:FLASH_DESCRIPTOR_MAP_SIZE])

    def __bytes__(self) -> bytes:
        return bytes(getattr(self, f.name) for f in fields(self))

    def __str__(self) -> str:
        return (
            f"FlashDescriptorMap{{NumberOfRegions={self.number_of_regions}, "
            f"NumberOfFlashChips={self.number_of_flash_chips}, "
            f"NumberOfMasters={self.number_of_masters}, "
            f"NumberOfPCHStraps={self.number_of_pch_straps}, "
            f"NumberOfProcessorStraps={self.number_of_proc_straps}, "
            f"NumberOfICCTableEntries={self.number_of_icc_table_entries}, "
            f"DMITableEntries={self.number_of_dmi_table_entries}}}"
        )


@dataclass
class RegionPermissions:
    """ID and read/write permission bits a master has on other regions."""

    id: int = 0
    read: int = 0
    write: int = 0

    def __bytes__(self) -> bytes:
        return _PERMISSIONS.pack(self.id, self.read, self.write)

    def __str__(self) -> str:
        return f"RegionPermissions{{ID={self.id}, Read=0x{self.read:x}, Write=0x{self.write:x}}}"


@dataclass
class FlashMasterSection:
    """Permissions of the BIOS, ME and GbE masters."""

    bios: RegionPermissions = field(default_factory=RegionPermissions)
    me: RegionPermissions = field(default_factory=RegionPermissions)
    gbe: RegionPermissions = field(default_factory=RegionPermissions)

    @classmethod
    def parse(cls, buf: bytes) -> FlashMasterSection:
        """Read the master section from the start of buf."""
        if len(buf) < FLASH_MASTER_SECTION_SIZE:
            raise UEFIError(
                "Flash Master Section size too small: expected "
                f"{FLASH_MASTER_SECTION_SIZE} bytes, got {len(buf)}"
            )
        perms = [
            RegionPermissions(*values)
            for values in _PERMISSIONS.iter_unpack(bytes(buf[:FLASH_MASTER_SECTION_SIZE]))
        ]
        return cls(*perms)

    def __bytes__(self) -> bytes:
        return bytes(self.bios) + bytes(self.me) + bytes(self.gbe)

    def __str__(self) -> str:
        def plain(p: RegionPermissions) -> str:
            return f"{{{p.id} {p.read} {p.write}}}"

        return (
            f"FlashMasterSection{{Bios {plain(self.bios)}, "
            f"Me {plain(self.me)}, Gbe {plain(self.gbe)}}}"
        )


def _default_regions() -> list[FlashRegion]:
    return [FlashRegion() for _ in range(FLASH_REGION_COUNT)]


@dataclass
class FlashRegionSection:
    """Base/limit entries for every flash region slot."""

    flash_block_erase_size: int = 0
    flash_regions: list[FlashRegion] = field(default_factory=_default_regions)
    reserved: int = 0

    @classmethod
    def parse(cls, buf: bytes) -> FlashRegionSection:
        """Read the region section from the start of buf."""
        if len(buf) < FLASH_REGION_SECTION_SIZE:
            raise UEFIError(
                "Flash Region Section size too small: expected "
                f"{FLASH_REGION_SECTION_SIZE} bytes, got {len(buf)}"
            )
        words = struct.unpack_from(f"<{2 + 2 * FLASH_REGION_COUNT}H", bytes(buf))
        reserved, erase_size, *limits = words
        regions = [
            FlashRegion(base, limit) for base, limit in zip(limits[0::2], limits[1::2])
        ]
        return cls(erase_size, regions, reserved)

    def __bytes__(self) -> bytes:
        words = [self.reserved, self.flash_block_erase_size]
        for region in self.flash_regions:
            words += [region.base, region.limit]
        return struct.pack(f"<{len(words)}H", *words)

    def valid_regions(self) -> list[str]:
        """Names of the regions with a valid extent, in slot order."""
        return [
            region_type_name(index)
            for index, region in enumerate(self.flash_regions)
            if region.valid()
        ]

    def __str__(self) -> str:
        return f"FlashRegionSection{{Regions={','.join(self.valid_regions())}}}"