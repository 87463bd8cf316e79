import struct

import pytest

from firmkit.uefi import common
from firmkit.uefi.bios import BIOSPadding, BIOSRegion, parse_bios_region
from firmkit.uefi.common import POISONED_POLARITY, UEFIError, Visitor
from firmkit.uefi.region import FlashRegion, FlashRegionType
from firmkit.uefi.volume import FFS1, FirmwareVolume


@pytest.fixture(autouse=True)
def reset_polarity():
    common.attributes.erase_polarity = POISONED_POLARITY
    yield
    common.attributes.erase_polarity = POISONED_POLARITY


def build_fv(length=0x100):
    header = (
        bytes(16)
        + bytes(FFS1)
        + struct.pack("<Q", length)
        + b"_FVH"
        + struct.pack("<IHHHBB", 0x800, 72, 0, 0, 0, 2)
        + struct.pack("<IIII", 1, length, 0, 0)
    )
    return header + b"\xff" * (length - len(header))


class Collector(Visitor):
    def __init__(self):
        self.seen = []

    def visit(self, firmware):
        self.seen.append(type(firmware).__name__)
        firmware.apply_children(self)


def test_padding_volume_padding():
    lead = b"\xff" * 0x100
    fv_bytes = build_fv()
    tail = b"\x00" * 64
    data = lead + fv_bytes + tail
    region = parse_bios_region(data)
    assert [e.type for e in region.elements] == [
        "*uefi.BIOSPadding",
        "*uefi.FirmwareVolume",
        "*uefi.BIOSPadding",
    ]
    first, fv, last = (e.value for e in region.elements)
    assert first.offset == 0 and first.buf == lead
    assert fv.fv_offset == len(lead)
    assert fv.buf == fv_bytes
    assert last.offset == len(lead) + len(fv_bytes)
    assert last.buf == tail
    assert region.length == len(data)
    assert region.buf == data
    assert region.first_fv() is fv


def test_volume_only():
    data = build_fv()
    region = parse_bios_region(data)
    assert len(region.elements) == 1
    assert isinstance(region.elements[0].value, FirmwareVolume)
    assert region.region_type == FlashRegionType.BIOS


def test_no_volume_is_single_padding():
    data = b"\xff" * 0x200
    region = parse_bios_region(data)
    assert len(region.elements) == 1
    padding = region.elements[0].value
    assert isinstance(padding, BIOSPadding)
    assert padding.buf == data
    with pytest.raises(UEFIError) as info:
        region.first_fv()
    assert str(info.value) == "no firmware volumes in BIOS Region"


def test_empty_buffer_has_no_elements():
    region = parse_bios_region(b"")
    assert region.elements == []
    assert region.length == 0


def test_flash_region_is_kept():
    fr = FlashRegion(1, 2)
    region = parse_bios_region(build_fv(), fr, FlashRegionType.BIOS)
    assert region.flash_region is fr


def test_two_volumes_back_to_back():
    data = build_fv() + build_fv()
    region = parse_bios_region(data)
    offsets = [e.value.fv_offset for e in region.elements]
    assert offsets == [0, len(build_fv())]


def test_visitor_walks_children():
    region = parse_bios_region(b"\xff" * 0x100 + build_fv())
    collector = Collector()
    collector.run(region)
    assert collector.seen == ["BIOSRegion", "BIOSPadding", "FirmwareVolume"]


def test_default_region_first_fv_error():
    with pytest.raises(UEFIError):
        BIOSRegion().first_fv()