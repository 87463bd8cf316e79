import pytest

from firmkit.uefi.common import Visitor, make_typed
from firmkit.uefi.region import (
    FlashRegion,
    FlashRegionType,
    RawRegion,
    region_type_name,
)

CASES = [
    (0, 0, False, 0, 0x1000),
    (1, 0, False, 0x1000, 0x1000),
    (1, 1, True, 0x1000, 0x2000),
    (100, 200, True, 0x64000, 0xC9000),
    (0x0004, 0xFFFF, True, 0x00004000, 0x10000000),
]


@pytest.mark.parametrize("base,limit,valid,start,end", CASES)
def test_valid(base, limit, valid, start, end):
    assert FlashRegion(base, limit).valid() is valid


@pytest.mark.parametrize("base,limit,valid,start,end", CASES)
def test_base_offset(base, limit, valid, start, end):
    assert FlashRegion(base, limit).base_offset() == start


@pytest.mark.parametrize("base,limit,valid,start,end", CASES)
def test_end_offset(base, limit, valid, start, end):
    assert FlashRegion(base, limit).end_offset() == end


def test_region_type_names():
    assert str(FlashRegionType.BIOS) == "BIOS"
    assert str(FlashRegionType.GBE) == "GbE"
    assert str(FlashRegionType.TGBE1) == "10GbE1"
    assert str(FlashRegionType.UNKNOWN) == "Unknown Region (-1)"
    assert region_type_name(42) == "Unknown Region (42)"


def test_raw_region_keeps_type_and_region():
    fr = FlashRegion(base=3, limit=3)
    region = RawRegion(bytearray(b"abc"), fr, FlashRegionType.ME)
    assert region.buf == b"abc"
    assert region.flash_region is fr
    assert region.region_type is FlashRegionType.ME
    assert make_typed(region).type == "*uefi.RawRegion"


class _Count(Visitor):
    def __init__(self):
        self.count = 0

    def visit(self, firmware):
        self.count += 1
        firmware.apply_children(self)


def test_raw_region_has_no_children():
    visitor = _Count()
    visitor.run(RawRegion(b"", FlashRegion(1, 1)))
    assert visitor.count == 1