import struct

import pytest

from firmkit.uefi.bios import BIOSPadding, BIOSRegion
from firmkit.uefi.common import UEFIError, Visitor, make_typed
from firmkit.uefi.flash import (
    FLASH_SIGNATURE,
    FlashDescriptor,
    FlashImage,
    find_signature,
    hex_dump,
    parse,
    parse_flash_image,
)
from firmkit.uefi.region import FlashRegion, FlashRegionType, RawRegion

EMPTY_SIG = bytes(40)
ICH_SIG = FLASH_SIGNATURE + bytes(20)
PCH_SIG = bytes(16) + FLASH_SIGNATURE
MISALIGNED_SIG = bytes(10) + FLASH_SIGNATURE + bytes(20)

ZERO_LINE = "00000000  00 00 00 00 00 00 00 00  00 00 00 00 00 00 00 00  |................|\n"
TAIL_LINE = "00000010  00 00 00 00" + " " * 39 + "|....|\n"


def test_hex_dump_matches_format():
    assert hex_dump(bytes(20)) == ZERO_LINE + TAIL_LINE


@pytest.mark.parametrize("buf,offset", [(ICH_SIG, 4), (PCH_SIG, 20)])
def test_find_signature_found(buf, offset):
    assert FlashImage(buf=buf).find_signature() == offset
    assert find_signature(buf) == offset


def test_find_signature_empty():
    with pytest.raises(UEFIError) as info:
        FlashImage(buf=EMPTY_SIG).find_signature()
    assert str(info.value) == "Flash signature not found: first 20 bytes are:\n" + ZERO_LINE + TAIL_LINE


def test_find_signature_misaligned():
    line = "00000000  00 00 00 00 00 00 00 00  00 00 5a a5 f0 0f 00 00  |..........Z.....|\n"
    with pytest.raises(UEFIError) as info:
        FlashImage(buf=MISALIGNED_SIG).find_signature()
    assert str(info.value) == "Flash signature not found: first 20 bytes are:\n" + line + TAIL_LINE


@pytest.mark.parametrize(
    "buf,expected",
    [(EMPTY_SIG, False), (ICH_SIG, False), (PCH_SIG, True), (MISALIGNED_SIG, False)],
)
def test_is_pch(buf, expected):
    assert FlashImage(buf=buf).is_pch() is expected


def _rr1():
    return make_typed(RawRegion(flash_region=FlashRegion(1, 1), region_type=FlashRegionType.UNKNOWN))


def _br():
    return make_typed(BIOSRegion(flash_region=FlashRegion(2, 2)))


def _rr2():
    return make_typed(RawRegion(flash_region=FlashRegion(3, 3), region_type=FlashRegionType.UNKNOWN))


def _image(regions):
    return FlashImage(buf=bytes(0x4000), flash_size=0x4000, regions=regions)


EXPECTED = [
    (FlashRegionType.UNKNOWN, 1, 1),
    (FlashRegionType.BIOS, 2, 2),
    (FlashRegionType.UNKNOWN, 3, 3),
]


@pytest.mark.parametrize(
    "regions",
    [
        pytest.param([_rr1(), _br(), _rr2()], id="FullImage"),
        pytest.param([_br(), _rr2()], id="FrontRegionGap"),
        pytest.param([_rr1(), _br()], id="BackRegionGap"),
    ],
)
def test_fill_region_gaps(regions):
    image = _image(regions)
    image.fill_region_gaps()
    got = [
        (t.value.region_type, t.value.flash_region.base, t.value.flash_region.limit)
        for t in image.regions
    ]
    assert got == EXPECTED


def test_fill_region_gaps_overlap():
    image = _image([_rr1(), _rr1()])
    with pytest.raises(UEFIError) as info:
        image.fill_region_gaps()
    assert str(info.value) == (
        "overlapping regions! region type Unknown Region (-1) overlaps with the previous region"
    )


def _descriptor(bios=(1, 1), me=(0, 0), count=0):
    buf = bytearray(0x1000)
    buf[16:20] = FLASH_SIGNATURE
    buf[22] = 0x04  # region section at 0x40
    buf[23] = count
    buf[24] = 0x08  # master section at 0x80
    struct.pack_into("<HHHH", buf, 0x44, *bios, *me)
    return bytes(buf)


def _flash(**kwargs):
    return _descriptor(**kwargs) + b"\xff" * 0x2000


def test_flash_descriptor_parse():
    fd = FlashDescriptor.parse(_descriptor())
    assert fd.descriptor_map_start == 20
    assert fd.region_start == 0x40
    assert fd.master_start == 0x80
    assert fd.region.valid_regions() == ["BIOS"]


def test_flash_descriptor_wrong_length():
    with pytest.raises(UEFIError, match="flash descriptor length not 0x1000, was 0x10"):
        FlashDescriptor.parse(bytes(0x10))


def test_parse_flash_image_too_small():
    with pytest.raises(UEFIError, match="expected 4096 bytes, got 100"):
        parse_flash_image(bytes(100))


def test_parse_flash_image_no_bios():
    with pytest.raises(UEFIError, match="no BIOS region"):
        parse_flash_image(_flash(bios=(0, 0)))


def test_parse_flash_image_regions():
    image = parse_flash_image(_flash())
    assert image.flash_size == 0x3000
    assert image.is_pch()
    bios, gap = (t.value for t in image.regions)
    assert isinstance(bios, BIOSRegion)
    assert bios.flash_region == FlashRegion(1, 1)
    assert isinstance(bios.elements[0].value, BIOSPadding)
    assert isinstance(gap, RawRegion)
    assert gap.region_type == FlashRegionType.UNKNOWN
    assert gap.flash_region == FlashRegion(2, 2)
    assert gap.buf == b"\xff" * 0x1000


def test_parse_flash_image_skips_out_of_bounds_region():
    image = parse_flash_image(_flash(me=(5, 5)))
    types = [t.value.region_type for t in image.regions]
    assert types == [FlashRegionType.BIOS, FlashRegionType.UNKNOWN]


def test_apply_children_visits_descriptor_then_regions():
    class Collect(Visitor):
        def __init__(self):
            self.seen = []

        def visit(self, firmware):
            self.seen.append(type(firmware).__name__)

    visitor = Collect()
    parse_flash_image(_flash()).apply_children(visitor)
    assert visitor.seen == ["FlashDescriptor", "BIOSRegion", "RawRegion"]


def test_parse_dispatches_on_signature():
    assert isinstance(parse(_flash()), FlashImage)
    plain = b"\xff" * 64
    region = parse(plain)
    assert isinstance(region, BIOSRegion)
    assert [t.value.buf for t in region.elements] == [plain]