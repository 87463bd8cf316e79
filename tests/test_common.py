import pytest

from firmkit.uefi import common
from firmkit.uefi.common import (
    Firmware,
    UEFIError,
    Visitor,
    align4,
    align8,
    checksum8,
    checksum16,
    erase,
    is_erased,
    make_typed,
    read3_size,
    set_erase_polarity,
    write3_size,
)


@pytest.fixture(autouse=True)
def reset_polarity():
    common.attributes.erase_polarity = common.POISONED_POLARITY
    yield
    common.attributes.erase_polarity = common.POISONED_POLARITY


def test_bad_polarity():
    with pytest.raises(UEFIError) as info:
        set_erase_polarity(common.POISONED_POLARITY)
    assert str(info.value) == (
        "invalid erase polarity requested, should only be 0x00 or 0xFF, got 0xF0"
    )


@pytest.mark.parametrize("polarity", [0xFF, 0x00])
def test_good_polarity(polarity):
    set_erase_polarity(polarity)
    assert common.attributes.erase_polarity == polarity


def test_polarity_set_twice():
    set_erase_polarity(0xFF)
    set_erase_polarity(0xFF)
    assert common.attributes.erase_polarity == 0xFF
    with pytest.raises(UEFIError) as info:
        set_erase_polarity(0x00)
    assert str(info.value) == "conflicting erase polarities, was 0xFF, requested 0x00"


def test_mismatched_polarity():
    set_erase_polarity(0xFF)
    with pytest.raises(UEFIError) as info:
        set_erase_polarity(0x00)
    assert str(info.value) == "conflicting erase polarities, was 0xFF, requested 0x00"


@pytest.mark.parametrize(
    "buf,res",
    [
        (b"", 0),
        (bytes([1, 2, 3, 4]), 10),
        (bytes([0x1, 0x2, 0xFF, 0xFF]), 0x1),
        (bytes([0, 0, 0, 0]), 0),
        (bytes([3, 3, 3]), 9),
    ],
)
def test_checksum8(buf, res):
    assert checksum8(buf) == res


@pytest.mark.parametrize(
    "buf,res",
    [
        (b"", 0),
        (bytes([1, 2, 3, 4]), 0x604),
        (bytes([0x1, 0x2, 0xFF, 0xFF]), 0x200),
        (bytes([0, 0, 0, 0]), 0),
    ],
)
def test_checksum16(buf, res):
    assert checksum16(buf) == res


def test_checksum16_odd_length():
    with pytest.raises(UEFIError) as info:
        checksum16(bytes([3, 3, 3]))
    assert str(info.value) == (
        "byte slice does not have even length, not able to do 16 bit checksum. Length was 3"
    )


@pytest.mark.parametrize(
    "val,res",
    [
        (0x0, bytes([0, 0, 0])),
        (0xABCDEF, bytes([0xEF, 0xCD, 0xAB])),
        (0xFFFFFF, bytes([0xFF, 0xFF, 0xFF])),
        (0x1000000, bytes([0xFF, 0xFF, 0xFF])),
    ],
)
def test_write3_size(val, res):
    assert write3_size(val) == res


@pytest.mark.parametrize(
    "val,arr",
    [
        (0x0, bytes([0, 0, 0])),
        (0xABCDEF, bytes([0xEF, 0xCD, 0xAB])),
        (0xFFFFFF, bytes([0xFF, 0xFF, 0xFF])),
    ],
)
def test_read3_size(val, arr):
    assert read3_size(arr) == val


@pytest.mark.parametrize("val,res", [(0x4, 0x4), (0x5, 0x8)])
def test_align4(val, res):
    assert align4(val) == res


@pytest.mark.parametrize("val,res", [(0x4, 0x8), (0x5, 0x8), (0x8, 0x8), (0x9, 0x10)])
def test_align8(val, res):
    assert align8(val) == res


def test_erase_and_is_erased():
    buf = bytearray(b"\x01\x02\x03")
    assert not is_erased(buf, 0xFF)
    erase(buf, 0xFF)
    assert buf == bytearray(b"\xff\xff\xff")
    assert is_erased(buf, 0xFF)
    assert not is_erased(buf, 0x00)


class _Leaf(Firmware):
    def __init__(self, name):
        self.name = name
        self.buf = b""


class _Node(Firmware):
    def __init__(self, children):
        self.children = children
        self.buf = b""

    def apply_children(self, visitor):
        for child in self.children:
            child.apply(visitor)


class _Collect(Visitor):
    def __init__(self):
        self.seen = []

    def visit(self, firmware):
        if isinstance(firmware, _Leaf):
            self.seen.append(firmware.name)
        firmware.apply_children(self)


def test_visitor_walks_tree():
    tree = _Node([_Leaf("a"), _Node([_Leaf("b")]), _Leaf("c")])
    visitor = _Collect()
    Visitor.run(visitor, tree)
    assert visitor.seen == ["a", "b", "c"]


def test_make_typed_records_type_name():
    leaf = _Leaf("x")
    typed = make_typed(leaf)
    assert typed.type == "*uefi._Leaf"
    assert typed.value is leaf