"""Firmware volumes: header parsing, file discovery and file insertion."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from ..guid import GUID, parse as parse_guid
from . import common
from .common import Firmware, UEFIError, align8, set_erase_polarity
from .file import FILE_HEADER_MIN_LENGTH, File, parse_file

FIRMWARE_VOLUME_FIXED_HEADER_SIZE = 56
# The list of blocks is terminated by an all-zero block of 8 bytes.
FIRMWARE_VOLUME_MIN_SIZE = FIRMWARE_VOLUME_FIXED_HEADER_SIZE + 8
FIRMWARE_VOLUME_EXT_HEADER_MIN_SIZE = 20

FV_SIGNATURE = b"_FVH"
_SIGNATURE_OFFSET = 40
_ERASE_POLARITY_BIT = 0x800
_U64 = 1 << 64

_FIXED = struct.Struct("<16s16sQIIHHHBB")
_BLOCK = struct.Struct("<II")
_EXT = struct.Struct("<16sI")

FFS1 = parse_guid("7a9354d9-0468-444a-81ce-0bf617d890df")
FFS2 = parse_guid("8c8ce578-8a3d-4f1c-9935-896185c32dd3")
FFS3 = parse_guid("5473c07a-3dcb-4dca-bd6f-1e9689e7349a")
EVSA = parse_guid("fff12b8d-7696-4c8b-a985-2747075b4f50")
NVAR = parse_guid("cef5b9a3-476d-497f-9fdc-e98143e0422c")
EVSA2 = parse_guid("00504624-8a59-4eeb-bd0f-6b36e96128e0")
APPLE_BOOT = parse_guid("04adeead-61ff-4d31-b6ba-64f8bf901f5a")
PFH1 = parse_guid("16b45da2-7d70-4aea-a58d-760e9ecb841d")
PFH2 = parse_guid("e360bdba-c3ce-46be-8f37-b231e5cb9f35")

FV_GUIDS = {
    FFS1: "FFS1",
    FFS2: "FFS2",
    FFS3: "FFS3",
    EVSA: "NVRAM_EVSA",
    NVAR: "NVRAM_NVAR",
    EVSA2: "NVRAM_EVSA2",
    APPLE_BOOT: "APPLE_BOOT",
    PFH1: "PFH1",
    PFH2: "PFH2",
}

# Only these volume formats are parsed beyond their header.
SUPPORTED_FVS = frozenset({FFS2, FFS3})


@dataclass(frozen=True)
class Block:
    """Number and size of a run of firmware volume blocks."""

    count: int
    size: int


@dataclass
class FirmwareVolume(Firmware):
    """A firmware volume: fixed header, block map, optional extended header, files."""

    file_system_guid: GUID = field(default_factory=GUID)
    length: int = 0
    signature: int = 0
    attributes: int = 0
    header_len: int = 0
    checksum: int = 0
    ext_header_offset: int = 0
    reserved: int = 0
    revision: int = 0
    zero_vector: bytes = bytes(16)
    blocks: list[Block] = field(default_factory=list)
    fv_name: GUID = field(default_factory=GUID)
    ext_header_size: int = 0
    files: list[File] = field(default_factory=list)
    data_offset: int = 0
    fv_type: str = ""
    buf: bytes = b""
    fv_offset: int = 0
    extract_path: str = ""
    resizable: bool = False
    free_space: int = 0

    def apply_children(self, visitor) -> None:
        for f in self.files:
            f.apply(visitor)

    def erase_polarity(self) -> int:
        """Erase polarity declared by the volume attributes."""
        return 0xFF if self.attributes & _ERASE_POLARITY_BIT else 0x00

    def insert_file(self, aligned_offset: int, file_buf: bytes) -> None:
        """Append a file at aligned_offset, padding the gap with the erase byte."""
        buf_len = len(self.buf)
        if buf_len > aligned_offset:
            raise UEFIError(
                "aligned offset is in the middle of the FV, offset was "
                f"{aligned_offset:#x}, fv buffer was {buf_len:#x}"
            )
        padding = bytes([common.attributes.erase_polarity & 0xFF]) * (aligned_offset - buf_len)
        self.buf = bytes(self.buf) + padding
        if not file_buf:
            raise UEFIError("trying to insert empty file")
        self.buf += bytes(file_buf)


def find_firmware_volume_offset(data: bytes) -> int:
    """Offset of the first volume whose signature is 8-byte aligned, or -1."""
    if len(data) < 32:
        return -1
    pos = data.find(FV_SIGNATURE, 32)
    while pos != -1 and pos % 8:
        pos = data.find(FV_SIGNATURE, pos + 1)
    if pos == -1:
        return -1
    return pos - _SIGNATURE_OFFSET


def _take(buf: bytes, offset: int, length: int) -> bytes:
    chunk = buf[offset:offset + length]
    if len(chunk) < length:
        raise UEFIError("EOF" if not chunk else "unexpected EOF")
    return chunk


def _read_blocks(data: bytes) -> list[Block]:
    blocks = []
    pos = FIRMWARE_VOLUME_FIXED_HEADER_SIZE
    while True:
        count, size = _BLOCK.unpack(_take(data, pos, _BLOCK.size))
        pos += _BLOCK.size
        if count == 0 and size == 0:
            return blocks
        blocks.append(Block(count, size))


def _parse_files(fv: FirmwareVolume, data: bytes) -> None:
    limit = fv.length - FILE_HEADER_MIN_LENGTH
    offset = fv.data_offset
    while offset < limit:
        offset = align8(offset)
        try:
            f = parse_file(data[offset:])
        except UEFIError as exc:
            raise UEFIError(
                f"unable to construct firmware file at offset {offset:#x} into FV: {exc}"
            ) from exc
        if f is None:
            fv.free_space = fv.length - offset
            return
        if f.header.extended_size == 0:
            raise UEFIError(
                f"unable to construct firmware file at offset {offset:#x} into FV: "
                "file has zero size"
            )
        fv.files.append(f)
        offset += f.header.extended_size


def parse_firmware_volume(
    data: bytes, fv_offset: int = 0, resizable: bool = False
) -> FirmwareVolume:
    """Parse a firmware volume from the start of data."""
    data = bytes(data)
    if len(data) < FIRMWARE_VOLUME_MIN_SIZE:
        raise UEFIError(
            f"Firmware Volume size too small: expected {FIRMWARE_VOLUME_MIN_SIZE} "
            f"bytes, got {len(data)}"
        )
    (
        zero_vector,
        fs_guid,
        length,
        signature,
        attrs,
        header_len,
        checksum,
        ext_header_offset,
        reserved,
        revision,
    ) = _FIXED.unpack_from(data)
    fv = FirmwareVolume(
        file_system_guid=GUID(fs_guid),
        length=length,
        signature=signature,
        attributes=attrs,
        header_len=header_len,
        checksum=checksum,
        ext_header_offset=ext_header_offset,
        reserved=reserved,
        revision=revision,
        zero_vector=zero_vector,
        resizable=resizable,
    )
    fv.blocks = _read_blocks(data)

    set_erase_polarity(fv.erase_polarity())

    data_offset = header_len
    ext_limit = (length - FIRMWARE_VOLUME_EXT_HEADER_MIN_SIZE) % _U64
    if ext_header_offset and ext_header_offset < ext_limit:
        try:
            name, ext_size = _EXT.unpack(_take(data, ext_header_offset, _EXT.size))
        except UEFIError as exc:
            raise UEFIError(f"unable to parse FV extended header, got: {exc}") from exc
        fv.fv_name = GUID(name)
        fv.ext_header_size = ext_size
        data_offset = ext_header_offset + ext_size
    fv.data_offset = align8(data_offset)

    fv.fv_type = FV_GUIDS.get(fv.file_system_guid, "")
    fv.fv_offset = fv_offset

    if length > len(data):
        raise UEFIError(
            f"Firmware Volume length {length:#x} exceeds the {len(data):#x} bytes available"
        )
    fv.buf = data[:length]

    if fv.file_system_guid in SUPPORTED_FVS:
        _parse_files(fv, data)
    return fv