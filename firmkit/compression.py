"""LZMA compressors for GUID-defined sections in UEFI images."""

from __future__ import annotations

import abc
import lzma
import re
import subprocess

from .guid import GUID, parse

LZMA_GUID = parse("EE4E5898-3914-4259-9D6E-DC7BD79403CF")
LZMAX86_GUID = parse("D42AE6BD-1352-4BFB-909A-CA72A6EAE889")

# Mapping from compression level to dictionary size exponent.
_DICT_CAP_EXPS = (18, 20, 21, 22, 22, 23, 23, 24, 25, 26)
_COMPRESSION_LEVEL = 7

_LC, _LP, _PB = 3, 0, 2
_HEADER_LEN = 13
_UNKNOWN_SIZE = 0xFFFF_FFFF_FFFF_FFFF
_MIN_DICT = 4096
_MASK32 = 0xFFFF_FFFF

_X86_OPCODE = re.compile(b"[\xe8\xe9]")


class CompressionError(Exception):
    """Raised when data cannot be compressed or decompressed."""


class Compressor(abc.ABC):
    """One compression scheme; decode(encode(x)) == x."""

    name = ""

    @abc.abstractmethod
    def encode(self, data: bytes) -> bytes:
        """Compress data."""

    @abc.abstractmethod
    def decode(self, data: bytes) -> bytes:
        """Decompress data."""


class LZMA(Compressor):
    """LZMA 'alone' format with the uncompressed size stored in the header."""

    name = "LZMA"

    def encode(self, data: bytes) -> bytes:
        dict_size = 1 << _DICT_CAP_EXPS[_COMPRESSION_LEVEL]
        filters = [
            {
                "id": lzma.FILTER_LZMA1,
                "preset": _COMPRESSION_LEVEL,
                "dict_size": dict_size,
                "lc": _LC,
                "lp": _LP,
                "pb": _PB,
            }
        ]
        try:
            body = lzma.compress(bytes(data), format=lzma.FORMAT_RAW, filters=filters)
        except lzma.LZMAError as exc:
            raise CompressionError(f"lzma: {exc}") from exc
        props = (_PB * 5 + _LP) * 9 + _LC
        header = (
            bytes([props])
            + dict_size.to_bytes(4, "little")
            + len(data).to_bytes(8, "little")
        )
        return header + body

    def decode(self, data: bytes) -> bytes:
        data = bytes(data)
        if len(data) < _HEADER_LEN:
            raise CompressionError("lzma: header too short")
        props = data[0]
        if props >= 9 * 5 * 5:
            raise CompressionError("lzma: invalid properties byte")
        pb, rest = divmod(props, 45)
        lp, lc = divmod(rest, 9)
        dict_size = int.from_bytes(data[1:5], "little")
        size = int.from_bytes(data[5:_HEADER_LEN], "little")
        filters = [
            {
                "id": lzma.FILTER_LZMA1,
                "dict_size": max(dict_size, _MIN_DICT),
                "lc": lc,
                "lp": lp,
                "pb": pb,
            }
        ]
        try:
            decoder = lzma.LZMADecompressor(format=lzma.FORMAT_RAW, filters=filters)
            if size == _UNKNOWN_SIZE:
                out = decoder.decompress(data[_HEADER_LEN:])
                if not decoder.eof:
                    raise CompressionError("lzma: missing end-of-stream marker")
            else:
                out = decoder.decompress(data[_HEADER_LEN:], max_length=size)
                if len(out) < size:
                    raise CompressionError("lzma: unexpected end of compressed data")
        except lzma.LZMAError as exc:
            raise CompressionError(f"lzma: {exc}") from exc
        return out


class SystemLZMA(Compressor):
    """Compresses with an external xz executable; decodes in-process."""

    name = "LZMA"

    def __init__(self, xz_path: str) -> None:
        self.xz_path = xz_path

    def decode(self, data: bytes) -> bytes:
        # xz rejects files with both a stored size and an end marker,
        # which is exactly what encode produces.
        return LZMA().decode(data)

    def encode(self, data: bytes) -> bytes:
        try:
            result = subprocess.run(
                [self.xz_path, "--format=lzma", "-7", "--stdout"],
                input=bytes(data),
                capture_output=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as exc:
            raise CompressionError(f"xz failed: {exc}") from exc
        encoded = bytearray(result.stdout)
        if len(encoded) < _HEADER_LEN:
            raise CompressionError("xz produced a truncated lzma header")
        # Some firmware decompressors need the real size in the header.
        encoded[5:_HEADER_LEN] = len(data).to_bytes(8, "little")
        return bytes(encoded)


class LZMAX86(Compressor):
    """LZMA with the x86 branch/call/jump filter layered on top."""

    name = "LZMAX86"

    def __init__(self, inner: Compressor | None = None) -> None:
        self.inner = inner if inner is not None else LZMA()

    def decode(self, data: bytes) -> bytes:
        return x86_convert(self.inner.decode(data), encoding=False)

    def encode(self, data: bytes) -> bytes:
        return self.inner.encode(x86_convert(data, encoding=True))


def _is_ms_byte(b: int) -> bool:
    return ((b + 1) & 0xFE) == 0


def x86_convert(data: bytes, encoding: bool) -> bytes:
    """Apply (or undo) the x86 BCJ filter and return the converted bytes."""
    buf = bytearray(data)
    size = len(buf)
    if size < 5:
        return bytes(buf)
    limit = size - 4
    ip = 5
    pos = 0
    mask = 0

    while True:
        match = _X86_OPCODE.search(buf, pos, limit)
        p = match.start() if match else limit
        distance = p - pos
        pos = p
        if p >= limit:
            break

        if distance > 2:
            mask = 0
        else:
            mask >>= distance
            if mask and (mask > 4 or mask == 3 or _is_ms_byte(buf[p + (mask >> 1) + 1])):
                mask = (mask >> 1) | 4
                pos += 1
                continue

        if _is_ms_byte(buf[p + 4]):
            value = int.from_bytes(buf[p + 1:p + 5], "little")
            cur = (ip + pos) & _MASK32
            pos += 5
            value = (value + cur if encoding else value - cur) & _MASK32
            if mask:
                shift = (mask & 6) << 2
                if _is_ms_byte((value >> shift) & 0xFF):
                    value ^= ((0x100 << shift) - 1) & _MASK32
                    value = (value + cur if encoding else value - cur) & _MASK32
                mask = 0
            buf[p + 1] = value & 0xFF
            buf[p + 2] = (value >> 8) & 0xFF
            buf[p + 3] = (value >> 16) & 0xFF
            buf[p + 4] = (0 - ((value >> 24) & 1)) & 0xFF
        else:
            mask = (mask >> 1) | 4
            pos += 1

    return bytes(buf)


def compressor_from_guid(guid: GUID, xz_path: str = "") -> Compressor | None:
    """Return the compressor for a GUID-defined section, or None."""
    if guid == LZMA_GUID:
        return SystemLZMA(xz_path) if xz_path else LZMA()
    if guid == LZMAX86_GUID:
        return LZMAX86(SystemLZMA(xz_path) if xz_path else LZMA())
    return None