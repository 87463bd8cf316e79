"""Conversion between UCS-2 (UTF-16LE) byte strings and Python text."""

from __future__ import annotations


def ucs2_to_utf8(data: bytes) -> str:
    """Decode little-endian UCS-2 bytes, dropping one trailing NUL."""
    text = bytes(data).decode("utf-16-le", errors="replace")
    if text.endswith("\x00"):
        text = text[:-1]
    return text


def utf8_to_ucs2(text: str) -> bytes:
    """Encode text as NUL-terminated little-endian UCS-2."""
    return (text + "\x00").encode("utf-16-le", errors="surrogatepass")