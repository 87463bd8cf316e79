"""Compress or decompress files the way firmware build tools do."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .compression import LZMA_GUID, LZMAX86_GUID, CompressionError, compressor_from_guid


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="glzma",
        description="LZMA encode or decode a file.",
        allow_abbrev=False,
    )
    parser.add_argument("-d", "--d", dest="d", action="store_true", help="decode")
    parser.add_argument("-e", "--e", dest="e", action="store_true", help="encode")
    parser.add_argument("-f86", "--f86", dest="f86", action="store_true",
                        help="use x86 extension")
    parser.add_argument("-o", "--o", dest="o", default="", help="output file")
    parser.add_argument("-xzPath", "--xzPath", dest="xz_path", default="",
                        help="path to system xz command used for lzma encoding")
    parser.add_argument("inputs", nargs="*")
    return parser


def _fail(message: str) -> int:
    print(f"glzma: {message}", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    """Run the command; returns the process exit status."""
    args = _parser().parse_args(argv)

    if args.d == args.e:
        return _fail("either decode (-d) or encode (-e) must be set")
    if not args.o:
        return _fail("output file must be set")
    if len(args.inputs) != 1:
        return _fail("expected one input file")

    compressor = compressor_from_guid(LZMAX86_GUID if args.f86 else LZMA_GUID, args.xz_path)
    operation = compressor.decode if args.d else compressor.encode

    try:
        data = Path(args.inputs[0]).read_bytes()
        result = operation(data)
        Path(args.o).write_bytes(result)
    except (OSError, CompressionError) as exc:
        return _fail(str(exc))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())