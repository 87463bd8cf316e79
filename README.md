# firmkit

firmkit reads UEFI firmware images into a tree of Python objects. It
understands:

- Intel flash images in descriptor mode: the flash descriptor
  (`FlashDescriptor`), its descriptor map, region section and master section,
  and the regions they lay out (BIOS, ME, GbE and the rest). Gaps between
  regions become `RawRegion`s of type `FlashRegionType.UNKNOWN`.
- BIOS regions (`BIOSRegion`), split into firmware volumes
  (`FirmwareVolume`) and the padding between them (`BIOSPadding`).
- Files inside FFS2 and FFS3 volumes (`File`) and their sections (`Section`),
  including user-interface and version sections, dependency expressions,
  nested firmware volumes and GUID-defined sections.
- GUID-defined sections compressed with LZMA, with or without the x86
  branch/call/jump filter, in the same way as EDK2's `LzmaCompress`.
- Mixed-endian GUIDs as used throughout UEFI.
- The 4-byte flash parameters word (`firmkit.uefi.flashparams.FlashParams`).

It needs nothing outside the Python standard library and runs on Python 3.10
and later.

## Installing

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Parsing an image

```python
from firmkit.uefi.flash import parse

with open("firmware.rom", "rb") as fh:
    root = parse(fh.read())
```

`parse` returns a `FlashImage` when the buffer carries an Intel flash
descriptor signature (at offset 0 or 16). Anything else, such as an OVMF
image, is treated as a single `BIOSRegion`. Malformed data raises
`firmkit.uefi.common.UEFIError`.

The lower-level parsers can be called directly:
`firmkit.uefi.volume.parse_firmware_volume`,
`firmkit.uefi.file.parse_file` and `firmkit.uefi.section.parse_section`.
`parse_file` returns `None` where a volume's free space begins.

Every node in the tree is a `Firmware` and can be walked with a `Visitor`
(from `firmkit.uefi.common`) through `apply` and `apply_children`. A visitor
implements `visit`; `run` applies it to a node.

The erase polarity (0x00 or 0xFF) is recorded once per process in
`firmkit.uefi.common.attributes` the first time a firmware volume is parsed;
a later volume with the other polarity raises `UEFIError`.

## Building pieces of an image

A few helpers produce binary data rather than read it:

- `firmkit.uefi.file.create_pad_file(size)` builds an empty pad file, with
  checksums, for the current erase polarity.
- `File.set_size` and `File.checksum_and_assemble` fill in the size fields
  and checksums and build a file's bytes from its body.
- `firmkit.uefi.section.create_section` and `Section.gen_sec_header` build a
  section and prefix it with its binary header.
- `FirmwareVolume.insert_file` appends a file at an aligned offset, padding
  the gap with the erase byte.

## GUIDs

```python
from firmkit.guid import parse

g = parse("EE4E5898-3914-4259-9D6E-DC7BD79403CF")
print(g)            # EE4E5898-3914-4259-9D6E-DC7BD79403CF
print(g.to_json())  # {"GUID" : "EE4E5898-3914-4259-9D6E-DC7BD79403CF"}
```

Hyphens are optional. A malformed string raises `GUIDError`.
`GUID.from_json` reads the JSON form back.

## Compression

```python
from firmkit.compression import LZMA, LZMAX86

packed = LZMA().encode(b"payload")
assert LZMA().decode(packed) == b"payload"
```

The encoder writes the uncompressed size into the `.lzma` header, which is
what EDK2's decompressor expects. `LZMAX86` wraps another compressor and
applies the x86 filter (`x86_convert`) before encoding and after decoding.
`SystemLZMA(xz_path)` hands encoding to an `xz` executable and decodes
in-process. `compressor_from_guid` picks the compressor for a GUID-defined
section's GUID, or returns `None`. Failures raise `CompressionError`.

## The `glzma` command

`glzma` compresses or decompresses one file the way EDK2's `LzmaCompress`
does:

```
glzma -e -o payload.lzma payload.bin
glzma -d -o payload.bin payload.lzma
glzma -e -f86 -o payload.lzma payload.bin
```

- `-e` encodes, `-d` decodes; exactly one of them must be given.
- `-f86` adds the x86 branch/call/jump filter.
- `-o OUTPUT_FILE` names the output file and is required.
- `-xzPath PATH` encodes with the given `xz` executable instead of in-process.

Exactly one input file is expected. Errors are printed to standard error and
the command exits with status 1.

## What firmkit does not do

- There is no command for working on whole firmware images: no dumping a
  parsed tree, no finding, removing or replacing files, no extracting to a
  directory. Only `glzma` is installed as a command.
- A parsed tree cannot be saved as JSON or loaded back, and there is no
  function that reassembles a complete image from a modified tree.
- NVRAM variable stores are not decoded; files holding them are kept as
  opaque bytes.