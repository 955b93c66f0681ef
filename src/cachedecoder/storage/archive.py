"""RPF2 archive reading and writing.

Layout (little-endian):
    0x0000  header      : magic, toc size, entry count, unknown flag, crypto flag
    0x0800  entry table : entry count * 16 bytes
    ......  name blob   : null-terminated names, offsets relative to table end
    0x1000  data region : file payloads, each padded to 2048 bytes

Entry 0 is the root directory. A directory entry points at its first child by
index and stores its child count in ``length``.
"""
import logging
import struct

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Set

from cachedecoder.utils.dataModels import (
    RPF_MAGIC, RPF_ALIGN, RPF_HDR_SIZE, RPF_ENTRY_FMT, RPF_ENTRY_SIZE, RPF_DIR_BIT, RPF_MAX_DEPTH,
    ArchiveFile, ArchiveHeader, ArchiveLayoutError, RawEntry, UnsupportedFormatError,
)

log = logging.getLogger(__name__)

NAME_ENCODING = "utf-8"


def _encode_name(name: str) -> bytes:
    return name.encode(NAME_ENCODING, "surrogateescape")


def _pad(size: int) -> int:
    return (RPF_ALIGN - size % RPF_ALIGN) % RPF_ALIGN


class RpfReader:
    def __init__(self, data: bytes):
        self._data = data
        self.header: ArchiveHeader | None = None
        self.entries: List[RawEntry] = []
        self._names_base = 0

    def open(self) -> None:
        if len(self._data) < RPF_HDR_SIZE:
            raise UnsupportedFormatError("archive is too small to hold a header")
        header = ArchiveHeader.from_bytes(self._data)
        if header.magic != RPF_MAGIC:
            raise UnsupportedFormatError(f"bad archive magic 0x{header.magic:08X}")
        if header.crypto_flag != 0:
            raise UnsupportedFormatError("encrypted archives are not supported")
        if header.entry_count == 0:
            raise UnsupportedFormatError("archive has no root entry")

        names_base = RPF_ALIGN + header.entry_count * RPF_ENTRY_SIZE
        if names_base > len(self._data):
            raise UnsupportedFormatError(
                f"entry table of {header.entry_count} entries exceeds archive size {len(self._data)}"
            )

        entries = []
        for i in range(header.entry_count):
            no, length, doff, flags = struct.unpack_from(RPF_ENTRY_FMT, self._data, RPF_ALIGN + i * RPF_ENTRY_SIZE)
            entries.append(RawEntry(no, length, doff, flags))
        self._names_base = names_base
        self.header = header
        self.entries = entries

    def _name_of(self, entry: RawEntry) -> str:
        # names are resolved only for entries the walk reaches
        if not entry.name:
            entry.name = self._read_name(self._names_base + entry.name_offset)
        return entry.name

    def _read_name(self, pos: int) -> str:
        end = self._data.find(b"\x00", pos)
        if pos >= len(self._data) or end < 0:
            raise UnsupportedFormatError(f"unterminated entry name at offset {pos}")
        return self._data[pos:end].decode(NAME_ENCODING, "surrogateescape")

    def read_entries(self) -> List[ArchiveFile]:
        if self.header is None:
            self.open()
        out: List[ArchiveFile] = []
        self._walk(0, "", 0, {0}, out)
        return out

    def _walk(self, idx: int, prefix: str, depth: int, seen: Set[int], out: List[ArchiveFile]) -> None:
        if depth > RPF_MAX_DEPTH:
            raise UnsupportedFormatError("directory nesting too deep")
        parent = self.entries[idx]
        start, count = parent.offset, parent.length
        if count == 0:
            return
        if start <= idx:
            raise UnsupportedFormatError(f"entry {idx} points back at entry {start}")
        if start + count > len(self.entries):
            raise UnsupportedFormatError(
                f"entry {idx} children {start}..{start + count} exceed entry count {len(self.entries)}"
            )
        for i in range(start, start + count):
            # every entry belongs to exactly one directory
            if i in seen:
                raise UnsupportedFormatError(f"entry {i} is listed by more than one directory")
            seen.add(i)
            sub = self.entries[i]
            name = self._name_of(sub)
            if not name or name in (".", "..") or "/" in name:
                raise UnsupportedFormatError(f"entry {i} has an unusable name {name!r}")
            if sub.is_directory:
                self._walk(i, prefix + name + "/", depth + 1, seen, out)
                continue
            end = sub.offset + sub.length
            if end > len(self._data):
                raise UnsupportedFormatError(f"data of {prefix + name} runs past end of archive")
            out.append(ArchiveFile(prefix + name, bytes(self._data[sub.offset:end])))


@dataclass
class _Node:
    name: str
    path: Path
    children: List["_Node"] | None = None  # None for files

    @property
    def encoded(self) -> bytes:
        return _encode_name(self.name)

    def size(self) -> int:
        if self.children is None:
            return 1
        return 1 + sum(c.size() for c in self.children)


@dataclass
class _Layout:
    entries: List[RawEntry]
    names: bytearray = field(default_factory=bytearray)
    payloads: List[bytes] = field(default_factory=list)


class RpfWriter:
    """Serializes a directory tree the way the game client packs it.

    ``plan`` assigns every entry index, name offset and data offset first;
    ``serialize`` then emits the bytes front to back.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _snapshot(self, directory: Path) -> _Node:
        children = []
        for p in directory.iterdir():
            if p.is_dir():
                children.append(self._snapshot(p))
            elif p.is_file():
                children.append(_Node(p.name, p))
        # ordinal order, files and directories interleaved
        children.sort(key=lambda n: n.encoded)
        return _Node(directory.name, directory, children)

    def plan(self) -> _Layout:
        root = self._snapshot(self.directory)
        entry_count = root.size()
        layout = _Layout(entries=[None] * entry_count)  # type: ignore[list-item]
        self._data_loc = RPF_ALIGN * 2

        n = len(root.children)
        layout.entries[0] = RawEntry(self._add_name(layout, "/"), n, 1 | RPF_DIR_BIT, n, "/")
        self._place(layout, 1, root)

        names_end = RPF_ALIGN + entry_count * RPF_ENTRY_SIZE + len(layout.names)
        if names_end > RPF_ALIGN * 2:
            raise ArchiveLayoutError(
                f"{entry_count} entries and {len(layout.names)} name bytes do not fit the reserved index region"
            )
        return layout

    def _add_name(self, layout: _Layout, name: str) -> int:
        offset = len(layout.names)
        layout.names += _encode_name(name) + b"\x00"
        return offset

    def _place(self, layout: _Layout, start_idx: int, node: _Node) -> int:
        # Children take contiguous slots; each subdirectory's subtree is laid
        # out right after its parent's run, before the next sibling's.
        count = len(node.children)
        idx = start_idx
        for child in node.children:
            if child.children is not None:
                name_off = self._add_name(layout, child.name)
                first = start_idx + count
                count += self._place(layout, first, child)
                n = len(child.children)
                layout.entries[idx] = RawEntry(name_off, n, first | RPF_DIR_BIT, n, child.name)
            else:
                data = child.path.read_bytes()
                data_off = self._data_loc
                layout.payloads.append(data + bytes(_pad(len(data))))
                self._data_loc += len(layout.payloads[-1])
                name_off = self._add_name(layout, child.name)
                layout.entries[idx] = RawEntry(name_off, len(data), data_off, len(data), child.name)
            idx += 1
        return count

    def serialize(self, layout: _Layout) -> bytes:
        header = ArchiveHeader(RPF_MAGIC, RPF_ALIGN * 2, len(layout.entries))
        out = bytearray(header.to_bytes())
        out += bytes(RPF_ALIGN - len(out))
        for entry in layout.entries:
            out += entry.to_bytes()
        out += layout.names
        out += bytes(RPF_ALIGN * 2 - len(out))
        for payload in layout.payloads:
            out += payload
        return bytes(out)

    def write(self) -> bytes:
        layout = self.plan()
        log.debug("packing %s: %d entries, %d payloads", self.directory, len(layout.entries), len(layout.payloads))
        return self.serialize(layout)


def read_archive(data: bytes) -> List[ArchiveFile]:
    reader = RpfReader(data)
    reader.open()
    return reader.read_entries()


def write_archive(directory: Path) -> bytes:
    return RpfWriter(directory).write()
