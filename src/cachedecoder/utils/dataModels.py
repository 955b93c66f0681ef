import struct

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

DEFAULT_OUTPUT_TEMPLATE = "dump/%s/%n"
ARCHIVE_EXTENSION = ".rpf"
DB_DIRNAME = "db"

# Process-wide key for blobs and database files (the "self-keyed" convention)
STATIC_KEY = bytes([
    0xD3, 0x61, 0x57, 0x17, 0xE2, 0x16, 0x3F, 0x70, 0xAC, 0x69, 0x51, 0xB2, 0x7D, 0x7A, 0x0B, 0x86,
    0xD8, 0xE9, 0x3E, 0x16, 0xEA, 0xBF, 0x63, 0x2F, 0xDF, 0xBC, 0xC0, 0x0A, 0x1D, 0x3D, 0x62, 0xD6,
])
KEY_SIZE = 32
IV_SIZE = 8

RPF_MAGIC = 0x32465052  # b"RPF2" little-endian
RPF_ALIGN = 2048
RPF_HDR_FMT = "<5I"  # magic, toc size, entry count, unknown flag, crypto flag
RPF_HDR_SIZE = struct.calcsize(RPF_HDR_FMT)
RPF_ENTRY_FMT = "<4I"  # name offset, length, data offset (| dir bit), flags
RPF_ENTRY_SIZE = struct.calcsize(RPF_ENTRY_FMT)
RPF_DIR_BIT = 0x80000000
RPF_MAX_DEPTH = 128


class UnsupportedFormatError(ValueError):
    """Archive bytes that are not a plain RPF2 container."""


class ArchiveLayoutError(ValueError):
    """Entry table and names do not fit into the reserved header region."""


class RecordDecodeError(ValueError):
    """A database record that cannot be turned into a ResourceDescriptor."""


class Outcome(str, Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    UNCHANGED = "unchanged"
    OVERWRITTEN = "overwritten"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ResourceDescriptor:
    source_url: str
    filename: str
    original_filename: str
    resource_name: str
    hash: str
    key: bytes
    iv: bytes

    @property
    def group_key(self) -> tuple:
        return (self.resource_name, self.original_filename)

    @property
    def is_archive(self) -> bool:
        return Path(self.original_filename).suffix == ARCHIVE_EXTENSION


@dataclass(frozen=True)
class CachedResource:
    descriptor: ResourceDescriptor
    blob: Path
    mtime: float


@dataclass
class ArchiveHeader:
    magic: int
    toc_size: int
    entry_count: int
    unknown_flag: int = 0
    crypto_flag: int = 0

    def to_bytes(self) -> bytes:
        return struct.pack(RPF_HDR_FMT, self.magic, self.toc_size, self.entry_count,
                           self.unknown_flag, self.crypto_flag)

    @staticmethod
    def from_bytes(b: bytes) -> "ArchiveHeader":
        return ArchiveHeader(*struct.unpack_from(RPF_HDR_FMT, b, 0))


@dataclass
class RawEntry:
    name_offset: int
    length: int
    data_offset: int
    flags: int
    name: str = ""

    @property
    def is_directory(self) -> bool:
        return bool(self.data_offset & RPF_DIR_BIT)

    @property
    def offset(self) -> int:
        return self.data_offset & ~RPF_DIR_BIT

    def to_bytes(self) -> bytes:
        return struct.pack(RPF_ENTRY_FMT, self.name_offset, self.length, self.data_offset, self.flags)


@dataclass(frozen=True)
class ArchiveFile:
    path: str
    data: bytes

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass
class ResourceResult:
    resource: CachedResource
    outcome: Outcome
    target: Path | None = None
    detail: str = ""
    new_files: List[str] = field(default_factory=list)
    changed_files: List[str] = field(default_factory=list)
    missing_files: List[str] = field(default_factory=list)


@dataclass
class DecodeReport:
    missing_blobs: int = 0
    orphan_blobs: int = 0
    matched: int = 0
    results: List[ResourceResult] = field(default_factory=list)

    def count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)


@dataclass
class EncodeReport(DecodeReport):
    dry_run: bool = False

    @property
    def overwritten(self) -> List[ResourceResult]:
        return [r for r in self.results if r.outcome == Outcome.OVERWRITTEN]
