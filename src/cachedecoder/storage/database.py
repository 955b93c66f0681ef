import logging
import re

import msgpack

from pathlib import Path
from typing import Any, Iterable, List, Tuple

from cachedecoder.crypto.chacha import decrypt_self_keyed
from cachedecoder.utils.dataModels import IV_SIZE, KEY_SIZE, RecordDecodeError, ResourceDescriptor
from cachedecoder.utils.helper import server_label

log = logging.getLogger(__name__)

_CACHE_URI = re.compile(r"\w+:/([0-9a-z_]+)")


def decrypt_database(src: Path, dst: Path) -> int:
    """Decrypt every file of the cache's db directory into ``dst``.

    LevelDB can only open the directory once all of its files are plaintext.
    Returns the number of files written.
    """
    dst.mkdir(parents=True, exist_ok=True)
    written = 0
    for f in sorted(src.iterdir()):
        if not f.is_file():
            continue
        data = f.read_bytes()
        plaintext = decrypt_self_keyed(data)[1] if len(data) >= IV_SIZE else b""
        (dst / f.name).write_bytes(plaintext)
        written += 1
    return written


def decode_fixed(value: Any, size: int) -> bytes:
    """Accept raw bytes, a (0x-prefixed) hex string, or a literal string."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) == size:
            return bytes(value)
        raise RecordDecodeError(f"expected {size} bytes, got {len(value)}")
    if isinstance(value, str):
        try:
            if len(value) == size:
                return bytes(ord(c) & 0xFF for c in value)
            if value.startswith("0x") and len(value) == size * 2 + 2:
                return bytes.fromhex(value[2:])
            if len(value) == size * 2:
                return bytes.fromhex(value)
        except ValueError as e:
            raise RecordDecodeError(f"invalid hex field: {e}") from e
        encoded = value.encode("utf-8", "surrogateescape")
        if len(encoded) == size:
            return encoded
    raise RecordDecodeError(f"unable to decode {type(value).__name__} as {size} bytes")


def decode_record(value: bytes) -> ResourceDescriptor:
    try:
        record = msgpack.unpackb(value, raw=False, unicode_errors="surrogateescape")
        meta = record["m"]
        match = _CACHE_URI.search(str(record["fn"]))
        if match is None:
            raise RecordDecodeError(f"unrecognised cache file name {record['fn']!r}")
        source_url = str(meta["from"])
        server_label(source_url)  # output templates need host and port
        return ResourceDescriptor(
            source_url=source_url,
            filename=match.group(1),
            original_filename=str(meta["filename"]),
            resource_name=str(meta["resource"]),
            hash=str(record["h"]),
            key=decode_fixed(meta["k"], KEY_SIZE),
            iv=decode_fixed(meta["i"], IV_SIZE),
        )
    except RecordDecodeError:
        raise
    except (ValueError, KeyError, TypeError, msgpack.exceptions.UnpackException) as e:
        raise RecordDecodeError(str(e)) from e


def decode_records(values: Iterable[bytes]) -> Tuple[List[ResourceDescriptor], int]:
    descriptors: List[ResourceDescriptor] = []
    errors = 0
    for value in values:
        try:
            descriptors.append(decode_record(value))
        except RecordDecodeError as e:
            log.debug("skipping record: %s", e)
            errors += 1
    return descriptors, errors


def read_descriptors(db_dir: Path) -> Tuple[List[ResourceDescriptor], int]:
    import plyvel

    db = plyvel.DB(str(db_dir))
    try:
        with db.iterator(include_key=False) as it:
            return decode_records(it)
    finally:
        db.close()
