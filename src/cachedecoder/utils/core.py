import argparse
import logging
import sys

from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from cachedecoder.crypto.chacha import decrypt_resource, decrypt_self_keyed
from cachedecoder.storage.archive import read_archive
from cachedecoder.storage.database import decrypt_database, read_descriptors
from cachedecoder.utils.dataModels import (
    CachedResource, DecodeReport, Outcome, ResourceDescriptor, ResourceResult,
)
from cachedecoder.utils.helper import cache_paths, rel_time_iso, resolve_output, stamp

log = logging.getLogger(__name__)


def require_cache(args: argparse.Namespace) -> Path:
    cache = Path(args.cachedir)
    if not cache.is_dir():
        print(f"[!] Cache directory not found: {cache}")
        sys.exit(1)
    return cache


def load_descriptors(cache: Path, workdir: Path | None) -> Tuple[List[ResourceDescriptor], int]:
    p = cache_paths(cache, workdir)
    print("[+] Decrypting database")
    decrypt_database(p["db"], p["workdb"])
    print("[+] Reading entries from database")
    try:
        descriptors, errors = read_descriptors(p["workdb"])
    except ImportError:
        print("[!] plyvel not installed. pip install 'cachedecoder[leveldb]'")
        sys.exit(1)
    print(f"[+] Found {len(descriptors)} entries")
    print(f"[+] Errors reading {errors} entries")
    return descriptors, errors


def match_resources(cache: Path, descriptors: Iterable[ResourceDescriptor], report: DecodeReport) -> List[CachedResource]:
    """Join descriptors to the blobs in ``cache`` by file name."""
    blobs = {f.name: f for f in cache.iterdir() if f.is_file()}
    wanted = set()
    matched = []
    for d in descriptors:
        wanted.add(d.filename)
        blob = blobs.get(d.filename)
        if blob is None:
            report.missing_blobs += 1
            continue
        matched.append(CachedResource(d, blob, blob.stat().st_mtime))
    report.orphan_blobs = sum(1 for name in blobs if name not in wanted)
    report.matched = len(matched)
    return matched


def group_versions(resources: Iterable[CachedResource]) -> Dict[tuple, List[CachedResource]]:
    """Versions of each (resource name, original filename), newest blob first."""
    groups: Dict[tuple, List[CachedResource]] = defaultdict(list)
    for r in resources:
        groups[r.descriptor.group_key].append(r)
    for versions in groups.values():
        versions.sort(key=lambda r: r.mtime, reverse=True)
    return dict(groups)


def select_versions(resources: Iterable[CachedResource], duplicates: bool = False) -> List[CachedResource]:
    selected = []
    for versions in group_versions(resources).values():
        selected.extend(versions if duplicates else versions[:1])
    return selected


def open_resource(resource: CachedResource) -> Tuple[bytes, bytes]:
    """Returns the blob's own IV and the plaintext resource payload.

    Raises ``ValueError`` for a blob too short to carry its IV.
    """
    d = resource.descriptor
    iv, inner = decrypt_self_keyed(resource.blob.read_bytes())
    return iv, decrypt_resource(inner, d.key, d.iv)


def decode_resource(resource: CachedResource, template: str) -> ResourceResult:
    d = resource.descriptor
    out_dir = Path(resolve_output(template, d, resource.mtime))
    try:
        _, payload = open_resource(resource)
        files = read_archive(payload) if d.is_archive else None
    except ValueError as e:
        log.debug("%s/%s: %s", d.resource_name, d.original_filename, e)
        return ResourceResult(resource, Outcome.UNSUPPORTED, out_dir, str(e))

    target = out_dir / d.original_filename
    if files is not None:
        for f in files:
            out_fn = target.joinpath(*f.path.split("/"))
            out_fn.parent.mkdir(parents=True, exist_ok=True)
            out_fn.write_bytes(f.data)
            stamp(out_fn, resource.mtime)
        target.mkdir(parents=True, exist_ok=True)
        stamp(target, resource.mtime)
        detail = f"{len(files)} files"
    else:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
        stamp(target, resource.mtime)
        detail = f"{len(payload)} bytes"

    stamp(out_dir, resource.mtime)
    return ResourceResult(resource, Outcome.WRITTEN, target, detail)


def decode_resources(cache: Path, descriptors: Iterable[ResourceDescriptor], template: str,
                     duplicates: bool = False) -> DecodeReport:
    report = DecodeReport()
    matched = match_resources(cache, descriptors, report)
    for resource in select_versions(matched, duplicates):
        report.results.append(decode_resource(resource, template))
    return report


def cmd_decode(args: argparse.Namespace) -> None:
    cache = require_cache(args)
    descriptors, _ = load_descriptors(cache, args.workdir)

    report = decode_resources(cache, descriptors, args.output, args.duplicates)
    print(f"[-] Skipping {report.missing_blobs} entries")
    print(f"[-] Skipping {report.orphan_blobs} files")
    print(f"[+] Decrypted {report.matched} files")
    for r in report.results:
        d = r.resource.descriptor
        if r.outcome == Outcome.UNSUPPORTED:
            print(f"[!] Unsupported resource {d.resource_name}/{d.original_filename}: {r.detail}")
        else:
            print(f"[+] {d.resource_name}/{d.original_filename} -> {r.target} ({r.detail})")
    print("[+] Finished")


def cmd_list(args: argparse.Namespace) -> None:
    cache = require_cache(args)
    descriptors, _ = load_descriptors(cache, args.workdir)
    if not descriptors:
        print("(empty)")
        return
    for d in descriptors:
        blob = cache / d.filename
        when = rel_time_iso(blob.stat().st_mtime) if blob.is_file() else "missing"
        print(f"{d.resource_name}\t{d.original_filename}\t{d.filename}\t{when}\t{d.source_url}")
