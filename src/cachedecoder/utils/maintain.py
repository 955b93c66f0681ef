import argparse
import logging

from pathlib import Path
from typing import Iterable

from cachedecoder.crypto.chacha import encrypt_resource, encrypt_self_keyed
from cachedecoder.crypto.hash import sha1_hex
from cachedecoder.storage.archive import read_archive, write_archive
from cachedecoder.utils.core import load_descriptors, match_resources, open_resource, require_cache, select_versions
from cachedecoder.utils.dataModels import (
    CachedResource, EncodeReport, Outcome, ResourceDescriptor, ResourceResult, UnsupportedFormatError,
)
from cachedecoder.utils.helper import list_files, relative_posix, resolve_output

log = logging.getLogger(__name__)


def _diff_archive(reference: bytes, rpf_dir: Path, result: ResourceResult) -> bool:
    """Compare an extracted archive directory with the archive it came from.

    Fills ``result.new_files`` / ``result.changed_files`` /
    ``result.missing_files`` and returns whether the directory needs to be
    packed again.
    """
    entries = read_archive(reference)
    on_disk = {relative_posix(p, rpf_dir): p for p in list_files(rpf_dir)}
    known = {f.path for f in entries}

    result.new_files = sorted(path for path in on_disk if path not in known)
    result.missing_files = [f.path for f in entries if f.path not in on_disk]
    matches = [(f, on_disk[f.path]) for f in entries if f.path in on_disk]
    for f, p in matches:
        if sha1_hex(p.read_bytes()) != sha1_hex(f.data):
            result.changed_files.append(f.path)

    return (bool(result.changed_files) or len(on_disk) != len(matches)
            or len(matches) != len(entries))


def resync_resource(resource: CachedResource, template: str, dry_run: bool = False) -> ResourceResult:
    d = resource.descriptor
    out_dir = Path(resolve_output(template, d, resource.mtime))
    try:
        orig_iv, reference = open_resource(resource)
    except ValueError as e:
        log.debug("%s/%s: %s", d.resource_name, d.original_filename, e)
        return ResourceResult(resource, Outcome.UNSUPPORTED, out_dir, str(e))

    if not out_dir.is_dir():
        return ResourceResult(resource, Outcome.SKIPPED, out_dir, "output directory missing")

    target = out_dir / d.original_filename
    result = ResourceResult(resource, Outcome.UNCHANGED, target)
    if d.is_archive:
        if not target.is_dir():
            result.outcome, result.detail = Outcome.SKIPPED, "archive directory missing"
            return result
        try:
            modified = _diff_archive(reference, target, result)
        except UnsupportedFormatError as e:
            log.debug("%s/%s: %s", d.resource_name, d.original_filename, e)
            result.outcome, result.detail = Outcome.UNSUPPORTED, str(e)
            return result
        if not modified:
            return result
        payload = write_archive(target)
    else:
        if not target.is_file():
            result.outcome, result.detail = Outcome.SKIPPED, "file missing"
            return result
        payload = target.read_bytes()
        if sha1_hex(payload) == sha1_hex(reference):
            return result

    result.outcome = Outcome.OVERWRITTEN
    if not dry_run:
        # the original blob IV keeps untouched layers byte-identical
        resource.blob.write_bytes(encrypt_self_keyed(encrypt_resource(payload, d.key, d.iv), orig_iv))
        log.debug("rewrote %s (%d bytes)", resource.blob, len(payload))
    return result


def resync_resources(cache: Path, descriptors: Iterable[ResourceDescriptor], template: str,
                     dry_run: bool = False) -> EncodeReport:
    report = EncodeReport(dry_run=dry_run)
    matched = match_resources(cache, descriptors, report)
    # only the newest version of a resource is ever written back
    for resource in select_versions(matched, duplicates=False):
        report.results.append(resync_resource(resource, template, dry_run))
    return report


def cmd_encode(args: argparse.Namespace) -> None:
    cache = require_cache(args)
    descriptors, _ = load_descriptors(cache, args.workdir)

    report = resync_resources(cache, descriptors, args.output, args.dry)
    print(f"[-] Skipping {report.missing_blobs} entries")
    print(f"[-] Skipping {report.orphan_blobs} files")
    print(f"[+] Checking {report.matched} files")
    for r in report.results:
        d = r.resource.descriptor
        if r.outcome == Outcome.SKIPPED:
            print(f"[-] Skipping {d.resource_name}/{d.original_filename}: {r.detail} ({r.target})")
            continue
        if r.outcome == Outcome.UNSUPPORTED:
            print(f"[!] Unsupported resource {d.resource_name}/{d.original_filename}: {r.detail}")
            continue
        for path in r.changed_files:
            print(f"[+] Rpf file change: {path}")
        for path in r.new_files:
            print(f"[+] Rpf file new: {path}")
        for path in r.missing_files:
            print(f"[+] Rpf file removed: {path}")
        if r.outcome == Outcome.OVERWRITTEN:
            print(f"[+] Overwriting {d.filename} with {r.target}")
    print("[+] Finished" + (" (Dry Run. Nothing was saved)" if report.dry_run else ""))
