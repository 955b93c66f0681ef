import datetime as _dt
import os
import re

from pathlib import Path
from typing import Dict, List
from urllib.parse import urlsplit

from cachedecoder.utils.dataModels import DB_DIRNAME, ResourceDescriptor

_PLACEHOLDER = re.compile(r"%\w")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def cache_paths(cache: Path, workdir: Path | None = None) -> Dict[str, Path]:
    work = Path(workdir) if workdir else Path.cwd()
    return {
        "blobs": cache,
        "db": cache / DB_DIRNAME,
        "workdb": work / DB_DIRNAME,
    }


def server_label(url: str) -> str:
    """``http://127.0.0.1:30120/x`` -> ``127.0.0.1_30120``

    Raises ``ValueError`` for a URL without a host or with a bad port.
    """
    parts = urlsplit(url)
    if not parts.hostname:
        raise ValueError(f"no host in source URL {url!r}")
    port = parts.port or _DEFAULT_PORTS.get(parts.scheme, 0)
    return f"{parts.hostname}_{port}"


def resolve_output(template: str, descriptor: ResourceDescriptor, mtime: float) -> str:
    ts = _dt.datetime.fromtimestamp(mtime, tz=_dt.timezone.utc)

    def repl(m: re.Match) -> str:
        token = m.group(0)
        if token == "%d":
            return str(ts.day)
        if token == "%m":
            return str(ts.month)
        if token == "%y":
            return str(ts.year)
        if token == "%h":
            return descriptor.hash
        if token == "%n":
            return descriptor.resource_name
        if token == "%s":
            return server_label(descriptor.source_url)
        return token

    return _PLACEHOLDER.sub(repl, template)


def list_files(root: Path) -> List[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file())


def relative_posix(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def stamp(path: Path, mtime: float) -> None:
    os.utime(path, (mtime, mtime))


def rel_time_iso(ts: float) -> str:
    return _dt.datetime.fromtimestamp(ts, tz=_dt.timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"
