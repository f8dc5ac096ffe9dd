"""
Shared code for dumplist commands: constants, types, config, hashing, tree walking, reporting.
"""

import base64
import hashlib
import logging
import os
import sys
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple


DEFAULT_LISTFILE = "./SHA256SUMS"
DEFAULT_IGNORED = ("./.htaccess", "./.htpasswd")
DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024
PROGRESS_EVERY = 1000
PARITY_LENGTH = 48


@dataclass
class FileRecord:
    """Listing entry for one tracked file."""
    mtime: int
    parity: str
    sha256: str


Inventory = Dict[str, FileRecord]


@dataclass
class HashResult:
    """Result of building a record (errors are captured, not raised)."""
    path: str
    record: Optional[FileRecord] = None
    error: Optional[str] = None


@dataclass
class DumpListConfig:
    """Tree root, listing location and ignored entries for one run."""

    root: Path = Path(".")
    listfile: str = DEFAULT_LISTFILE
    ignored: Tuple[str, ...] = DEFAULT_IGNORED

    @property
    def listfile_path(self) -> Path:
        return disk_path(self.root, to_entry_path(self.listfile))

    @property
    def ignored_paths(self) -> Set[str]:
        # Directory entries keep their trailing slash
        paths = {to_entry_path(self.listfile)}
        for item in self.ignored:
            entry = to_entry_path(item.rstrip("/"))
            paths.add(entry + "/" if item.endswith("/") else entry)
        return paths


def setup_logging() -> None:
    """Configure console logging.

    Logs go to stderr; stdout carries the check diagnostics.
    """
    handlers = [logging.StreamHandler(sys.stderr)]

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def to_entry_path(path: str) -> str:
    """Normalize a relative path to the './'-prefixed, forward-slash form used as listing key."""
    path = path.replace("\\", "/")
    if path == "." or path.startswith("./"):
        return path
    return "./" + path.lstrip("/")


def disk_path(root: Path, entry: str) -> Path:
    """Resolve an entry path against the tree root."""
    return Path(root) / entry


def walk_tree(
    root: Path = Path("."),
    include_dirs: bool = False,
    ignored: Iterable[str] = (),
) -> List[str]:
    """List the entry paths under root, breadth first, sorted ordinally.

    Ignored directories are given with a trailing '/' and are not descended into.
    Symlinks and special files are never listed.
    """
    ignored = set(ignored)
    queue = deque(["."])
    result: List[str] = []
    while queue:
        current = queue.popleft()
        try:
            with os.scandir(disk_path(root, current)) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            logging.warning(f"Skipping directory {current}: {exc}")
            continue

        for entry in entries:
            path = f"{current}/{entry.name}"
            try:
                if entry.is_dir(follow_symlinks=False):
                    if path + "/" in ignored:
                        continue
                    queue.append(path)
                    if include_dirs:
                        result.append(path)
                elif entry.is_file(follow_symlinks=False):
                    if path in ignored:
                        continue
                    result.append(path)
            except OSError as exc:
                logging.warning(f"Skipping entry {path}: {exc}")

    result.sort()
    return result


def path_depth(path: str) -> int:
    return path.count("/")


def sort_by_level_desc(paths: Iterable[str]) -> List[str]:
    """Deepest entries first; within a level, reverse ordinal order."""
    return sorted(paths, key=lambda p: (path_depth(p), p), reverse=True)


def file_exists(path: Path) -> bool:
    return os.path.isfile(path)


def is_writable(path: Path) -> bool:
    return os.access(path, os.W_OK)


def filemtime(path: Path) -> int:
    """Modification time in whole seconds."""
    return os.stat(path).st_mtime_ns // 1_000_000_000


def compute_digest(file_path: Path, algorithm: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """Stream a file through one hashlib algorithm and return the raw digest."""
    hasher = hashlib.new(algorithm)
    with open(file_path, 'rb') as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b''):
            hasher.update(chunk)
    return hasher.digest()


def compute_hash(file_path: Path) -> str:
    """Compute SHA-256 hash for a file."""
    return compute_digest(file_path, "sha256").hex()


def compute_parity(file_path: Path) -> str:
    """MD5 and SHA-1 of the file (two concurrent reads), base64url without padding."""
    with ThreadPoolExecutor(max_workers=2) as executor:
        md5 = executor.submit(compute_digest, file_path, "md5")
        sha1 = executor.submit(compute_digest, file_path, "sha1")
        raw = md5.result() + sha1.result()
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def build_record(file_path: Path) -> FileRecord:
    """Stat and hash one file."""
    return FileRecord(
        mtime=filemtime(file_path),
        parity=compute_parity(file_path),
        sha256=compute_hash(file_path),
    )


def build_record_task(root: Path, entry: str) -> HashResult:
    """Build a record for an entry, returning a HashResult instead of raising OSError."""
    try:
        return HashResult(path=entry, record=build_record(disk_path(root, entry)))
    except OSError as exc:
        return HashResult(path=entry, error=str(exc))


def build_report(
    root: Path,
    listfile: Path,
    stats: Dict[str, int],
    run_started: int,
    run_finished: int,
    mode: str,
    details: Optional[Dict[str, object]],
) -> Dict[str, object]:
    """Build JSON-compatible report."""
    report: Dict[str, object] = {
        "run_started": datetime.fromtimestamp(run_started).isoformat(),
        "run_finished": datetime.fromtimestamp(run_finished).isoformat(),
        "duration_seconds": run_finished - run_started,
        "root": str(root),
        "listfile": str(listfile),
        "mode": mode,
        "stats": stats,
    }
    if details:
        report.update(details)
    return report
