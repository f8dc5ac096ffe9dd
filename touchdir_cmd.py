"""
Touchdir command: set each directory's mtime from its newest entries, bottom up.

Bulk copies and moves leave directory mtimes behind their contents. Entries are
visited deepest first, so by the time a directory's parent is handled the
directory itself already carries its final timestamp. A second pass over files
alone then settles each directory on the times of the files it holds.
"""

import logging
import os
import posixpath
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from common import (
    DumpListConfig,
    build_report,
    disk_path,
    filemtime,
    is_writable,
    sort_by_level_desc,
    walk_tree,
)


BLACKLISTED_NAMES = {"desktop.ini"}


@dataclass
class TouchState:
    """Fold state: the directory being stamped and the newest time given to it so far."""
    current_dir: Optional[str] = None
    running_max: int = 0


def is_blacklisted(path: str) -> bool:
    """True for desktop.ini files and anything inside or named like a hidden entry."""
    parts = path.split("/")[1:]
    if parts and parts[-1].lower() in BLACKLISTED_NAMES:
        return True
    return any(part.startswith(".") for part in parts)


def touch_step(
    state: TouchState,
    path: str,
    root: Path,
    stats: Dict[str, int],
    touched: List[Dict[str, object]],
) -> TouchState:
    """Fold one entry into the state, stamping its parent directory when the entry is newer."""
    parent = posixpath.dirname(path)
    if parent != state.current_dir:
        state = TouchState(current_dir=parent, running_max=0)

    mtime = filemtime(disk_path(root, path))
    if mtime <= 0 or mtime <= state.running_max:
        return state

    parent_path = disk_path(root, parent)
    if not is_writable(parent_path):
        logging.debug(f"Skipping unwritable directory {parent}")
        stats["skipped_unwritable"] += 1
        return state

    state = TouchState(current_dir=parent, running_max=mtime)
    os.utime(parent_path, (mtime, mtime))
    stats["touched"] += 1
    touched.append({"path": parent, "mtime": mtime, "source": path})
    return state


def touch_directories(config: DumpListConfig) -> Dict[str, object]:
    """Propagate file modification times up to every ancestor directory."""
    stats = {
        "entries": 0,
        "skipped_blacklisted": 0,
        "skipped_unwritable": 0,
        "touched": 0,
        "errors": 0,
    }
    touched: List[Dict[str, object]] = []
    errors: List[Dict[str, object]] = []

    run_started = int(time.time())
    entries = sort_by_level_desc(walk_tree(config.root, True, config.ignored_paths))
    stats["entries"] = len(entries)

    for files_only in (False, True):
        state = TouchState()
        for path in entries:
            if files_only and os.path.isdir(disk_path(config.root, path)):
                continue
            if is_blacklisted(path):
                stats["skipped_blacklisted"] += 1
                continue
            try:
                state = touch_step(state, path, config.root, stats, touched)
            except OSError as exc:
                stats["errors"] += 1
                logging.warning(f"Failed to touch parent of {path}: {exc}")
                errors.append({"path": path, "error": str(exc)})

    run_finished = int(time.time())
    logging.info(
        f"Completed: entries={stats['entries']}, touched={stats['touched']}, "
        f"unwritable={stats['skipped_unwritable']}, errors={stats['errors']}"
    )

    return build_report(
        root=config.root,
        listfile=config.listfile_path,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        mode="touchdir",
        details={"touched": touched, "errors": errors},
    )
