"""
Generate and update commands: hash new or changed files and write the listing.
"""

import logging
import time
from pathlib import Path
from typing import Dict, List, Tuple

from common import (
    DumpListConfig,
    Inventory,
    PROGRESS_EVERY,
    build_record_task,
    build_report,
    disk_path,
    file_exists,
    filemtime,
    walk_tree,
)
from listfile import read_listfile, write_listfile


def _new_stats() -> Dict[str, int]:
    return {
        "scanned": 0,
        "hashed_new": 0,
        "hashed_updated": 0,
        "unchanged": 0,
        "removed": 0,
        "errors": 0,
    }


def _log_progress(done: int, stats: Dict[str, int]) -> None:
    if done % PROGRESS_EVERY == 0:
        logging.info(
            f"Progress: processed={done}, "
            f"hashed={stats['hashed_new'] + stats['hashed_updated']}, "
            f"unchanged={stats['unchanged']}, errors={stats['errors']}"
        )


def _log_summary(stats: Dict[str, int], listed: int) -> None:
    logging.info(
        "Listing summary: %d files walked | hashed new: %d | hashed updated: %d | "
        "unchanged: %d | removed: %d | errors: %d | listed: %d"
        % (
            stats["scanned"],
            stats["hashed_new"],
            stats["hashed_updated"],
            stats["unchanged"],
            stats["removed"],
            stats["errors"],
            listed,
        )
    )


def reconcile_inventory(
    root: Path,
    inventory: Inventory,
    current_files: List[str],
    stats: Dict[str, int],
) -> Tuple[Inventory, Dict[str, List[Dict[str, object]]]]:
    """Bring an inventory in line with the files currently under root.

    New files are hashed and added, files whose mtime changed are rehashed,
    files that are gone are dropped. Entries with an unchanged mtime are kept
    as they are without reading the file.
    """
    previous = inventory
    inventory = dict(previous)
    added: List[Dict[str, object]] = []
    updated: List[Dict[str, object]] = []
    removed: List[Dict[str, object]] = []
    errors: List[Dict[str, object]] = []
    processed = 0

    for path in current_files:
        if path in inventory:
            continue
        result = build_record_task(root, path)
        processed += 1
        if result.error:
            stats["errors"] += 1
            logging.warning(f"Failed to hash {path}: {result.error}")
            errors.append({"path": path, "error": result.error})
            continue
        inventory[path] = result.record
        stats["hashed_new"] += 1
        added.append({"path": path, "mtime": result.record.mtime, "sha256": result.record.sha256})
        _log_progress(processed, stats)

    to_remove: List[str] = []
    for path, record in previous.items():
        file_path = disk_path(root, path)
        if not file_exists(file_path):
            to_remove.append(path)
            continue

        try:
            mtime = filemtime(file_path)
        except OSError as exc:
            stats["errors"] += 1
            logging.warning(f"Failed to stat {path}: {exc}")
            errors.append({"path": path, "error": str(exc)})
            continue

        if mtime == record.mtime:
            stats["unchanged"] += 1
            continue

        result = build_record_task(root, path)
        processed += 1
        if result.error:
            # Previous record stays so the next update retries this file
            stats["errors"] += 1
            logging.warning(f"Failed to hash {path}: {result.error}")
            errors.append({"path": path, "error": result.error})
            continue
        inventory[path] = result.record
        stats["hashed_updated"] += 1
        updated.append(
            {
                "path": path,
                "mtime": result.record.mtime,
                "sha256": result.record.sha256,
                "previous_sha256": record.sha256,
            }
        )
        _log_progress(processed, stats)

    for path in to_remove:
        del inventory[path]
        stats["removed"] += 1
        removed.append({"path": path})

    details = {
        "added": added,
        "updated": updated,
        "removed": removed,
        "errors": errors,
    }
    return inventory, details


def generate_listfile(config: DumpListConfig) -> Dict[str, object]:
    """Hash every file under root and write a fresh listing."""
    stats = _new_stats()
    added: List[Dict[str, object]] = []
    errors: List[Dict[str, object]] = []

    run_started = int(time.time())
    current_files = walk_tree(config.root, False, config.ignored_paths)
    stats["scanned"] = len(current_files)

    inventory: Inventory = {}
    for processed, path in enumerate(current_files, start=1):
        result = build_record_task(config.root, path)
        if result.error:
            stats["errors"] += 1
            logging.warning(f"Failed to hash {path}: {result.error}")
            errors.append({"path": path, "error": result.error})
        else:
            inventory[path] = result.record
            stats["hashed_new"] += 1
            added.append({"path": path, "mtime": result.record.mtime, "sha256": result.record.sha256})
        _log_progress(processed, stats)

    if not inventory:
        logging.warning(f"No files to list under {config.root}; writing an empty listing")
    write_listfile(config.listfile_path, inventory)
    logging.debug(f"Listing written to {config.listfile_path}")
    run_finished = int(time.time())
    _log_summary(stats, len(inventory))

    return build_report(
        root=config.root,
        listfile=config.listfile_path,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        mode="generate",
        details={"added": added, "errors": errors, "listed": len(inventory)},
    )


def update_listfile(config: DumpListConfig) -> Dict[str, object]:
    """Rehash only new or changed files and rewrite the listing.

    Raises ListfileError without writing anything if the existing listing cannot be parsed.
    """
    stats = _new_stats()

    run_started = int(time.time())
    current_files = walk_tree(config.root, False, config.ignored_paths)
    inventory = read_listfile(config.listfile_path)
    stats["scanned"] = len(current_files)

    inventory, details = reconcile_inventory(config.root, inventory, current_files, stats)

    if not inventory:
        logging.warning(f"No files left to list under {config.root}; writing an empty listing")
    write_listfile(config.listfile_path, inventory)
    logging.debug(f"Listing written to {config.listfile_path}")
    run_finished = int(time.time())
    _log_summary(stats, len(inventory))

    details["listed"] = len(inventory)
    return build_report(
        root=config.root,
        listfile=config.listfile_path,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        mode="update",
        details=details,
    )
