"""
Check command: compare the listing with the tree and report new, deleted or changed files.
"""

import enum
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from common import (
    DumpListConfig,
    FileRecord,
    Inventory,
    PROGRESS_EVERY,
    build_report,
    compute_hash,
    compute_parity,
    disk_path,
    file_exists,
    filemtime,
    walk_tree,
)
from listfile import read_listfile


class Outcome(enum.Enum):
    UNCHANGED = "unchanged"
    NEW = "new"
    DELETED = "deleted"
    MODIFIED = "modified"
    PARITY_MISMATCH = "parity_mismatch"
    DIGEST_MISMATCH = "digest_mismatch"


@dataclass
class CheckResult:
    """Outcome of checking one entry against the tree."""
    path: str
    outcome: Outcome
    expected: Optional[str] = None
    actual: Optional[str] = None

    def message(self) -> str:
        if self.outcome is Outcome.NEW:
            return f"{self.path} is a new file."
        if self.outcome is Outcome.DELETED:
            return f"{self.path} does not exist."
        if self.outcome is Outcome.MODIFIED:
            return f"{self.path} was modified."
        if self.outcome is Outcome.PARITY_MISMATCH:
            return f"{self.path} Expected parity: {self.expected} Got: {self.actual}."
        if self.outcome is Outcome.DIGEST_MISMATCH:
            return f"{self.path} Expected sha256: {self.expected} Got: {self.actual}."
        return f"{self.path} is unchanged."


def check_entry(
    root: Path,
    path: str,
    record: FileRecord,
    test_sha256: bool = False,
    test_parity: bool = False,
) -> CheckResult:
    """Check one listed file; the first failing check decides the outcome.

    Raises OSError if the file cannot be stat'd or read.
    """
    file_path = disk_path(root, path)
    if not file_exists(file_path):
        return CheckResult(path, Outcome.DELETED)

    if filemtime(file_path) != record.mtime:
        return CheckResult(path, Outcome.MODIFIED)

    if test_parity:
        parity = compute_parity(file_path)
        if parity != record.parity:
            return CheckResult(path, Outcome.PARITY_MISMATCH, record.parity, parity)

    if test_sha256:
        sha256 = compute_hash(file_path)
        if sha256 != record.sha256:
            return CheckResult(path, Outcome.DIGEST_MISMATCH, record.sha256, sha256)

    return CheckResult(path, Outcome.UNCHANGED)


def check_files(
    config: DumpListConfig,
    test_sha256: bool = False,
    test_parity: bool = False,
    on_result: Optional[Callable[[CheckResult], None]] = None,
) -> Dict[str, object]:
    """Report files that are new, deleted, modified or fail verification.

    Raises ListfileError before looking at any file if the listing cannot be parsed.
    Nothing on disk is changed.
    """
    run_started = int(time.time())
    current_files = walk_tree(config.root, False, config.ignored_paths)
    inventory: Inventory = read_listfile(config.listfile_path)

    stats = {
        "scanned": len(current_files),
        "listed": len(inventory),
        "new": 0,
        "deleted": 0,
        "modified": 0,
        "parity_mismatch": 0,
        "digest_mismatch": 0,
        "unchanged": 0,
        "errors": 0,
    }
    findings: List[Dict[str, object]] = []
    errors: List[Dict[str, object]] = []

    def emit(result: CheckResult) -> None:
        stats[result.outcome.value] += 1
        if result.outcome is Outcome.UNCHANGED:
            return
        finding: Dict[str, object] = {"path": result.path, "outcome": result.outcome.value}
        if result.expected is not None:
            finding["expected"] = result.expected
            finding["actual"] = result.actual
        findings.append(finding)
        if on_result:
            on_result(result)

    for path in current_files:
        if path not in inventory:
            emit(CheckResult(path, Outcome.NEW))

    for checked, (path, record) in enumerate(inventory.items(), start=1):
        try:
            result = check_entry(config.root, path, record, test_sha256, test_parity)
        except OSError as exc:
            stats["errors"] += 1
            logging.warning(f"Failed to check {path}: {exc}")
            errors.append({"path": path, "error": str(exc)})
            continue
        emit(result)

        if checked % PROGRESS_EVERY == 0:
            logging.info(
                f"Progress: checked={checked}/{stats['listed']}, "
                f"unchanged={stats['unchanged']}, errors={stats['errors']}"
            )

    run_finished = int(time.time())
    logging.info(
        f"Completed: scanned={stats['scanned']}, listed={stats['listed']}, "
        f"new={stats['new']}, deleted={stats['deleted']}, modified={stats['modified']}, "
        f"parity_mismatch={stats['parity_mismatch']}, "
        f"digest_mismatch={stats['digest_mismatch']}, errors={stats['errors']}"
    )

    details: Dict[str, object] = {
        "findings": findings,
        "errors": errors,
        "test_sha256": test_sha256,
        "test_parity": test_parity,
    }
    return build_report(
        root=config.root,
        listfile=config.listfile_path,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        mode="test" if (test_sha256 or test_parity) else "check",
        details=details,
    )
