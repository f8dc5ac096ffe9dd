"""
Listing file codec: parse and format the two-section SHA256SUMS listing.

The listing carries one comment line per file with its mtime and parity token,
followed by one sha256sum-compatible line per file in the same order:

    ; 1700000000 <48-char parity> *a.txt
    <64-char sha256> *a.txt

Paths are stored with '*' in place of the leading './' so that other checksum
tools (QuickSFV, TeraCopy, sha256sum -c) read the content section as binary-mode entries.
"""

import re
from pathlib import Path
from typing import List, Tuple

from common import PARITY_LENGTH, FileRecord, Inventory


COMMENT_LINE = re.compile(r"; ([0-9]+) ([\w-]{%d}) (\*[^\r\n]+)" % PARITY_LENGTH, re.ASCII)
CONTENT_LINE = re.compile(r"([0-9a-f]{64}) (\*[^\r\n]+)")

LISTFILE_ENCODING = "utf-8"
LISTFILE_ERRORS = "surrogateescape"


class ListfileError(Exception):
    """Raised when the listing file is missing or malformed."""


def _split_sections(text: str) -> Tuple[List[Tuple[int, str, str]], List[Tuple[str, str]]]:
    """Collect comment and content entries as two ordered sequences; other lines are ignored."""
    comments: List[Tuple[int, str, str]] = []
    contents: List[Tuple[str, str]] = []
    # Only \n ends a line; other Unicode line breaks are legal in file names
    for line in text.split("\n"):
        if line.endswith("\r"):
            line = line[:-1]
        match = COMMENT_LINE.match(line)
        if match:
            comments.append((int(match.group(1)), match.group(2), match.group(3)))
            continue
        match = CONTENT_LINE.match(line)
        if match:
            contents.append((match.group(1), match.group(2)))
    return comments, contents


def parse_listfile(text: str) -> Inventory:
    """Parse listing text into an inventory keyed by './'-prefixed path."""
    comments, contents = _split_sections(text)

    if not comments:
        raise ListfileError("Unable to parse comments")
    if not contents:
        raise ListfileError("Unable to parse contents")
    if len(comments) != len(contents):
        raise ListfileError("Invalid entry count")

    inventory: Inventory = {}
    for (mtime, parity, name), (sha256, content_name) in zip(comments, contents):
        if not name.startswith("*") or name != content_name:
            raise ListfileError("Invalid entry order")
        inventory["./" + name[1:]] = FileRecord(mtime=mtime, parity=parity, sha256=sha256)
    return inventory


def format_listfile(inventory: Inventory) -> str:
    """Format an inventory as listing text, paths in ordinal order."""
    comment: List[str] = []
    content: List[str] = []
    for path in sorted(inventory):
        record = inventory[path]
        name = "*" + path[2:]
        comment.append(f"; {record.mtime} {record.parity} {name}\n")
        content.append(f"{record.sha256} {name}\n")
    return "".join(comment) + "".join(content)


def read_listfile(listfile_path: Path) -> Inventory:
    """Read and parse a listing.

    Names that are not valid UTF-8 come back as surrogate escapes, the same
    form os.scandir gives them, so they match the paths found on disk.
    """
    listfile_path = Path(listfile_path)
    if not listfile_path.is_file():
        raise ListfileError("File does not exist")
    return parse_listfile(listfile_path.read_bytes().decode(LISTFILE_ENCODING, LISTFILE_ERRORS))


def write_listfile(listfile_path: Path, inventory: Inventory) -> None:
    # Encode before opening so a failure cannot truncate the existing listing
    data = format_listfile(inventory).encode(LISTFILE_ENCODING, LISTFILE_ERRORS)
    Path(listfile_path).write_bytes(data)
