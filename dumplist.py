#!/usr/bin/env python3
"""
dumplist – signed listing of a directory tree.

Keeps a SHA256SUMS listing of every file under the current directory with its
mtime, an MD5+SHA-1 parity token and its SHA-256 digest, and reconciles it with
the tree.

Commands:
  check     Report new, deleted and modified (mtime) files.
  test      Like check, but also verify parity tokens and SHA-256 digests.
  generate  Hash every file and write a fresh listing.
  update    Hash only new or modified files and rewrite the listing.
  touchdir  Set directory mtimes from the newest files they contain.
"""

import argparse
import logging
import re
import sys
from typing import List, NoReturn, Optional

from check_cmd import CheckResult, check_files
from common import DumpListConfig, setup_logging
from listfile import ListfileError
from touchdir_cmd import touch_directories
from update_cmd import generate_listfile, update_listfile


COMMANDS = ("check", "test", "generate", "update", "touchdir")
USAGE = "Usage: dumplist [--check|--test|--generate|--update|--touchdir]"


class UsageError(Exception):
    """Raised when the command line is not exactly one known command."""


class CommandParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting with status 2."""

    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def parse_command(argv: List[str]) -> str:
    """Return the command named by argv; one or two leading dashes are accepted."""
    parser = CommandParser(prog="dumplist", usage=USAGE, add_help=False)
    parser.add_argument("command", choices=COMMANDS)
    args = parser.parse_args([re.sub(r"^-{1,2}", "", arg) for arg in argv])
    return args.command


def print_result(result: CheckResult) -> None:
    # Undecodable name bytes are shown as \udcXX escapes
    message = result.message().encode("utf-8", "backslashreplace").decode("utf-8")
    print(message, flush=True)


def run_command(command: str, config: DumpListConfig) -> int:
    """Run one command and return the process exit status."""
    try:
        if command == "check":
            report = check_files(config, on_result=print_result)
        elif command == "test":
            report = check_files(config, test_sha256=True, test_parity=True, on_result=print_result)
        elif command == "generate":
            report = generate_listfile(config)
        elif command == "update":
            report = update_listfile(config)
        else:
            report = touch_directories(config)
    except ListfileError as exc:
        logging.error(f"Error parsing listfile: {exc}")
        return 1

    if report["stats"].get("errors", 0):
        logging.error(f"{command} finished with {report['stats']['errors']} file error(s)")
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """Main entry point for the script."""
    if argv is None:
        argv = sys.argv[1:]

    try:
        command = parse_command(argv)
    except UsageError:
        print(USAGE, file=sys.stderr)
        sys.exit(1)

    setup_logging()
    sys.exit(run_command(command, DumpListConfig()))


if __name__ == "__main__":
    main()
