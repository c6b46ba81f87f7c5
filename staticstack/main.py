#!/usr/bin/env python3
"""staticstack/main.py: command-line entry point.

Usage examples
--------------
    # Ten deepest call trees of a saved disassembly
    staticstack firmware.dis

    # Everything, sorted by own stack
    staticstack -so -n-1 firmware.dis

    # Disassemble an ELF file on the fly
    staticstack --objdump xc32-objdump firmware.elf

    # Read the disassembly from a pipe
    mips-elf-objdump -d firmware.elf | staticstack -

Report content
--------------
    Name:           The name of the function as the label states.
    Own:            The stack usage of this function by itself.
    Deepest:        The maximum stack usage of this function and all
                    called functions.
    Indirect Calls: This function uses function pointers, so the deepest
                    stack usage cannot be determined.

Exit codes
----------
    0   Success.
    1   No function was found in the disassembly.
    2   Infrastructure failure (missing file, disassembler failure,
        visit budget exceeded).
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, TextIO

from staticstack import __version__
from staticstack.config import AnalyzerConfig
from staticstack.diagnostics import Reporter
from staticstack.driver import analyze_lines, iter_disassembly, read_lines
from staticstack.errors import (
    AnalysisBudgetExceeded,
    InputError,
    NoFunctionsFoundError,
)
from staticstack.report import SortKey, render_table

_log = logging.getLogger("staticstack")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_NO_FUNCTIONS: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``staticstack`` logger.

    Parameters
    ----------
    verbosity:
        -1 → ERROR, 0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity < 0:
        level = logging.ERROR
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("staticstack")
    root.setLevel(level)
    for old in list(root.handlers):
        if not isinstance(old, logging.NullHandler):
            root.removeHandler(old)
    root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path."""
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _line_source(args: argparse.Namespace, config: AnalyzerConfig) -> Iterable[str]:
    if args.input == "-":
        return (line.rstrip("\n") for line in sys.stdin)
    if args.disassemble or args.objdump:
        return iter_disassembly(args.input, config.objdump)
    return read_lines(args.input)


# ===========================================================================
# Argument parser
# ===========================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticstack",
        description="Estimate worst-case stack usage of a MIPS32 image "
                    "from its disassembly.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Report is printed as markdown table.
            Content:
              Name:           The name of the function as the label states.
              Own:            The stack usage of this function by itself.
              Deepest:        The maximum stack usage of this function and all called functions.
              Indirect Calls: This function uses function pointers, so the deepest stack usage cannot be determined.
            """),
    )
    parser.add_argument(
        "input",
        help="disassembly text file, '-' for stdin, or an ELF file with --disassemble",
    )
    parser.add_argument(
        "-s", "--sort", default=None, choices=["d", "o", "deepest", "own"],
        help="sorting of results, d=Deepest (default) o=Own",
    )
    parser.add_argument(
        "-n", "--limit", type=int, default=None,
        help="the number of entries printed, -1 for all (default 10)",
    )
    parser.add_argument(
        "-d", "--disassemble", action="store_true",
        help="treat INPUT as an ELF file and run the disassembler on it",
    )
    parser.add_argument(
        "--objdump", default=None, metavar="CMD",
        help="disassembler command, implies --disassemble "
             "(default $STATICSTACK_OBJDUMP or mips-elf-objdump)",
    )
    parser.add_argument(
        "--max-visits", type=int, default=None, metavar="N",
        help="fail when the depth traversal enters more than N functions",
    )
    parser.add_argument(
        "--allow-empty", action="store_true",
        help="print an empty table instead of failing when no function is found",
    )
    parser.add_argument("-o", "--output", default=None, help="write the table here")
    colour = parser.add_mutually_exclusive_group()
    colour.add_argument("--colour", dest="colour", action="store_true", default=None)
    colour.add_argument("--no-colour", dest="colour", action="store_false")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    parser.add_argument("-q", "--quiet", action="store_true",
                        help="log errors only and skip the diagnostic summary")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser


def _config_from_args(args: argparse.Namespace) -> AnalyzerConfig:
    config = AnalyzerConfig.from_env()
    if args.sort is not None:
        config.sort_key = SortKey.from_flag(args.sort)
    if args.limit is not None:
        config.limit = args.limit
    if args.max_visits is not None:
        config.max_visits = args.max_visits if args.max_visits > 0 else None
    if args.objdump:
        config.objdump = args.objdump
    config.allow_empty = args.allow_empty
    return config


# ===========================================================================
# main
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    _configure_logging(-1 if args.quiet else args.verbose)
    config = _config_from_args(args)

    reporter = Reporter(stream=sys.stderr, colour=args.colour, summary=not args.quiet)
    try:
        with reporter:
            result = analyze_lines(
                _line_source(args, config), config=config, reporter=reporter,
            )
    except NoFunctionsFoundError as exc:
        _log.error("%s", exc)
        return EXIT_NO_FUNCTIONS
    except (InputError, AnalysisBudgetExceeded) as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    out = _open_output(args.output)
    try:
        out.write(render_table(result.table, config.sort_key, config.limit))
    finally:
        if out is not sys.stdout:
            out.close()
    _log.info("Deepest stack overall: %d bytes", result.max_deepest)
    return EXIT_OK


__all__: List[str] = ["main", "build_parser", "EXIT_OK", "EXIT_NO_FUNCTIONS", "EXIT_INFRA"]
