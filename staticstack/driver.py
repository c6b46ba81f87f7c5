"""
staticstack.driver
==================

Runs the whole pipeline over a line source::

    lines ─▶ FunctionTableBuilder ─▶ CallGraph ─▶ StackDepthAnalyzer ─▶ result

Typical usage::

    from staticstack.driver import analyze_file
    from staticstack.report import render_table

    result = analyze_file("firmware.dis")
    print(render_table(result.table, limit=20))

Line sources are plain iterables of text, so anything from a list in a
test to the stdout of a disassembler works.  :func:`iter_disassembly`
streams the output of ``objdump -d`` for an ELF file.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from staticstack.analyzer import BackEdge, StackDepthAnalyzer, UnresolvedEdge
from staticstack.callgraph import CallGraph
from staticstack.config import AnalyzerConfig
from staticstack.diagnostics import Reporter
from staticstack.errors import (
    InputError,
    NoFunctionsFoundError,
    StackErrorCodes,
)
from staticstack.function_table import (
    BuildStats,
    FunctionTable,
    FunctionTableBuilder,
)

_log = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Everything one run produced."""

    table: FunctionTable
    graph: CallGraph
    build_stats: BuildStats = field(default_factory=BuildStats)
    unresolved: List[UnresolvedEdge] = field(default_factory=list)
    back_edges: List[BackEdge] = field(default_factory=list)

    @property
    def records(self):
        return list(self.table)

    @property
    def max_deepest(self) -> int:
        return max((r.deepest for r in self.table), default=0)


def analyze_lines(
    lines: Iterable[str],
    config: Optional[AnalyzerConfig] = None,
    reporter: Optional[Reporter] = None,
) -> AnalysisResult:
    """Build the table from *lines* and compute every stack depth.

    Raises
    ------
    NoFunctionsFoundError
        When the finished table is empty and ``config.allow_empty`` is off.
    AnalysisBudgetExceeded
        When ``config.max_visits`` is exceeded.
    """
    config = config or AnalyzerConfig()

    builder = FunctionTableBuilder(config.profile)
    table = builder.feed_all(lines)
    graph = CallGraph(table)

    if not table:
        if config.allow_empty:
            _log.info("No functions found; returning an empty table")
            result = AnalysisResult(table=table, graph=graph, build_stats=builder.stats)
            if reporter is not None:
                report_anomalies(result, reporter)
            return result
        raise NoFunctionsFoundError(
            "no function records found in the disassembly "
            f"({builder.stats.lines} lines read)"
        )

    analyzer = StackDepthAnalyzer(graph, max_visits=config.max_visits)
    analyzer.analyze_all()
    _log.debug("Call graph statistics: %s", graph.statistics())

    result = AnalysisResult(
        table=table,
        graph=graph,
        build_stats=builder.stats,
        unresolved=list(analyzer.stats.unresolved),
        back_edges=list(analyzer.stats.back_edges),
    )
    if reporter is not None:
        report_anomalies(result, reporter)
    return result


def report_anomalies(result: AnalysisResult, reporter: Reporter) -> None:
    """One diagnostic per unresolved edge and per cyclic back edge, plus
    one summary each for malformed labels and orphan code lines."""
    for edge in result.unresolved:
        (reporter.for_code(
            StackErrorCodes.UNRESOLVED_CALL_TARGET,
            f"Jump target not found! Function {edge.caller.name} "
            f"jumps to 0x{edge.target:x}",
        )
            .at(edge.caller.name, edge.target)
            .emit())
    for edge in result.back_edges:
        (reporter.for_code(
            StackErrorCodes.CYCLIC_CALL_GRAPH,
            f"Recursive call {edge.caller.name} -> {edge.callee.name}; "
            f"deepest stack is a lower bound",
        )
            .at(edge.caller.name, edge.target)
            .emit())
    if result.build_stats.malformed_labels:
        (reporter.for_code(
            StackErrorCodes.MALFORMED_LABEL,
            f"{result.build_stats.malformed_labels} malformed label line(s); "
            f"affected code is attributed to the preceding function",
        ).emit())
    if result.build_stats.orphan_lines:
        (reporter.for_code(
            StackErrorCodes.CODE_OUTSIDE_FUNCTION,
            f"{result.build_stats.orphan_lines} code line(s) outside any "
            f"function were ignored",
        ).emit())


def read_lines(path: Union[str, Path]) -> Iterator[str]:
    """Stream a disassembly text file line by line."""
    p = Path(path)
    if not p.is_file():
        raise InputError(f"disassembly not found: {p}")
    with p.open("r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            yield line.rstrip("\n")


def iter_disassembly(elf: Union[str, Path], objdump: str) -> Iterator[str]:
    """Run ``<objdump> -d <elf>`` and stream its output."""
    elf_path = Path(elf)
    if not elf_path.is_file():
        raise InputError(f"ELF file not found: {elf_path}")
    command = shlex.split(objdump) + ["-d", str(elf_path)]
    _log.info("Running %s", " ".join(command))
    try:
        proc = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as exc:
        raise InputError(
            f"cannot run disassembler {command[0]!r}: {exc}",
            code=StackErrorCodes.DISASSEMBLER_FAILED,
            cause=exc,
        ) from exc

    with proc:
        assert proc.stdout is not None
        for line in proc.stdout:
            yield line.rstrip("\n")
        stderr = proc.stderr.read() if proc.stderr is not None else ""
        returncode = proc.wait()
    if returncode != 0:
        raise InputError(
            f"disassembler exited with status {returncode}: {stderr.strip()}",
            code=StackErrorCodes.DISASSEMBLER_FAILED,
        )


def analyze_file(
    path: Union[str, Path],
    config: Optional[AnalyzerConfig] = None,
    reporter: Optional[Reporter] = None,
) -> AnalysisResult:
    """Analyse a disassembly text file."""
    return analyze_lines(read_lines(path), config=config, reporter=reporter)


def analyze_elf(
    elf: Union[str, Path],
    config: Optional[AnalyzerConfig] = None,
    reporter: Optional[Reporter] = None,
) -> AnalysisResult:
    """Disassemble an ELF file with ``config.objdump`` and analyse it."""
    config = config or AnalyzerConfig()
    return analyze_lines(
        iter_disassembly(elf, config.objdump), config=config, reporter=reporter
    )


__all__ = [
    "AnalysisResult",
    "analyze_lines",
    "report_anomalies",
    "read_lines",
    "iter_disassembly",
    "analyze_file",
    "analyze_elf",
]
