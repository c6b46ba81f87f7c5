#!/usr/bin/env python3
"""
staticstack/diagnostics.py
══════════════════════════

Colourful diagnostic reporter for analysis anomalies.

Output formats
──────────────
  • Terminal : coloured rendering (default when the stream is a TTY)
  • Plain    : one line per diagnostic (pipes, log files)
  • SARIF    : if $REPORT_GENERATE_SARIF is set to a file path

Every diagnostic renders a classic one-liner:
    [function:0xaddress]: (severity) message [errorId]

Usage
─────
    from staticstack.diagnostics import Reporter, Severity

    with Reporter() as rep:
        (rep.diagnostic(Severity.WARNING, "unresolvedCallTarget",
                        "Function main jumps to 0x9d00ff00")
            .at("main", 0x9d000124)
            .note("the edge contributes nothing to the deepest stack")
            .emit())
"""

from __future__ import annotations

import enum
import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

from termcolor import colored

from staticstack import __version__
from staticstack.errors import ErrorCode


# ═════════════════════════════════════════════════════════════════════════
#  SEVERITY ENUM
# ═════════════════════════════════════════════════════════════════════════

class Severity(enum.Enum):
    """
    Diagnostic severity levels.

    Each carries:
      • label       : the string shown in the one-liner
      • color       : termcolor colour name
      • sarif_level : SARIF 2.1.0 ``level`` string
    """

    ERROR = ("error", "red", "error")
    WARNING = ("warning", "yellow", "warning")
    STYLE = ("style", "cyan", "note")
    INFORMATION = ("information", "white", "note")

    def __init__(self, label: str, color: str, sarif_level: str) -> None:
        self.label = label
        self.color = color
        self.sarif_level = sarif_level

    @classmethod
    def from_string(cls, s: str) -> Severity:
        """Parse a severity from its label (case-insensitive)."""
        s_low = s.strip().lower()
        for member in cls:
            if member.label == s_low:
                return member
        return cls.WARNING


# ═════════════════════════════════════════════════════════════════════════
#  DATA STRUCTURES
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CodeLocation:
    """A point in the analysed image."""
    function: str = ""
    address: Optional[int] = None

    def __str__(self) -> str:
        if self.address is None:
            return self.function
        return f"{self.function}:0x{self.address:x}"


@dataclass
class ReporterStats:
    """Aggregate counts per severity."""
    error: int = 0
    warning: int = 0
    style: int = 0
    information: int = 0

    def record(self, severity: Severity) -> None:
        setattr(self, severity.label, getattr(self, severity.label) + 1)

    @property
    def total(self) -> int:
        return self.error + self.warning + self.style + self.information

    def summary_line(self) -> str:
        parts: List[str] = []
        if self.error:
            parts.append(f"{self.error} error{'s' if self.error != 1 else ''}")
        if self.warning:
            parts.append(f"{self.warning} warning{'s' if self.warning != 1 else ''}")
        if self.style:
            parts.append(f"{self.style} style")
        if self.information:
            parts.append(f"{self.information} info")
        if not parts:
            return "no diagnostics emitted"
        return "; ".join(parts) + f" ({self.total} total)"


# ═════════════════════════════════════════════════════════════════════════
#  DIAGNOSTIC (builder pattern)
# ═════════════════════════════════════════════════════════════════════════

class Diagnostic:
    """
    Incrementally constructed diagnostic.

    Usage::

        (reporter.diagnostic(Severity.WARNING, "unresolvedCallTarget", "…")
            .at("main", 0x9d000124)
            .note("…")
            .emit())
    """

    def __init__(
        self,
        reporter: Reporter,
        severity: Severity,
        error_id: str,
        message: str,
    ) -> None:
        self._reporter = reporter
        self.severity = severity
        self.error_id = error_id
        self.message = message
        self.code: Optional[str] = None
        self.location: Optional[CodeLocation] = None
        self.notes: List[str] = []

    @classmethod
    def for_code(
        cls,
        reporter: Reporter,
        code: ErrorCode,
        message: str,
        severity: Optional[Severity] = None,
    ) -> Diagnostic:
        """Builder pre-filled from a structured :class:`ErrorCode`."""
        if severity is not None:
            sev = severity
        elif code.default_severity.is_error():
            sev = Severity.ERROR
        else:
            sev = Severity.from_string(code.default_severity.value)
        diag = cls(reporter, sev, code.error_id, message)
        diag.code = code.code
        return diag

    # ── builder methods (all return self for chaining) ───────────────

    def at(self, function: str, address: Optional[int] = None) -> Diagnostic:
        self.location = CodeLocation(function, address)
        return self

    def note(self, message: str) -> Diagnostic:
        self.notes.append(message)
        return self

    def emit(self) -> None:
        """Send the diagnostic to the reporter; do not reuse the builder."""
        self._reporter._accept(self)  # noqa: SLF001

    # ── convenience ──────────────────────────────────────────────────

    def one_line(self) -> str:
        """``[function:0xaddr]: (severity) message [id]``."""
        loc = str(self.location) if self.location else ""
        return f"[{loc}]: ({self.severity.label}) {self.message} [{self.error_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  RENDERERS
# ═════════════════════════════════════════════════════════════════════════

class _TerminalRenderer:
    """Render diagnostics to a terminal with colours."""

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        self._stream = stream

    def render(self, diag: Diagnostic) -> None:
        lines: List[str] = []
        tag = diag.error_id if diag.code is None else f"{diag.code} {diag.error_id}"
        sev_str = colored(f"{diag.severity.label}[{tag}]",
                          diag.severity.color, attrs=["bold"])
        lines.append(f"{sev_str}: {colored(diag.message, attrs=['bold'])}")
        if diag.location:
            arrow = colored("-->", "blue", attrs=["bold"])
            lines.append(f"  {arrow} {diag.location}")
        for note in diag.notes:
            prefix = colored("note", "cyan", attrs=["bold"])
            lines.append(f"  = {prefix}: {note}")
        self._stream.write("\n".join(lines) + "\n")
        self._stream.flush()

    def summary(self, stats: ReporterStats) -> None:
        colour = "red" if stats.error else "yellow" if stats.total else "green"
        self._stream.write(
            colored(f"  ╰─ {stats.summary_line()}", colour, attrs=["bold"]) + "\n"
        )


class _PlainRenderer:
    """Non-coloured renderer, one line per diagnostic."""

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        self._stream = stream

    def render(self, diag: Diagnostic) -> None:
        self._stream.write(diag.one_line() + "\n")
        for note in diag.notes:
            self._stream.write(f"  note: {note}\n")
        self._stream.flush()

    def summary(self, stats: ReporterStats) -> None:
        self._stream.write(f"  {stats.summary_line()}\n")


# ═════════════════════════════════════════════════════════════════════════
#  SARIF 2.1.0 BUILDER
# ═════════════════════════════════════════════════════════════════════════

class _SarifBuilder:
    """Accumulates diagnostics and writes a SARIF 2.1.0 JSON file."""

    SARIF_VERSION = "2.1.0"
    SARIF_SCHEMA = (
        "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/"
        "Schemata/sarif-schema-2.1.0.json"
    )

    def __init__(self) -> None:
        self._results: List[Dict[str, Any]] = []
        self._rules: Dict[str, Dict[str, Any]] = {}

    def add(self, diag: Diagnostic) -> None:
        if diag.error_id not in self._rules:
            self._rules[diag.error_id] = {
                "id": diag.error_id,
                "shortDescription": {"text": diag.message},
            }

        result: Dict[str, Any] = {
            "ruleId": diag.error_id,
            "level": diag.severity.sarif_level,
            "message": {"text": diag.message},
        }
        if diag.location:
            logical: Dict[str, Any] = {
                "name": diag.location.function,
                "kind": "function",
            }
            result["locations"] = [{"logicalLocations": [logical]}]
            if diag.location.address is not None:
                result.setdefault("properties", {})["address"] = (
                    f"0x{diag.location.address:x}"
                )
        if diag.code:
            result.setdefault("properties", {})["code"] = diag.code
        self._results.append(result)

    def to_json(self, tool_name: str, version: str) -> str:
        sarif: Dict[str, Any] = {
            "$schema": self.SARIF_SCHEMA,
            "version": self.SARIF_VERSION,
            "runs": [
                {
                    "tool": {
                        "driver": {
                            "name": tool_name,
                            "version": version,
                            "rules": list(self._rules.values()),
                        }
                    },
                    "results": self._results,
                }
            ],
        }
        return json.dumps(sarif, indent=2)

    def write(self, path: str, tool_name: str, version: str) -> None:
        Path(path).write_text(self.to_json(tool_name, version), encoding="utf-8")


# ═════════════════════════════════════════════════════════════════════════
#  REPORTER  (main entry point)
# ═════════════════════════════════════════════════════════════════════════

class Reporter:
    """
    Central diagnostic dispatcher.

    Use as a context manager::

        with Reporter() as rep:
            rep.diagnostic(Severity.WARNING, "id", "msg").at(...).emit()
        # finish() is called automatically
    """

    def __init__(
        self,
        stream: TextIO = sys.stderr,
        colour: Optional[bool] = None,
        tool_name: str = "staticstack",
        tool_version: str = __version__,
        sarif_path: Optional[str] = None,
        summary: bool = True,
    ) -> None:
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.stats = ReporterStats()
        self.diagnostics: List[Diagnostic] = []
        self._summary = summary

        use_colour = colour if colour is not None else hasattr(stream, "isatty") and stream.isatty()
        if use_colour:
            self._renderer: Union[_TerminalRenderer, _PlainRenderer] = _TerminalRenderer(stream)
        else:
            self._renderer = _PlainRenderer(stream)

        if sarif_path is None:
            sarif_path = os.environ.get("REPORT_GENERATE_SARIF", "") or None
        self._sarif_path = sarif_path
        self._sarif: Optional[_SarifBuilder] = _SarifBuilder() if sarif_path else None

    # ── context manager ──────────────────────────────────────────────

    def __enter__(self) -> Reporter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.finish()

    # ── builder entry points ─────────────────────────────────────────

    def diagnostic(self, severity: Severity, error_id: str, message: str) -> Diagnostic:
        """Create a new :class:`Diagnostic` builder bound to this reporter."""
        return Diagnostic(self, severity, error_id, message)

    def for_code(self, code: ErrorCode, message: str) -> Diagnostic:
        return Diagnostic.for_code(self, code, message)

    def _accept(self, diag: Diagnostic) -> None:
        self.stats.record(diag.severity)
        self.diagnostics.append(diag)
        self._renderer.render(diag)
        if self._sarif is not None:
            self._sarif.add(diag)

    # ── finalisation ─────────────────────────────────────────────────

    def finish(self) -> ReporterStats:
        """Print the summary line and write SARIF if configured."""
        if self._summary and self.stats.total:
            self._renderer.summary(self.stats)

        if self._sarif is not None and self._sarif_path:
            try:
                self._sarif.write(self._sarif_path, self.tool_name, self.tool_version)
            except OSError as exc:
                print(f"staticstack: failed to write SARIF: {exc}", file=sys.stderr)

        return self.stats


__all__ = [
    "Severity",
    "CodeLocation",
    "Diagnostic",
    "Reporter",
    "ReporterStats",
]
