"""
staticstack.function_table
==========================

Builds the function table from a stream of disassembly lines.

A :class:`FunctionRecord` is opened on every function label, grows while
the following lines fall into it, and is finalized (its raw call targets
pruned) on the next label, the next section header, or the end of input.
Call targets may point at functions that only appear later in the stream,
so nothing here resolves addresses; that happens in
:mod:`staticstack.callgraph` once the table is complete.

Public API
----------
    VisitState              - traversal state of a record
    FunctionRecord          - one function of the image
    FunctionTable           - discovery-ordered records
    FunctionTableBuilder    - incremental line consumer
    build_function_table    - convenience wrapper over an iterable
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from staticstack.classifier import (
    Call,
    CallKind,
    Classified,
    Label,
    LineClassifier,
    MalformedLabel,
    SectionBoundary,
    StackAdjust,
    classifier_for,
)
from staticstack.config import MIPS32, ArchitectureProfile

_log = logging.getLogger(__name__)


class VisitState(enum.Enum):
    UNVISITED   = "unvisited"
    IN_PROGRESS = "in-progress"
    DONE        = "done"


@dataclass(eq=False)
class FunctionRecord:
    """
    One function of the analysed image.

    Records compare by identity: names may repeat (static functions in
    different objects), so neither name nor address is a safe key.

    Attributes
    ----------
    name : str
        Label text between ``<`` and ``>``.
    start, end : int
        Inclusive address range.  ``end`` grows as instructions are seen.
    own_stack : int
        Sum of all observed stack-pointer decrements.
    deepest : int
        Own stack plus the deepest callee chain; valid once
        ``visit_state`` is ``DONE``.
    call_targets : list[int]
        Raw branch targets; after :meth:`finalize` only those outside
        ``[start, end]`` remain.
    uses_indirect_calls : bool
        Set by any register-indirect call.
    in_cycle : bool
        Set when the depth traversal found a back edge from this record.
    order : int
        Discovery index in the table.
    """

    name: str
    start: int
    end: int = -1
    own_stack: int = 0
    deepest: int = 0
    call_targets: List[int] = field(default_factory=list)
    uses_indirect_calls: bool = False
    visit_state: VisitState = VisitState.UNVISITED
    in_cycle: bool = False
    order: int = 0
    finalized: bool = False

    def __post_init__(self) -> None:
        if self.end < self.start:
            self.end = self.start

    # ----- queries ----------------------------------------------------------

    def contains(self, address: int) -> bool:
        return self.start <= address <= self.end

    @property
    def is_leaf(self) -> bool:
        return not self.call_targets

    # ----- construction -----------------------------------------------------

    def extend_to(self, address: int) -> None:
        if address > self.end:
            self.end = address

    def add_stack_growth(self, delta: int) -> None:
        """Count a stack-pointer adjustment; only growth (delta < 0) counts."""
        if delta < 0:
            self.own_stack -= delta

    def finalize(self) -> List[int]:
        """Drop call targets inside the record's own range.

        Returns the discarded internal targets (loops, local branches and
        direct self recursion, which is therefore not supported).
        """
        internal = [t for t in self.call_targets if self.contains(t)]
        self.call_targets = [t for t in self.call_targets if not self.contains(t)]
        self.finalized = True
        return internal

    def __repr__(self) -> str:
        return (
            f"FunctionRecord({self.name!r}, 0x{self.start:x}-0x{self.end:x}, "
            f"own={self.own_stack}, deepest={self.deepest})"
        )


class FunctionTable:
    """Records in discovery order."""

    def __init__(self, records: Optional[Iterable[FunctionRecord]] = None) -> None:
        self._records: List[FunctionRecord] = []
        self.version = 0
        for record in records or ():
            self.append(record)

    def append(self, record: FunctionRecord) -> FunctionRecord:
        record.order = len(self._records)
        self._records.append(record)
        self.version += 1
        return record

    def __iter__(self) -> Iterator[FunctionRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> FunctionRecord:
        return self._records[index]

    def __bool__(self) -> bool:
        return bool(self._records)

    def __repr__(self) -> str:
        return f"FunctionTable({len(self._records)} records)"


@dataclass
class BuildStats:
    """Line anomalies seen while building a table."""

    lines: int = 0
    malformed_labels: int = 0
    orphan_lines: int = 0
    skipped_lines: int = 0
    internal_targets: int = 0


class FunctionTableBuilder:
    """
    Incremental line consumer.

    Usage::

        builder = FunctionTableBuilder()
        for line in stream:
            builder.feed(line)
        table = builder.finish()
    """

    def __init__(self, profile: ArchitectureProfile = MIPS32) -> None:
        self._classifier: LineClassifier = classifier_for(profile)
        self.table = FunctionTable()
        self.stats = BuildStats()
        self.current: Optional[FunctionRecord] = None
        # Nothing counts until the first code section header.
        self._in_code = False
        self._orphan_reported = False

    # ----- line handling ----------------------------------------------------

    def feed(self, line: str) -> None:
        self.stats.lines += 1
        kind = self._classifier.classify(line)

        if isinstance(kind, SectionBoundary):
            self._close_current()
            self._in_code = kind.is_code
            self._orphan_reported = False
            _log.debug("Section %s (%s)", kind.name,
                       "analysed" if kind.is_code else "skipped")
            return

        if not self._in_code:
            self.stats.skipped_lines += 1
            return

        if isinstance(kind, Label):
            self._close_current()
            self.current = self.table.append(
                FunctionRecord(name=kind.name, start=kind.address)
            )
            return

        if isinstance(kind, MalformedLabel):
            self.stats.malformed_labels += 1
            owner = self.current.name if self.current else None
            _log.warning(
                "Malformed label %r; following lines stay with %s",
                kind.text, owner or "no function",
            )

        record = self.current
        address = getattr(kind, "address", None)
        if record is None:
            if address is not None:
                self.stats.orphan_lines += 1
                if not self._orphan_reported:
                    _log.warning("Code at 0x%x outside any function; ignored",
                                 address)
                    self._orphan_reported = True
            return

        if address is not None:
            record.extend_to(address)
        self._apply(record, kind)

    def feed_all(self, lines: Iterable[str]) -> FunctionTable:
        for line in lines:
            self.feed(line)
        return self.finish()

    def finish(self) -> FunctionTable:
        self._close_current()
        _log.info(
            "Built %d function records from %d lines (%d malformed labels, "
            "%d orphan lines)",
            len(self.table), self.stats.lines,
            self.stats.malformed_labels, self.stats.orphan_lines,
        )
        return self.table

    # ----- helpers ----------------------------------------------------------

    @staticmethod
    def _apply(record: FunctionRecord, kind: Classified) -> None:
        if isinstance(kind, StackAdjust):
            record.add_stack_growth(kind.delta)
        elif isinstance(kind, Call):
            if kind.kind is CallKind.DIRECT:
                record.call_targets.append(kind.target)
            elif kind.kind is CallKind.INDIRECT:
                record.uses_indirect_calls = True

    def _close_current(self) -> None:
        if self.current is not None:
            internal = self.current.finalize()
            self.stats.internal_targets += len(internal)
            self.current = None


def build_function_table(
    lines: Iterable[str], profile: ArchitectureProfile = MIPS32
) -> FunctionTable:
    """Build a complete :class:`FunctionTable` from disassembly lines."""
    return FunctionTableBuilder(profile).feed_all(lines)


__all__ = [
    "VisitState",
    "FunctionRecord",
    "FunctionTable",
    "BuildStats",
    "FunctionTableBuilder",
    "build_function_table",
]
