"""
staticstack.callgraph
=====================

Resolves the raw branch targets of a finished :class:`FunctionTable` into a
call graph.

The call graph is a directed graph where:
- **Nodes** are :class:`FunctionRecord` objects.
- **Edges** are the external call targets of a record, resolved lazily by
  address-range containment.  Several edges to the same callee are kept.

Resolution kinds
----------------
``DIRECT``
    The target address lies inside a known function.
``UNRESOLVED``
    No function contains the target; the edge contributes nothing to stack
    depth and is reported.

Address resolution
------------------
Ranges are normally disjoint, but damaged labels or aliased symbols can
make them overlap.  The rule is fixed: the record discovered first wins.
:class:`AddressIndex` keeps records sorted by start address together with a
running maximum of end addresses, so a lookup only inspects records that
can still contain the address.

Public API
----------
    CallResolutionKind  - enum of resolution outcomes
    CallGraphEdge       - one call edge
    prune_internal_targets - drop targets inside the caller's own range
    AddressIndex        - interval index over a table
    CallGraph           - lazily resolved call graph
"""

from __future__ import annotations

import bisect
import enum
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from staticstack.function_table import FunctionRecord, FunctionTable

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Resolution kinds
# ---------------------------------------------------------------------------

class CallResolutionKind(enum.Enum):
    """How a call edge was resolved."""

    DIRECT     = "direct"
    UNRESOLVED = "unresolved"


# ---------------------------------------------------------------------------
# CallGraphEdge
# ---------------------------------------------------------------------------

class CallGraphEdge:
    """A directed edge from a caller to the record containing ``target``.

    Attributes
    ----------
    caller : FunctionRecord
        The calling function.
    target : int
        The raw branch target address.
    callee : FunctionRecord or None
        The function containing ``target``; ``None`` when unresolved.
    """

    __slots__ = ("caller", "target", "callee")

    def __init__(
        self,
        caller: FunctionRecord,
        target: int,
        callee: Optional[FunctionRecord],
    ) -> None:
        self.caller = caller
        self.target = target
        self.callee = callee

    @property
    def resolution(self) -> CallResolutionKind:
        if self.callee is None:
            return CallResolutionKind.UNRESOLVED
        return CallResolutionKind.DIRECT

    def __repr__(self) -> str:
        callee = self.callee.name if self.callee else "?"
        return (
            f"CallGraphEdge({self.caller.name} -> {callee} @ 0x{self.target:x}, "
            f"{self.resolution.value})"
        )


# ---------------------------------------------------------------------------
# Pruning
# ---------------------------------------------------------------------------

def prune_internal_targets(record: FunctionRecord) -> Tuple[List[int], List[int]]:
    """Split *record*'s raw targets into ``(internal, external)``.

    Internal targets are dropped from the record, which is then marked
    finalized.  Calling it again on a finalized record is a no-op that
    returns no internal targets.
    """
    internal = record.finalize()
    return internal, list(record.call_targets)


# ---------------------------------------------------------------------------
# AddressIndex
# ---------------------------------------------------------------------------

class AddressIndex:
    """Interval index answering "which record contains this address"."""

    def __init__(self, records: List[FunctionRecord]) -> None:
        self._sorted = sorted(records, key=lambda r: (r.start, r.order))
        self._starts = [r.start for r in self._sorted]
        self._max_end: List[int] = []
        running = -1
        for record in self._sorted:
            running = max(running, record.end)
            self._max_end.append(running)

    def lookup(self, address: int) -> Optional[FunctionRecord]:
        best: Optional[FunctionRecord] = None
        i = bisect.bisect_right(self._starts, address) - 1
        while i >= 0 and self._max_end[i] >= address:
            record = self._sorted[i]
            if record.end >= address and (best is None or record.order < best.order):
                best = record
            i -= 1
        return best

    def __len__(self) -> int:
        return len(self._sorted)


# ---------------------------------------------------------------------------
# CallGraph
# ---------------------------------------------------------------------------

class CallGraph:
    """Call graph over a finished function table.

    Attributes
    ----------
    table : FunctionTable
        The table the graph was built over.  It must not change while the
        graph is in use; if it does, the index is rebuilt on next lookup.
        Records not yet finalized are pruned on construction.
    """

    def __init__(self, table: FunctionTable) -> None:
        self.table = table
        self._index: Optional[AddressIndex] = None
        self._index_version = -1
        self._cache: Dict[int, Optional[FunctionRecord]] = {}
        for record in table:
            if not record.finalized:
                prune_internal_targets(record)

    # ----- lookups ----------------------------------------------------------

    def resolve_target(self, address: int) -> Optional[FunctionRecord]:
        """Return the earliest-discovered record containing *address*."""
        if self._index is None or self._index_version != self.table.version:
            self._index = AddressIndex(list(self.table))
            self._index_version = self.table.version
            self._cache.clear()
            _log.debug("Indexed %d function ranges", len(self._index))
        try:
            return self._cache[address]
        except KeyError:
            record = self._index.lookup(address)
            self._cache[address] = record
            return record

    def out_edges(self, record: FunctionRecord) -> List[CallGraphEdge]:
        return [
            CallGraphEdge(record, target, self.resolve_target(target))
            for target in record.call_targets
        ]

    def callees(self, record: FunctionRecord) -> List[FunctionRecord]:
        """Resolved successors of *record*, one per edge."""
        return [e.callee for e in self.out_edges(record) if e.callee is not None]

    def edges(self) -> Iterator[CallGraphEdge]:
        for record in self.table:
            yield from self.out_edges(record)

    def unresolved_edges(self) -> List[CallGraphEdge]:
        return [e for e in self.edges() if e.callee is None]

    @property
    def roots(self) -> List[FunctionRecord]:
        """Records no other record calls."""
        called = {id(e.callee) for e in self.edges() if e.callee is not None}
        return [r for r in self.table if id(r) not in called]

    @property
    def leaves(self) -> List[FunctionRecord]:
        """Records with no external call targets."""
        return [r for r in self.table if r.is_leaf]

    # ----- statistics -------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        """Return a dict with summary statistics."""
        edges = list(self.edges())
        n_unresolved = sum(1 for e in edges if e.callee is None)
        return {
            "functions": len(self.table),
            "total_edges": len(edges),
            "direct_calls": len(edges) - n_unresolved,
            "unresolved_calls": n_unresolved,
            "indirect_callers": sum(1 for r in self.table if r.uses_indirect_calls),
            "root_functions": len(self.roots),
            "leaf_functions": len(self.leaves),
        }

    def __repr__(self) -> str:
        return f"CallGraph(functions={len(self.table)})"


__all__ = [
    "CallResolutionKind",
    "CallGraphEdge",
    "prune_internal_targets",
    "AddressIndex",
    "CallGraph",
]
