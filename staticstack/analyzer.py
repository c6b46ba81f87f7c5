"""
staticstack.analyzer
====================

Deepest cumulative stack usage over the call graph.

    deepest(f) = own_stack(f) + max(0, deepest(g) for every callee g of f)

This is a longest weighted path over the call graph, memoised on the
records themselves.  The traversal is an explicit post-order walk with its
own frame stack, so the host interpreter's recursion limit never matters,
however long the call chains are.

Cycles
------
Self recursion never reaches this module: branch targets inside a
function's own range are pruned when the record is finalized.  A longer
cycle (``a -> b -> a``) shows up as an edge to a record that is still
``IN_PROGRESS``.  Such an edge contributes the best value known for that
record so far (its own stack plus its deepest callee finished so far) and
is not followed.  Depths along a cycle are therefore under-estimated, never
divergent.  Every such back edge is recorded and its source flagged
``in_cycle`` so the report can say so.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from staticstack.callgraph import CallGraph
from staticstack.errors import AnalysisBudgetExceeded
from staticstack.function_table import FunctionRecord, VisitState

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnresolvedEdge:
    """A call target no function contains."""

    caller: FunctionRecord
    target: int

    def __str__(self) -> str:
        return f"{self.caller.name} jumps to 0x{self.target:x}"


@dataclass(frozen=True)
class BackEdge:
    """An edge into a record whose depth was still being computed."""

    caller: FunctionRecord
    callee: FunctionRecord
    target: int

    def __str__(self) -> str:
        return f"{self.caller.name} -> {self.callee.name} (0x{self.target:x})"


@dataclass
class _Frame:
    record: FunctionRecord
    next_target: int = 0
    best: int = 0


@dataclass
class AnalysisStats:
    visits: int = 0
    max_stack_height: int = 0
    unresolved: List[UnresolvedEdge] = field(default_factory=list)
    back_edges: List[BackEdge] = field(default_factory=list)


class StackDepthAnalyzer:
    """
    Computes ``deepest`` for the records of a call graph.

    Parameters
    ----------
    graph : CallGraph
        Resolved view of a finished table.
    max_visits : int, optional
        Upper bound on records entered by the traversal.  Exceeding it
        raises :class:`AnalysisBudgetExceeded`.
    """

    def __init__(self, graph: CallGraph, max_visits: Optional[int] = None) -> None:
        self.graph = graph
        self.max_visits = max_visits
        self.stats = AnalysisStats()

    # ----- public API -------------------------------------------------------

    def analyze_all(self) -> List[FunctionRecord]:
        """Compute every record of the table in discovery order."""
        for record in self.graph.table:
            self.deepest(record)
        _log.info(
            "Stack depths computed: %d visits, %d unresolved edges, %d back edges",
            self.stats.visits, len(self.stats.unresolved), len(self.stats.back_edges),
        )
        return list(self.graph.table)

    def deepest(self, record: FunctionRecord) -> int:
        if record.visit_state is VisitState.DONE:
            return record.deepest

        stack: List[_Frame] = []
        active: Dict[int, _Frame] = {}
        self._enter(record, stack, active)

        while stack:
            frame = stack[-1]
            pushed = False
            targets = frame.record.call_targets
            while frame.next_target < len(targets):
                target = targets[frame.next_target]
                frame.next_target += 1
                pushed = self._visit_edge(frame, target, stack, active)
                if pushed:
                    break
            if pushed:
                continue

            done = stack.pop()
            del active[id(done.record)]
            rec = done.record
            rec.deepest = rec.own_stack + max(done.best, 0)
            rec.visit_state = VisitState.DONE
            if stack:
                parent = stack[-1]
                parent.best = max(parent.best, rec.deepest)

        return record.deepest

    def reset(self) -> None:
        """Forget all computed depths so the table can be analysed again."""
        for record in self.graph.table:
            record.visit_state = VisitState.UNVISITED
            record.deepest = 0
            record.in_cycle = False
        self.stats = AnalysisStats()

    # ----- traversal helpers ------------------------------------------------

    def _enter(
        self,
        record: FunctionRecord,
        stack: List[_Frame],
        active: Dict[int, _Frame],
    ) -> None:
        self.stats.visits += 1
        if self.max_visits is not None and self.stats.visits > self.max_visits:
            raise AnalysisBudgetExceeded(
                f"visited more than {self.max_visits} functions while "
                f"computing stack depth of {record.name}",
                visits=self.stats.visits,
                budget=self.max_visits,
            )
        record.visit_state = VisitState.IN_PROGRESS
        frame = _Frame(record)
        stack.append(frame)
        active[id(record)] = frame
        if len(stack) > self.stats.max_stack_height:
            self.stats.max_stack_height = len(stack)

    def _visit_edge(
        self,
        frame: _Frame,
        target: int,
        stack: List[_Frame],
        active: Dict[int, _Frame],
    ) -> bool:
        """Account one edge; return True if a new frame was pushed."""
        caller = frame.record
        callee = self.graph.resolve_target(target)

        if callee is None:
            edge = UnresolvedEdge(caller, target)
            self.stats.unresolved.append(edge)
            _log.debug("Jump target not found! Function %s jumps to 0x%x",
                         caller.name, target)
            return False

        if callee.visit_state is VisitState.DONE:
            frame.best = max(frame.best, callee.deepest)
            return False

        if callee.visit_state is VisitState.IN_PROGRESS:
            self._back_edge(frame, callee, target, active)
            return False

        self._enter(callee, stack, active)
        return True

    def _back_edge(
        self,
        frame: _Frame,
        callee: FunctionRecord,
        target: int,
        active: Dict[int, _Frame],
    ) -> None:
        callee_frame = active.get(id(callee))
        # A record IN_PROGRESS outside this walk was abandoned by an earlier
        # exception; its own stack is all that is known.
        partial = callee.own_stack + (callee_frame.best if callee_frame else 0)
        frame.best = max(frame.best, partial)
        frame.record.in_cycle = True
        edge = BackEdge(frame.record, callee, target)
        self.stats.back_edges.append(edge)
        _log.info("Cyclic call %s; depth along this cycle is a lower bound", edge)


def compute_stack_depths(
    graph: CallGraph, max_visits: Optional[int] = None
) -> StackDepthAnalyzer:
    """Run :meth:`StackDepthAnalyzer.analyze_all` and return the analyzer."""
    analyzer = StackDepthAnalyzer(graph, max_visits=max_visits)
    analyzer.analyze_all()
    return analyzer


__all__ = [
    "UnresolvedEdge",
    "BackEdge",
    "AnalysisStats",
    "StackDepthAnalyzer",
    "compute_stack_depths",
]
