"""
staticstack.report
==================

Sorting and markdown rendering of the function table.

The table is markdown compatible so it can be piped straight into a
``.md`` file and picked up by documentation tooling::

    |Name                                              |Own            |Deepest        |Indirect Calls |
    |--------------------------------------------------|---------------|---------------|---------------|
    |main                                              |24             |48             |*              |
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Iterable, List, Sequence

if TYPE_CHECKING:
    from staticstack.function_table import FunctionRecord

NAME_WIDTH = 50
VALUE_WIDTH = 15
INDIRECT_MARKER = "*"

_ROW_FORMAT = "|{:<%d}|{:<%d}|{:<%d}|{:<%d}|" % (
    NAME_WIDTH, VALUE_WIDTH, VALUE_WIDTH, VALUE_WIDTH,
)
HEADER = _ROW_FORMAT.format("Name", "Own", "Deepest", "Indirect Calls")
DIVIDER = "|" + "|".join(
    "-" * w for w in (NAME_WIDTH, VALUE_WIDTH, VALUE_WIDTH, VALUE_WIDTH)
) + "|"


class SortKey(enum.Enum):
    """Report ordering; both keys sort descending."""

    DEEPEST = "d"
    OWN     = "o"

    @classmethod
    def from_flag(cls, flag: str) -> SortKey:
        """Parse ``d``/``deepest`` or ``o``/``own`` (case-insensitive)."""
        value = flag.strip().lower()
        for member in cls:
            if value in (member.value, member.name.lower()):
                return member
        raise ValueError(f"unknown sort key {flag!r}")

    def value_of(self, record: FunctionRecord) -> int:
        if self is SortKey.OWN:
            return record.own_stack
        return record.deepest


def sort_records(
    records: Iterable[FunctionRecord], key: SortKey = SortKey.DEEPEST
) -> List[FunctionRecord]:
    """Descending by *key*; ties keep their discovery order."""
    ordered = sorted(records, key=lambda r: r.order)
    return sorted(ordered, key=lambda r: -key.value_of(r))


def format_row(record: FunctionRecord) -> str:
    marker = INDIRECT_MARKER if record.uses_indirect_calls else " "
    return _ROW_FORMAT.format(
        record.name, str(record.own_stack), str(record.deepest), marker
    )


def render_lines(
    records: Iterable[FunctionRecord],
    key: SortKey = SortKey.DEEPEST,
    limit: int = -1,
) -> List[str]:
    """Header, divider and up to *limit* rows (negative means all)."""
    ordered: Sequence[FunctionRecord] = sort_records(records, key)
    if limit >= 0:
        ordered = ordered[:limit]
    return [HEADER, DIVIDER] + [format_row(r) for r in ordered]


def render_table(
    records: Iterable[FunctionRecord],
    key: SortKey = SortKey.DEEPEST,
    limit: int = -1,
) -> str:
    """The report as one string, preceded by a blank line."""
    return "\n" + "\n".join(render_lines(records, key, limit)) + "\n"


__all__ = [
    "NAME_WIDTH",
    "VALUE_WIDTH",
    "INDIRECT_MARKER",
    "HEADER",
    "DIVIDER",
    "SortKey",
    "sort_records",
    "format_row",
    "render_lines",
    "render_table",
]
