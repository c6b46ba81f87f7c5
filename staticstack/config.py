"""
staticstack.config
==================

Configuration for the analyzer: the literal token profile of the target
architecture's disassembler syntax, and the run options the driver and the
command line share.

Environment overrides
---------------------
``STATICSTACK_SORT``
    ``d`` (deepest) or ``o`` (own).
``STATICSTACK_LIMIT``
    Number of table rows; negative for all.
``STATICSTACK_MAX_VISITS``
    Visited-record budget for the depth traversal; ``0`` or unset disables it.
``STATICSTACK_OBJDUMP``
    Disassembler command used when the input is an ELF file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Mapping, Optional, Tuple

from staticstack.report import SortKey

_log = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════
#  DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════

DEFAULT_LIMIT: int = 10
DEFAULT_SORT: SortKey = SortKey.DEEPEST

# Classic GNU objdump name for MIPS targets; xc32 ships it as xc32-objdump.
DEFAULT_OBJDUMP: str = "mips-elf-objdump"


@dataclass(frozen=True)
class ArchitectureProfile:
    """
    Literal tokens of one disassembler dialect.

    The classifier only ever compares against these strings, so supporting
    a sibling toolchain with the same frame convention is a matter of a new
    profile, not new code.
    """

    name: str
    section_marker: str = "Disassembly of section "
    code_section_prefix: str = ".text"
    internal_label_prefix: str = "."
    stack_pointer: str = "sp"
    stack_adjust_mnemonic: str = "addiu"
    return_register: str = "ra"
    branch_prefixes: Tuple[str, ...] = ("b", "j")
    indirect_call_mnemonics: FrozenSet[str] = frozenset({"jalr", "jalr.hb"})
    register_jump_mnemonics: FrozenSet[str] = frozenset({"jr", "jr.hb"})
    # Mnemonics that share a branch prefix but never transfer control.
    non_branch_mnemonics: FrozenSet[str] = frozenset({"break"})


MIPS32 = ArchitectureProfile(name="mips32")


@dataclass
class AnalyzerConfig:
    """Options for one analysis run."""

    sort_key: SortKey = DEFAULT_SORT
    limit: int = DEFAULT_LIMIT
    max_visits: Optional[int] = None
    allow_empty: bool = False
    objdump: str = DEFAULT_OBJDUMP
    profile: ArchitectureProfile = field(default=MIPS32)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> AnalyzerConfig:
        """Build a config from defaults plus ``STATICSTACK_*`` overrides."""
        env = os.environ if environ is None else environ
        config = cls()

        sort = env.get("STATICSTACK_SORT", "").strip()
        if sort:
            try:
                config = replace(config, sort_key=SortKey.from_flag(sort))
            except ValueError:
                _log.warning("Ignoring STATICSTACK_SORT=%r", sort)

        limit = env.get("STATICSTACK_LIMIT", "").strip()
        if limit:
            try:
                config = replace(config, limit=int(limit, 0))
            except ValueError:
                _log.warning("Ignoring STATICSTACK_LIMIT=%r", limit)

        budget = env.get("STATICSTACK_MAX_VISITS", "").strip()
        if budget:
            try:
                value = int(budget, 0)
            except ValueError:
                _log.warning("Ignoring STATICSTACK_MAX_VISITS=%r", budget)
            else:
                config = replace(config, max_visits=value if value > 0 else None)

        objdump = env.get("STATICSTACK_OBJDUMP", "").strip()
        if objdump:
            config = replace(config, objdump=objdump)

        return config


__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_SORT",
    "DEFAULT_OBJDUMP",
    "ArchitectureProfile",
    "MIPS32",
    "AnalyzerConfig",
]
