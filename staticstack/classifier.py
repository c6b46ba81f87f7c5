"""
staticstack.classifier
======================

Classifies single lines of ``objdump -d`` output.

Only a handful of line shapes matter to the stack model::

    Disassembly of section .text:             -> SectionBoundary
    9d000120 <main>:                          -> Label
    9d000120 main>:                           -> MalformedLabel
    9d000120:  27bdffe8  addiu  sp,sp,-24     -> StackAdjust
    9d000124:  0f400050  jal    9d000140 <f>  -> Call(DIRECT)
    9d000128:  0320f809  jalr   t9            -> Call(INDIRECT)
    9d00012c:  00600008  jr     v1            -> Call(DISPATCH)
    9d000130:  03e00008  jr     ra            -> Call(RETURN)

Everything else is :class:`Other`.  Every classification keeps the line's
leading hexadecimal address (``None`` when the line carries none) so that
the table builder can extend function extents from any line.

Typical usage::

    from staticstack.classifier import classify

    for line in lines:
        kind = classify(line)
"""

from __future__ import annotations

import enum
import functools
import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from staticstack.config import MIPS32, ArchitectureProfile

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Classification results
# ---------------------------------------------------------------------------

class CallKind(enum.Enum):
    """What a branch or jump instruction means to the call graph."""

    RETURN   = "return"      # jump through the return register
    INDIRECT = "indirect"    # call through a computed register
    DISPATCH = "dispatch"    # register jump, assumed to be a switch table
    DIRECT   = "direct"      # branch/jump to a literal address


@dataclass(frozen=True)
class SectionBoundary:
    name: str
    is_code: bool
    address: Optional[int] = None


@dataclass(frozen=True)
class Label:
    address: int
    name: str


@dataclass(frozen=True)
class MalformedLabel:
    """A label-shaped line whose ``<name>`` delimiters are missing."""

    text: str
    address: Optional[int] = None


@dataclass(frozen=True)
class StackAdjust:
    delta: int
    address: Optional[int] = None


@dataclass(frozen=True)
class Call:
    kind: CallKind
    target: Optional[int] = None
    address: Optional[int] = None

    @property
    def is_edge(self) -> bool:
        return self.kind is CallKind.DIRECT


@dataclass(frozen=True)
class Other:
    address: Optional[int] = None


Classified = Union[SectionBoundary, Label, MalformedLabel, StackAdjust, Call, Other]


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

class LineClassifier:
    """Compiled patterns for one :class:`ArchitectureProfile`."""

    # Example: "9d000120 <main>:" or "9d000120 <Foo<int>::run>:"
    LABEL_RE = re.compile(r"^\s*(?P<address>[0-9A-Fa-f]+)\s+<(?P<name>.+)>:\s*$")
    # Same shape with the delimiters damaged: "9d000120 main>:"
    LABEL_CANDIDATE_RE = re.compile(r"^\s*(?P<address>[0-9A-Fa-f]+)\s+(?P<rest>\S.*):\s*$")
    # Example: "9d000124:\t27bdffe8 \taddiu\tsp,sp,-24"
    INSTRUCTION_RE = re.compile(
        r"^\s*(?P<address>[0-9A-Fa-f]+):\s+"
        r"(?P<codes>(?:[0-9A-Fa-f]{2,8} ?)+)\s*\t"
        r"(?P<mnemonic>\S+)(?:\s+(?P<operands>.*?))?\s*$"
    )
    # Address followed by ':' (instruction) or by a '<' (label).
    LEADING_ADDRESS_RE = re.compile(r"^\s*(?P<address>[0-9A-Fa-f]+)(?=:|\s+<)")
    # Example: "9d000140 <foo>" or "0x9d000140"
    TARGET_RE = re.compile(r"^\s*(?:0[xX])?(?P<target>[0-9A-Fa-f]+)")

    def __init__(self, profile: ArchitectureProfile = MIPS32) -> None:
        self.profile = profile
        self.section_re = re.compile(
            re.escape(profile.section_marker) + r"(?P<name>\S+?):?\s*$"
        )
        sp = re.escape(profile.stack_pointer)
        self.stack_operand_re = re.compile(
            r"^{sp}\s*,\s*{sp}\s*,\s*(?P<delta>[-+]?\d+)\b".format(sp=sp)
        )

    # ----- public API -------------------------------------------------------

    def classify(self, line: str) -> Classified:
        profile = self.profile

        if profile.section_marker in line:
            match = self.section_re.search(line)
            name = match.group("name") if match else ""
            return SectionBoundary(
                name=name,
                is_code=name.startswith(profile.code_section_prefix),
            )

        instr = self.INSTRUCTION_RE.match(line)
        if instr is not None:
            return self._classify_instruction(
                int(instr.group("address"), 16),
                instr.group("mnemonic"),
                instr.group("operands") or "",
            )

        label = self.LABEL_RE.match(line)
        if label is not None:
            address = int(label.group("address"), 16)
            name = label.group("name")
            if name.startswith(profile.internal_label_prefix):
                return Other(address=address)
            return Label(address=address, name=name)

        candidate = self.LABEL_CANDIDATE_RE.match(line)
        if candidate is not None and (">:" in line or "<" in line or ">" in line):
            return MalformedLabel(
                text=line.strip(), address=int(candidate.group("address"), 16)
            )

        return Other(address=self.leading_address(line))

    def leading_address(self, line: str) -> Optional[int]:
        match = self.LEADING_ADDRESS_RE.match(line)
        if match is None:
            return None
        return int(match.group("address"), 16)

    # ----- helpers ----------------------------------------------------------

    def _classify_instruction(
        self, address: int, mnemonic: str, operands: str
    ) -> Classified:
        profile = self.profile

        if mnemonic == profile.stack_adjust_mnemonic:
            match = self.stack_operand_re.match(operands)
            if match is not None:
                return StackAdjust(delta=int(match.group("delta")), address=address)
            return Other(address=address)

        if not self._is_branch(mnemonic):
            return Other(address=address)

        first_operand = operands.split(",")[0].strip()
        if mnemonic in profile.register_jump_mnemonics:
            if first_operand == profile.return_register:
                return Call(CallKind.RETURN, address=address)
            return Call(CallKind.DISPATCH, address=address)
        if mnemonic in profile.indirect_call_mnemonics:
            return Call(CallKind.INDIRECT, address=address)

        target = self.parse_target(operands)
        if target is None:
            _log.debug("No branch target in %r at 0x%x", operands, address)
            return Other(address=address)
        return Call(CallKind.DIRECT, target=target, address=address)

    def _is_branch(self, mnemonic: str) -> bool:
        if mnemonic in self.profile.non_branch_mnemonics:
            return False
        return mnemonic.startswith(self.profile.branch_prefixes)

    def parse_target(self, operands: str) -> Optional[int]:
        """Hex target from the operand after the last ``,`` separator."""
        field = operands.rsplit(",", 1)[-1]
        match = self.TARGET_RE.match(field)
        if match is None:
            return None
        return int(match.group("target"), 16)


@functools.lru_cache(maxsize=None)
def classifier_for(profile: ArchitectureProfile = MIPS32) -> LineClassifier:
    return LineClassifier(profile)


def classify(line: str, profile: ArchitectureProfile = MIPS32) -> Classified:
    """Classify one disassembly line with the (cached) profile classifier."""
    return classifier_for(profile).classify(line)


__all__ = [
    "CallKind",
    "SectionBoundary",
    "Label",
    "MalformedLabel",
    "StackAdjust",
    "Call",
    "Other",
    "Classified",
    "LineClassifier",
    "classifier_for",
    "classify",
]
