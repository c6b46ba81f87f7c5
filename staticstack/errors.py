# staticstack/errors.py
"""
Error Types and Error Codes for the stack analyzer

Every condition the analyzer can run into has a structured
:class:`ErrorCode`.  Only a handful of them are raised as exceptions; the
rest are reported through :mod:`staticstack.diagnostics` and the logging
system and never abort a run.

Error Hierarchy:
────────────────
┌─────────────────────────────────────────────────────────────────────────┐
│  StackAnalysisError (base)                                              │
│  ├── InputError               - unreadable input / disassembler failed  │
│  ├── NoFunctionsFoundError    - empty function table (fatal)            │
│  └── AnalysisBudgetExceeded   - visited-node budget exhausted           │
└─────────────────────────────────────────────────────────────────────────┘

Error Codes:
────────────
Codes follow the pattern STACK-NNNN:
  - 0001-0099: Line anomalies (non-fatal)
  - 0100-0199: Call graph anomalies (non-fatal)
  - 1000-1999: Input errors
  - 2000-2999: Table errors
  - 3000-3999: Analysis errors
  - 9000-9999: General errors
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Optional


@unique
class ErrorSeverity(Enum):
    """Severity of an error code."""

    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"
    STYLE = "style"
    INFO = "info"

    def is_error(self) -> bool:
        return self in (ErrorSeverity.FATAL, ErrorSeverity.ERROR)


class ErrorCode:
    """
    Structured error code ``STACK-NNNN``.

    Codes compare equal to their string form, so ``code == "STACK-0100"``
    works in tests and filters.
    """

    __slots__ = ("prefix", "number", "error_id", "default_severity")

    def __init__(
        self,
        prefix: str,
        number: int,
        error_id: str,
        default_severity: ErrorSeverity = ErrorSeverity.ERROR,
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.error_id = error_id
        self.default_severity = default_severity

    @property
    def code(self) -> str:
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.error_id})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class StackErrorCodes:
    """Predefined error codes."""

    # ───────────────────────────────────────────────────────────────────────
    # LINE ANOMALIES (0001-0099)
    # ───────────────────────────────────────────────────────────────────────

    MALFORMED_LABEL = ErrorCode(
        "STACK", 1, "malformedLabel", ErrorSeverity.WARNING
    )
    CODE_OUTSIDE_FUNCTION = ErrorCode(
        "STACK", 2, "codeOutsideFunction", ErrorSeverity.WARNING
    )

    # ───────────────────────────────────────────────────────────────────────
    # CALL GRAPH ANOMALIES (0100-0199)
    # ───────────────────────────────────────────────────────────────────────

    UNRESOLVED_CALL_TARGET = ErrorCode(
        "STACK", 100, "unresolvedCallTarget", ErrorSeverity.WARNING
    )
    CYCLIC_CALL_GRAPH = ErrorCode(
        "STACK", 101, "cyclicCallGraph", ErrorSeverity.STYLE
    )

    # ───────────────────────────────────────────────────────────────────────
    # INPUT ERRORS (1000-1999)
    # ───────────────────────────────────────────────────────────────────────

    INPUT_NOT_FOUND = ErrorCode("STACK", 1000, "inputNotFound")
    DISASSEMBLER_FAILED = ErrorCode("STACK", 1001, "disassemblerFailed")

    # ───────────────────────────────────────────────────────────────────────
    # TABLE ERRORS (2000-2999)
    # ───────────────────────────────────────────────────────────────────────

    NO_FUNCTIONS_FOUND = ErrorCode(
        "STACK", 2000, "noFunctionsFound", ErrorSeverity.FATAL
    )

    # ───────────────────────────────────────────────────────────────────────
    # ANALYSIS ERRORS (3000-3999)
    # ───────────────────────────────────────────────────────────────────────

    VISIT_BUDGET_EXCEEDED = ErrorCode("STACK", 3000, "visitBudgetExceeded")

    # ───────────────────────────────────────────────────────────────────────
    # GENERAL ERRORS (9000-9999)
    # ───────────────────────────────────────────────────────────────────────

    ANALYSIS_FAILED = ErrorCode("STACK", 9000, "analysisFailed")


# ═══════════════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════════════

class StackAnalysisError(Exception):
    """Base exception for all analyzer errors."""

    default_code: ErrorCode = StackErrorCodes.ANALYSIS_FAILED

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.cause = cause

    @property
    def severity(self) -> ErrorSeverity:
        return self.code.default_severity

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class InputError(StackAnalysisError):
    """The disassembly could not be read or produced."""

    default_code = StackErrorCodes.INPUT_NOT_FOUND


class NoFunctionsFoundError(StackAnalysisError):
    """The finished function table holds no records at all."""

    default_code = StackErrorCodes.NO_FUNCTIONS_FOUND


class AnalysisBudgetExceeded(StackAnalysisError):
    """The stack depth traversal visited more records than allowed."""

    default_code = StackErrorCodes.VISIT_BUDGET_EXCEEDED

    def __init__(self, message: str, visits: int, budget: int) -> None:
        super().__init__(message)
        self.visits = visits
        self.budget = budget


__all__ = [
    "ErrorSeverity",
    "ErrorCode",
    "StackErrorCodes",
    "StackAnalysisError",
    "InputError",
    "NoFunctionsFoundError",
    "AnalysisBudgetExceeded",
]
