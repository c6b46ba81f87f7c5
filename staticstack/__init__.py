"""
staticstack: Static Stack Usage Analyzer for MIPS32 Firmware
============================================================

Estimates worst-case call-stack usage of a MIPS32 (PIC32 / xc32) image
from its ``objdump -d`` disassembly, without running the code.  For every
function it reports the stack the function allocates itself and the
deepest stack reachable through its call tree.

Core modules
------------
classifier
    Line classification of disassembler output.
function_table
    Function records and the table builder.
callgraph
    Address resolution and the lazily resolved call graph.
analyzer
    Iterative, cycle-safe deepest-stack computation.
report
    Stable sorting and the markdown table.
driver
    The pipeline over a line source.

Quick start
-----------
>>> from staticstack import analyze_lines, render_table
>>> result = analyze_lines(open("firmware.dis"))
>>> print(render_table(result.table, limit=10))

Package layout
--------------
::

    staticstack/
    ├── __init__.py            ← this file
    ├── __main__.py
    ├── main.py
    ├── config.py
    ├── errors.py
    ├── diagnostics.py
    ├── classifier.py
    ├── function_table.py
    ├── callgraph.py
    ├── analyzer.py
    ├── report.py
    └── driver.py
"""

from __future__ import annotations

import logging
from typing import List

__version__ = "0.3.0"
__license__ = "GPL-3.0-or-later"

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

from staticstack.errors import (  # noqa: E402
    AnalysisBudgetExceeded,
    InputError,
    NoFunctionsFoundError,
    StackAnalysisError,
)
from staticstack.report import SortKey, render_table, sort_records  # noqa: E402
from staticstack.function_table import (  # noqa: E402
    FunctionRecord,
    FunctionTable,
    build_function_table,
)
from staticstack.callgraph import CallGraph  # noqa: E402
from staticstack.analyzer import StackDepthAnalyzer  # noqa: E402
from staticstack.driver import AnalysisResult, analyze_file, analyze_lines  # noqa: E402

__all__: List[str] = [
    "__version__",
    "StackAnalysisError",
    "InputError",
    "NoFunctionsFoundError",
    "AnalysisBudgetExceeded",
    "SortKey",
    "render_table",
    "sort_records",
    "FunctionRecord",
    "FunctionTable",
    "build_function_table",
    "CallGraph",
    "StackDepthAnalyzer",
    "AnalysisResult",
    "analyze_file",
    "analyze_lines",
]
