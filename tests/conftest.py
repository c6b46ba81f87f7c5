# tests/conftest.py
"""
Shared fixtures: builders for synthetic ``objdump -d`` output in the
MIPS32 syntax the analyzer understands.
"""

from typing import Iterable, List, Optional, Sequence

import pytest

from staticstack.function_table import FunctionRecord, FunctionTable


FILE_HEADER = [
    "",
    "firmware.elf:     file format elf32-tradlittlemips",
    "",
    "",
]


def section(name: str) -> List[str]:
    return [f"Disassembly of section {name}:", ""]


def label(address: int, name: str) -> str:
    return f"{address:08x} <{name}>:"


def ins(address: int, mnemonic: str, operands: str = "", code: str = "00000000") -> str:
    line = f"{address:8x}:\t{code} \t{mnemonic}"
    if operands:
        line += f"\t{operands}"
    return line


def make_function(
    name: str,
    start: int,
    frame: int = 0,
    calls: Sequence[int] = (),
    indirect: bool = False,
    dispatch: bool = False,
    local_branch: bool = False,
) -> List[str]:
    """One function in typical gcc shape: prologue, calls, epilogue, jr ra."""
    lines = [label(start, name)]
    addr = start

    def emit(mnemonic: str, operands: str = "") -> None:
        nonlocal addr
        lines.append(ins(addr, mnemonic, operands))
        addr += 4

    if frame:
        emit("addiu", f"sp,sp,-{frame}")
        emit("sw", f"ra,{frame - 4}(sp)")
    for target in calls:
        emit("jal", f"{target:x} <callee>")
        emit("nop")
    if local_branch:
        emit("beqz", f"v0,{start:x} <{name}>")
        emit("nop")
    if indirect:
        emit("jalr", "t9")
        emit("nop")
    if dispatch:
        emit("jr", "v1")
        emit("nop")
    if frame:
        emit("lw", f"ra,{frame - 4}(sp)")
        emit("addiu", f"sp,sp,{frame}")
    emit("jr", "ra")
    emit("nop")
    lines.append("")
    return lines


def disassembly(*functions: Iterable[str], text_section: str = ".text") -> List[str]:
    lines = list(FILE_HEADER) + section(text_section)
    for fn in functions:
        lines.extend(fn)
    return lines


def make_record(
    name: str,
    start: int,
    end: int,
    own: int = 0,
    targets: Optional[Sequence[int]] = None,
) -> FunctionRecord:
    record = FunctionRecord(name=name, start=start, end=end, own_stack=own)
    record.call_targets = list(targets or [])
    return record


def make_table(*records: FunctionRecord) -> FunctionTable:
    return FunctionTable(records)


# Addresses used by the canonical fixtures.
LEAF = 0x9D000000
MIDDLE = 0x9D000100
TOP = 0x9D000200


SAMPLE_TEXT = "\n".join([
    "",
    "firmware.elf:     file format elf32-tradlittlemips",
    "",
    "",
    "Disassembly of section .reset:",
    "",
    "bfc00000 <_reset>:",
    "bfc00000:\t0f400080 \tjal\t9d000200 <top>",
    "bfc00004:\t00000000 \tnop",
    "",
    "Disassembly of section .text:",
    "",
    "9d000000 <leaf>:",
    "9d000000:\t27bdfff8 \taddiu\tsp,sp,-8",
    "9d000004:\tafbe0004 \tsw\ts8,4(sp)",
    "9d000008:\t8fbe0004 \tlw\ts8,4(sp)",
    "9d00000c:\t27bd0008 \taddiu\tsp,sp,8",
    "9d000010:\t03e00008 \tjr\tra",
    "9d000014:\t00000000 \tnop",
    "",
    "9d000018 <middle>:",
    "9d000018:\t27bdfff0 \taddiu\tsp,sp,-16",
    "9d00001c:\tafbf000c \tsw\tra,12(sp)",
    "9d000020:\t0f400000 \tjal\t9d000000 <leaf>",
    "9d000024:\t00000000 \tnop",
    "9d000028:\t8fbf000c \tlw\tra,12(sp)",
    "9d00002c:\t27bd0010 \taddiu\tsp,sp,16",
    "9d000030:\t03e00008 \tjr\tra",
    "9d000034:\t00000000 \tnop",
    "",
    "9d000038 <top>:",
    "9d000038:\t27bdffe8 \taddiu\tsp,sp,-24",
    "9d00003c:\tafbf0014 \tsw\tra,20(sp)",
    "9d000040:\t0f400006 \tjal\t9d000018 <middle>",
    "9d000044:\t00000000 \tnop",
    "9d000048:\t10400002 \tbeqz\tv0,9d000054 <.L3>",
    "9d00004c:\t00000000 \tnop",
    "9d000050:\t0320f809 \tjalr\tt9",
    "",
    "9d000054 <.L3>:",
    "9d000054:\t8fbf0014 \tlw\tra,20(sp)",
    "9d000058:\t27bd0018 \taddiu\tsp,sp,24",
    "9d00005c:\t03e00008 \tjr\tra",
    "9d000060:\t00000000 \tnop",
    "",
    "Disassembly of section .rodata:",
    "",
    "9d001000 <table>:",
    "9d001000:\t9d000000 \t.word\t0x9d000000",
    "",
])


@pytest.fixture
def sample_lines() -> List[str]:
    return SAMPLE_TEXT.splitlines()


@pytest.fixture
def chain_lines() -> List[str]:
    """top(24) -> middle(16) -> leaf(8)."""
    return disassembly(
        make_function("leaf", LEAF, frame=8),
        make_function("middle", MIDDLE, frame=16, calls=[LEAF]),
        make_function("top", TOP, frame=24, calls=[MIDDLE]),
    )


@pytest.fixture
def mutual_lines() -> List[str]:
    """ping(16) <-> pong(32)."""
    return disassembly(
        make_function("ping", LEAF, frame=16, calls=[MIDDLE]),
        make_function("pong", MIDDLE, frame=32, calls=[LEAF]),
    )


@pytest.fixture
def sample_file(tmp_path, sample_lines):
    path = tmp_path / "firmware.dis"
    path.write_text("\n".join(sample_lines) + "\n", encoding="utf-8")
    return path
