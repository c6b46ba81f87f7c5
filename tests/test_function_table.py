# tests/test_function_table.py
"""
Tests for FunctionRecord, FunctionTable and the incremental table builder.
"""

import logging

from staticstack.function_table import (
    FunctionRecord,
    FunctionTable,
    FunctionTableBuilder,
    VisitState,
    build_function_table,
)
from tests.conftest import (
    FILE_HEADER,
    LEAF,
    MIDDLE,
    TOP,
    disassembly,
    ins,
    label,
    make_function,
    section,
)


class TestFunctionRecord:

    def test_defaults(self):
        record = FunctionRecord(name="f", start=0x100)
        assert record.end == 0x100
        assert record.own_stack == 0
        assert record.deepest == 0
        assert record.call_targets == []
        assert not record.uses_indirect_calls
        assert record.visit_state is VisitState.UNVISITED
        assert record.is_leaf

    def test_extend_only_grows(self):
        record = FunctionRecord(name="f", start=0x100)
        record.extend_to(0x120)
        record.extend_to(0x110)
        assert record.end == 0x120

    def test_only_decrements_count(self):
        record = FunctionRecord(name="f", start=0x100)
        record.add_stack_growth(-24)
        record.add_stack_growth(24)
        record.add_stack_growth(-8)
        assert record.own_stack == 32

    def test_finalize_prunes_internal_targets(self):
        record = FunctionRecord(name="f", start=0x100, end=0x140)
        record.call_targets = [0x200, 0x120, 0x100, 0x140, 0x300]
        internal = record.finalize()
        assert record.call_targets == [0x200, 0x300]
        assert internal == [0x120, 0x100, 0x140]
        assert record.finalized

    def test_contains_is_inclusive(self):
        record = FunctionRecord(name="f", start=0x100, end=0x140)
        assert record.contains(0x100)
        assert record.contains(0x140)
        assert not record.contains(0x144)
        assert not record.contains(0xFC)

    def test_identity_equality(self):
        a = FunctionRecord(name="f", start=0x100)
        b = FunctionRecord(name="f", start=0x100)
        assert a != b


class TestFunctionTable:

    def test_append_assigns_order(self):
        table = FunctionTable()
        a = table.append(FunctionRecord(name="a", start=0))
        b = table.append(FunctionRecord(name="b", start=8))
        assert (a.order, b.order) == (0, 1)
        assert len(table) == 2
        assert table[1] is b
        assert list(table) == [a, b]

    def test_version_changes_on_append(self):
        table = FunctionTable()
        before = table.version
        table.append(FunctionRecord(name="a", start=0))
        assert table.version != before

    def test_empty_table_is_falsy(self):
        assert not FunctionTable()


class TestBuilder:

    def test_chain(self, chain_lines):
        table = build_function_table(chain_lines)
        names = [r.name for r in table]
        assert names == ["leaf", "middle", "top"]
        leaf, middle, top = table
        assert (leaf.own_stack, middle.own_stack, top.own_stack) == (8, 16, 24)
        assert leaf.call_targets == []
        assert middle.call_targets == [LEAF]
        assert top.call_targets == [MIDDLE]
        assert all(r.finalized for r in table)

    def test_extent_covers_last_instruction(self):
        lines = disassembly(make_function("f", LEAF, frame=8))
        (record,) = build_function_table(lines)
        # addiu, sw, lw, addiu, jr, nop
        assert record.start == LEAF
        assert record.end == LEAF + 5 * 4

    def test_sample_skips_non_code_sections(self, sample_lines):
        table = build_function_table(sample_lines)
        assert [r.name for r in table] == ["leaf", "middle", "top"]

    def test_sample_internal_label_extends_function(self, sample_lines):
        _, _, top = build_function_table(sample_lines)
        assert top.end == 0x9D000060
        assert top.own_stack == 24
        assert top.uses_indirect_calls
        # The branch to .L3 is local and pruned.
        assert top.call_targets == [0x9D000018]

    def test_local_branch_pruned(self):
        lines = disassembly(make_function("loop", LEAF, frame=8, local_branch=True))
        builder = FunctionTableBuilder()
        (record,) = builder.feed_all(lines)
        assert record.call_targets == []
        assert builder.stats.internal_targets == 1

    def test_indirect_call_sets_flag(self):
        lines = disassembly(make_function("f", LEAF, indirect=True))
        (record,) = build_function_table(lines)
        assert record.uses_indirect_calls
        assert record.call_targets == []

    def test_dispatch_is_not_indirect(self):
        lines = disassembly(make_function("switch", LEAF, dispatch=True))
        (record,) = build_function_table(lines)
        assert not record.uses_indirect_calls

    def test_forward_reference_kept_raw(self):
        lines = disassembly(
            make_function("caller", LEAF, calls=[TOP]),
            make_function("callee", TOP),
        )
        caller, _ = build_function_table(lines)
        assert caller.call_targets == [TOP]

    def test_empty_input(self):
        assert len(build_function_table([])) == 0

    def test_no_code_section(self):
        lines = list(FILE_HEADER) + section(".data") + [
            label(0x1000, "buffer"),
            ins(0x1000, "addiu", "sp,sp,-8"),
        ]
        builder = FunctionTableBuilder()
        table = builder.feed_all(lines)
        assert len(table) == 0
        assert builder.stats.skipped_lines >= 2

    def test_multiple_code_sections(self):
        lines = (
            disassembly(make_function("a", LEAF, frame=8))
            + section(".text.startup")
            + make_function("b", MIDDLE, frame=16, calls=[LEAF])
        )
        table = build_function_table(lines)
        assert [r.name for r in table] == ["a", "b"]
        _, run = table
        assert run.call_targets == [LEAF]

    def test_section_boundary_closes_record(self):
        lines = (
            disassembly(make_function("a", LEAF, frame=8))
            + section(".rodata")
            + [ins(0x9D010000, "addiu", "sp,sp,-64")]
        )
        (record,) = build_function_table(lines)
        assert record.own_stack == 8
        assert record.end < 0x9D010000


class TestAnomalies:

    def test_malformed_label_keeps_previous_record(self, caplog):
        lines = list(FILE_HEADER) + section(".text") + [
            label(LEAF, "first"),
            ins(LEAF, "addiu", "sp,sp,-8"),
            f"{MIDDLE:08x} second>:",
            ins(MIDDLE, "addiu", "sp,sp,-16"),
            ins(MIDDLE + 4, "jr", "ra"),
        ]
        builder = FunctionTableBuilder()
        with caplog.at_level(logging.WARNING, logger="staticstack"):
            table = builder.feed_all(lines)
        (record,) = table
        assert record.name == "first"
        assert record.own_stack == 24
        assert record.end == MIDDLE + 4
        assert builder.stats.malformed_labels == 1
        assert "Malformed label" in caplog.text

    def test_code_before_first_label_is_ignored(self, caplog):
        lines = list(FILE_HEADER) + section(".text") + [
            ins(LEAF, "addiu", "sp,sp,-8"),
            ins(LEAF + 4, "jal", f"{TOP:x} <x>"),
            label(MIDDLE, "f"),
            ins(MIDDLE, "jr", "ra"),
        ]
        builder = FunctionTableBuilder()
        with caplog.at_level(logging.WARNING, logger="staticstack"):
            (record,) = builder.feed_all(lines)
        assert record.own_stack == 0
        assert record.call_targets == []
        assert builder.stats.orphan_lines == 2
        # One warning per section, not per line.
        assert caplog.text.count("outside any function") == 1

    def test_label_name_with_nested_brackets(self):
        builder = FunctionTableBuilder()
        table = builder.feed_all(disassembly(
            make_function("leaf", LEAF, frame=8),
            make_function("Foo<int>::run", MIDDLE, frame=40, calls=[LEAF]),
        ))
        assert [(r.name, r.own_stack) for r in table] == [
            ("leaf", 8),
            ("Foo<int>::run", 40),
        ]
        _, run = table
        assert run.call_targets == [LEAF]
        assert builder.stats.malformed_labels == 0

    def test_duplicate_names_are_separate_records(self):
        lines = disassembly(
            make_function("helper", LEAF, frame=8),
            make_function("helper", MIDDLE, frame=16),
        )
        table = build_function_table(lines)
        assert len(table) == 2
        assert [r.own_stack for r in table] == [8, 16]

    def test_feed_line_by_line(self, chain_lines):
        builder = FunctionTableBuilder()
        for line in chain_lines:
            builder.feed(line)
        table = builder.finish()
        assert len(table) == 3
        assert builder.stats.lines == len(chain_lines)
