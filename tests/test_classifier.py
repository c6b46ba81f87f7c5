# tests/test_classifier.py
"""
Tests for single-line classification of MIPS32 objdump output.
"""

import pytest

from staticstack.classifier import (
    Call,
    CallKind,
    Label,
    LineClassifier,
    MalformedLabel,
    Other,
    SectionBoundary,
    StackAdjust,
    classify,
)
from staticstack.config import ArchitectureProfile
from tests.conftest import ins, label


class TestSections:

    def test_text_section_is_code(self):
        kind = classify("Disassembly of section .text:")
        assert kind == SectionBoundary(name=".text", is_code=True)

    def test_text_subsection_is_code(self):
        kind = classify("Disassembly of section .text.startup:")
        assert isinstance(kind, SectionBoundary)
        assert kind.is_code

    @pytest.mark.parametrize("name", [".reset", ".rodata", ".vector_3", ".data"])
    def test_other_sections_are_not_code(self, name):
        kind = classify(f"Disassembly of section {name}:")
        assert isinstance(kind, SectionBoundary)
        assert kind.name == name
        assert not kind.is_code


class TestLabels:

    def test_function_label(self):
        assert classify("9d000120 <main>:") == Label(address=0x9D000120, name="main")

    def test_label_name_with_symbols(self):
        kind = classify("9d000120 <_on_reset.part.0>:")
        assert isinstance(kind, Label)
        assert kind.name == "_on_reset.part.0"

    @pytest.mark.parametrize("name", [
        "Foo<int>::run",
        "operator<",
        "std::vector<std::pair<int, int> >::push_back",
    ])
    def test_label_name_with_angle_brackets(self, name):
        assert classify(f"9d000100 <{name}>:") == Label(address=0x9D000100, name=name)

    def test_internal_label_is_other_with_address(self):
        kind = classify("9d000150 <.L12>:")
        assert kind == Other(address=0x9D000150)

    @pytest.mark.parametrize("line", [
        "9d000120 main>:",
        "9d000120 <main:",
        "9d000120 <>:",
    ])
    def test_malformed_label(self, line):
        kind = classify(line)
        assert isinstance(kind, MalformedLabel)
        assert kind.address == 0x9D000120

    def test_label_helper_round_trip(self):
        assert classify(label(0x1000, "f")) == Label(0x1000, "f")


class TestStackAdjust:

    def test_growth(self):
        kind = classify(ins(0x9D000000, "addiu", "sp,sp,-24"))
        assert kind == StackAdjust(delta=-24, address=0x9D000000)

    def test_release(self):
        kind = classify(ins(0x9D000010, "addiu", "sp,sp,24"))
        assert kind == StackAdjust(delta=24, address=0x9D000010)

    def test_addiu_on_other_register_is_other(self):
        kind = classify(ins(0x9D000000, "addiu", "v0,v0,-1"))
        assert kind == Other(address=0x9D000000)

    def test_real_objdump_layout(self):
        kind = classify("9d000000:\t27bdffe8 \taddiu\tsp,sp,-24")
        assert kind == StackAdjust(delta=-24, address=0x9D000000)


class TestCalls:

    def test_return(self):
        kind = classify(ins(0x9D000018, "jr", "ra"))
        assert kind == Call(CallKind.RETURN, address=0x9D000018)
        assert not kind.is_edge

    def test_indirect_call(self):
        kind = classify(ins(0x9D000018, "jalr", "t9"))
        assert isinstance(kind, Call)
        assert kind.kind is CallKind.INDIRECT
        assert kind.target is None

    def test_register_jump_is_dispatch(self):
        kind = classify(ins(0x9D000018, "jr", "v1"))
        assert kind.kind is CallKind.DISPATCH

    def test_direct_call(self):
        kind = classify(ins(0x9D000018, "jal", "9d000200 <foo>"))
        assert kind == Call(CallKind.DIRECT, target=0x9D000200, address=0x9D000018)
        assert kind.is_edge

    def test_conditional_branch_uses_last_operand(self):
        kind = classify(ins(0x9D000018, "bne", "v0,zero,9d000040 <main+0x28>"))
        assert kind.kind is CallKind.DIRECT
        assert kind.target == 0x9D000040

    def test_plain_jump(self):
        kind = classify(ins(0x9D000018, "j", "9d000300 <bar>"))
        assert kind.target == 0x9D000300

    def test_break_is_not_a_branch(self):
        kind = classify(ins(0x9D000018, "break", "0x7"))
        assert kind == Other(address=0x9D000018)

    def test_branch_without_target_is_other(self):
        kind = classify(ins(0x9D000018, "bal", "$L1"))
        assert kind == Other(address=0x9D000018)

    def test_non_branch_instruction(self):
        kind = classify(ins(0x9D000018, "lw", "ra,20(sp)"))
        assert kind == Other(address=0x9D000018)


class TestOtherLines:

    @pytest.mark.parametrize("line", [
        "",
        "firmware.elf:     file format elf32-tradlittlemips",
        "\t...",
    ])
    def test_lines_without_address(self, line):
        assert classify(line) == Other(address=None)

    def test_source_line_does_not_carry_address(self):
        # 'dead' is valid hex but is not followed by ':' or '<'.
        assert classify("deadline = 5;") == Other(address=None)

    def test_data_word_keeps_address(self):
        kind = classify("9d001000:\t9d000000 \t.word\t0x9d000000")
        assert kind == Other(address=0x9D001000)


class TestProfiles:

    def test_custom_profile_tokens(self):
        profile = ArchitectureProfile(
            name="custom",
            stack_pointer="$sp",
            return_register="$ra",
        )
        classifier = LineClassifier(profile)
        assert classifier.classify(ins(0x10, "addiu", "$sp,$sp,-32")) == \
            StackAdjust(delta=-32, address=0x10)
        assert classifier.classify(ins(0x14, "jr", "$ra")).kind is CallKind.RETURN

    def test_parse_target(self):
        classifier = LineClassifier()
        assert classifier.parse_target("9d000010 <x>") == 0x9D000010
        assert classifier.parse_target("v0,0x9d000010") == 0x9D000010
        assert classifier.parse_target("zero,gp") is None
