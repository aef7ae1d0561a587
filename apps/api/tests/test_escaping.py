from __future__ import annotations

import json

from mathsphere.escaping import LATEX_COMMANDS, repair, sanitize_invalid_escapes


def test_repair_keeps_latex_and_escapes_real_newline() -> None:
    raw = '{"text": "He said \\"\\neq\\" then\nstopped"}'
    decoded = json.loads(repair(raw))
    assert decoded["text"] == 'He said "\\neq" then\nstopped'


def test_repair_escapes_control_characters() -> None:
    raw = '{"a": "line one\nline two\r\n\tindented"}'
    decoded = json.loads(repair(raw))
    assert decoded["a"] == "line one\nline two\r\n\tindented"


def test_repair_escapes_other_control_bytes() -> None:
    raw = '{"a": "bell\x07here"}'
    assert json.loads(repair(raw))["a"] == "bell\x07here"


def test_repair_leaves_structure_outside_strings() -> None:
    raw = '{\n  "a": 1,\n\t"b": [true, null]\n}'
    assert repair(raw) == raw


def test_repair_does_not_touch_already_doubled_backslashes() -> None:
    raw = '{"f": "$\\\\frac{1}{2}$"}'
    assert repair(raw) == raw
    assert json.loads(repair(raw))["f"] == "$\\frac{1}{2}$"


def test_every_table_command_survives_decode() -> None:
    for command in LATEX_COMMANDS:
        raw = '{"m": "$\\' + command + '{x}$"}'
        assert json.loads(repair(raw))["m"] == "$\\" + command + "{x}$", command


def test_longest_command_wins() -> None:
    raw = '{"m": "$a \\rightarrow b$ and $\\right)$"}'
    assert json.loads(repair(raw))["m"] == "$a \\rightarrow b$ and $\\right)$"


def test_valid_json_escapes_are_kept() -> None:
    raw = '{"q": "a \\"quoted\\" word \\u00e9 and a \\/ slash"}'
    assert json.loads(repair(raw))["q"] == 'a "quoted" word é and a / slash'


def test_unknown_macro_is_left_for_sanitizer() -> None:
    raw = '{"m": "$\\alpha + \\sum x$"}'
    repaired = repair(raw)
    assert "\\alpha" in repaired
    assert json.loads(sanitize_invalid_escapes(repaired))["m"] == "$\\alpha + \\sum x$"


def test_sanitizer_keeps_unicode_escapes() -> None:
    text = '{"m": "caf\\u00e9 \\lim"}'
    assert json.loads(sanitize_invalid_escapes(text))["m"] == "café \\lim"


def test_empty_input() -> None:
    assert repair("") == ""
