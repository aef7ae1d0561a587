"""Escape repair for LaTeX-bearing JSON produced by language models.

Models write LaTeX inside JSON strings with single backslashes. Several
common commands start with a letter that JSON treats as an escape
(``\\neq`` reads as newline + ``eq``, ``\\frac`` as form feed + ``rac``), and
models also emit raw newlines and tabs inside string literals. ``repair``
fixes both in one left-to-right scan while leaving everything outside string
literals untouched.
"""

from __future__ import annotations

CONTROL_ESCAPES = {
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}

# Commands whose first letter collides with a JSON escape (b, f, n, r, t),
# plus the \math* and \big* families models tend to mangle. Closed list.
LATEX_COMMANDS = (
    "begin",
    "binom",
    "beta",
    "bar",
    "frac",
    "forall",
    "neq",
    "nabla",
    "notin",
    "rho",
    "right",
    "rightarrow",
    "times",
    "text",
    "theta",
    "tan",
    "tau",
    "top",
    "triangle",
    "mathbf",
    "mathbb",
    "bigcap",
    "bigcup",
)

_COMMANDS_LONGEST_FIRST = tuple(sorted(LATEX_COMMANDS, key=len, reverse=True))

VALID_JSON_ESCAPES = frozenset('"\\/bfnrt')
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def is_unescaped_quote(text: str, index: int) -> bool:
    """True when the quote at ``index`` is preceded by an even run of backslashes."""
    backslashes = 0
    j = index - 1
    while j >= 0 and text[j] == "\\":
        backslashes += 1
        j -= 1
    return backslashes % 2 == 0


def match_command(text: str, index: int) -> str | None:
    """Return the table command starting right after the backslash at ``index``."""
    for command in _COMMANDS_LONGEST_FIRST:
        if text.startswith(command, index + 1):
            return command
    return None


def repair(raw: str) -> str:
    if not raw:
        return raw

    out: list[str] = []
    in_string = False
    i = 0
    length = len(raw)

    while i < length:
        char = raw[i]

        if char == '"':
            if is_unescaped_quote(raw, i):
                in_string = not in_string
            out.append(char)
            i += 1
            continue

        if not in_string:
            out.append(char)
            i += 1
            continue

        if char == "\\" and i + 1 < length and raw[i + 1] == "\\":
            out.append("\\\\")
            i += 2
            continue

        if char in CONTROL_ESCAPES:
            out.append(CONTROL_ESCAPES[char])
            i += 1
            continue

        if ord(char) < 0x20:
            out.append(f"\\u{ord(char):04x}")
            i += 1
            continue

        if char == "\\":
            command = match_command(raw, i)
            if command is not None:
                out.append("\\\\" + command)
                i += 1 + len(command)
                continue

        out.append(char)
        i += 1

    return "".join(out)


def sanitize_invalid_escapes(text: str) -> str:
    """Double every backslash inside a string literal that starts no valid JSON escape.

    Meant as a second pass after ``repair`` when the decoder still reports an
    invalid escape (``\\alpha``, ``\\sum``, ``\\lim``...). Valid escapes,
    including ``\\uXXXX``, are copied through as they are.
    """
    out: list[str] = []
    in_string = False
    i = 0
    length = len(text)

    while i < length:
        char = text[i]

        if char == '"':
            if is_unescaped_quote(text, i):
                in_string = not in_string
            out.append(char)
            i += 1
            continue

        if in_string and char == "\\":
            if i + 1 >= length:
                out.append("\\\\")
                i += 1
                continue
            nxt = text[i + 1]
            if nxt in VALID_JSON_ESCAPES:
                out.append(char + nxt)
                i += 2
                continue
            if nxt == "u" and all(c in _HEX_DIGITS for c in text[i + 2 : i + 6]) and i + 6 <= length:
                out.append(text[i : i + 6])
                i += 6
                continue
            out.append("\\\\" + nxt)
            i += 2
            continue

        out.append(char)
        i += 1

    return "".join(out)
