"""Canonical Markdown rendering of structured lesson and exercise documents.

Two lesson shapes are accepted: the flat one the generation prompts ask for
(``introduction``, ``definitions``, ``theorems``...) and the older nested one
(``content.introduction``, ``content.theory.definitions``,
``content.summary.key_points``). Both are folded into the flat shape first,
then rendered in a fixed section order with dense numbering.
"""

from __future__ import annotations

import re
from typing import Any, Optional

SECTION_TITLES = {
    "introduction": "Introduction",
    "definitions": "Définitions",
    "theorems": "Théorèmes et Propriétés",
    "formulas": "Formules Importantes",
    "examples": "Exemples",
    "exercises": "Exercices d'Application",
    "summary": "Résumé",
    "common_mistakes": "Erreurs Courantes à Éviter",
}

SEPARATOR = "---\n\n"

_MULTI_NEWLINES = re.compile(r"\n{3,}")

# A literal "\n" is a line break unless it starts a LaTeX command (\neq, \nabla...).
_ESCAPED_NEWLINE = re.compile(
    r"(?<!\\)\\n(?!(?:eq|e(?![A-Za-z])|abla|otin|ot(?![A-Za-z])|u(?![A-Za-z])|exists|eg|earrow|warrow|i(?![A-Za-z])|mid|leq|geq|subset|ewline|orm))"
)


def normalize_newlines(text: Any) -> str:
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)
    text = _ESCAPED_NEWLINE.sub("\n", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _MULTI_NEWLINES.sub("\n\n", text)


def strip_math_delimiters(formula: str) -> str:
    clean = formula.strip()
    if len(clean) >= 4 and clean.startswith("$$") and clean.endswith("$$"):
        return clean[2:-2].strip()
    if len(clean) >= 2 and clean.startswith("$") and clean.endswith("$"):
        return clean[1:-1].strip()
    if clean.startswith("\\[") and clean.endswith("\\]"):
        return clean[2:-2].strip()
    return clean


def display_math(formula: str) -> str:
    return f"$${strip_math_delimiters(formula)}$$"


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _inline_mapping(value: Any) -> str:
    if isinstance(value, dict):
        return "; ".join(f"{key} : {normalize_newlines(val)}" for key, val in value.items())
    return normalize_newlines(value)


def _block_mapping(value: Any) -> str:
    if isinstance(value, dict):
        return "\n\n".join(f"**{key}** : {normalize_newlines(val)}" for key, val in value.items())
    return normalize_newlines(value)


def _fold_legacy(lesson: dict) -> dict:
    content = _as_dict(lesson.get("content"))
    if not content:
        return lesson
    folded = dict(lesson)

    intro = content.get("introduction")
    if intro and not lesson.get("introduction"):
        if isinstance(intro, dict):
            parts = []
            if intro.get("hook"):
                parts.append(normalize_newlines(intro["hook"]))
            if intro.get("real_world_connection"):
                parts.append(
                    f"**Application pratique :** {normalize_newlines(intro['real_world_connection'])}"
                )
            folded["introduction"] = "\n\n".join(parts)
        else:
            folded["introduction"] = intro

    theory = _as_dict(content.get("theory"))
    for key in ("definitions", "theorems", "formulas"):
        if theory.get(key) and not lesson.get(key):
            folded[key] = theory[key]
    if content.get("examples") and not lesson.get("examples"):
        folded["examples"] = content["examples"]

    summary = content.get("summary")
    if summary and not lesson.get("summary"):
        if isinstance(summary, dict):
            points = _as_list(summary.get("key_points"))
            if points:
                folded["summary"] = "\n".join(f"- {normalize_newlines(p)}" for p in points)
            mistakes = _as_list(summary.get("common_mistakes"))
            if mistakes and not _mistakes(lesson):
                folded["commonMistakes"] = mistakes
        else:
            folded["summary"] = summary
    return folded


def _mistakes(lesson: dict) -> list:
    return _as_list(lesson.get("commonMistakes") or lesson.get("common_mistakes"))


def _render_definitions(items: list) -> str:
    out = ""
    for item in items:
        item = _as_dict(item)
        out += f"**{normalize_newlines(item.get('term', ''))}**\n\n"
        out += f"{normalize_newlines(item.get('definition', ''))}\n\n"
        if item.get("example"):
            out += f"*Exemple :* {normalize_newlines(item['example'])}\n\n"
        out += SEPARATOR
    return out


def _render_theorems(items: list) -> str:
    out = ""
    for item in items:
        item = _as_dict(item)
        out += f"**{normalize_newlines(item.get('name', ''))}**\n\n"
        out += f"_Énoncé :_ {normalize_newlines(item.get('statement', ''))}\n\n"
        if item.get("proof"):
            out += f"_Démonstration :_ {normalize_newlines(item['proof'])}\n\n"
        if item.get("application"):
            out += f"_Application :_ {normalize_newlines(item['application'])}\n\n"
        out += SEPARATOR
    return out


def _render_formulas(items: list) -> str:
    out = ""
    for item in items:
        if isinstance(item, str):
            item = {"formula": item}
        item = _as_dict(item)
        out += f"{display_math(str(item.get('formula', '')))}\n\n"
        if item.get("explanation"):
            out += f"{normalize_newlines(item['explanation'])}\n\n"
        if item.get("variables"):
            out += f"_Variables :_ {_inline_mapping(item['variables'])}\n\n"
        out += SEPARATOR
    return out


def _render_examples(items: list) -> str:
    out = ""
    for index, item in enumerate(items, start=1):
        item = _as_dict(item)
        title = normalize_newlines(item.get("title", ""))
        out += f"**Exemple {index}{f' : {title}' if title else ''}**\n\n"
        if item.get("problem"):
            out += f"_Problème :_ {normalize_newlines(item['problem'])}\n\n"
        if item.get("solution"):
            out += f"_Solution :_\n\n{_block_mapping(item['solution'])}\n\n"
        if item.get("explanation"):
            out += f"_Explication :_ {normalize_newlines(item['explanation'])}\n\n"
        out += SEPARATOR
    return out


def _details(summary: str, body: str) -> str:
    return f"<details>\n<summary>{summary}</summary>\n\n{body}\n\n</details>\n\n"


def _render_exercises(items: list) -> str:
    out = ""
    for index, item in enumerate(items, start=1):
        if isinstance(item, str):
            item = {"question": item}
        item = _as_dict(item)
        out += f"**Exercice {index}**\n\n"
        prompt = item.get("question") or item.get("problem") or item.get("text") or ""
        out += f"{normalize_newlines(prompt)}\n\n"
        hints = _as_list(item.get("hints"))
        if hints:
            listed = "".join(f"- {normalize_newlines(h)}\n" for h in hints)
            out += f"<details>\n<summary>Indices</summary>\n\n{listed}\n</details>\n\n"
        # Both "solution" and "answer" render under the same label.
        solution = item.get("solution") or item.get("answer")
        if solution:
            out += _details("Solution", _block_mapping(solution))
        out += SEPARATOR
    return out


def _render_summary(value: Any) -> str:
    if isinstance(value, list):
        return "".join(f"- {_inline_mapping(point)}\n" for point in value) + "\n"
    return f"{_block_mapping(value)}\n\n"


def _render_custom_sections(items: list, start: int) -> tuple[str, int]:
    out = ""
    count = start
    for item in items:
        item = _as_dict(item)
        title = normalize_newlines(item.get("title", "")).strip()
        body = normalize_newlines(item.get("content", ""))
        if not title and not body.strip():
            continue
        count += 1
        out += f"## {count}. {title or 'Section'}\n\n{body}\n\n"
    return out, count


def render(doc: dict, header: Optional[str] = None) -> str:
    """Render a structured lesson into numbered, canonical Markdown.

    ``header`` is emitted verbatim before the first section (used for
    chapters, whose title is displayed elsewhere).
    """
    lesson = doc.get("lesson") if isinstance(doc.get("lesson"), dict) else doc
    lesson = _fold_legacy(lesson)

    markdown = header or ""
    count = 0

    def heading(key: str) -> str:
        nonlocal count
        count += 1
        return f"## {count}. {SECTION_TITLES[key]}\n\n"

    if lesson.get("introduction"):
        markdown += heading("introduction") + f"{normalize_newlines(lesson['introduction'])}\n\n"

    renderers = (
        ("definitions", _render_definitions),
        ("theorems", _render_theorems),
        ("formulas", _render_formulas),
        ("examples", _render_examples),
        ("exercises", _render_exercises),
    )
    for key, renderer in renderers:
        items = _as_list(lesson.get(key))
        if items:
            markdown += heading(key) + renderer(items)

    if lesson.get("summary"):
        markdown += heading("summary") + _render_summary(lesson["summary"])

    mistakes = _mistakes(lesson)
    if mistakes:
        markdown += heading("common_mistakes")
        markdown += "".join(f"- {normalize_newlines(m)}\n" for m in mistakes)
        markdown += "\n"

    custom, count = _render_custom_sections(_as_list(lesson.get("sections")), count)
    markdown += custom
    return markdown


def render_exercise(doc: dict, for_pdf: bool = False) -> str:
    exercise = doc.get("exercise") if isinstance(doc.get("exercise"), dict) else doc
    markdown = ""

    statement = exercise.get("problemText") or exercise.get("problem")
    if statement:
        markdown += f"## Énoncé\n\n{normalize_newlines(statement)}\n\n"

    for question in _as_list(exercise.get("questions")):
        question = _as_dict(question)
        number = question.get("number", "")
        markdown += f"### Question {number}\n\n{normalize_newlines(question.get('text', ''))}\n\n"
        if question.get("solution"):
            body = normalize_newlines(question["solution"])
            if for_pdf:
                markdown += f"#### Solution\n\n{body}\n\n"
            else:
                markdown += _details("Solution", body)

    hints = _as_list(exercise.get("hints"))
    if hints:
        markdown += "## Indices\n\n"
        for index, hint in enumerate(hints, start=1):
            body = normalize_newlines(hint)
            if for_pdf:
                markdown += f"### Indice {index}\n\n{body}\n\n"
            else:
                markdown += _details(f"Indice {index}", body)

    sections = []
    solution = exercise.get("solution")
    if solution:
        sections.append(("Solution", solution))
    answer = exercise.get("answer")
    if answer and answer != solution:
        sections.append(("Réponse", answer))
    if exercise.get("explanation"):
        sections.append(("Explication", exercise["explanation"]))

    for label, value in sections:
        body = normalize_newlines(value)
        if for_pdf:
            markdown += f"## {label}\n\n{body}\n\n"
        else:
            markdown += _details(label, body)
    return markdown
