from __future__ import annotations

from mathsphere.assembler import PromptAssembler
from mathsphere.config import Settings
from mathsphere.models import Lesson, Reference
from mathsphere.repository import ReferenceStore, add_lesson, add_reference
from mathsphere.schemas import AttachmentBlock, TextBlock
from mathsphere.storage import FileStorage


def _assembler(engine, config: Settings) -> PromptAssembler:
    return PromptAssembler(ReferenceStore(engine), FileStorage(config.uploads_dir), config)


def _seed_lesson(engine) -> Lesson:
    return add_lesson(
        engine,
        Lesson(title="Les suites numériques", level="1BAC", content="Ancien contenu de la leçon."),
    )


def _write_upload(config: Settings, name: str, data: bytes) -> str:
    path = config.uploads_dir / "uploads" / "references" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return f"/uploads/references/{name}"


def test_short_pdf_reference_is_attached(engine, config: Settings) -> None:
    lesson = _seed_lesson(engine).to_summary()
    url = _write_upload(config, "manuel.pdf", b"%PDF-1.4 fake")
    ref = add_reference(engine, Reference(title="Manuel 1BAC", level="1BAC", types="MANUEL", file_url=url))

    prompt = _assembler(engine, config).assemble(lesson, [ref.id])

    attachments = [b for b in prompt.blocks if isinstance(b, AttachmentBlock)]
    assert len(attachments) == 1
    assert attachments[0].mime_type == "application/pdf"
    assert attachments[0].data == b"%PDF-1.4 fake"
    assert prompt.reference_titles == ["Manuel 1BAC"]


def test_missing_file_falls_back_to_excerpt(engine, config: Settings) -> None:
    lesson = _seed_lesson(engine).to_summary()
    ref = add_reference(
        engine,
        Reference(
            title="Exercices corrigés",
            types="EXERCICE",
            text_content="Exercice 1 : étudier la suite.",
            file_url="/uploads/references/absent.pdf",
        ),
    )

    prompt = _assembler(engine, config).assemble(lesson, [ref.id])

    assert not any(isinstance(b, AttachmentBlock) for b in prompt.blocks)
    texts = [b.text for b in prompt.blocks if isinstance(b, TextBlock)]
    assert "### DOCUMENT: Exercices corrigés\nExercice 1 : étudier la suite." in texts


def test_long_text_reference_uses_capped_excerpt(engine, config: Settings) -> None:
    config.excerpt_max_chars = 100
    lesson = _seed_lesson(engine).to_summary()
    url = _write_upload(config, "programme.pdf", b"%PDF-1.4")
    ref = add_reference(
        engine,
        Reference(title="Programme officiel", types="PROGRAMME", text_content="x" * 800, file_url=url),
    )

    prompt = _assembler(engine, config).assemble(lesson, [ref.id])

    assert not any(isinstance(b, AttachmentBlock) for b in prompt.blocks)
    reference_block = prompt.blocks[1]
    assert reference_block.text == "### DOCUMENT: Programme officiel\n" + "x" * 100


def test_block_order_and_missing_ids(engine, config: Settings) -> None:
    lesson = _seed_lesson(engine).to_summary()
    first = add_reference(engine, Reference(title="B", text_content="b" * 600))
    second = add_reference(engine, Reference(title="A", text_content="a" * 600))

    prompt = _assembler(engine, config).assemble(lesson, [first.id, "missing", second.id], "Insister sur les limites.")

    assert prompt.blocks[0].text.startswith('ANALYSE DE LA LEÇON: "Les suites numériques"')
    assert prompt.blocks[1].text.startswith("### DOCUMENT: B")
    assert prompt.blocks[2].text.startswith("### DOCUMENT: A")
    assert "INSTRUCTIONS SPÉCIFIQUES:\nInsister sur les limites." in prompt.blocks[-1].text
    assert prompt.reference_titles == ["B", "A"]


def test_without_references_uses_level_snippets(engine, config: Settings) -> None:
    lesson = _seed_lesson(engine).to_summary()
    add_reference(
        engine,
        Reference(title="Cours 1BAC", level="1BAC", text_content="Chapitre 3 : les suites numériques et leurs limites."),
    )
    add_reference(
        engine,
        Reference(title="Cours 2BAC", level="2BAC", text_content="Rappel sur les suites numériques."),
    )

    prompt = _assembler(engine, config).assemble(lesson, [])

    assert prompt.reference_titles == ["Cours 1BAC"]
    recommended = prompt.blocks[1].text
    assert recommended.startswith("DOCUMENTS RECOMMANDÉS:\n### DOCUMENT: Cours 1BAC\n...")
    assert "Cours 2BAC" not in recommended


def test_without_references_or_matches(engine, config: Settings) -> None:
    lesson = _seed_lesson(engine).to_summary()

    prompt = _assembler(engine, config).assemble(lesson, [])

    assert len(prompt.blocks) == 2
    assert prompt.reference_titles == []
