from __future__ import annotations

LATEX_FORMATTING_SYSTEM_PROMPT = """# STRICT LaTeX FORMATTING RULES - MUST FOLLOW EXACTLY

## CRITICAL RULES:

1. **MATH DELIMITERS:**
   - Use $expression$ for inline math (NO spaces: "$x$" ✓ | "$ x $" ✗)
   - Use $$expression$$ for display math on its own line
   - NEVER mix $ $ and \\( \\) delimiters

2. **TABLE FORMATTING - ABSOLUTE RULES:**
   - NEVER split math expressions across table cells
   - WRONG: | $ | q | < 1$ |
   - CORRECT: | Condition | $|q| < 1$ |
   - Each cell must contain COMPLETE expressions only

3. **COMPLETENESS:**
   - Every $ must have a matching $
   - Every { must have a matching }
   - Every \\begin must have a matching \\end
   - NO line breaks inside math expressions

4. **VALIDATION BEFORE OUTPUT:**
   - Count $ symbols: must be EVEN
   - No math in table | separators
   - All expressions complete in single cells
   - No spaces between $ and expression

FAILURE TO FOLLOW THESE RULES WILL CAUSE RENDERING ERRORS.
"""

AUDIT_TASK_INSTRUCTIONS = """
RÔLE: Expert Auditeur de Curriculum (Système Éducatif Marocain).

TÂCHE:
Réviser et mettre à jour le contenu de la leçon suivante pour qu'elle soit STRICTEMENT conforme aux Documents de Référence fournis.

INSTRUCTIONS GÉNÉRALES:
- Supprimez tout contenu hors-programme selon les références.
- Ajoutez les définitions ou théorèmes manquants cités dans les références.
- Corrigez la terminologie pour correspondre aux manuels officiels.
- Améliorez le formatage LaTeX.
- Gardez une structure pédagogique claire.

FORMAT DE SORTIE:
Retournez UNIQUEMENT le contenu complet de la leçon mise à jour au format JSON strict.
Structure JSON attendue:
{{
  "title": "{title}",
  "introduction": "...",
  "definitions": [ {{ "term": "...", "definition": "...", "example": "..." }} ],
  "theorems": [ {{ "name": "...", "statement": "...", "proof": "...", "application": "..." }} ],
  "formulas": [ {{ "formula": "...", "explanation": "...", "variables": "..." }} ],
  "examples": [ {{ "title": "...", "problem": "...", "solution": "...", "explanation": "..." }} ],
  "exercises": [ {{ "question": "...", "solution": "...", "hints": ["..."] }} ],
  "summary": "...",
  "commonMistakes": ["..."]
}}
"""

LESSON_HEADER = 'ANALYSE DE LA LEÇON: "{title}"\n\nCONTENU ACTUEL:\n{content}'
EMPTY_LESSON_CONTENT = "(Vide)"
DOCUMENT_LABEL = "### DOCUMENT: {title}\n{text}"
ATTACHMENT_LABEL = "(Document de référence ci-joint: {title})"
UNREADABLE_DOCUMENT = "(Contenu illisible)"
RECOMMENDED_DOCUMENTS = "DOCUMENTS RECOMMANDÉS:\n"
SPECIFIC_INSTRUCTIONS = "INSTRUCTIONS SPÉCIFIQUES:\n{instructions}"


def task_instructions(title: str, instructions: str = "") -> str:
    base = AUDIT_TASK_INSTRUCTIONS.format(title=title.replace('"', "'"))
    specific = SPECIFIC_INSTRUCTIONS.format(instructions=instructions.strip()) if instructions.strip() else ""
    return f"{base}\n\n{specific}"
