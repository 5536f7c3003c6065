from __future__ import annotations

from dataclasses import dataclass

from .types import GenerationRequest, QuestionType, ReadingMode

MATERIAL_LIMIT = 10000

LANGUAGES = {
    "ID": "Indonesian (Bahasa Indonesia)",
    "EN": "English",
    "AR": "Arabic (Bahasa Arab)",
    "JP": "Japanese",
    "KR": "Korean",
    "CN": "Mandarin Chinese (Traditional)",
    "DE": "German",
    "FR": "French",
}

MATH_SUBJECTS = {
    "mathematics",
    "physics",
    "chemistry",
    "biology",
    "science",
    "matematika",
    "fisika",
    "kimia",
    "biologi",
    "matematika peminatan",
    "matematika terapan",
    "ipas",
}

LATEX_RULES = (
    "CRITICAL LATEX RULES:\n"
    "1. ALWAYS use INLINE format with single '$' delimiters (e.g. \"Calculate $E=mc^2$\").\n"
    "2. NEVER use block delimiters like '$$', '\\[' or '\\begin{equation}'.\n"
    "3. NEVER insert line breaks before or after equations; they must flow naturally within the sentence.\n"
    "4. Use '\\text{...}' for text inside equations.\n"
    "5. Simplify fractions where possible to keep vertical height small."
)

SCRIPT_NOTES = {
    "AR": "CRITICAL: Content must be in Arabic script (Amiri font compatible). Use correct "
    "Tashkeel/Harakat where necessary for clarity. Ensure Right-to-Left (RTL) context logic.",
    "JP": "CRITICAL: Use appropriate Kanji, Hiragana, and Katakana. Context: Noto Sans JP.",
    "KR": "CRITICAL: Use Hangul with correct spacing and honorifics. Context: Noto Serif KR.",
    "CN": "CRITICAL: Use Traditional Characters (繁體中文). Context: Noto Sans TC.",
}

RELIGION_SUBJECTS = {"pendidikan agama islam dan budi pekerti", "islamic studies"}

TEMPLATE = """You are an expert curriculum developer.
Your task is to generate a high-quality exam quiz based on the provided parameters.

{subject_instruction}

Target Audience: {audience}
Topic: {topic}
Sub-Topic: {sub_topic}

Reference Material:
{material}

Configuration:
- Total Questions: {count}
- Difficulty: {difficulty}
- Cognitive Levels allowed: {cognitive}
- Question Types allowed: {types}
- Multiple Choice Options: {mc_options} (only for MC type)
- Image Requirements: Approximately {image_count} questions must require a visual aid. For these, provide a highly descriptive 'imagePrompt'.
{distribution}
Rules:
1. OUTPUT LANGUAGE: The entire quiz (questions, options, explanations) MUST be generated in {language}.
   Exception: Specific terminology or quotes required by the subject should remain in their original form, but the surrounding question text must be in {language}.
2. For 'ESSAY' and 'SHORT_ANSWER', 'options' must be an empty array.
3. For 'COMPLEX_MULTIPLE_CHOICE', 'correctAnswer' should be a string containing all correct keys (e.g., "A, C").
4. For 'MULTIPLE_CHOICE', provide exactly {mc_options} options.
5. Generate a 'blueprint' entry for every question mapping it to a Basic Competency and Indicator.
6. FORMATTING: Do not use markdown headers (#) or bolding (**) in the question text unless necessary. STRICTLY NO newlines inside the question stem unless it is a distinct paragraph. All math must be inline.
7. Output JSON ONLY."""

GROUPED_RULE = """
8. STIMULUS (GROUPED MODE - CRITICAL):
- Generate ONE SINGLE, COMPREHENSIVE reading passage containing 3-5 paragraphs (approx. 300-500 words).
- The passage must be complex enough to support all {count} questions.
- All questions must be derived from this SINGLE shared passage.
- IMPORTANT: Copy the EXACT SAME passage text into the 'stimulus' field for EVERY question object. Do not generate short snippets."""

PER_QUESTION_RULE = """
8. STIMULUS (SIMPLE MODE):
- Provide a unique, short 'stimulus' string (1 paragraph, dialogue, or case) specifically for EACH question."""

FACT_CHECK_RULE = (
    "\nSTRICT FACT CHECKING: Ensure all historical dates, scientific formulas, and factual "
    "statements are verified. If uncertain about a specific detail, verify logic step-by-step."
)

JSON_CONTRACT = """
Respond with a single JSON object and nothing else, using exactly this shape:
{"questions": [{"text": "<stem>", "type": "<one of %s>", "options": ["<option>"], "correctAnswer": "<answer>", "explanation": "<why>", "difficulty": "<difficulty>", "cognitiveLevel": "<C1-C6>", "stimulus": "<passage or null>", "imagePrompt": "<image description or null>"}],
 "blueprint": [{"questionNumber": 1, "basicCompetency": "<competency>", "indicator": "<indicator>", "cognitiveLevel": "<C1-C6>", "difficulty": "<difficulty>"}]}"""

REPAIR_NOTE = (
    "\n\nIMPORTANT: Your previous response was not a valid quiz JSON object and could not be used. "
    "Return ONLY a corrected, complete JSON object that follows the required shape."
)


def distribute_types(count: int, types: tuple[QuestionType, ...]) -> list[tuple[QuestionType, int]]:
    """Split ``count`` questions as evenly as possible over the distinct ``types``."""
    distinct = list(dict.fromkeys(types))
    if not distinct:
        return []
    base, extra = divmod(count, len(distinct))
    return [(t, base + (1 if i < extra else 0)) for i, t in enumerate(distinct)]


def subject_instruction(request: GenerationRequest) -> str:
    base = f"Subject: {request.subject}"
    if request.subject_category:
        base += f" ({request.subject_category})"
    base += "."
    subject = request.subject.strip().lower()
    if subject in MATH_SUBJECTS:
        return f"{base} {LATEX_RULES}"
    if request.language.upper() in SCRIPT_NOTES:
        return f"{base} {SCRIPT_NOTES[request.language.upper()]}"
    if subject in RELIGION_SUBJECTS:
        return f"{base} Include relevant Dalil (Quran/Hadith) in explanations where applicable."
    return base


def distribution_instruction(request: GenerationRequest) -> str:
    plan = distribute_types(request.question_count, request.types)
    if len(plan) < 2:
        return ""
    names = ", ".join(t.value for t, _ in plan)
    counts = ", ".join(f"{n} {t.value}" for t, n in plan)
    return (
        "\nCRITICAL DISTRIBUTION RULE:\n"
        f"Multiple question types were selected: [{names}].\n"
        f"You MUST generate exactly: {counts}.\n"
        "Group questions of the same type together, in the order listed above "
        "(e.g., all of the first type, then all of the second).\n"
    )


@dataclass
class PromptParts:
    system_instruction: str
    user_text: str


def render_prompt(request: GenerationRequest, *, json_contract: bool = False) -> PromptParts:
    if request.material_text:
        material = (
            "Use the following summary text as the PRIMARY source for questions:\n"
            f"\"{request.material_text[:MATERIAL_LIMIT]}\""
        )
    else:
        material = "Use your general knowledge base aligned with the curriculum."
    audience = " - ".join(p for p in (request.level, request.grade) if p) or "General"

    instruction = TEMPLATE.format(
        subject_instruction=subject_instruction(request),
        audience=audience,
        topic=request.topic,
        sub_topic=request.sub_topic or "General",
        material=material,
        count=request.question_count,
        difficulty=request.difficulty.value,
        cognitive=", ".join(c.value for c in request.cognitive_levels),
        types=", ".join(t.value for t in request.types),
        mc_options=request.mc_option_count,
        image_count=request.image_question_count,
        distribution=distribution_instruction(request),
        language=LANGUAGES.get(request.language.upper(), LANGUAGES["ID"]),
    )
    if request.reading_mode is ReadingMode.GROUPED:
        instruction += GROUPED_RULE.format(count=request.question_count)
    elif request.reading_mode is ReadingMode.PER_QUESTION:
        instruction += PER_QUESTION_RULE
    if request.fact_check:
        instruction += FACT_CHECK_RULE
    if json_contract:
        instruction += JSON_CONTRACT % "|".join(t.value for t in QuestionType)

    return PromptParts(
        system_instruction=instruction,
        user_text=f"Generate {request.question_count} questions about {request.topic}.",
    )


def quiz_response_schema() -> dict:
    """Response schema in the Gemini REST ``responseSchema`` dialect."""
    return {
        "type": "OBJECT",
        "properties": {
            "questions": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "text": {
                            "type": "STRING",
                            "description": "The question stem. Use single '$' for inline LaTeX math. No line breaks.",
                        },
                        "type": {"type": "STRING", "enum": [t.value for t in QuestionType]},
                        "options": {"type": "ARRAY", "items": {"type": "STRING"}},
                        "correctAnswer": {"type": "STRING"},
                        "explanation": {"type": "STRING"},
                        "difficulty": {"type": "STRING"},
                        "cognitiveLevel": {"type": "STRING"},
                        "stimulus": {
                            "type": "STRING",
                            "nullable": True,
                            "description": "Reading passage or context.",
                        },
                        "imagePrompt": {
                            "type": "STRING",
                            "nullable": True,
                            "description": "Prompt for image generation if a visual is needed.",
                        },
                    },
                    "required": [
                        "text",
                        "type",
                        "options",
                        "correctAnswer",
                        "explanation",
                        "difficulty",
                        "cognitiveLevel",
                    ],
                },
            },
            "blueprint": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "questionNumber": {"type": "INTEGER"},
                        "basicCompetency": {"type": "STRING"},
                        "indicator": {"type": "STRING"},
                        "cognitiveLevel": {"type": "STRING"},
                        "difficulty": {"type": "STRING"},
                    },
                },
            },
        },
        "required": ["questions", "blueprint"],
    }
