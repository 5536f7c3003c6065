from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Optional

from .pipeline import ContentPipeline
from .runtime_data import build_runtime_paths, get_runtime_paths
from .sqlite_store import connect, insert_log
from .types import GenerationRequest, GenerationResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


def _describe_error(exception: Exception) -> str:
    """User-facing message plus the underlying detail, for the activity log."""
    user_message = getattr(exception, "user_message", None)
    if user_message:
        return f"{user_message} ({exception})"
    return str(exception)


def _request_details(request: GenerationRequest) -> str:
    return json.dumps(
        {
            "subject": request.subject,
            "topic": request.topic,
            "questionCount": request.question_count,
            "difficulty": request.difficulty.value,
            "types": [t.value for t in request.types],
            "cognitive": [c.value for c in request.cognitive_levels],
            "factCheck": request.fact_check,
            "readingMode": request.reading_mode.value,
        },
        indent=2,
    )


async def build_quiz(
    pipeline: ContentPipeline,
    request: GenerationRequest,
    progress: Optional[ProgressCallback] = None,
    username: Optional[str] = None,
    runtime_dir: Optional[Path] = None,
) -> GenerationResult:
    """Generate questions, then their illustrations one by one, logging to SQLite."""
    if not request.types:
        raise ValueError("Select at least one question type.")
    if not request.cognitive_levels:
        raise ValueError("Select at least one cognitive level.")

    def report(percent: int, step: str) -> None:
        logger.debug("Progress %d%%: %s", percent, step)
        if progress:
            progress(percent, step)

    runtime_paths = get_runtime_paths() if runtime_dir is None else build_runtime_paths(runtime_dir)
    conn = connect(runtime_paths.db_path)
    try:
        insert_log(
            conn,
            "START_GENERATE_QUIZ",
            f"Starting generation for {request.subject}.\nParams: {_request_details(request)}",
            "INFO",
            username,
        )
        report(0, "Analysing parameters and material")
        try:
            report(20, "Generating questions")
            result = await pipeline.generate_quiz_content(request)
            report(60, "Questions generated")

            pending = [q for q in result.questions if q.has_image and q.image_prompt]
            if pending:
                report(60, f"Generating visuals ({len(pending)} images)")
                for done, question in enumerate(pending, start=1):
                    question.image_url = await pipeline.generate_image_for_question(
                        question.image_prompt, request.user_credentials
                    )
                    report(60 + (done * 35) // len(pending), f"Image {done}/{len(pending)} ready")
            else:
                report(95, "No visuals requested")
        except Exception as e:
            actual_error = _describe_error(e)
            logger.error("Quiz generation failed: %s", actual_error[:300])
            insert_log(
                conn,
                "ERROR_GENERATE_QUIZ",
                f"Failed to generate quiz.\nError: {actual_error}",
                "ERROR",
                username,
            )
            raise

        insert_log(
            conn,
            "FINISH_GENERATE_QUIZ",
            f"Successfully generated quiz on {request.topic}\nQuestions: {len(result.questions)}",
            "SUCCESS",
            username,
        )
        report(100, "Done")
        return result
    finally:
        conn.close()
