"""Quiz content generation on top of credential rotation.

The pipeline turns a ``GenerationRequest`` into one provider call (schema
constrained for the primary provider, JSON contract plus a bounded repair
re-prompt for the compatible provider), then normalises the result: math
markup is forced inline, a grouped reading passage is copied onto every
question, and questions are grouped by type in the requested order.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Optional, Union

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from ..adapters.base import ProviderAdapter, RawResponse, TextPrompt, split_data_url
from .app_config import AppConfigLoader, app_config
from .credentials import build_phases, load_system_credentials, sanitize_user_credentials
from .errors import (
    EmptyResponseError,
    GenerationStoppedError,
    ParseError,
    QuizForgeError,
)
from .fallback_image import generate_svg_fallback
from .key_health import KeyHealthRegistry
from .prompt import REPAIR_NOTE, quiz_response_schema, render_prompt
from .provider_config import ProviderConfiguration, ProviderKind, load_provider_configuration
from .rotation import RotationExecutor
from .sanitize import sanitize_latex
from .types import (
    BlueprintEntry,
    Credential,
    CredentialOrigin,
    CredentialPhase,
    GenerationRequest,
    GenerationResult,
    Question,
    QuestionType,
    ReadingMode,
)
from .utils import parse_quiz_json

logger = logging.getLogger(__name__)

NORMAL_FINISH_REASONS = {"STOP", "stop"}
MAX_COMPATIBLE_ATTEMPTS = 2
MOCK_CREDENTIAL = "mock-credential-0000000000"

AdapterFactory = Callable[[ProviderConfiguration, Credential], ProviderAdapter]


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _answer_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v).strip() for v in value)
    return "" if value is None else str(value)


def build_questions(payload: dict[str, Any], id_prefix: str) -> list[Question]:
    """Validate provider questions and apply text post-processing."""
    questions = []
    for idx, raw in enumerate(payload["questions"]):
        if not isinstance(raw, dict):
            raise ParseError(f"Question {idx + 1} is not an object")
        text = raw.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ParseError(f"Question {idx + 1} has no text")
        try:
            qtype = QuestionType(str(raw.get("type", "")).strip().upper())
        except ValueError as exc:
            raise ParseError(f"Question {idx + 1} has unknown type {raw.get('type')!r}") from exc
        options = raw.get("options") or []
        if not isinstance(options, list):
            raise ParseError(f"Question {idx + 1} options must be an array")
        image_prompt = _optional_text(raw.get("imagePrompt"))
        stimulus = _optional_text(raw.get("stimulus"))
        questions.append(
            Question(
                id=f"{id_prefix}-{idx}",
                text=sanitize_latex(text),
                type=qtype,
                options=[sanitize_latex(str(opt)) for opt in options],
                correct_answer=_answer_text(raw.get("correctAnswer")),
                explanation=sanitize_latex(_optional_text(raw.get("explanation"))),
                cognitive_level=str(raw.get("cognitiveLevel") or ""),
                difficulty=str(raw.get("difficulty") or ""),
                stimulus=sanitize_latex(stimulus) if stimulus else None,
                image_prompt=image_prompt,
                has_image=bool(image_prompt),
            )
        )
    return questions


def build_blueprint(payload: dict[str, Any]) -> list[BlueprintEntry]:
    entries = []
    for idx, raw in enumerate(payload.get("blueprint") or []):
        if not isinstance(raw, dict):
            continue
        try:
            number = int(raw.get("questionNumber") or idx + 1)
        except (TypeError, ValueError):
            number = idx + 1
        entries.append(
            BlueprintEntry(
                question_number=number,
                basic_competency=str(raw.get("basicCompetency") or ""),
                indicator=str(raw.get("indicator") or ""),
                cognitive_level=str(raw.get("cognitiveLevel") or ""),
                difficulty=str(raw.get("difficulty") or ""),
            )
        )
    return entries


def enforce_grouped_stimulus(questions: list[Question]) -> None:
    """Copy the first non-empty stimulus onto every question."""
    shared = next((q.stimulus for q in questions if q.stimulus), None)
    if shared is None:
        logger.warning("Grouped reading mode requested but no stimulus was generated")
        return
    for q in questions:
        q.stimulus = shared


def group_by_type(
    questions: list[Question],
    blueprint: list[BlueprintEntry],
    types: Iterable[QuestionType],
) -> tuple[list[Question], list[BlueprintEntry]]:
    """Order questions so each requested type is contiguous, in request order."""
    order = {t: i for i, t in enumerate(dict.fromkeys(types))}

    def rank(question: Question) -> int:
        return order.get(question.type, len(order))

    if len(blueprint) == len(questions):
        pairs = sorted(zip(questions, blueprint), key=lambda pair: rank(pair[0]))
        ordered_questions = [q for q, _ in pairs]
        ordered_blueprint = []
        for number, (_, entry) in enumerate(pairs, start=1):
            entry.question_number = number
            ordered_blueprint.append(entry)
        return ordered_questions, ordered_blueprint
    ordered = sorted(questions, key=rank)
    return ordered, blueprint


def parse_quiz_payload(text: str) -> tuple[list[Question], list[BlueprintEntry]]:
    """Parse and validate a quiz response; any shape problem is a ``ParseError``."""
    payload = parse_quiz_json(text)
    questions = build_questions(payload, id_prefix=f"gen-{int(time.time() * 1000)}")
    return questions, build_blueprint(payload)


def check_response_text(response: RawResponse) -> str:
    text = (response.get("text") or "").strip()
    if text:
        return text
    reason = response.get("finish_reason")
    if reason and reason not in NORMAL_FINISH_REASONS:
        raise GenerationStoppedError(f"AI generation stopped unexpectedly. Reason: {reason}")
    raise EmptyResponseError("AI returned empty response")


class ContentPipeline:
    def __init__(
        self,
        registry: KeyHealthRegistry,
        *,
        system_credentials: Iterable[Credential] = (),
        config_source: Callable[[], ProviderConfiguration] = load_provider_configuration,
        adapter_factory: Optional[AdapterFactory] = None,
        executor: Optional[RotationExecutor] = None,
        config: AppConfigLoader = app_config,
    ) -> None:
        self.registry = registry
        self.system_credentials = tuple(system_credentials)
        self.config_source = config_source
        self.adapter_factory = adapter_factory or (lambda cfg, cred: cfg.create_adapter(cred))
        self.executor = executor or RotationExecutor(registry, delay_seconds=config.delay_seconds)
        self.config = config

    # -- credentials -----------------------------------------------------

    def _phases(
        self, configuration: ProviderConfiguration, user_credentials: Iterable[object] = ()
    ) -> list[CredentialPhase]:
        if configuration.provider is ProviderKind.COMPATIBLE:
            key = configuration.compatible.api_key if configuration.compatible else ""
            credentials = [Credential(key, CredentialOrigin.SYSTEM)] if key else []
            return [CredentialPhase("compatible", credentials)]
        user = sanitize_user_credentials(user_credentials, self.config.min_user_key_length)
        return build_phases(user, self.system_credentials)

    async def _run(
        self,
        configuration: ProviderConfiguration,
        phases: list[CredentialPhase],
        call: Callable[[ProviderAdapter], Any],
    ) -> Any:
        async def operation(adapter: ProviderAdapter) -> Any:
            try:
                return await call(adapter)
            finally:
                await adapter.aclose()

        return await self.executor.execute(
            operation,
            phases,
            make_handle=lambda credential: self.adapter_factory(configuration, credential),
        )

    # -- text ------------------------------------------------------------

    async def generate_quiz_content(self, request: GenerationRequest) -> GenerationResult:
        configuration = self.config_source()
        phases = self._phases(configuration, request.user_credentials)
        ref_image = split_data_url(request.ref_image) if request.ref_image else None
        logger.info(
            "Generating %d question(s) on '%s' via %s",
            request.question_count,
            request.topic,
            configuration.provider.value,
        )

        if configuration.provider is ProviderKind.COMPATIBLE:
            questions, blueprint = await self._generate_compatible(
                configuration, phases, request, ref_image
            )
        else:
            parts = render_prompt(request)
            prompt = TextPrompt(
                system_instruction=parts.system_instruction,
                user_text=parts.user_text,
                response_schema=quiz_response_schema(),
                ref_image=ref_image,
            )
            response = await self._run(configuration, phases, lambda a: a.generate_text(prompt))
            questions, blueprint = parse_quiz_payload(check_response_text(response))
        return self._postprocess(questions, blueprint, request)

    async def _generate_compatible(
        self,
        configuration: ProviderConfiguration,
        phases: list[CredentialPhase],
        request: GenerationRequest,
        ref_image: Optional[tuple[str, str]],
    ) -> tuple[list[Question], list[BlueprintEntry]]:
        parts = render_prompt(request, json_contract=True)
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(MAX_COMPATIBLE_ATTEMPTS),
            retry=retry_if_exception_type(ParseError),
            reraise=True,
        ):
            with attempt:
                instruction = parts.system_instruction
                if attempt.retry_state.attempt_number > 1:
                    logger.warning("Compatible provider returned an unusable quiz; re-prompting once")
                    instruction += REPAIR_NOTE
                prompt = TextPrompt(
                    system_instruction=instruction,
                    user_text=parts.user_text,
                    json_mode=True,
                    ref_image=ref_image,
                )
                response = await self._run(
                    configuration, phases, lambda a: a.generate_text(prompt)
                )
                parsed = parse_quiz_payload(check_response_text(response))
        return parsed

    def _postprocess(
        self,
        questions: list[Question],
        blueprint: list[BlueprintEntry],
        request: GenerationRequest,
    ) -> GenerationResult:
        if request.reading_mode is ReadingMode.GROUPED:
            enforce_grouped_stimulus(questions)
        if len(set(request.types)) > 1:
            questions, blueprint = group_by_type(questions, blueprint, request.types)
        if len(questions) != request.question_count:
            logger.warning(
                "Requested %d questions, provider returned %d",
                request.question_count,
                len(questions),
            )
        return GenerationResult(questions=questions, blueprint=blueprint)

    # -- images ----------------------------------------------------------

    async def generate_image_for_question(
        self, prompt: str, user_credentials: Iterable[object] = ()
    ) -> str:
        """Return an image data URI (or hosted URL); falls back to a placeholder SVG."""
        if not isinstance(prompt, str) or not prompt.strip():
            return generate_svg_fallback(prompt if isinstance(prompt, str) else "")
        try:
            configuration = self.config_source()
            phases = self._phases(configuration, user_credentials)
            image = await self._run(configuration, phases, lambda a: a.generate_image(prompt))
        except Exception as exc:
            logger.warning("Image generation failed, using SVG fallback: %s", str(exc)[:150])
            return generate_svg_fallback(prompt)
        if not image:
            logger.info("Provider returned no image data, using SVG fallback")
            return generate_svg_fallback(prompt)
        return image

    # -- operator --------------------------------------------------------

    async def validate_connection(self) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            configuration = self.config_source()
            phases = self._phases(configuration)
        except Exception as exc:
            return {"success": False, "message": str(exc), "latency_ms": 0, "key_count": 0}
        key_count = sum(len(p.credentials) for p in phases)
        ping = TextPrompt(system_instruction="", user_text="Ping", temperature=0.0)
        try:
            await self._run(configuration, phases, lambda a: a.generate_text(ping))
        except QuizForgeError as exc:
            return {
                "success": False,
                "message": str(exc),
                "latency_ms": 0,
                "key_count": key_count,
            }
        latency_ms = int((time.perf_counter() - start) * 1000)
        return {
            "success": True,
            "message": f"Active & Responding (Pool: {key_count} Keys)",
            "latency_ms": latency_ms,
            "key_count": key_count,
        }

    def key_health_snapshot(self) -> list[dict]:
        return self.registry.snapshot()


def build_pipeline(
    registry: KeyHealthRegistry,
    config: AppConfigLoader = app_config,
    use_mocks: bool = False,
) -> ContentPipeline:
    """Process-wide pipeline: system keys are read once here."""
    system_credentials = load_system_credentials(config.section("primary")["api_key_envs"])
    adapter_factory = None
    if use_mocks:
        if not system_credentials:
            system_credentials = (Credential(MOCK_CREDENTIAL, CredentialOrigin.SYSTEM),)
        adapter_factory = lambda cfg, cred: cfg.create_adapter(cred, use_mocks=True)  # noqa: E731
    return ContentPipeline(
        registry,
        system_credentials=system_credentials,
        config_source=lambda: load_provider_configuration(config),
        adapter_factory=adapter_factory,
        config=config,
    )
