from __future__ import annotations

import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..core.app_config import app_config
from ..core.errors import (
    EmptyResponseError,
    ExhaustionError,
    ParseError,
    QuizForgeError,
    RequestError,
)
from ..core.key_health import KeyHealthRegistry
from ..core.logging_utils import configure_logging
from ..core.pipeline import ContentPipeline, build_pipeline
from ..core.provider_config import (
    ProviderConfiguration,
    load_provider_configuration,
    save_provider_configuration,
)
from ..core.quiz_builder import build_quiz
from ..core.runtime_data import get_runtime_paths, use_mocks
from ..core.sqlite_store import connect, fetch_logs
from ..core.types import (
    CognitiveLevel,
    Difficulty,
    GenerationRequest,
    QuestionType,
    ReadingMode,
)

load_dotenv()

logger = logging.getLogger(__name__)

app = FastAPI(title="LLM Quiz Forge")

registry = KeyHealthRegistry(cooldown_seconds=app_config.cooldown_seconds)
_pipeline: Optional[ContentPipeline] = None


def get_pipeline() -> ContentPipeline:
    global _pipeline
    if _pipeline is None:
        configure_logging(get_runtime_paths().logs_dir)
        _pipeline = build_pipeline(registry, app_config, use_mocks=use_mocks())
    return _pipeline


class GenerateQuizRequest(BaseModel):
    subject: str
    topic: str
    question_count: int = Field(10, ge=1, le=100)
    types: list[QuestionType] = Field(default_factory=lambda: [QuestionType.MULTIPLE_CHOICE])
    cognitive_levels: list[CognitiveLevel] = Field(
        default_factory=lambda: [CognitiveLevel.C2, CognitiveLevel.C3, CognitiveLevel.C4]
    )
    difficulty: Difficulty = Difficulty.MEDIUM
    subject_category: str = ""
    level: str = ""
    grade: str = ""
    sub_topic: str = ""
    mc_option_count: int = Field(5, ge=4, le=5)
    image_question_count: int = Field(0, ge=0)
    language: str = "ID"
    reading_mode: ReadingMode = ReadingMode.NONE
    ref_image: Optional[str] = None
    material_text: Optional[str] = None
    fact_check: bool = True
    user_credentials: list[str] = Field(default_factory=list)
    username: Optional[str] = None

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            subject=self.subject,
            topic=self.topic,
            question_count=self.question_count,
            types=tuple(self.types),
            cognitive_levels=tuple(self.cognitive_levels),
            difficulty=self.difficulty,
            subject_category=self.subject_category,
            level=self.level,
            grade=self.grade,
            sub_topic=self.sub_topic,
            mc_option_count=self.mc_option_count,
            image_question_count=self.image_question_count,
            language=self.language,
            reading_mode=self.reading_mode,
            ref_image=self.ref_image,
            material_text=self.material_text,
            fact_check=self.fact_check,
            user_credentials=tuple(self.user_credentials),
        )


class ImageRequest(BaseModel):
    prompt: str
    user_credentials: list[str] = Field(default_factory=list)


class CompatibleSettingsBody(BaseModel):
    baseUrl: str
    apiKey: str = ""
    textModel: str = ""
    imageModel: str = ""


class ProviderSettingsBody(BaseModel):
    provider: str = "PRIMARY"
    compatible: Optional[CompatibleSettingsBody] = None


def _status_for(error: QuizForgeError) -> int:
    if isinstance(error, ExhaustionError):
        return 503
    if isinstance(error, (ParseError, EmptyResponseError)):
        return 502
    if isinstance(error, RequestError):
        return 400
    return 500


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/api/keys/health")
def key_health() -> dict:
    return {"keys": registry.snapshot(), "summary": registry.summary()}


@app.get("/api/connection")
async def validate_connection() -> dict:
    return await get_pipeline().validate_connection()


@app.post("/api/quizzes/generate")
async def generate_quiz(req: GenerateQuizRequest) -> dict:
    try:
        result = await build_quiz(
            get_pipeline(), req.to_generation_request(), username=req.username
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except QuizForgeError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=exc.user_message) from exc
    return result.to_dict()


@app.post("/api/images")
async def generate_image(req: ImageRequest) -> dict:
    image_url = await get_pipeline().generate_image_for_question(req.prompt, req.user_credentials)
    return {"image_url": image_url}


@app.get("/api/settings/provider")
def get_provider_settings() -> dict:
    try:
        configuration = load_provider_configuration(app_config)
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return configuration.to_dict(mask_key=True)


@app.put("/api/settings/provider")
def put_provider_settings(body: ProviderSettingsBody) -> dict:
    data = body.model_dump(exclude_none=True)
    try:
        configuration = ProviderConfiguration.from_dict(data, app_config)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    save_provider_configuration(configuration)
    logger.info("Provider switched to %s", configuration.provider.value)
    return configuration.to_dict(mask_key=True)


@app.get("/api/logs")
def list_logs(limit: int = 100) -> dict:
    runtime_paths = get_runtime_paths()
    conn = connect(runtime_paths.db_path)
    logs = fetch_logs(conn, limit)
    conn.close()
    return {"logs": logs}
