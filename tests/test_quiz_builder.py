import sys, pathlib; sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))
import asyncio

import pytest

from llm_quiz_forge.adapters.mock_adapter import MOCK_IMAGE, MockAdapter
from llm_quiz_forge.core.errors import ExhaustionError, ThrottledError
from llm_quiz_forge.core.key_health import KeyHealthRegistry
from llm_quiz_forge.core.pipeline import ContentPipeline
from llm_quiz_forge.core.provider_config import ProviderConfiguration
from llm_quiz_forge.core.quiz_builder import build_quiz
from llm_quiz_forge.core.rotation import RotationExecutor
from llm_quiz_forge.core.runtime_data import build_runtime_paths
from llm_quiz_forge.core.sqlite_store import connect, fetch_logs
from llm_quiz_forge.core.types import Credential, GenerationRequest, QuestionType

SYSTEM_KEY = "system-key-000000000000000"


class ThrottledAdapter(MockAdapter):
    async def generate_text(self, prompt):
        raise ThrottledError("429 Too Many Requests", status_code=429)


def make_pipeline(adapter_cls=MockAdapter):
    registry = KeyHealthRegistry()

    async def no_sleep(_):
        return None

    return ContentPipeline(
        registry,
        system_credentials=[Credential(SYSTEM_KEY)],
        config_source=ProviderConfiguration,
        adapter_factory=lambda cfg, cred: adapter_cls(),
        executor=RotationExecutor(registry, sleep=no_sleep),
    )


def quiz_request(**overrides):
    params = dict(
        subject="Mathematics",
        topic="Arithmetic",
        question_count=2,
        types=(QuestionType.MULTIPLE_CHOICE, QuestionType.ESSAY),
    )
    params.update(overrides)
    return GenerationRequest(**params)


def test_build_quiz_generates_images_and_logs(tmp_path):
    progress = []
    result = asyncio.run(
        build_quiz(
            make_pipeline(),
            quiz_request(),
            progress=lambda percent, step: progress.append(percent),
            username="guru01",
            runtime_dir=tmp_path,
        )
    )

    assert [q.type for q in result.questions] == [QuestionType.MULTIPLE_CHOICE, QuestionType.ESSAY]
    assert result.questions[0].image_url == MOCK_IMAGE
    assert result.questions[1].image_url is None
    assert progress[0] == 0 and progress[-1] == 100
    assert progress == sorted(progress)
    assert 95 in progress

    conn = connect(build_runtime_paths(tmp_path).db_path)
    logs = fetch_logs(conn)
    conn.close()
    assert [row["action"] for row in logs] == ["FINISH_GENERATE_QUIZ", "START_GENERATE_QUIZ"]
    assert logs[0]["level"] == "SUCCESS"
    assert logs[1]["username"] == "guru01"
    assert '"subject": "Mathematics"' in logs[1]["details"]


def test_build_quiz_without_images_reports_95(tmp_path):
    payload = {
        "questions": [{"text": "Q", "type": "ESSAY", "options": []}],
        "blueprint": [],
    }

    class EssayAdapter(MockAdapter):
        def __init__(self):
            super().__init__(payload=payload)

    progress = []
    asyncio.run(
        build_quiz(
            make_pipeline(EssayAdapter),
            quiz_request(question_count=1, types=(QuestionType.ESSAY,)),
            progress=lambda percent, step: progress.append(percent),
            runtime_dir=tmp_path,
        )
    )
    assert progress == [0, 20, 60, 95, 100]


def test_build_quiz_failure_is_logged_and_raised(tmp_path):
    with pytest.raises(ExhaustionError):
        asyncio.run(build_quiz(make_pipeline(ThrottledAdapter), quiz_request(), runtime_dir=tmp_path))

    conn = connect(build_runtime_paths(tmp_path).db_path)
    logs = fetch_logs(conn)
    conn.close()
    assert logs[0]["action"] == "ERROR_GENERATE_QUIZ"
    assert logs[0]["level"] == "ERROR"
    assert "exhausted" in logs[0]["details"]


@pytest.mark.parametrize("field", ["types", "cognitive_levels"])
def test_build_quiz_rejects_empty_selection(tmp_path, field):
    with pytest.raises(ValueError):
        asyncio.run(
            build_quiz(make_pipeline(), quiz_request(**{field: ()}), runtime_dir=tmp_path)
        )
