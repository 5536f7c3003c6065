import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from llm_quiz_forge.adapters.mock_adapter import MOCK_IMAGE
from llm_quiz_forge.api import app as api_app
from llm_quiz_forge.api.app import app
from llm_quiz_forge.core.errors import EXHAUSTED_MESSAGE, ThrottledError
from llm_quiz_forge.core.key_health import KeyHealthRegistry
from llm_quiz_forge.core.pipeline import ContentPipeline
from llm_quiz_forge.core.provider_config import ProviderConfiguration
from llm_quiz_forge.core.rotation import RotationExecutor
from llm_quiz_forge.core.types import Credential

COMPAT_KEY = "sk-compatible-secret-123456"


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("QUIZ_FORGE_RUNTIME_DIR", str(tmp_path / "runtime-data"))
    monkeypatch.setenv("QUIZ_FORGE_ENV", "mock")
    monkeypatch.delenv("GEMINI_API_KEYS", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.setattr(api_app, "_pipeline", None)
    monkeypatch.setattr(api_app, "registry", KeyHealthRegistry())
    return TestClient(app)


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_generate_quiz_in_mock_mode(client):
    resp = client.post(
        "/api/quizzes/generate",
        json={
            "subject": "Mathematics",
            "topic": "Arithmetic",
            "question_count": 2,
            "types": ["MULTIPLE_CHOICE", "ESSAY"],
            "username": "guru01",
        },
    )
    assert resp.status_code == 200
    data = resp.json()
    assert [q["type"] for q in data["questions"]] == ["MULTIPLE_CHOICE", "ESSAY"]
    assert data["questions"][0]["imageUrl"] == MOCK_IMAGE
    assert data["blueprint"][0]["questionNumber"] == 1

    health = client.get("/api/keys/health").json()
    assert health["summary"]["pool_size"] == 1
    assert health["keys"][0]["usage_count"] >= 1

    logs = client.get("/api/logs", params={"limit": 10}).json()["logs"]
    assert logs[0]["action"] == "FINISH_GENERATE_QUIZ"
    assert logs[0]["username"] == "guru01"


def test_generate_quiz_validation(client):
    resp = client.post(
        "/api/quizzes/generate",
        json={"subject": "Math", "topic": "x", "types": []},
    )
    assert resp.status_code == 400

    resp = client.post(
        "/api/quizzes/generate",
        json={"subject": "Math", "topic": "x", "types": ["DRAWING"]},
    )
    assert resp.status_code == 422


def test_exhausted_pool_returns_503_and_image_fallback(client, monkeypatch):
    registry = KeyHealthRegistry()

    async def no_sleep(_):
        return None

    class Throttled:
        id = "throttled"

        async def generate_text(self, prompt):
            raise ThrottledError("429", status_code=429)

        async def generate_image(self, prompt):
            raise ThrottledError("429", status_code=429)

        async def aclose(self):
            return None

    pipeline = ContentPipeline(
        registry,
        system_credentials=[Credential("system-key-000000000000000")],
        config_source=ProviderConfiguration,
        adapter_factory=lambda cfg, cred: Throttled(),
        executor=RotationExecutor(registry, sleep=no_sleep),
    )
    monkeypatch.setattr(api_app, "_pipeline", pipeline)

    resp = client.post("/api/quizzes/generate", json={"subject": "Math", "topic": "x"})
    assert resp.status_code == 503
    assert resp.json()["detail"] == EXHAUSTED_MESSAGE

    resp = client.post("/api/images", json={"prompt": "a triangle"})
    assert resp.status_code == 200
    assert resp.json()["image_url"].startswith("data:image/svg+xml;base64,")


def test_image_endpoint_in_mock_mode(client):
    resp = client.post("/api/images", json={"prompt": "a triangle"})
    assert resp.json()["image_url"] == MOCK_IMAGE


def test_provider_settings_roundtrip_masks_key(client):
    resp = client.get("/api/settings/provider")
    assert resp.status_code == 200
    assert resp.json() == {"provider": "PRIMARY"}

    resp = client.put(
        "/api/settings/provider",
        json={
            "provider": "COMPATIBLE",
            "compatible": {"baseUrl": "https://llm.example/v1", "apiKey": COMPAT_KEY},
        },
    )
    assert resp.status_code == 200

    data = client.get("/api/settings/provider").json()
    assert data["provider"] == "COMPATIBLE"
    assert data["compatible"]["baseUrl"] == "https://llm.example/v1"
    assert data["compatible"]["apiKey"] == "...123456"
    assert data["compatible"]["textModel"]
    assert COMPAT_KEY not in str(data)


def test_provider_settings_rejects_bad_input(client):
    resp = client.put("/api/settings/provider", json={"provider": "SOMETHING"})
    assert resp.status_code == 400

    resp = client.put("/api/settings/provider", json={"provider": "COMPATIBLE"})
    assert resp.status_code == 400


def test_connection_in_mock_mode(client):
    data = client.get("/api/connection").json()
    assert data["success"] is True
    assert data["key_count"] == 1
