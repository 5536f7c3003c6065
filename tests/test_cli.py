import json
import sys
from pathlib import Path

import pytest
import typer
import yaml

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from llm_quiz_forge.cli import main as cli_main
from llm_quiz_forge.cli.main import (
    image_generate,
    keys_health,
    provider_set,
    provider_show,
    provider_validate,
    quiz_generate,
)
from llm_quiz_forge.core.key_health import KeyHealthRegistry
from llm_quiz_forge.core.sqlite_store import connect, fetch_logs


@pytest.fixture()
def runtime_dir(tmp_path, monkeypatch):
    runtime_dir = tmp_path / "runtime-data"
    monkeypatch.setenv("QUIZ_FORGE_RUNTIME_DIR", str(runtime_dir))
    monkeypatch.setenv("QUIZ_FORGE_ENV", "mock")
    monkeypatch.delenv("GEMINI_API_KEYS", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.setattr(cli_main, "registry", KeyHealthRegistry())
    monkeypatch.chdir(tmp_path)
    return runtime_dir


def test_cli_mock_quiz_written(tmp_path, runtime_dir):
    out = tmp_path / "quiz.yaml"
    quiz_generate("Mathematics", "Arithmetic", count=2, types="MULTIPLE_CHOICE,ESSAY", out=out)

    assert out.exists(), "Expected the quiz YAML to be written"
    data = yaml.safe_load(out.read_text(encoding="utf-8"))
    assert [q["type"] for q in data["questions"]] == ["MULTIPLE_CHOICE", "ESSAY"]
    assert data["questions"][0]["imageUrl"].startswith("data:image/png;base64,")
    assert len(data["blueprint"]) == 2

    db_path = runtime_dir / "db" / "quizforge.sqlite3"
    assert db_path.exists(), "Expected runtime SQLite database"
    conn = connect(db_path)
    logs = fetch_logs(conn)
    conn.close()
    assert logs[0]["action"] == "FINISH_GENERATE_QUIZ"


def test_cli_default_output_goes_to_runtime_quizzes(runtime_dir):
    quiz_generate("Mathematics", "Arithmetic", count=2)
    written = list((runtime_dir / "quizzes").glob("*_quiz.yaml"))
    assert len(written) == 1


def test_cli_rejects_unknown_type(runtime_dir):
    with pytest.raises(typer.Exit):
        quiz_generate("Mathematics", "Arithmetic", types="DRAWING")


def test_cli_image_written(tmp_path, runtime_dir):
    out = tmp_path / "image.txt"
    image_generate("a right triangle", out=out)
    assert out.read_text(encoding="utf-8").startswith("data:image/png;base64,")


def test_cli_provider_set_and_show(runtime_dir, capsys):
    provider_set(
        "COMPATIBLE",
        base_url="https://llm.example/v1",
        api_key="sk-compatible-secret-123456",
    )
    capsys.readouterr()
    provider_show()
    shown = json.loads(capsys.readouterr().out)
    assert shown["provider"] == "COMPATIBLE"
    assert shown["compatible"]["apiKey"] == "...123456"

    with pytest.raises(typer.Exit):
        provider_set("NOPE")


def test_cli_keys_health_and_validate(runtime_dir, capsys):
    provider_validate()
    keys_health()
    out = capsys.readouterr().out
    assert "Active & Responding" in out
    assert "Pool: 1 key(s)" in out
