from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
import uvicorn
import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from ..core.app_config import app_config
from ..core.errors import QuizForgeError
from ..core.key_health import KeyHealthRegistry
from ..core.logging_utils import configure_logging
from ..core.pipeline import build_pipeline
from ..core.provider_config import (
    ProviderConfiguration,
    load_provider_configuration,
    save_provider_configuration,
)
from ..core.quiz_builder import build_quiz
from ..core.runtime_data import get_runtime_paths, use_mocks
from ..core.types import (
    CognitiveLevel,
    Difficulty,
    GenerationRequest,
    QuestionType,
    ReadingMode,
)

app = typer.Typer()

registry = KeyHealthRegistry(cooldown_seconds=app_config.cooldown_seconds)


def _pipeline():
    configure_logging(get_runtime_paths().logs_dir)
    return build_pipeline(registry, app_config, use_mocks=use_mocks())


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _print_key_health() -> None:
    summary = registry.summary()
    typer.echo(
        f"🔑 Pool: {summary['pool_size']} key(s), "
        f"usage {summary['total_usage']}, errors {summary['total_errors']}"
    )
    for row in registry.snapshot():
        status = "✅" if row["status"] == "ACTIVE" else "⚠️ "
        typer.echo(
            f"  {status} {row['masked_id']} [{row['origin']}] {row['status']} "
            f"used={row['usage_count']} errors={row['error_count']}"
        )


@app.command("quiz:generate")
def quiz_generate(
    subject: str,
    topic: str,
    count: int = 10,
    types: str = "MULTIPLE_CHOICE",
    cognitive: str = "C2,C3,C4",
    difficulty: str = "MEDIUM",
    language: str = "ID",
    reading_mode: str = "none",
    images: int = 0,
    material: Optional[Path] = None,
    user_keys: str = "",
    fact_check: bool = True,
    out: Optional[Path] = None,
) -> None:
    """Generate a quiz and write it as YAML (questions + blueprint)."""
    try:
        request = GenerationRequest(
            subject=subject,
            topic=topic,
            question_count=count,
            types=tuple(QuestionType(t.upper()) for t in _split(types)),
            cognitive_levels=tuple(CognitiveLevel(c.upper()) for c in _split(cognitive)),
            difficulty=Difficulty(difficulty.upper()),
            language=language.upper(),
            reading_mode=ReadingMode(reading_mode.lower()),
            image_question_count=images,
            material_text=material.read_text(encoding="utf-8") if material else None,
            fact_check=fact_check,
            user_credentials=tuple(_split(user_keys)),
        )
    except ValueError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)

    def progress(percent: int, step: str) -> None:
        typer.echo(f"  [{percent:3d}%] {step}")

    typer.echo(f"🤖 Generating {count} question(s) on '{topic}'")
    try:
        result = asyncio.run(build_quiz(_pipeline(), request, progress=progress))
    except (QuizForgeError, ValueError) as e:
        typer.echo(f"❌ {getattr(e, 'user_message', None) or e}")
        _print_key_health()
        raise typer.Exit(1)

    if out is None:
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        out = get_runtime_paths().quizzes_dir / f"{timestamp}_quiz.yaml"
    out.write_text(
        yaml.safe_dump(result.to_dict(), allow_unicode=True, sort_keys=False), encoding="utf-8"
    )
    typer.echo(f"✅ {len(result.questions)} question(s) written to {out}")


@app.command("image:generate")
def image_generate(prompt: str, out: Optional[Path] = None, user_keys: str = "") -> None:
    """Generate one illustration; falls back to a placeholder SVG."""
    image = asyncio.run(_pipeline().generate_image_for_question(prompt, _split(user_keys)))
    if out:
        out.write_text(image, encoding="utf-8")
        typer.echo(f"🖼️  Image data URI written to {out}")
    else:
        typer.echo(image[:120] + ("..." if len(image) > 120 else ""))


@app.command("keys:health")
def keys_health() -> None:
    """Show the key pool as seen by this process."""
    pipeline = _pipeline()
    for credential in pipeline.system_credentials:
        registry.ensure(credential)
    _print_key_health()


@app.command("provider:show")
def provider_show() -> None:
    """Print the active provider configuration (API keys masked)."""
    configuration = load_provider_configuration(app_config)
    typer.echo(json.dumps(configuration.to_dict(mask_key=True), indent=2))


@app.command("provider:set")
def provider_set(
    provider: str,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    text_model: Optional[str] = None,
    image_model: Optional[str] = None,
) -> None:
    """Switch between PRIMARY and an OpenAI-compatible provider."""
    data: dict = {"provider": provider}
    if provider.upper() == "COMPATIBLE":
        data["compatible"] = {
            "baseUrl": base_url,
            "apiKey": api_key,
            "textModel": text_model,
            "imageModel": image_model,
        }
    try:
        configuration = ProviderConfiguration.from_dict(data, app_config)
    except ValueError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)
    save_provider_configuration(configuration)
    typer.echo(f"✅ Provider set to {configuration.provider.value}")


@app.command("provider:validate")
def provider_validate() -> None:
    """Ping the configured provider through the key pool."""
    result = asyncio.run(_pipeline().validate_connection())
    status = "✅" if result["success"] else "❌"
    typer.echo(
        f"{status} {result['message']} (latency {result['latency_ms']} ms, "
        f"{result['key_count']} key(s))"
    )
    if not result["success"]:
        raise typer.Exit(1)


@app.command("serve")
def serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the HTTP API."""
    uvicorn.run("llm_quiz_forge.api.app:app", host=host, port=port)


if __name__ == "__main__":
    app()
