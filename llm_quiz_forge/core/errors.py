"""Error taxonomy shared by the adapters, the rotation executor and the pipeline."""

from __future__ import annotations

from typing import Union

from .types import FailureKind

THROTTLE_STATUS_CODES = frozenset({429, 503})
THROTTLE_MARKERS = (
    "429",
    "503",
    "quota",
    "overload",
    "rate limit",
    "rate_limit",
    "too many requests",
    "resource has been exhausted",
    "resource_exhausted",
)

EXHAUSTED_MESSAGE = "All AI capacity is currently exhausted. Please try again shortly."
MALFORMED_MESSAGE = "The AI output was malformed. Please try again."


class QuizForgeError(Exception):
    user_message = "Quiz generation failed. Please try again."

    def __init__(self, message: str = "", *, user_message: Union[str, None] = None) -> None:
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class ProviderError(QuizForgeError):
    """A provider call failed; rotated as a generic ERROR unless subclassed."""

    def __init__(
        self,
        message: str = "",
        *,
        status_code: Union[int, None] = None,
        user_message: Union[str, None] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.status_code = status_code


class ThrottledError(ProviderError):
    user_message = EXHAUSTED_MESSAGE


class RequestError(ProviderError):
    user_message = "The generation request was rejected by the AI provider. Check the quiz parameters."


class TransportError(ProviderError):
    user_message = "Could not reach the AI provider. Please try again shortly."


class ParseError(QuizForgeError):
    user_message = MALFORMED_MESSAGE


class EmptyResponseError(QuizForgeError):
    user_message = "AI returned an empty response. Try reducing the question count or changing the topic."


class GenerationStoppedError(EmptyResponseError):
    user_message = "AI generation stopped unexpectedly. Please try again."


class ExhaustionError(QuizForgeError):
    user_message = EXHAUSTED_MESSAGE

    def __init__(
        self,
        message: str = "",
        *,
        last_error: Union[BaseException, None] = None,
        user_message: Union[str, None] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.last_error = last_error


def looks_throttled(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in THROTTLE_MARKERS)


def error_from_status(status_code: int, message: str, *, provider: str) -> ProviderError:
    """Normalise an HTTP failure from ``provider`` into the shared taxonomy."""
    detail = f"{provider} API error ({status_code}): {message}"
    if status_code in THROTTLE_STATUS_CODES or looks_throttled(message):
        return ThrottledError(detail, status_code=status_code)
    lowered = message.lower()
    if status_code == 400 and "api key" not in lowered and "api_key" not in lowered:
        return RequestError(detail, status_code=status_code)
    if status_code == 404:
        return RequestError(detail, status_code=status_code)
    # anything else is tied to one key or transient; rotated
    return ProviderError(detail, status_code=status_code)


def classify(error: BaseException) -> FailureKind:
    if isinstance(error, ThrottledError):
        return FailureKind.THROTTLED
    if isinstance(error, RequestError):
        return FailureKind.REQUEST
    if isinstance(error, TransportError):
        return FailureKind.TRANSPORT
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status in THROTTLE_STATUS_CODES or looks_throttled(str(error)):
        return FailureKind.THROTTLED
    return FailureKind.ERROR
