"""Credential rotation across ordered phases of API keys."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar, Union

from .errors import ExhaustionError, RequestError, classify
from .key_health import KeyHealthRegistry
from .types import Credential, CredentialPhase, FailureKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DELAY_SECONDS = 0.5


def _last_resort(phases: Sequence[CredentialPhase]) -> Union[tuple[int, int], None]:
    """Position (phase index, credential index) of the final candidate."""
    for phase_idx in range(len(phases) - 1, -1, -1):
        credentials = phases[phase_idx].credentials
        if credentials:
            return phase_idx, len(credentials) - 1
    return None


class RotationExecutor:
    """Runs one logical operation against credentials until one succeeds.

    Phases are tried in order and credentials within a phase in order. A key
    that was throttled within the registry's cool-down window is skipped,
    except for the very last candidate, which is always attempted so the
    call never fails without trying anything. ``RequestError`` escapes
    immediately because another key cannot fix a malformed request.
    """

    def __init__(
        self,
        registry: KeyHealthRegistry,
        *,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[Any], Awaitable[T]],
        phases: Sequence[CredentialPhase],
        make_handle: Union[Callable[[Credential], Any], None] = None,
    ) -> T:
        last_resort = _last_resort(phases)
        if last_resort is None:
            raise ExhaustionError(
                "No API key configured",
                user_message="No API key is configured for the AI provider.",
            )

        last_error: Union[BaseException, None] = None
        attempts = 0
        for phase_idx, phase in enumerate(phases):
            if not phase.credentials:
                continue
            for cred_idx, credential in enumerate(phase.credentials):
                self.registry.ensure(credential)
                if self.registry.is_cooling_down(credential):
                    if (phase_idx, cred_idx) != last_resort:
                        logger.warning(
                            "Skipping limited key %s in phase '%s' (cool-down active)",
                            credential.masked,
                            phase.name,
                        )
                        continue
                    logger.warning(
                        "All keys limited. Forcing retry on last key: %s", credential.masked
                    )

                if attempts:
                    await self._sleep(self.delay_seconds)
                attempts += 1

                try:
                    handle = make_handle(credential) if make_handle else credential
                    result = await operation(handle)
                except RequestError:
                    self.registry.record_failure(credential, FailureKind.REQUEST)
                    logger.error("Request rejected using key %s; not rotating", credential.masked)
                    raise
                except Exception as exc:
                    kind = classify(exc)
                    self.registry.record_failure(credential, kind)
                    last_error = exc
                    logger.warning(
                        "Key %s failed (%s): %s. Rotating...",
                        credential.masked,
                        kind.value,
                        str(exc)[:150],
                    )
                    continue
                self.registry.record_success(credential)
                return result
            logger.info("Phase '%s' exhausted", phase.name)

        logger.error("All API keys exhausted after %d attempt(s)", attempts)
        raise ExhaustionError(
            f"All API keys exhausted: {last_error}", last_error=last_error
        ) from last_error
