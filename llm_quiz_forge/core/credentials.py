from __future__ import annotations

import logging
import os
from typing import Iterable, Union

from .types import Credential, CredentialOrigin, CredentialPhase

logger = logging.getLogger(__name__)

DEFAULT_MIN_USER_KEY_LENGTH = 20


def parse_credential_list(raw: Union[str, None]) -> list[str]:
    """Split a comma separated key list such as ``"key1,key2,key3"``."""
    if not raw:
        return []
    return [k.strip() for k in raw.split(",") if k.strip()]


def load_system_credentials(env_names: Iterable[str]) -> tuple[Credential, ...]:
    """Read the shared key pool from the first populated environment variable."""
    for name in env_names:
        values = parse_credential_list(os.environ.get(name))
        if values:
            logger.info("Loaded %d system API key(s) from %s", len(values), name)
            return tuple(Credential(v, CredentialOrigin.SYSTEM) for v in dict.fromkeys(values))
    return ()


def sanitize_user_credentials(
    values: Union[Iterable[object], None],
    min_length: int = DEFAULT_MIN_USER_KEY_LENGTH,
) -> list[Credential]:
    """Keep well-formed user keys; malformed entries are dropped silently."""
    if not values:
        return []
    accepted: dict[str, Credential] = {}
    dropped = 0
    for value in values:
        if not isinstance(value, str):
            dropped += 1
            continue
        key = value.strip()
        if len(key) < min_length:
            dropped += 1
            continue
        accepted.setdefault(key, Credential(key, CredentialOrigin.USER))
    if dropped:
        logger.debug("Dropped %d malformed user API key(s)", dropped)
    return list(accepted.values())


def build_phases(
    user_credentials: Iterable[Credential],
    system_credentials: Iterable[Credential],
) -> list[CredentialPhase]:
    """User keys first so the shared pool is only used as a fallback."""
    user = list(user_credentials)
    seen = {c.value for c in user}
    system = [c for c in system_credentials if c.value not in seen]
    return [CredentialPhase("user", user), CredentialPhase("system", system)]
