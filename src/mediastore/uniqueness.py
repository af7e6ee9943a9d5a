"""Object key collision avoidance."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Awaitable, Callable

from mediastore.errors import KeyExhaustionError
from mediastore.path_template import insert_suffix

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10

ExistsCheck = Callable[[str], Awaitable[bool]]


def random_suffix() -> str:
    return f"-{secrets.token_hex(3)}"


async def ensure_unique(
    candidate_key: str,
    exists_check: ExistsCheck,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    suffix_factory: Callable[[], str] = random_suffix,
) -> str:
    """Return ``candidate_key`` or a suffixed variant that does not exist yet.

    ``exists_check`` is called at most ``max_attempts`` times in total.

    Raises:
        KeyExhaustionError: Every probed key already exists.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    key = candidate_key
    for attempt in range(1, max_attempts + 1):
        if not await exists_check(key):
            if attempt > 1:
                logger.debug("Resolved key collision: %s -> %s", candidate_key, key)
            return key
        key = insert_suffix(candidate_key, suffix_factory())

    raise KeyExhaustionError(candidate_key, max_attempts)
