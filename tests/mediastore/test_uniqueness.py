"""Tests for object key collision avoidance."""

from __future__ import annotations

import re
from collections.abc import Iterator

import pytest

from mediastore.errors import ConflictError, KeyExhaustionError
from mediastore.uniqueness import ensure_unique, random_suffix


class _Exists:
    """Exists-check over a fixed set of taken keys, counting calls."""

    def __init__(self, taken: set[str]) -> None:
        self.taken = taken
        self.calls: list[str] = []

    async def __call__(self, key: str) -> bool:
        self.calls.append(key)
        return key in self.taken


def _counter_suffixes() -> Iterator[str]:
    n = 0
    while True:
        n += 1
        yield f"-{n}"


@pytest.mark.asyncio
async def test_free_key_is_returned_unchanged() -> None:
    # Given: Nothing is stored yet
    exists = _Exists(set())

    # When: Negotiating a key
    key = await ensure_unique("2024/03/a.png", exists)

    # Then: The candidate is used after a single check
    assert key == "2024/03/a.png"
    assert exists.calls == ["2024/03/a.png"]


@pytest.mark.asyncio
async def test_taken_key_gets_suffix_before_extension() -> None:
    # Given: The candidate and its first variant are taken
    exists = _Exists({"2024/03/a.png", "2024/03/a-1.png"})
    suffixes = _counter_suffixes()

    # When: Negotiating a key
    key = await ensure_unique("2024/03/a.png", exists, suffix_factory=lambda: next(suffixes))

    # Then: The first free variant wins
    assert key == "2024/03/a-2.png"
    assert exists.calls == ["2024/03/a.png", "2024/03/a-1.png", "2024/03/a-2.png"]


@pytest.mark.asyncio
async def test_exhaustion_after_max_attempts() -> None:
    # Given: Every key is taken
    class _AlwaysTaken:
        calls = 0

        async def __call__(self, key: str) -> bool:
            self.calls += 1
            return True

    exists = _AlwaysTaken()

    # When/Then: Negotiation gives up with a conflict-kind error
    with pytest.raises(KeyExhaustionError) as exc_info:
        await ensure_unique("a.png", exists, max_attempts=4)

    assert isinstance(exc_info.value, ConflictError)
    assert exc_info.value.attempts == 4
    assert exc_info.value.key == "a.png"
    assert exists.calls == 4


@pytest.mark.asyncio
async def test_rejects_non_positive_attempts() -> None:
    with pytest.raises(ValueError):
        await ensure_unique("a.png", _Exists(set()), max_attempts=0)


@pytest.mark.asyncio
async def test_exists_errors_propagate() -> None:
    # Given: A backend that cannot answer
    async def broken(key: str) -> bool:
        raise ConnectionResetError("reset")

    # When/Then: The failure is not mistaken for "free"
    with pytest.raises(ConnectionResetError):
        await ensure_unique("a.png", broken)


def test_random_suffix_shape() -> None:
    assert re.fullmatch(r"-[0-9a-f]{6}", random_suffix())
