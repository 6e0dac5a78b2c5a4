"""
Turn service: regeneration and option navigation.

Concurrent regenerations of the same turn are serialized by a per-turn
``asyncio.Lock`` around load → append → save, so every produced option is
kept. The selected index ends up on whichever append ran last.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from turnflow.observability import trace_scope
from turnflow.schemas.result import Result
from turnflow.schemas.turn import Option, Turn
from turnflow.storage.repositories import STORAGE_ERRORS, TurnRepository

logger = logging.getLogger(__name__)


class TurnService:
    def __init__(self, turns: TurnRepository):
        self.turns = turns
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _turn_lock(self, turn_id: str) -> AsyncIterator[None]:
        """Hold the turn's lock; the entry is dropped once no caller needs it."""
        lock = self._locks.setdefault(turn_id, asyncio.Lock())
        self._lock_users[turn_id] = self._lock_users.get(turn_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[turn_id] -= 1
            if self._lock_users[turn_id] == 0:
                del self._lock_users[turn_id]
                del self._locks[turn_id]

    async def _update(self, turn_id: str, mutate: Callable[[Turn], None]) -> Result[Turn]:
        with trace_scope(turn_id=turn_id):
            async with self._turn_lock(turn_id):
                return await self._load_mutate_save(turn_id, mutate)

    async def _load_mutate_save(
        self, turn_id: str, mutate: Callable[[Turn], None]
    ) -> Result[Turn]:
        try:
            turn = await self.turns.get(turn_id)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to load turn {turn_id}: {e}")
            return Result.fail(f"Failed to load turn {turn_id}: {e}")
        if turn is None:
            return Result.fail(f"Turn not found: {turn_id}")

        mutate(turn)

        try:
            await self.turns.save(turn)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to save turn {turn_id}: {e}")
            return Result.fail(f"Failed to save turn {turn_id}: {e}")
        return Result.ok(turn)

    async def add_option(self, turn_id: str, option: Option) -> Result[Turn]:
        """Append a regenerated option to the turn and select it."""
        result = await self._update(turn_id, lambda turn: turn.add_option(option))
        if result.success:
            logger.debug(
                f"Turn {turn_id} now has {len(result.value.options)} options",
                extra={"turn_id": turn_id},
            )
        return result

    async def prev_option(self, turn_id: str) -> Result[Turn]:
        return await self._update(turn_id, lambda turn: turn.prev_option())

    async def next_option(self, turn_id: str) -> Result[Turn]:
        return await self._update(turn_id, lambda turn: turn.next_option())

    async def set_content(self, turn_id: str, content: str) -> Result[Turn]:
        return await self._update(turn_id, lambda turn: turn.set_content(content))

    async def set_translation(self, turn_id: str, language: str, text: str) -> Result[Turn]:
        return await self._update(turn_id, lambda turn: turn.set_translation(language, text))
