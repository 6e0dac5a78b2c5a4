"""
Session service: turn append, clone and branch.

Clone is multi-step but not transactional. Each save is atomic on its own;
the first failing load or save aborts the clone and is returned as a failed
Result. The already-saved shell session is left in place (an empty orphan
session is clutter, not corruption).
"""

import logging

from turnflow.observability import trace_scope
from turnflow.schemas.result import Result
from turnflow.schemas.session import Session
from turnflow.schemas.turn import Turn
from turnflow.storage.repositories import STORAGE_ERRORS, SessionRepository, TurnRepository

logger = logging.getLogger(__name__)


class SessionService:
    """Session-level operations over the session and turn repositories."""

    def __init__(self, sessions: SessionRepository, turns: TurnRepository):
        self.sessions = sessions
        self.turns = turns

    async def get_session(self, session_id: str) -> Result[Session]:
        try:
            session = await self.sessions.get(session_id)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to load session {session_id}: {e}")
            return Result.fail(f"Failed to load session {session_id}: {e}")
        if session is None:
            return Result.fail(f"Session not found: {session_id}")
        return Result.ok(session)

    async def get_turn(self, turn_id: str) -> Result[Turn]:
        try:
            turn = await self.turns.get(turn_id)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to load turn {turn_id}: {e}")
            return Result.fail(f"Failed to load turn {turn_id}: {e}")
        if turn is None:
            return Result.fail(f"Turn not found: {turn_id}")
        return Result.ok(turn)

    async def save_session(self, session: Session) -> Result[Session]:
        try:
            await self.sessions.save(session)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to save session {session.id}: {e}")
            return Result.fail(f"Failed to save session {session.id}: {e}")
        return Result.ok(session)

    async def add_turn(self, session_id: str, turn: Turn) -> Result[Turn]:
        """
        Persist *turn* and append it to the session's turn list.

        This is the append path used by live chat as well as by clone, so the
        session's turn order and membership stay consistent either way.
        """
        session_result = await self.get_session(session_id)
        if session_result.is_failure:
            return Result.fail(session_result.error)
        session = session_result.value

        if turn.session_id != session_id:
            turn = turn.model_copy(update={"session_id": session_id})

        try:
            await self.turns.save(turn)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to save turn {turn.id}: {e}")
            return Result.fail(f"Failed to save turn {turn.id}: {e}")

        session.add_turn_id(turn.id)
        saved = await self.save_session(session)
        if saved.is_failure:
            return Result.fail(saved.error)
        return Result.ok(turn)

    async def clone_session(
        self,
        session_id: str,
        include_history: bool = True,
        until_turn_id: str | None = None,
    ) -> Result[Session]:
        """
        Copy a session under a new identity.

        Steps:
        1. Load the source session
        2. Save a shell: fresh id, title "Copy of {title}", no turns
        3. If *include_history*, copy the source turns in order, stopping
           after *until_turn_id* when given; each copy gets a fresh id and
           is appended through :meth:`add_turn`
        4. Re-fetch and return the clone

        Args:
            session_id: Source session
            include_history: Copy turns as well as settings
            until_turn_id: Last turn to copy (inclusive)

        Returns:
            Result wrapping the new session
        """
        with trace_scope(session_id=session_id):
            return await self._clone_session(session_id, include_history, until_turn_id)

    async def _clone_session(
        self, session_id: str, include_history: bool, until_turn_id: str | None
    ) -> Result[Session]:
        source_result = await self.get_session(session_id)
        if source_result.is_failure:
            return source_result
        source = source_result.value

        turn_ids = list(source.turn_ids)
        if until_turn_id is not None:
            if until_turn_id not in turn_ids:
                return Result.fail(f"Turn {until_turn_id} not found in session {session_id}")
            turn_ids = turn_ids[: turn_ids.index(until_turn_id) + 1]

        shell = source.copy_shell()
        saved = await self.save_session(shell)
        if saved.is_failure:
            return saved

        if include_history:
            for turn_id in turn_ids:
                turn_result = await self.get_turn(turn_id)
                if turn_result.is_failure:
                    logger.error(
                        f"Aborting clone of {session_id} into {shell.id}: {turn_result.error}",
                        extra={"event": "clone_aborted", "turn_id": turn_id},
                    )
                    return Result.fail(turn_result.error)

                appended = await self.add_turn(shell.id, turn_result.value.clone(shell.id))
                if appended.is_failure:
                    logger.error(
                        f"Aborting clone of {session_id} into {shell.id}: {appended.error}",
                        extra={"event": "clone_aborted", "turn_id": turn_id},
                    )
                    return Result.fail(appended.error)

        logger.info(
            f"Cloned session {session_id} into {shell.id} "
            f"({len(turn_ids) if include_history else 0} turns)",
            extra={"event": "session_cloned"},
        )
        return await self.get_session(shell.id)

    async def branch_session(self, session_id: str, turn_id: str) -> Result[Session]:
        """Clone the session with its history cut after *turn_id*."""
        return await self.clone_session(session_id, include_history=True, until_turn_id=turn_id)
