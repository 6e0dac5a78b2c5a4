"""Tests for SessionService: turn append, clone and branch."""

import pytest

from turnflow.observability import get_trace_context
from turnflow.schemas.session import AutoReply, Session
from turnflow.schemas.turn import Option, Turn
from turnflow.services.session_service import SessionService

# ---- In-memory repositories ----


class MemorySessionRepository:
    def __init__(self):
        self.records: dict[str, Session] = {}

    async def get(self, session_id):
        session = self.records.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def save(self, session):
        self.records[session.id] = session.model_copy(deep=True)

    async def delete(self, session_id):
        return self.records.pop(session_id, None) is not None


class MemoryTurnRepository:
    def __init__(self, fail_on_get: set[str] | None = None):
        self.records: dict[str, Turn] = {}
        self.fail_on_get = fail_on_get or set()
        self.loaded: list[str] = []

    async def get(self, turn_id):
        self.loaded.append(turn_id)
        if turn_id in self.fail_on_get:
            raise OSError("disk unavailable")
        turn = self.records.get(turn_id)
        return turn.model_copy(deep=True) if turn else None

    async def save(self, turn):
        self.records[turn.id] = turn.model_copy(deep=True)

    async def delete(self, turn_id):
        return self.records.pop(turn_id, None) is not None


async def seed(service: SessionService, contents: list[str]) -> Session:
    session = Session(title="Night Market", flow_id="flow-1", auto_reply=AutoReply.ROTATE)
    await service.sessions.save(session)
    for content in contents:
        turn = Turn.create(session_id=session.id, options=[Option(content=content)]).unwrap()
        (await service.add_turn(session.id, turn)).unwrap()
    return (await service.get_session(session.id)).unwrap()


# ---- Tests ----


@pytest.mark.asyncio
async def test_add_turn_appends_in_order():
    service = SessionService(MemorySessionRepository(), MemoryTurnRepository())
    session = await seed(service, ["t1", "t2"])

    assert len(session.turn_ids) == 2
    first = (await service.get_turn(session.turn_ids[0])).unwrap()
    assert first.content == "t1"


@pytest.mark.asyncio
async def test_add_turn_unknown_session():
    service = SessionService(MemorySessionRepository(), MemoryTurnRepository())
    turn = Turn.create(session_id="nope", options=[Option()]).unwrap()

    result = await service.add_turn("nope", turn)

    assert result.is_failure
    assert "not found" in result.error


@pytest.mark.asyncio
async def test_clone_with_history():
    turns = MemoryTurnRepository()
    service = SessionService(MemorySessionRepository(), turns)
    source = await seed(service, ["t1", "t2", "t3"])

    clone = (await service.clone_session(source.id, include_history=True)).unwrap()

    assert clone.id != source.id
    assert clone.title == "Copy of Night Market"
    assert clone.flow_id == "flow-1"
    assert clone.auto_reply == AutoReply.ROTATE
    assert len(clone.turn_ids) == 3
    assert set(clone.turn_ids).isdisjoint(source.turn_ids)

    contents = []
    for turn_id in clone.turn_ids:
        turn = (await service.get_turn(turn_id)).unwrap()
        assert turn.session_id == clone.id
        contents.append(turn.content)
    assert contents == ["t1", "t2", "t3"]


@pytest.mark.asyncio
async def test_clone_without_history():
    service = SessionService(MemorySessionRepository(), MemoryTurnRepository())
    source = await seed(service, ["t1", "t2"])

    clone = (await service.clone_session(source.id, include_history=False)).unwrap()

    assert clone.turn_ids == []
    assert clone.title == "Copy of Night Market"


@pytest.mark.asyncio
async def test_clone_leaves_source_untouched():
    service = SessionService(MemorySessionRepository(), MemoryTurnRepository())
    source = await seed(service, ["t1"])

    await service.clone_session(source.id)

    reloaded = (await service.get_session(source.id)).unwrap()
    assert reloaded.turn_ids == source.turn_ids
    assert reloaded.title == "Night Market"


@pytest.mark.asyncio
async def test_clone_missing_session():
    service = SessionService(MemorySessionRepository(), MemoryTurnRepository())
    result = await service.clone_session("ghost")
    assert result.is_failure


@pytest.mark.asyncio
async def test_clone_aborts_on_first_failing_turn():
    turns = MemoryTurnRepository()
    sessions = MemorySessionRepository()
    service = SessionService(sessions, turns)
    source = await seed(service, ["t1", "t2", "t3"])
    turns.fail_on_get = {source.turn_ids[1]}
    turns.loaded.clear()

    result = await service.clone_session(source.id)

    assert result.is_failure
    assert "disk unavailable" in result.error
    # Third turn is never attempted
    assert turns.loaded == source.turn_ids[:2]

    # Shell is left in place with the turns copied before the failure
    shells = [s for s in sessions.records.values() if s.title == "Copy of Night Market"]
    assert len(shells) == 1
    assert len(shells[0].turn_ids) == 1


@pytest.mark.asyncio
async def test_branch_copies_prefix():
    service = SessionService(MemorySessionRepository(), MemoryTurnRepository())
    source = await seed(service, ["t1", "t2", "t3"])

    branch = (await service.branch_session(source.id, source.turn_ids[1])).unwrap()

    contents = [(await service.get_turn(t)).unwrap().content for t in branch.turn_ids]
    assert contents == ["t1", "t2"]


@pytest.mark.asyncio
async def test_branch_at_unknown_turn():
    sessions = MemorySessionRepository()
    service = SessionService(sessions, MemoryTurnRepository())
    source = await seed(service, ["t1"])

    result = await service.branch_session(source.id, "not-a-turn")

    assert result.is_failure
    assert "not found" in result.error
    assert len(sessions.records) == 1


@pytest.mark.asyncio
async def test_clone_does_not_leave_session_id_in_trace_context():
    service = SessionService(MemorySessionRepository(), MemoryTurnRepository())
    source = await seed(service, ["t1"])

    (await service.clone_session(source.id)).unwrap()

    assert "session_id" not in get_trace_context()
