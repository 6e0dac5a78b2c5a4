"""Tests for the JSON file repositories."""

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from turnflow.graph.conditions import IfNodeDetail, LogicOperator
from turnflow.graph.data_store import DataStoreField, DataStoreNodeDetail
from turnflow.graph.edge import FlowEdge, FlowSpec
from turnflow.graph.node import AgentNode, Channel, EndNode, StartNode
from turnflow.schemas.session import Session
from turnflow.schemas.turn import Option, Turn
from turnflow.services.session_service import SessionService
from turnflow.storage.file_store import (
    FileDataStoreNodeRepository,
    FileFlowRepository,
    FileIfNodeRepository,
    FileSessionRepository,
    FileTurnRepository,
)
from turnflow.utils.io import atomic_write


class TestRecordStores:
    @pytest.mark.asyncio
    async def test_session_round_trip(self, tmp_path: Path):
        repo = FileSessionRepository(tmp_path)
        session = Session(title="Harbor", turn_ids=["t1", "t2"])

        await repo.save(session)
        loaded = await repo.get(session.id)

        assert loaded == session
        assert (tmp_path / "sessions" / f"{session.id}.json").exists()

    @pytest.mark.asyncio
    async def test_missing_record_is_none(self, tmp_path: Path):
        assert await FileTurnRepository(tmp_path).get("nope") is None

    @pytest.mark.asyncio
    async def test_delete(self, tmp_path: Path):
        repo = FileTurnRepository(tmp_path)
        turn = Turn.create(session_id="s", options=[Option(content="x")]).unwrap()
        await repo.save(turn)

        assert await repo.delete(turn.id) is True
        assert await repo.delete(turn.id) is False
        assert await repo.get(turn.id) is None

    @pytest.mark.asyncio
    async def test_flow_round_trip_keeps_node_variants(self, tmp_path: Path):
        repo = FileFlowRepository(tmp_path)
        flow = FlowSpec(
            id="flow-1",
            name="Story",
            nodes=[
                StartNode(id="s", channel=Channel.PLOT),
                AgentNode(id="agent-1"),
                EndNode(id="e", channel=Channel.PLOT),
            ],
            edges=[
                FlowEdge(id="e1", source="s", target="agent-1"),
                FlowEdge(id="e2", source="agent-1", target="e"),
            ],
            response_templates={Channel.PLOT: "{{plot_response}}"},
        )

        await repo.save(flow)
        loaded = await repo.get("flow-1")

        assert loaded == flow
        assert isinstance(loaded.nodes[1], AgentNode)
        assert loaded.nodes[0].channel == Channel.PLOT

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, tmp_path: Path):
        repo = FileSessionRepository(tmp_path)
        (tmp_path / "sessions").mkdir()
        (tmp_path / "sessions" / "bad.json").write_text("{not json")

        with pytest.raises(ValueError):
            await repo.get("bad")


class TestDetailRowStores:
    @pytest.mark.asyncio
    async def test_local_encoding_on_disk(self, tmp_path: Path):
        repo = FileIfNodeRepository(tmp_path)
        # Local rows keep millisecond precision
        stamp = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)
        detail = IfNodeDetail.create(
            id="if-1",
            flow_id="flow-1",
            name="Check",
            logic_operator=LogicOperator.OR,
            created_at=stamp,
            updated_at=stamp,
        ).unwrap()

        await repo.save(detail)

        raw = json.loads((tmp_path / "if_nodes" / "flow-1" / "if-1.json").read_text())
        assert raw["flow_id"] == "flow-1"
        assert isinstance(raw["conditions"], str)
        assert await repo.get("flow-1", "if-1") == detail

    @pytest.mark.asyncio
    async def test_cloud_encoding_on_disk(self, tmp_path: Path):
        repo = FileDataStoreNodeRepository(tmp_path, encoding="cloud")
        detail = DataStoreNodeDetail.create(
            id="ds-1",
            flow_id="flow-1",
            data_store_fields=[DataStoreField(id="f", schema_field_id="s", logic="1")],
        ).unwrap()

        await repo.save(detail)

        raw = json.loads((tmp_path / "data_store_nodes" / "flow-1" / "ds-1.json").read_text())
        assert raw["flowId"] == "flow-1"
        assert raw["dataStoreFields"][0]["schemaFieldId"] == "s"

    @pytest.mark.asyncio
    async def test_reads_rows_in_either_encoding(self, tmp_path: Path):
        local_repo = FileIfNodeRepository(tmp_path)
        cloud_repo = FileIfNodeRepository(tmp_path, encoding="cloud")
        await local_repo.save(IfNodeDetail.create(id="a", flow_id="f", name="A").unwrap())
        await cloud_repo.save(IfNodeDetail.create(id="b", flow_id="f", name="B").unwrap())

        rows = await local_repo.get_all_by_flow("f")

        assert [r.name for r in rows] == ["A", "B"]
        assert await local_repo.get_all_by_flow("other") == []

    @pytest.mark.asyncio
    async def test_delete_row(self, tmp_path: Path):
        repo = FileIfNodeRepository(tmp_path)
        await repo.save(IfNodeDetail.create(id="a", flow_id="f").unwrap())

        assert await repo.delete("f", "a") is True
        assert await repo.get("f", "a") is None


@pytest.mark.asyncio
async def test_clone_through_file_stores(tmp_path: Path):
    service = SessionService(FileSessionRepository(tmp_path), FileTurnRepository(tmp_path))
    session = Session(title="Harbor")
    await service.save_session(session)
    for content in ("t1", "t2", "t3"):
        turn = Turn.create(session_id=session.id, options=[Option(content=content)]).unwrap()
        await service.add_turn(session.id, turn)

    clone = (await service.clone_session(session.id, include_history=True)).unwrap()

    assert clone.title == "Copy of Harbor"
    assert len(clone.turn_ids) == 3
    assert len(list((tmp_path / "turns").glob("*.json"))) == 6


def test_atomic_write_keeps_original_on_error(tmp_path: Path):
    target = tmp_path / "record.json"
    target.write_text("original")

    with pytest.raises(RuntimeError):
        with atomic_write(target) as f:
            f.write("partial")
            raise RuntimeError("crash mid-write")

    assert target.read_text() == "original"
    assert list(tmp_path.iterdir()) == [target]


def test_stores_default_to_configured_storage_path(isolated_turnflow_home):
    assert FileSessionRepository().base_path == isolated_turnflow_home / "data"
    assert FileIfNodeRepository().base_path == isolated_turnflow_home / "data"
