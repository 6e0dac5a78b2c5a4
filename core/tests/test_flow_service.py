"""Tests for flow materialization and legacy format migration."""

import pytest

from turnflow.graph.conditions import Condition, ConditionOperator, IfNodeDetail, LogicOperator
from turnflow.graph.data_store import DataStoreField, DataStoreNodeDetail
from turnflow.graph.edge import FlowEdge, FlowSpec
from turnflow.graph.node import (
    AgentNode,
    AgentNodeData,
    Channel,
    DataStoreNode,
    DataStoreNodeData,
    EndNode,
    IfNode,
    IfNodeData,
    Position,
    StartNode,
)
from turnflow.services.flow_service import (
    FlowService,
    is_old_flow_format,
    migrate_flow_to_new_format,
)

# ---- In-memory repositories ----


class MemoryFlowRepository:
    def __init__(self, *flows: FlowSpec):
        self.records = {f.id: f for f in flows}

    async def get(self, flow_id):
        return self.records.get(flow_id)

    async def save(self, flow):
        self.records[flow.id] = flow

    async def delete(self, flow_id):
        return self.records.pop(flow_id, None) is not None


class MemoryDetailRepository:
    def __init__(self, *rows, failing: set[str] | None = None):
        self.rows = {(r.flow_id, r.id): r for r in rows}
        self.failing = failing or set()

    async def get(self, flow_id, node_id):
        if node_id in self.failing:
            raise OSError(f"cannot read {node_id}")
        return self.rows.get((flow_id, node_id))

    async def get_all_by_flow(self, flow_id):
        return [r for (fid, _), r in self.rows.items() if fid == flow_id]

    async def save(self, node):
        self.rows[(node.flow_id, node.id)] = node

    async def delete(self, flow_id, node_id):
        return self.rows.pop((flow_id, node_id), None) is not None


def edge(source: str, target: str) -> FlowEdge:
    return FlowEdge(id=f"{source}->{target}", source=source, target=target)


def skeleton_flow() -> FlowSpec:
    return FlowSpec(
        id="flow-1",
        nodes=[
            StartNode(id="start"),
            IfNode(
                id="if-1",
                position=Position(x=10, y=20),
                data=IfNodeData(name="Embedded if", color="#000000"),
            ),
            DataStoreNode(id="ds-1", data=DataStoreNodeData(name="Embedded ds")),
            IfNode(id="if-2", data=IfNodeData(name="Stale")),
            EndNode(id="end"),
        ],
        edges=[
            edge("start", "if-1"),
            edge("if-1", "ds-1"),
            edge("if-1", "if-2"),
            edge("ds-1", "end"),
            edge("if-2", "end"),
            edge("if-2", "start"),
        ],
    )


def if_row(node_id: str, name: str) -> IfNodeDetail:
    return IfNodeDetail(
        id=node_id,
        flow_id="flow-1",
        name=name,
        color="#ff0000",
        logic_operator=LogicOperator.OR,
        conditions=[
            Condition(
                id="c1",
                data_type="number",
                value1="{{hp}}",
                operator=ConditionOperator.NUMBER_LESS_THAN,
                value2="5",
            )
        ],
    )


def make_service(if_rows=(), ds_rows=(), failing=None) -> FlowService:
    return FlowService(
        MemoryFlowRepository(skeleton_flow()),
        MemoryDetailRepository(*if_rows, failing=failing),
        MemoryDetailRepository(*ds_rows, failing=failing),
    )


# ---- Materialization ----


@pytest.mark.asyncio
async def test_detail_rows_overlay_node_data():
    ds_row = DataStoreNodeDetail(
        id="ds-1",
        flow_id="flow-1",
        name="Track HP",
        color="#00ff00",
        data_store_fields=[DataStoreField(id="f1", schema_field_id="s1", logic="hp - 1")],
    )
    service = make_service(if_rows=[if_row("if-1", "Is hurt?")], ds_rows=[ds_row])

    flow = (await service.get_flow_with_nodes("flow-1")).unwrap()

    if_node = flow.get_node("if-1")
    assert if_node.data.name == "Is hurt?"
    assert if_node.data.color == "#ff0000"
    assert if_node.data.logic_operator == LogicOperator.OR
    assert len(if_node.data.conditions) == 1
    assert if_node.position == Position(x=10, y=20)

    ds_node = flow.get_node("ds-1")
    assert ds_node.data.name == "Track HP"
    assert ds_node.data.data_store_fields[0].logic == "hp - 1"

    # Node without a row keeps its embedded data
    assert flow.get_node("if-2").data.name == "Stale"
    assert flow.edges == skeleton_flow().edges


@pytest.mark.asyncio
async def test_failing_detail_fetch_falls_back_for_that_node_only():
    service = make_service(
        if_rows=[if_row("if-1", "Is hurt?"), if_row("if-2", "Fresh")],
        failing={"if-1"},
    )

    result = await service.get_flow_with_nodes("flow-1")

    assert result.success
    flow = result.value
    assert flow.get_node("if-1").data.name == "Embedded if"
    assert flow.get_node("if-2").data.name == "Fresh"


@pytest.mark.asyncio
async def test_missing_flow():
    result = await make_service().get_flow_with_nodes("nope")
    assert result.is_failure
    assert "not found" in result.error


@pytest.mark.asyncio
async def test_node_order_is_kept():
    flow = (await make_service().get_flow_with_nodes("flow-1")).unwrap()
    assert [n.id for n in flow.nodes] == [n.id for n in skeleton_flow().nodes]


# ---- Migration ----


def legacy_flow() -> FlowSpec:
    return FlowSpec(
        id="legacy",
        nodes=[
            StartNode(id="start", channel=Channel.CHARACTER),
            AgentNode(id="node-1", data=AgentNodeData(agent_id="agent-narrator")),
            AgentNode(id="node-2", data=AgentNodeData(agent_id="agent-critic")),
            IfNode(id="if-1", data=IfNodeData(name="Branch")),
            EndNode(id="end", channel=Channel.CHARACTER),
        ],
        edges=[
            edge("start", "node-1"),
            edge("node-1", "if-1"),
            edge("if-1", "node-2"),
            edge("if-1", "end"),
            edge("node-2", "end"),
        ],
    )


class TestMigration:
    def test_detects_legacy_format(self):
        assert is_old_flow_format(legacy_flow()) is True
        assert is_old_flow_format(skeleton_flow()) is False

    def test_agent_ids_become_node_ids(self):
        migrated = migrate_flow_to_new_format(legacy_flow()).unwrap()

        assert [n.id for n in migrated.nodes] == [
            "start",
            "agent-narrator",
            "agent-critic",
            "if-1",
            "end",
        ]
        assert [(e.source, e.target) for e in migrated.edges] == [
            ("start", "agent-narrator"),
            ("agent-narrator", "if-1"),
            ("if-1", "agent-critic"),
            ("if-1", "end"),
            ("agent-critic", "end"),
        ]

    def test_payloads_cleared_channels_kept(self):
        migrated = migrate_flow_to_new_format(legacy_flow()).unwrap()

        assert migrated.get_node("if-1").data.name is None
        assert migrated.get_node("agent-narrator").data.agent_id is None
        assert migrated.get_node("end").channel == Channel.CHARACTER
        assert is_old_flow_format(migrated) is False

    def test_new_format_is_identity(self):
        flow = skeleton_flow()
        assert migrate_flow_to_new_format(flow).unwrap() is flow

    def test_idempotent(self):
        once = migrate_flow_to_new_format(legacy_flow()).unwrap()
        twice = migrate_flow_to_new_format(once).unwrap()
        assert twice == once

    def test_dangling_edge_dropped(self):
        flow = legacy_flow()
        flow.edges.append(edge("node-2", "ghost"))

        migrated = migrate_flow_to_new_format(flow).unwrap()

        assert len(migrated.edges) == 5
        assert all(e.target != "ghost" for e in migrated.edges)

    def test_id_collision_keeps_old_node(self):
        flow = legacy_flow()
        flow.nodes.append(AgentNode(id="node-3", data=AgentNodeData(agent_id="if-1")))
        flow.edges.append(edge("node-3", "end"))

        migrated = migrate_flow_to_new_format(flow).unwrap()

        node_ids = [n.id for n in migrated.nodes]
        assert len(node_ids) == len(set(node_ids))
        assert "node-3" in node_ids
        assert ("node-3", "end") in [(e.source, e.target) for e in migrated.edges]


@pytest.mark.asyncio
async def test_migrate_stored_flow():
    flows = MemoryFlowRepository(legacy_flow())
    service = FlowService(flows, MemoryDetailRepository(), MemoryDetailRepository())

    result = await service.migrate_flow("legacy")

    assert result.success
    assert is_old_flow_format(flows.records["legacy"]) is False
