"""
Flow materialization and legacy format migration.

If and DataStore nodes keep their detail (name, color, conditions, fields)
in dedicated rows, updated independently of the generic graph node.
Loading a flow is therefore two-phase: the skeleton graph first, then each
detail row overlaid onto its node's ``data``. A detail row that fails to
load degrades that node to its embedded data; it never fails the flow.

Legacy flows referenced agents through ``data.agent_id`` on agent nodes
with unrelated node ids. The current format uses the agent id as the node
id and keeps no payload on nodes.
"""

import logging

from turnflow.graph.conditions import IfNodeDetail
from turnflow.graph.data_store import DataStoreNodeDetail
from turnflow.graph.edge import FlowEdge, FlowSpec
from turnflow.graph.node import DataStoreNode, IfNode, NodeType
from turnflow.observability import trace_scope
from turnflow.schemas.result import Result
from turnflow.storage.repositories import (
    STORAGE_ERRORS,
    DataStoreNodeRepository,
    FlowRepository,
    IfNodeRepository,
)

logger = logging.getLogger(__name__)


def overlay_if_detail(node: IfNode, detail: IfNodeDetail) -> IfNode:
    """Copy of *node* whose data carries the row's name/color/operator/conditions."""
    data = node.data.model_copy(
        update={
            "name": detail.name,
            "color": detail.color,
            "logic_operator": detail.logic_operator,
            "conditions": list(detail.conditions),
        }
    )
    return node.model_copy(update={"data": data})


def overlay_data_store_detail(node: DataStoreNode, detail: DataStoreNodeDetail) -> DataStoreNode:
    """Copy of *node* whose data carries the row's name/color/fields."""
    data = node.data.model_copy(
        update={
            "name": detail.name,
            "color": detail.color,
            "data_store_fields": list(detail.data_store_fields),
        }
    )
    return node.model_copy(update={"data": data})


def is_old_flow_format(flow: FlowSpec) -> bool:
    """True when any agent node still references its agent through ``data.agent_id``."""
    return any(node.type == NodeType.AGENT and node.data.agent_id for node in flow.nodes)


def migrate_flow_to_new_format(flow: FlowSpec) -> Result[FlowSpec]:
    """
    Rewrite a legacy flow to the current id scheme.

    - each agent node's id becomes its ``data.agent_id``
    - edge endpoints are remapped through the same table
    - other nodes keep their ids
    - every node's ``data`` is cleared

    Edges whose endpoints do not resolve to a node are dropped with a
    warning. An agent id that is already taken by another node keeps the
    old node id and payload, with a warning. Current-format input is
    returned unchanged.
    """
    if not is_old_flow_format(flow):
        return Result.ok(flow)

    taken = {node.id for node in flow.nodes}
    id_map: dict[str, str] = {}
    for node in flow.nodes:
        if node.type != NodeType.AGENT or not node.data.agent_id:
            continue
        agent_id = node.data.agent_id
        if agent_id != node.id and agent_id in taken:
            logger.warning(
                f"Agent id '{agent_id}' already used in flow '{flow.id}', keeping node '{node.id}'",
                extra={"event": "migration_id_collision", "node_id": node.id},
            )
            continue
        taken.discard(node.id)
        taken.add(agent_id)
        id_map[node.id] = agent_id

    nodes = []
    for node in flow.nodes:
        if node.type == NodeType.AGENT and node.data.agent_id and node.id not in id_map:
            nodes.append(node)
            continue
        nodes.append(
            node.model_copy(update={"id": id_map.get(node.id, node.id), "data": type(node.data)()})
        )

    node_ids = {node.id for node in nodes}
    edges: list[FlowEdge] = []
    for edge in flow.edges:
        source = id_map.get(edge.source, edge.source)
        target = id_map.get(edge.target, edge.target)
        if source not in node_ids or target not in node_ids:
            logger.warning(
                f"Dropping edge '{edge.id}' ({edge.source} -> {edge.target}): endpoint not found",
                extra={"event": "migration_edge_dropped"},
            )
            continue
        edges.append(edge.model_copy(update={"source": source, "target": target}))

    logger.info(
        f"Migrated flow '{flow.id}': {len(id_map)} agent node(s) renamed",
        extra={"event": "flow_migrated"},
    )
    return Result.ok(flow.model_copy(update={"nodes": nodes, "edges": edges}))


class FlowService:
    """Loads flows with their node detail, and migrates stored legacy flows."""

    def __init__(
        self,
        flows: FlowRepository,
        if_nodes: IfNodeRepository,
        data_store_nodes: DataStoreNodeRepository,
    ):
        self.flows = flows
        self.if_nodes = if_nodes
        self.data_store_nodes = data_store_nodes

    async def _get_flow(self, flow_id: str) -> Result[FlowSpec]:
        try:
            flow = await self.flows.get(flow_id)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to load flow {flow_id}: {e}")
            return Result.fail(f"Failed to load flow {flow_id}: {e}")
        if flow is None:
            return Result.fail(f"Flow not found: {flow_id}")
        return Result.ok(flow)

    async def get_flow_with_nodes(self, flow_id: str) -> Result[FlowSpec]:
        """
        Load a flow and overlay every If/DataStore node's detail row.

        Position, type and edges are never touched. A missing row or a row
        that fails to load keeps the node's embedded data.

        Args:
            flow_id: Flow to load

        Returns:
            Result wrapping the materialized flow
        """
        with trace_scope(flow_id=flow_id):
            return await self._materialize(flow_id)

    async def _materialize(self, flow_id: str) -> Result[FlowSpec]:
        flow_result = await self._get_flow(flow_id)
        if flow_result.is_failure:
            return flow_result
        flow = flow_result.value

        nodes = []
        for node in flow.nodes:
            if node.type == NodeType.IF:
                detail = await self._fetch_detail(self.if_nodes, flow_id, node.id)
                nodes.append(overlay_if_detail(node, detail) if detail else node)
            elif node.type == NodeType.DATA_STORE:
                detail = await self._fetch_detail(self.data_store_nodes, flow_id, node.id)
                nodes.append(overlay_data_store_detail(node, detail) if detail else node)
            else:
                nodes.append(node)

        return Result.ok(flow.model_copy(update={"nodes": nodes}))

    async def _fetch_detail(self, repository, flow_id: str, node_id: str):
        try:
            detail = await repository.get(flow_id, node_id)
        except Exception as e:
            logger.warning(
                f"Using embedded data for node '{node_id}', detail fetch failed: {e}",
                extra={"event": "detail_fallback", "node_id": node_id},
            )
            return None
        if detail is None:
            logger.debug(f"No detail row for node '{node_id}', using embedded data")
        return detail

    async def migrate_flow(self, flow_id: str) -> Result[FlowSpec]:
        """Migrate a stored flow in place if it uses the legacy format."""
        flow_result = await self._get_flow(flow_id)
        if flow_result.is_failure:
            return flow_result
        flow = flow_result.value
        if not is_old_flow_format(flow):
            return Result.ok(flow)

        migrated = migrate_flow_to_new_format(flow)
        if migrated.is_failure:
            return migrated
        try:
            await self.flows.save(migrated.value)
        except STORAGE_ERRORS as e:
            logger.error(f"Failed to save migrated flow {flow_id}: {e}")
            return Result.fail(f"Failed to save migrated flow {flow_id}: {e}")
        return migrated
