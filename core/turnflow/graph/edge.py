"""
Edge and flow graph specification.

A flow is the user-authored graph describing how one conversational turn
is produced: an ordered node list, directed edges, one response template
per channel and the ordered data-store schema.
"""

from collections import Counter
from typing import Any

from pydantic import BaseModel, Field

from turnflow.graph.data_store import DataStoreSchemaField
from turnflow.graph.node import Channel, EndNode, FlowNode, NodeType, StartNode
from turnflow.schemas.base import CAMEL_MODEL_CONFIG, Timestamp, utc_now


class FlowEdge(BaseModel):
    """A directed connection between two nodes."""

    id: str
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None
    label: str | None = None

    model_config = CAMEL_MODEL_CONFIG


class FlowSpec(BaseModel):
    """
    Complete flow graph.

    Invariants (checked by :meth:`validate`, not enforced on load so that
    broken flows can still be opened and repaired):
    - node ids are unique
    - edges reference existing nodes
    - in the current format an agent node's id is the agent id
    """

    id: str
    name: str = ""
    description: str = ""
    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    response_templates: dict[Channel, str] = Field(default_factory=dict)
    data_store_schema: list[DataStoreSchemaField] = Field(default_factory=list)
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)

    model_config = CAMEL_MODEL_CONFIG

    def get_node(self, node_id: str) -> Any:
        """Get a node by ID, or None."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[FlowEdge]:
        """Outgoing edges of a node, in declaration order."""
        return [e for e in self.edges if e.source == node_id]

    def get_start_node(self, channel: Channel | str) -> StartNode | None:
        channel = Channel(channel)
        for node in self.nodes:
            if node.type == NodeType.START and node.channel == channel:
                return node
        return None

    def get_end_node(self, channel: Channel | str) -> EndNode | None:
        channel = Channel(channel)
        for node in self.nodes:
            if node.type == NodeType.END and node.channel == channel:
                return node
        return None

    def validate(self) -> list[str]:
        """
        Check the graph invariants.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        node_ids = {n.id for n in self.nodes}

        counts = Counter(n.id for n in self.nodes)
        for node_id, count in counts.items():
            if count > 1:
                errors.append(f"Duplicate node id '{node_id}'")

        for edge in self.edges:
            if edge.source not in node_ids:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in node_ids:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        for node in self.nodes:
            if node.type == NodeType.IF:
                branches = len(self.get_outgoing_edges(node.id))
                if branches != 2:
                    errors.append(
                        f"If node '{node.id}' needs exactly 2 outgoing edges, has {branches}"
                    )

        for channel in Channel:
            has_start = self.get_start_node(channel) is not None
            has_end = self.get_end_node(channel) is not None
            if has_start and not has_end:
                errors.append(f"Channel '{channel.value}' has a start node but no end node")
            if has_end and not has_start:
                errors.append(f"Channel '{channel.value}' has an end node but no start node")

        return errors
