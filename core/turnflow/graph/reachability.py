"""
Graph reachability: which Start→End channels of a flow are connected.

A flow may define up to three channels (character, user, plot). A channel
is active when a directed path runs from its start node to its end node.
When the user or plot channel is active the turn is produced in
multi-path mode.

Everything here is pure: no I/O, no logging on the hot path, and missing
node ids yield ``False`` rather than raising.
"""

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from turnflow.graph.edge import FlowEdge, FlowSpec
from turnflow.graph.node import Channel, NodeType

Adjacency = Mapping[str, list[str]]
ChannelEndpoints = Mapping[Channel, tuple[str, str] | None]


@dataclass(frozen=True)
class ActivePaths:
    """Which channels have a connected Start→End path."""

    character_active: bool = False
    user_active: bool = False
    plot_active: bool = False

    def is_active(self, channel: Channel | str) -> bool:
        channel = Channel(channel)
        if channel == Channel.CHARACTER:
            return self.character_active
        if channel == Channel.USER:
            return self.user_active
        return self.plot_active


def build_adjacency(nodes: Iterable[Any], edges: Iterable[FlowEdge]) -> dict[str, list[str]]:
    """Adjacency list keyed by every node id, targets in edge declaration order."""
    adjacency: dict[str, list[str]] = {node.id: [] for node in nodes}
    for edge in edges:
        adjacency.setdefault(edge.source, []).append(edge.target)
    return adjacency


def is_reachable(adjacency: Adjacency, start_id: str, end_id: str) -> bool:
    """
    True iff a directed path leads from *start_id* to *end_id*.

    Iterative DFS with a visited set, so cyclic graphs terminate. An id that
    is neither an adjacency key nor an edge target is not in the graph and
    yields False.
    """
    known = set(adjacency)
    for targets in adjacency.values():
        known.update(targets)
    if start_id not in known or end_id not in known:
        return False
    if start_id == end_id:
        return True

    visited = {start_id}
    stack = [start_id]
    while stack:
        current = stack.pop()
        for target in adjacency.get(current, ()):
            if target == end_id:
                return True
            if target not in visited:
                visited.add(target)
                stack.append(target)
    return False


def channel_endpoints(flow: FlowSpec) -> dict[Channel, tuple[str, str] | None]:
    """(start_id, end_id) per channel, or None when either node is missing."""
    endpoints: dict[Channel, tuple[str, str] | None] = {}
    for channel in Channel:
        start = flow.get_start_node(channel)
        end = flow.get_end_node(channel)
        endpoints[channel] = (start.id, end.id) if start and end else None
    return endpoints


def identify_active_paths(adjacency: Adjacency, endpoints: ChannelEndpoints) -> ActivePaths:
    """
    Determine which channels are connected.

    Args:
        adjacency: Node id to successor ids
        endpoints: Channel to ``(start_id, end_id)``; None or absent = inactive

    Returns:
        ActivePaths with one flag per channel
    """

    def active(channel: Channel) -> bool:
        pair = endpoints.get(channel)
        if pair is None:
            return False
        return is_reachable(adjacency, pair[0], pair[1])

    return ActivePaths(
        character_active=active(Channel.CHARACTER),
        user_active=active(Channel.USER),
        plot_active=active(Channel.PLOT),
    )


def identify_flow_paths(flow: FlowSpec) -> ActivePaths:
    return identify_active_paths(build_adjacency(flow.nodes, flow.edges), channel_endpoints(flow))


def should_use_multi_path(paths: ActivePaths) -> bool:
    return paths.user_active or paths.plot_active


@dataclass
class FlowTraversal:
    """Agents of a flow as seen from the character start node."""

    process_order: list[str] = field(default_factory=list)
    depth: dict[str, int] = field(default_factory=dict)
    agents_not_connected: list[str] = field(default_factory=list)
    has_valid_flow: bool = False


def traverse_flow(flow: FlowSpec) -> FlowTraversal:
    """
    Order the agent nodes reachable from the character start node.

    Agents are ordered by BFS depth from the start node, ties broken by
    id. ``has_valid_flow`` is True when the character channel is connected.
    Agents that cannot be reached are listed separately.
    """
    result = FlowTraversal()
    agent_ids = [n.id for n in flow.nodes if n.type == NodeType.AGENT]
    start = flow.get_start_node(Channel.CHARACTER)
    if start is None:
        result.agents_not_connected = sorted(agent_ids)
        return result

    adjacency = build_adjacency(flow.nodes, flow.edges)
    depths = {start.id: 0}
    queue = deque([start.id])
    while queue:
        current = queue.popleft()
        for target in adjacency.get(current, ()):
            if target not in depths:
                depths[target] = depths[current] + 1
                queue.append(target)

    reached = [a for a in agent_ids if a in depths]
    result.process_order = sorted(reached, key=lambda a: (depths[a], a))
    result.depth = {a: depths[a] for a in result.process_order}
    result.agents_not_connected = sorted(a for a in agent_ids if a not in depths)
    result.has_valid_flow = identify_flow_paths(flow).character_active
    return result
