"""
Flow Executor - Runs one conversational turn through a flow.

The executor:
1. Checks that the requested channel is connected (reachability)
2. Seeds the session data store from the flow's schema
3. Walks from the channel's start node, one node at a time:
   - agent: calls the injected AgentRunner and merges its output variables
   - dataStore: evaluates the node's fields in order into the data store
   - if: evaluates the conditions; true takes the first outgoing edge,
     false the second
4. At the end node, selects the channel's template and renders it

Nodes never run concurrently. The data store passed in is mutated in place;
callers serialize turns of one session.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from turnflow.config import get_max_flow_steps
from turnflow.graph.conditions import ConditionPolicy, LogicOperator, evaluate_conditions
from turnflow.graph.context import build_full_context
from turnflow.graph.data_store import (
    DataStore,
    DataStoreSavedField,
    LogicEvaluator,
    default_logic_evaluator,
    evaluate_data_store_fields,
    initialize_data_store,
)
from turnflow.graph.edge import FlowSpec
from turnflow.graph.node import Channel, NodeType
from turnflow.graph.reachability import build_adjacency, identify_flow_paths, is_reachable
from turnflow.graph.templates import PlaceholderRenderer, TemplateRenderer, select_template
from turnflow.observability import trace_scope
from turnflow.schemas.result import Result
from turnflow.schemas.turn import Option


class AgentRunner(Protocol):
    """Calls one LLM agent and returns the variables it produced."""

    async def run(self, agent_id: str, context: dict[str, Any]) -> dict[str, Any]: ...


@dataclass
class FlowResult:
    """Outcome of running one channel of a flow."""

    channel: Channel
    content: str
    variables: dict[str, Any] = field(default_factory=dict)
    data_store: list[DataStoreSavedField] = field(default_factory=list)
    path: list[str] = field(default_factory=list)  # Node IDs traversed

    def to_option(self) -> Option:
        """Freeze this result into a turn Option."""
        return Option(
            content=self.content,
            variables=dict(self.variables),
            data_store=list(self.data_store),
        )


class FlowExecutor:
    """
    Executes flows one turn at a time.

    Example:
        executor = FlowExecutor(agent_runner=runner)
        result = await executor.execute(flow, context, store, Channel.CHARACTER)
        if result.success:
            turn.add_option(result.value.to_option())
    """

    def __init__(
        self,
        agent_runner: AgentRunner,
        condition_policy: ConditionPolicy | None = None,
        logic_evaluator: LogicEvaluator = default_logic_evaluator,
        renderer: TemplateRenderer | None = None,
        max_steps: int | None = None,
    ):
        self.agent_runner = agent_runner
        self.condition_policy = condition_policy
        self.logic_evaluator = logic_evaluator
        self.renderer = renderer or PlaceholderRenderer()
        self.max_steps = max_steps if max_steps is not None else get_max_flow_steps()
        self.logger = logging.getLogger(__name__)

    async def execute(
        self,
        flow: FlowSpec,
        context: dict[str, Any],
        data_store: DataStore,
        channel: Channel | str = Channel.CHARACTER,
    ) -> Result[FlowResult]:
        """
        Run *channel* of *flow* once.

        Args:
            flow: Materialized flow (If/DataStore detail already overlaid)
            context: Session render context (characters, history, ...)
            data_store: Live session data store, mutated in place
            channel: Which Start→End path to run

        Returns:
            Result wrapping the FlowResult, or a failure message
        """
        channel = Channel(channel)
        with trace_scope(flow_id=flow.id, channel=channel.value):
            return await self._run(flow, context, data_store, channel)

    async def _run(
        self,
        flow: FlowSpec,
        context: dict[str, Any],
        data_store: DataStore,
        channel: Channel,
    ) -> Result[FlowResult]:
        if not identify_flow_paths(flow).is_active(channel):
            return Result.fail(f"Flow '{flow.id}' has no connected {channel.value} path")

        start = flow.get_start_node(channel)
        end = flow.get_end_node(channel)
        adjacency = build_adjacency(flow.nodes, flow.edges)

        initialize_data_store(flow.data_store_schema, data_store, context, self.logic_evaluator)

        variables: dict[str, Any] = {}
        path: list[str] = []
        current_id = start.id
        steps = 0

        while current_id != end.id:
            steps += 1
            if steps > self.max_steps:
                self.logger.error(
                    f"Flow '{flow.id}' exceeded {self.max_steps} steps",
                    extra={"event": "max_steps_exceeded", "channel": channel.value},
                )
                return Result.fail(f"Flow exceeded max steps ({self.max_steps})")

            node = flow.get_node(current_id)
            if node is None:
                return Result.fail(f"Node not found: {current_id}")
            path.append(node.id)

            if node.type == NodeType.AGENT:
                full_context = build_full_context(context, variables, data_store.as_context())
                try:
                    output = await self.agent_runner.run(node.agent_id, full_context)
                except Exception as e:
                    self.logger.error(
                        f"Agent '{node.agent_id}' failed: {e}",
                        extra={"event": "agent_error", "node_id": node.id},
                    )
                    return Result.fail(f"Agent '{node.agent_id}' failed: {e}")
                variables.update(output or {})

            elif node.type == NodeType.DATA_STORE:
                written = evaluate_data_store_fields(
                    node.data.data_store_fields,
                    flow.data_store_schema,
                    data_store,
                    variables,
                    self.logic_evaluator,
                    context,
                )
                self.logger.debug(
                    f"Data store node '{node.id}' wrote {len(written)} field(s)",
                    extra={"node_id": node.id},
                )

            elif node.type == NodeType.IF:
                next_id = self._branch(flow, node, context, variables, data_store)
                if next_id is None:
                    return Result.fail(f"If node '{node.id}' has no branch for this outcome")
                current_id = next_id
                continue

            next_id = self._follow(flow, adjacency, node.id, end.id)
            if next_id is None:
                return Result.fail(f"Node '{node.id}' has no outgoing edge")
            current_id = next_id

        path.append(end.id)
        template = select_template(flow, channel)
        content = self.renderer.render(
            template, build_full_context(context, variables, data_store.as_context())
        )
        self.logger.info(
            f"Rendered {channel.value} response after {steps} step(s)",
            extra={"event": "turn_rendered", "channel": channel.value},
        )
        return Result.ok(
            FlowResult(
                channel=channel,
                content=content,
                variables=variables,
                data_store=data_store.snapshot(),
                path=path,
            )
        )

    def _branch(
        self,
        flow: FlowSpec,
        node: Any,
        context: dict[str, Any],
        variables: dict[str, Any],
        data_store: DataStore,
    ) -> str | None:
        outcome = evaluate_conditions(
            node.data.conditions,
            node.data.logic_operator or LogicOperator.AND,
            build_full_context(context, variables, data_store.as_context()),
            self.condition_policy,
        )
        edges = flow.get_outgoing_edges(node.id)
        index = 0 if outcome else 1
        self.logger.debug(
            f"If node '{node.id}' evaluated {outcome}", extra={"node_id": node.id}
        )
        if index >= len(edges):
            return None
        return edges[index].target

    @staticmethod
    def _follow(
        flow: FlowSpec, adjacency: dict[str, list[str]], node_id: str, end_id: str
    ) -> str | None:
        """First outgoing edge that can still reach the end node, else the first edge."""
        edges = flow.get_outgoing_edges(node_id)
        if not edges:
            return None
        for edge in edges:
            if is_reachable(adjacency, edge.target, end_id):
                return edge.target
        return edges[0].target
