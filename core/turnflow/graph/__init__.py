"""Flow graph structures and the per-turn execution pipeline."""

from turnflow.graph.conditions import (
    Condition,
    ConditionOperator,
    ConditionPolicy,
    DefaultConditionPolicy,
    IfNodeDetail,
    LogicOperator,
    evaluate_conditions,
)
from turnflow.graph.data_store import (
    DataStore,
    DataStoreField,
    DataStoreNodeDetail,
    DataStoreSavedField,
    DataStoreSchemaField,
    evaluate_data_store_fields,
    initialize_data_store,
)
from turnflow.graph.node import Channel, FlowNode, NodeType
from turnflow.graph.edge import FlowEdge, FlowSpec
from turnflow.graph.reachability import (
    ActivePaths,
    identify_active_paths,
    should_use_multi_path,
    traverse_flow,
)
from turnflow.graph.templates import select_template
from turnflow.graph.executor import AgentRunner, FlowExecutor, FlowResult

__all__ = [
    # Nodes and edges
    "Channel",
    "FlowEdge",
    "FlowNode",
    "FlowSpec",
    "NodeType",
    # Reachability
    "ActivePaths",
    "identify_active_paths",
    "should_use_multi_path",
    "traverse_flow",
    # Templates
    "select_template",
    # Conditions
    "Condition",
    "ConditionOperator",
    "ConditionPolicy",
    "DefaultConditionPolicy",
    "IfNodeDetail",
    "LogicOperator",
    "evaluate_conditions",
    # Data store
    "DataStore",
    "DataStoreField",
    "DataStoreNodeDetail",
    "DataStoreSavedField",
    "DataStoreSchemaField",
    "evaluate_data_store_fields",
    "initialize_data_store",
    # Execution
    "AgentRunner",
    "FlowExecutor",
    "FlowResult",
]
