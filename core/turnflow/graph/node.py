"""
Flow nodes as a discriminated union on ``type``.

Node Types:
- start: entry point of one channel (character, user or plot)
- end: exit point of one channel; selects that channel's response template
- agent: one LLM-agent call; in the current format the node id is the agent id
- if: branches on its conditions (first outgoing edge = true, second = false)
- dataStore: updates the session data store

If and dataStore nodes carry an embedded ``data`` payload, but their
authoritative detail lives in dedicated rows and is overlaid at load time
(see ``FlowService.get_flow_with_nodes``).
"""

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from turnflow.graph.conditions import Condition, LogicOperator
from turnflow.graph.data_store import DataStoreField
from turnflow.schemas.base import CAMEL_MODEL_CONFIG


class NodeType(StrEnum):
    START = "start"
    END = "end"
    AGENT = "agent"
    IF = "if"
    DATA_STORE = "dataStore"


class Channel(StrEnum):
    """One of the three named Start→End paths through a flow."""

    CHARACTER = "character"
    USER = "user"
    PLOT = "plot"


class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0


class _NodeBase(BaseModel):
    id: str
    position: Position = Field(default_factory=Position)
    deletable: bool = True
    z_index: int | None = None

    model_config = CAMEL_MODEL_CONFIG


class EmptyNodeData(BaseModel):
    model_config = CAMEL_MODEL_CONFIG


class StartNode(_NodeBase):
    type: Literal["start"] = "start"
    channel: Channel = Channel.CHARACTER
    data: EmptyNodeData = Field(default_factory=EmptyNodeData)


class EndNode(_NodeBase):
    type: Literal["end"] = "end"
    channel: Channel = Channel.CHARACTER
    data: EmptyNodeData = Field(default_factory=EmptyNodeData)


class AgentNodeData(BaseModel):
    # Legacy flows reference the agent here instead of through the node id
    agent_id: str | None = None

    model_config = CAMEL_MODEL_CONFIG


class AgentNode(_NodeBase):
    type: Literal["agent"] = "agent"
    data: AgentNodeData = Field(default_factory=AgentNodeData)

    @property
    def agent_id(self) -> str:
        return self.data.agent_id or self.id


class IfNodeData(BaseModel):
    name: str | None = None
    color: str | None = None
    logic_operator: LogicOperator | None = None
    conditions: list[Condition] = Field(default_factory=list)

    model_config = CAMEL_MODEL_CONFIG


class IfNode(_NodeBase):
    type: Literal["if"] = "if"
    data: IfNodeData = Field(default_factory=IfNodeData)


class DataStoreNodeData(BaseModel):
    name: str | None = None
    color: str | None = None
    data_store_fields: list[DataStoreField] = Field(default_factory=list)

    model_config = CAMEL_MODEL_CONFIG


class DataStoreNode(_NodeBase):
    type: Literal["dataStore"] = "dataStore"
    data: DataStoreNodeData = Field(default_factory=DataStoreNodeData)


FlowNode = Annotated[
    StartNode | EndNode | AgentNode | IfNode | DataStoreNode,
    Field(discriminator="type"),
]
