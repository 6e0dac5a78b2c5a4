"""
Repository contracts consumed by the services.

Every ``get`` returns None when the record does not exist and raises only
on genuine I/O or decoding problems; services turn both into failed
Results. Detail rows (If / DataStore) are keyed by ``(flow_id, node_id)``.
"""

from typing import Any, Protocol

from pydantic import ValidationError

from turnflow.graph.conditions import IfNodeDetail
from turnflow.graph.data_store import DataStoreNodeDetail
from turnflow.graph.edge import FlowSpec
from turnflow.schemas.session import Session
from turnflow.schemas.turn import Turn

# Repository failures that services report instead of raising
STORAGE_ERRORS = (OSError, ValidationError, ValueError)


class AgentRepository(Protocol):
    """Agents are opaque here beyond their identity."""

    async def get_agent(self, agent_id: str) -> Any | None: ...


class SessionRepository(Protocol):
    async def get(self, session_id: str) -> Session | None: ...

    async def save(self, session: Session) -> None: ...

    async def delete(self, session_id: str) -> bool: ...


class TurnRepository(Protocol):
    async def get(self, turn_id: str) -> Turn | None: ...

    async def save(self, turn: Turn) -> None: ...

    async def delete(self, turn_id: str) -> bool: ...


class FlowRepository(Protocol):
    async def get(self, flow_id: str) -> FlowSpec | None: ...

    async def save(self, flow: FlowSpec) -> None: ...

    async def delete(self, flow_id: str) -> bool: ...


class IfNodeRepository(Protocol):
    async def get(self, flow_id: str, node_id: str) -> IfNodeDetail | None: ...

    async def get_all_by_flow(self, flow_id: str) -> list[IfNodeDetail]: ...

    async def save(self, node: IfNodeDetail) -> None: ...

    async def delete(self, flow_id: str, node_id: str) -> bool: ...


class DataStoreNodeRepository(Protocol):
    async def get(self, flow_id: str, node_id: str) -> DataStoreNodeDetail | None: ...

    async def get_all_by_flow(self, flow_id: str) -> list[DataStoreNodeDetail]: ...

    async def save(self, node: DataStoreNodeDetail) -> None: ...

    async def delete(self, flow_id: str, node_id: str) -> bool: ...
