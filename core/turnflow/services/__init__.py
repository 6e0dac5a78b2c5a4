"""Service layer: every operation returns a Result instead of raising."""

from turnflow.services.flow_service import (
    FlowService,
    is_old_flow_format,
    migrate_flow_to_new_format,
)
from turnflow.services.session_service import SessionService
from turnflow.services.turn_service import TurnService

__all__ = [
    "FlowService",
    "SessionService",
    "TurnService",
    "is_old_flow_format",
    "migrate_flow_to_new_format",
]
