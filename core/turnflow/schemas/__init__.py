"""Schema definitions for sessions, turns and service results."""

from turnflow.schemas.result import Result
from turnflow.schemas.session import AutoReply, Session
from turnflow.schemas.turn import Option, Turn

__all__ = [
    "AutoReply",
    "Option",
    "Result",
    "Session",
    "Turn",
]
