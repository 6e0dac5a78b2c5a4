"""Chat session: owns turn ordering and the live data store."""

from enum import StrEnum

from pydantic import BaseModel, Field

from turnflow.graph.data_store import DataStoreSavedField
from turnflow.schemas.base import CAMEL_MODEL_CONFIG, Timestamp, new_id, utc_now


class AutoReply(StrEnum):
    """Who speaks next when the user does not."""

    OFF = "off"
    RANDOM = "random"
    ROTATE = "rotate"


class Session(BaseModel):
    """
    A branchable chat session playing one flow.

    Turns are referenced weakly by id; ``turn_ids`` is the authoritative
    order and membership.
    """

    id: str = Field(default_factory=new_id)
    title: str = ""
    flow_id: str | None = None
    turn_ids: list[str] = Field(default_factory=list)
    user_character_card_id: str | None = None
    auto_reply: AutoReply = AutoReply.OFF
    data_schema_order: list[str] = Field(default_factory=list)
    data_store: list[DataStoreSavedField] = Field(default_factory=list)
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)

    model_config = CAMEL_MODEL_CONFIG

    def add_turn_id(self, turn_id: str) -> None:
        self.turn_ids.append(turn_id)
        self.updated_at = utc_now()

    def remove_turn_id(self, turn_id: str) -> None:
        self.turn_ids = [t for t in self.turn_ids if t != turn_id]
        self.updated_at = utc_now()

    def copy_shell(self) -> "Session":
        """New session with the same settings, a fresh id and no turns."""
        now = utc_now()
        return self.model_copy(
            update={
                "id": new_id(),
                "title": f"Copy of {self.title}",
                "turn_ids": [],
                "created_at": now,
                "updated_at": now,
            },
            deep=True,
        )
