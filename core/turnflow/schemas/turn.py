"""
Turn and Option: versioned history of one conversational step.

A Turn owns an append-only list of Options (regeneration variants) and a
cursor selecting the one currently shown. Options are immutable; every
``set_*`` mutator on the Turn replaces only the selected slot with an
updated copy, so non-selected Options stay the very same objects and any
snapshot taken of them remains valid.
"""

from typing import Any, Self

from pydantic import BaseModel, Field, ValidationError, model_validator

from turnflow.graph.data_store import DataStoreSavedField
from turnflow.schemas.base import CAMEL_MODEL_CONFIG, Timestamp, new_id, utc_now
from turnflow.schemas.result import Result


class Option(BaseModel):
    """One rendered variant of a turn. Use the ``with_*`` methods to derive changes."""

    content: str = ""
    token_size: int = 0
    variables: dict[str, Any] = Field(default_factory=dict)
    translations: dict[str, str] = Field(default_factory=dict)
    data_store: list[DataStoreSavedField] = Field(default_factory=list)
    asset_id: str | None = None

    model_config = {**CAMEL_MODEL_CONFIG, "frozen": True}

    def with_content(self, content: str) -> "Option":
        return self.model_copy(update={"content": content})

    def with_token_size(self, token_size: int) -> "Option":
        return self.model_copy(update={"token_size": token_size})

    def with_variables(self, variables: dict[str, Any]) -> "Option":
        return self.model_copy(update={"variables": dict(variables)})

    def with_translation(self, language: str, text: str) -> "Option":
        return self.model_copy(update={"translations": {**self.translations, language: text}})

    def with_data_store(self, data_store: list[DataStoreSavedField]) -> "Option":
        return self.model_copy(update={"data_store": list(data_store)})

    def with_asset_id(self, asset_id: str | None) -> "Option":
        return self.model_copy(update={"asset_id": asset_id})


class Turn(BaseModel):
    """
    One produced conversational step.

    Invariants: at least one Option, and
    ``0 <= selected_option_index < len(options)``.
    """

    id: str = Field(default_factory=new_id)
    session_id: str
    character_card_id: str | None = None
    character_name: str | None = None
    options: list[Option] = Field(min_length=1)
    selected_option_index: int = 0
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)

    model_config = CAMEL_MODEL_CONFIG

    @model_validator(mode="after")
    def check_selected_index(self) -> Self:
        if not 0 <= self.selected_option_index < len(self.options):
            raise ValueError(
                f"selected_option_index {self.selected_option_index} out of range "
                f"for {len(self.options)} options"
            )
        return self

    @classmethod
    def create(
        cls,
        session_id: str,
        options: list[Option],
        character_card_id: str | None = None,
        character_name: str | None = None,
        id: str | None = None,
    ) -> Result["Turn"]:
        """Create a turn with its first option(s) selected at index 0."""
        if not options:
            return Result.fail("A turn needs at least one option")
        if not session_id:
            return Result.fail("Session ID is required")
        try:
            turn = cls(
                id=id or new_id(),
                session_id=session_id,
                character_card_id=character_card_id,
                character_name=character_name,
                options=list(options),
            )
        except ValidationError as e:
            return Result.fail(f"Invalid turn: {e}")
        return Result.ok(turn)

    @property
    def selected_option(self) -> Option:
        return self.options[self.selected_option_index]

    @property
    def content(self) -> str:
        return self.selected_option.content

    def add_option(self, option: Option) -> None:
        """Append a regeneration variant and select it."""
        self.options.append(option)
        self.selected_option_index = len(self.options) - 1
        self.updated_at = utc_now()

    def prev_option(self) -> None:
        if self.selected_option_index > 0:
            self.selected_option_index -= 1

    def next_option(self) -> None:
        if self.selected_option_index < len(self.options) - 1:
            self.selected_option_index += 1

    def _replace_selected(self, option: Option) -> None:
        self.options[self.selected_option_index] = option
        self.updated_at = utc_now()

    def set_content(self, content: str) -> None:
        self._replace_selected(self.selected_option.with_content(content))

    def set_token_size(self, token_size: int) -> None:
        self._replace_selected(self.selected_option.with_token_size(token_size))

    def set_variables(self, variables: dict[str, Any]) -> None:
        self._replace_selected(self.selected_option.with_variables(variables))

    def set_translation(self, language: str, text: str) -> None:
        self._replace_selected(self.selected_option.with_translation(language, text))

    def set_data_store(self, data_store: list[DataStoreSavedField]) -> None:
        self._replace_selected(self.selected_option.with_data_store(data_store))

    def set_asset_id(self, asset_id: str | None) -> None:
        self._replace_selected(self.selected_option.with_asset_id(asset_id))

    def clone(self, session_id: str) -> "Turn":
        """Deep copy under a fresh id that belongs to *session_id*."""
        now = utc_now()
        return self.model_copy(
            update={
                "id": new_id(),
                "session_id": session_id,
                "options": [o.model_copy(deep=True) for o in self.options],
                "created_at": now,
                "updated_at": now,
            },
            deep=True,
        )
