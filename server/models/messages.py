"""
Client message models for the Scat WebSocket protocol.

Incoming JSON is validated here with pydantic before anything reaches the
rules engine. Turn actions come out as the game's typed action dataclasses.
"""

from dataclasses import replace
from typing import Annotated, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from ai import Difficulty
from config import config
from constants import MAX_CPU_PLAYERS
from game import Action, Discard, DrawDiscard, DrawStock, Knock, Rules

MAX_NAME_LENGTH = 24


class InvalidMessage(ValueError):
    """A client payload failed validation."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "InvalidMessage":
        errors = exc.errors()
        if not errors:
            return cls("Invalid message.")
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = first.get("msg", "invalid value")
        if location:
            return cls(f"Invalid message: {location}: {detail}", errors)
        return cls(f"Invalid message: {detail}", errors)


def _clean_name(value, default: str) -> str:
    if value is None:
        return default
    name = str(value).strip()[:MAX_NAME_LENGTH]
    return name or default


# =============================================================================
# Room Messages
# =============================================================================


class RuleOverrides(BaseModel):
    """Per-room rule overrides sent with create_room. Unset keys keep the defaults."""
    starting_lives: Optional[int] = Field(default=None, ge=1)
    allow_knock_any_score: Optional[bool] = None
    knock_min_score: Optional[int] = Field(default=None, ge=0)
    three_of_kind_value: Optional[float] = None

    def apply(self, base: Rules) -> Rules:
        """
        Build the room's Rules from base plus the keys the client sent.

        An explicit null clears knock_min_score or three_of_kind_value;
        it is ignored for the non-nullable keys.
        """
        changes = self.model_dump(exclude_unset=True)
        for key in ("starting_lives", "allow_knock_any_score"):
            if changes.get(key) is None:
                changes.pop(key, None)
        return replace(base, **changes)


class CreateRoomMessage(BaseModel):
    """create_room request."""
    type: Literal["create_room"] = "create_room"
    player_name: str = "Host"
    cpu_count: int = 0
    cpu_difficulty: Difficulty = Field(default_factory=lambda: Difficulty.parse(config.DEFAULT_CPU_DIFFICULTY))
    rules: RuleOverrides = Field(default_factory=RuleOverrides)

    @field_validator("player_name", mode="before")
    @classmethod
    def _player_name(cls, value):
        return _clean_name(value, "Host")

    @field_validator("cpu_count", mode="before")
    @classmethod
    def _clamp_cpu_count(cls, value):
        try:
            count = int(value)
        except (TypeError, ValueError):
            count = 0
        return max(0, min(count, MAX_CPU_PLAYERS))

    @field_validator("cpu_difficulty", mode="before")
    @classmethod
    def _difficulty(cls, value):
        return Difficulty.parse(value)

    @field_validator("rules", mode="before")
    @classmethod
    def _rules(cls, value):
        return value if value is not None else {}


class JoinRoomMessage(BaseModel):
    """join_room request."""
    type: Literal["join_room"] = "join_room"
    room_code: str = ""
    player_name: str = "Player"

    @field_validator("room_code", mode="before")
    @classmethod
    def _room_code(cls, value):
        return str(value or "").strip().upper()

    @field_validator("player_name", mode="before")
    @classmethod
    def _player_name(cls, value):
        return _clean_name(value, "Player")


class SpectateMessage(BaseModel):
    """spectate request."""
    type: Literal["spectate"] = "spectate"
    room_code: str = ""

    @field_validator("room_code", mode="before")
    @classmethod
    def _room_code(cls, value):
        return str(value or "").strip().upper()


# =============================================================================
# Turn Actions
# =============================================================================


class DrawStockPayload(BaseModel):
    type: Literal["DRAW_STOCK"]

    def to_action(self) -> Action:
        return DrawStock()


class DrawDiscardPayload(BaseModel):
    type: Literal["DRAW_DISCARD"]

    def to_action(self) -> Action:
        return DrawDiscard()


class DiscardPayload(BaseModel):
    type: Literal["DISCARD"]
    card_id: str = Field(min_length=1)

    def to_action(self) -> Action:
        return Discard(card_id=self.card_id)


class KnockPayload(BaseModel):
    type: Literal["KNOCK"]

    def to_action(self) -> Action:
        return Knock()


ActionPayload = Annotated[
    Union[DrawStockPayload, DrawDiscardPayload, DiscardPayload, KnockPayload],
    Field(discriminator="type"),
]

_action_adapter = TypeAdapter(ActionPayload)


class ActionMessage(BaseModel):
    """action request: {"type": "action", "action": {"type": ..., "card_id"?: ...}}."""
    type: Literal["action"] = "action"
    action: ActionPayload

    def to_action(self) -> Action:
        return self.action.to_action()


# =============================================================================
# Parsing helpers
# =============================================================================

MessageT = TypeVar("MessageT", bound=BaseModel)


def parse_message(model: type[MessageT], data: dict) -> MessageT:
    """
    Validate a raw client message against a model.

    Raises:
        InvalidMessage: If the payload does not match.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidMessage.from_validation_error(e) from e


def parse_action(data) -> Action:
    """
    Turn an untyped action payload into a typed game action.

    Args:
        data: e.g. {"type": "DISCARD", "card_id": "SA-0"}.

    Returns:
        DrawStock, DrawDiscard, Discard or Knock.

    Raises:
        InvalidMessage: If the payload does not describe a known action.
    """
    try:
        return _action_adapter.validate_python(data).to_action()
    except ValidationError as e:
        raise InvalidMessage.from_validation_error(e) from e
