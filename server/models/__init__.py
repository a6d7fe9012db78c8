"""Models package for the Scat game server."""

from .messages import (
    ActionMessage,
    CreateRoomMessage,
    InvalidMessage,
    JoinRoomMessage,
    RuleOverrides,
    SpectateMessage,
    parse_action,
    parse_message,
)

__all__ = [
    "ActionMessage",
    "CreateRoomMessage",
    "InvalidMessage",
    "JoinRoomMessage",
    "RuleOverrides",
    "SpectateMessage",
    "parse_action",
    "parse_message",
]
