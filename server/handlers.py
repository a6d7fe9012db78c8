"""WebSocket message handlers for the Scat (31) card game.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict in main.py.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket

from game import Rules
from logging_config import get_logger, room_code_var
from models.messages import (
    ActionMessage,
    CreateRoomMessage,
    InvalidMessage,
    JoinRoomMessage,
    SpectateMessage,
    parse_message,
)
from room import Room

logger = get_logger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    current_room: Optional[Room] = None
    spectating: Optional[Room] = None


async def send_error(ctx: ConnectionContext, message: str) -> None:
    await ctx.websocket.send_json({"type": "error", "message": message})


def _room_logger(ctx: ConnectionContext, room: Room):
    return logger.with_context(room_code=room.code, player_id=ctx.player_id)


def _current_room(ctx: ConnectionContext) -> Optional[Room]:
    """The connection's room, forgetting it once the room has been retired."""
    if ctx.current_room and ctx.current_room.closed:
        ctx.current_room = None
        room_code_var.set(None)
    return ctx.current_room


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if _current_room(ctx):
        await send_error(ctx, "Already in a room.")
        return

    try:
        msg = parse_message(CreateRoomMessage, data)
    except InvalidMessage as e:
        await send_error(ctx, str(e))
        return

    room = room_manager.create_room(
        host_id=ctx.player_id,
        host_name=msg.player_name,
        host_websocket=ctx.websocket,
        cpu_count=msg.cpu_count,
        cpu_difficulty=msg.cpu_difficulty,
        rules=msg.rules.apply(Rules()),
    )
    ctx.current_room = room
    room_code_var.set(room.code)
    _room_logger(ctx, room).info(f"{msg.player_name} created room")

    async with room.game_lock:
        await ctx.websocket.send_json({
            "type": "room_created",
            "room_code": room.code,
            "player_id": ctx.player_id,
            "game_state": room.view_for(ctx.player_id),
        })
        await broadcast_game_state(room)
        await check_and_run_cpu_turn(room)


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if _current_room(ctx):
        await send_error(ctx, "Already in a room.")
        return

    try:
        msg = parse_message(JoinRoomMessage, data)
    except InvalidMessage as e:
        await send_error(ctx, str(e))
        return

    room = room_manager.get_room(msg.room_code)
    if not room:
        await send_error(ctx, "Room not found.")
        return

    async with room.game_lock:
        if not room.add_player(ctx.player_id, msg.player_name, ctx.websocket):
            await send_error(ctx, "Room is full.")
            return

        ctx.current_room = room
        room_code_var.set(room.code)
        _room_logger(ctx, room).info(f"{msg.player_name} joined room")

        await ctx.websocket.send_json({
            "type": "room_joined",
            "room_code": room.code,
            "player_id": ctx.player_id,
            "game_state": room.view_for(ctx.player_id),
        })
        await room.broadcast({
            "type": "player_joined",
            "player_id": ctx.player_id,
            "player_name": msg.player_name,
        }, exclude=ctx.player_id)
        await broadcast_game_state(room)
        await check_and_run_cpu_turn(room)


async def handle_spectate(data: dict, ctx: ConnectionContext, *, room_manager, **kw) -> None:
    try:
        msg = parse_message(SpectateMessage, data)
    except InvalidMessage as e:
        await send_error(ctx, str(e))
        return

    room = room_manager.get_room(msg.room_code)
    if not room:
        await send_error(ctx, "Room not found.")
        return

    if ctx.spectating and ctx.spectating is not room:
        ctx.spectating.remove_spectator(ctx.websocket)

    room.add_spectator(ctx.websocket)
    ctx.spectating = room
    logger.with_context(room_code=room.code).debug("Spectator attached")

    await ctx.websocket.send_json({
        "type": "spectating",
        "room_code": room.code,
        "game_state": room.view_for(None),
    })


# ---------------------------------------------------------------------------
# Game handlers
# ---------------------------------------------------------------------------

async def handle_action(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    room = _current_room(ctx)
    if not room:
        await send_error(ctx, "Not in a room.")
        return

    try:
        action = parse_message(ActionMessage, data).to_action()
    except InvalidMessage as e:
        await send_error(ctx, str(e))
        return

    async with room.game_lock:
        if not _current_room(ctx):
            await send_error(ctx, "Not in a room.")
            return
        result = room.game.apply_action(ctx.player_id, action)
        if not result:
            _room_logger(ctx, room).debug(f"Rejected {action.type.value}: {result.error}")
            await send_error(ctx, result.error)
            return

        await broadcast_game_state(room)
        await check_and_run_cpu_turn(room)


async def handle_next_hand(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    room = _current_room(ctx)
    if not room:
        await send_error(ctx, "Not in a room.")
        return

    async with room.game_lock:
        if not _current_room(ctx):
            await send_error(ctx, "Not in a room.")
            return
        result = room.game.next_hand()
        if not result:
            await send_error(ctx, result.error)
            return

        await broadcast_game_state(room)
        await check_and_run_cpu_turn(room)


async def handle_rematch(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    room = _current_room(ctx)
    if not room:
        await send_error(ctx, "Not in a room.")
        return

    async with room.game_lock:
        if not _current_room(ctx):
            await send_error(ctx, "Not in a room.")
            return
        room.game.rematch()
        _room_logger(ctx, room).info("Rematch requested")
        await broadcast_game_state(room)
        await check_and_run_cpu_turn(room)


# ---------------------------------------------------------------------------
# Leave handler
# ---------------------------------------------------------------------------

async def handle_leave_room(data: dict, ctx: ConnectionContext, *, handle_player_leave, **kw) -> None:
    if _current_room(ctx):
        await handle_player_leave(ctx.current_room, ctx.player_id)
        ctx.current_room = None
        room_code_var.set(None)

    if ctx.spectating:
        ctx.spectating.remove_spectator(ctx.websocket)
        ctx.spectating = None


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "spectate": handle_spectate,
    "action": handle_action,
    "next_hand": handle_next_hand,
    "rematch": handle_rematch,
    "leave_room": handle_leave_room,
}
