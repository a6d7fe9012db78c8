"""FastAPI WebSocket server for the Scat (31) card game."""

import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from ai import drive_cpu_turns
from config import config
from game import ACTIVE_PHASES, InvariantViolation
from handlers import HANDLERS, ConnectionContext
from logging_config import player_id_var, room_code_var, setup_logging
from room import Room, RoomManager
from routers.health import router as health_router, set_health_dependencies

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)

room_manager = RoomManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    set_health_dependencies(room_manager=room_manager)
    logger.info(f"Scat server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _close_all_websockets()
    set_health_dependencies(room_manager=None)
    logger.info("Shutdown complete")


async def _close_all_websockets():
    """Close all active WebSocket connections gracefully."""
    for room in list(room_manager.rooms.values()):
        sockets = [p.websocket for p in room.players.values() if p.websocket and not p.is_cpu]
        for websocket in sockets + list(room.spectators):
            try:
                await websocket.close(code=1001, reason="Server shutting down")
            except Exception as e:
                logger.debug(f"Error closing websocket: {e}")
    logger.info("All WebSocket connections closed")


app = FastAPI(
    title="Scat (31) Card Game",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    player_id_var.set(connection_id)
    room_code_var.set(None)
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=room_manager,
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
        handle_player_leave=handle_player_leave,
    )

    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "message": "Invalid message."})
                continue

            handler = HANDLERS.get(data.get("type"))
            if not handler:
                await websocket.send_json({"type": "error", "message": "Unknown message type."})
                continue

            try:
                await handler(data, ctx, **handler_deps)
            except InvariantViolation:
                logger.exception(f"Game state corrupted handling {data.get('type')}")
                if ctx.current_room:
                    await retire_room(ctx.current_room)
                    ctx.current_room = None
                    room_code_var.set(None)
    except WebSocketDisconnect:
        logger.debug(f"WebSocket {connection_id} disconnected")
        if ctx.current_room:
            await handle_player_leave(ctx.current_room, ctx.player_id)
        if ctx.spectating:
            ctx.spectating.remove_spectator(websocket)


async def broadcast_game_state(room: Room):
    """Send every connected seat its own view, and spectators the public one."""
    game = room.game

    for pid, player in room.players.items():
        # Skip CPU players and detached seats
        if player.is_cpu or not player.websocket:
            continue

        await room.send_to(pid, {
            "type": "game_state",
            "game_state": room.view_for(pid),
        })

        # Notify the current player it's their turn (only before they draw)
        if game.phase in ACTIVE_PHASES:
            current = game.current_player()
            if current and pid == current.id and game.pending is None:
                await room.send_to(pid, {"type": "your_turn"})

    if room.spectators:
        await room.send_to_spectators({
            "type": "game_state",
            "game_state": room.view_for(None),
        })


async def check_and_run_cpu_turn(room: Room):
    """
    Play CPU seats until a human is up or the hand ends.

    Callers hold room.game_lock. Capped at config.CPU_LOOP_LIMIT turns;
    a CPU that fails to advance the turn raises CPUStallError.
    """
    if room.game.phase not in ACTIVE_PHASES:
        return

    current = room.game.current_player()
    if not current or not current.is_cpu:
        return

    # Brief pause before the first CPU moves
    await asyncio.sleep(config.CPU_TURN_DELAY)

    async def broadcast_cb():
        await broadcast_game_state(room)

    turns = await drive_cpu_turns(
        room.game,
        room.cpu_difficulty,
        broadcast_cb,
        max_iterations=config.CPU_LOOP_LIMIT,
        pace=config.CPU_TURN_DELAY > 0,
    )
    logger.debug(f"Room {room.code}: {turns} CPU turns played")


async def retire_room(room: Room):
    """
    Shut down a room whose game state is corrupt.

    Players and spectators are told the game errored and the room closed.
    The room is marked closed so connections still pointing at it refuse
    further messages.
    """
    room.closed = True
    room_manager.remove_room(room.code)
    logger.error(f"Room {room.code}: retired after an internal error")

    closed = {"type": "room_closed", "room_code": room.code}
    await room.broadcast({
        "type": "error",
        "message": "The game hit an internal error and cannot continue.",
    })
    await room.broadcast(closed)
    await room.send_to_spectators(closed)


async def handle_player_leave(room: Room, player_id: str):
    """Detach a player's connection; drop the room once no human is connected."""
    if room.closed:
        return

    room_player = room.detach(player_id)

    if not room.has_connected_humans():
        await room.send_to_spectators({"type": "room_closed", "room_code": room.code})
        room_manager.remove_room(room.code)
    elif room_player:
        await room.broadcast({
            "type": "player_left",
            "player_id": player_id,
            "player_name": room_player.name,
        })


# Serve static files if client directory exists
client_path = os.path.join(os.path.dirname(__file__), "..", "client")
if os.path.exists(client_path):
    @app.get("/")
    async def serve_index():
        return FileResponse(os.path.join(client_path, "index.html"))

    # Mount static files for everything else (JS, CSS, SVG, etc.)
    app.mount("/", StaticFiles(directory=client_path), name="static")


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Scat server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
