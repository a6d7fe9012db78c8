"""
Room management for multiplayer Scat (31) games.

This module handles room creation, seat management, and WebSocket
communication for multiplayer game sessions.

A Room contains:
    - A unique uppercase code for joining
    - A collection of RoomPlayers (human or CPU)
    - A Game instance with the actual game state
    - The CPU difficulty shared by all CPU seats
    - Spectator connections that receive the public view
"""

import asyncio
import logging
import random
import string
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import WebSocket

from ai import Difficulty
from constants import MAX_CPU_PLAYERS, ROOM_CODE_LENGTH
from game import Game, Player, PlayerType, Rules

logger = logging.getLogger(__name__)


@dataclass
class RoomPlayer:
    """
    A seat in a game room (connection-level representation).

    This is separate from game.Player - RoomPlayer tracks room-level info
    like WebSocket connections and host status, while game.Player tracks
    in-game state like cards and lives.

    Attributes:
        id: Unique player identifier (shared with game.Player.id).
        name: Display name.
        websocket: WebSocket connection (None for CPU players or after leaving).
        is_host: Whether this player created the room.
        is_cpu: Whether this is an AI-controlled seat.
    """

    id: str
    name: str
    websocket: Optional[WebSocket] = None
    is_host: bool = False
    is_cpu: bool = False


@dataclass
class Room:
    """
    A game room hosting one game of 31.

    Attributes:
        code: Room code for joining (e.g., "ABCD").
        game: The Game instance containing actual game state.
        cpu_difficulty: Difficulty tier of every CPU seat.
        players: Dict mapping player IDs to RoomPlayer objects.
        spectators: Connections receiving the spectator view.
        game_lock: asyncio.Lock for serializing game mutations.
        closed: True once the room was retired after an internal error.
    """

    code: str
    game: Game = field(default_factory=Game)
    cpu_difficulty: Difficulty = Difficulty.MEDIUM
    players: dict[str, RoomPlayer] = field(default_factory=dict)
    spectators: list[WebSocket] = field(default_factory=list)
    game_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    closed: bool = False

    def __post_init__(self) -> None:
        self.game.room_id = self.code

    def _seat(self, room_player: RoomPlayer, player_type: PlayerType) -> Optional[RoomPlayer]:
        game_player = Player(id=room_player.id, name=room_player.name, type=player_type)
        if not self.game.add_player(game_player):
            return None
        self.players[room_player.id] = room_player
        return room_player

    def add_player(
        self,
        player_id: str,
        name: str,
        websocket: Optional[WebSocket],
        restart_hand: bool = True,
    ) -> Optional[RoomPlayer]:
        """
        Seat a human player.

        The first player seated becomes the host. Anyone joining later
        interrupts the hand in progress: the hand is re-dealt from dealer
        seat 0 so the newcomer gets cards. Lives are kept.

        Args:
            player_id: Unique identifier for the player.
            name: Display name.
            websocket: The player's WebSocket connection.
            restart_hand: Re-deal after seating (False while building a room).

        Returns:
            The created RoomPlayer, or None if the table is full.
        """
        room_player = RoomPlayer(
            id=player_id,
            name=name,
            websocket=websocket,
            is_host=not self.players,
        )
        if self._seat(room_player, PlayerType.HUMAN) is None:
            return None

        if restart_hand:
            self.game.dealer_index = 0
            self.game.start_hand(note=f"{name} joined. Restarting hand.")
            logger.info(f"Room {self.code}: {name} joined, hand restarted")

        return room_player

    def add_cpu_player(self, cpu_id: str, name: str) -> Optional[RoomPlayer]:
        """
        Seat a CPU player.

        Returns:
            The created RoomPlayer, or None if the table is full.
        """
        room_player = RoomPlayer(id=cpu_id, name=name, is_cpu=True)
        return self._seat(room_player, PlayerType.CPU)

    def get_player(self, player_id: str) -> Optional[RoomPlayer]:
        """Get a player by ID, or None if not found."""
        return self.players.get(player_id)

    def get_cpu_players(self) -> list[RoomPlayer]:
        """Get all CPU players in the room."""
        return [p for p in self.players.values() if p.is_cpu]

    def has_connected_humans(self) -> bool:
        """Check whether any human seat still has a live connection."""
        return any(p.websocket is not None for p in self.players.values() if not p.is_cpu)

    def detach(self, player_id: str) -> Optional[RoomPlayer]:
        """
        Drop a player's connection.

        The seat stays in the game (a hand in progress cannot lose a seat),
        it just stops receiving updates.

        Returns:
            The RoomPlayer, or None if not found.
        """
        room_player = self.players.get(player_id)
        if room_player:
            room_player.websocket = None
        return room_player

    def add_spectator(self, websocket: WebSocket) -> None:
        if websocket not in self.spectators:
            self.spectators.append(websocket)

    def remove_spectator(self, websocket: WebSocket) -> None:
        if websocket in self.spectators:
            self.spectators.remove(websocket)

    def view_for(self, player_id: Optional[str]) -> dict:
        """Game state as seen by one seat (or a spectator for None)."""
        return self.game.get_state(player_id)

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to all connected human players in the room.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional player ID to skip.
        """
        for player_id, player in self.players.items():
            if player_id != exclude and player.websocket and not player.is_cpu:
                try:
                    await player.websocket.send_json(message)
                except Exception as e:
                    logger.debug(f"Room {self.code}: send to {player_id} failed: {e}")

    async def send_to(self, player_id: str, message: dict) -> None:
        """
        Send a message to a specific player.

        Args:
            player_id: ID of the recipient player.
            message: JSON-serializable message dict.
        """
        player = self.players.get(player_id)
        if player and player.websocket and not player.is_cpu:
            try:
                await player.websocket.send_json(message)
            except Exception as e:
                logger.debug(f"Room {self.code}: send to {player_id} failed: {e}")

    async def send_to_spectators(self, message: dict) -> None:
        for websocket in list(self.spectators):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.debug(f"Room {self.code}: dropping spectator: {e}")
                self.remove_spectator(websocket)


class RoomManager:
    """
    Manages all active game rooms.

    Provides room creation with unique codes, lookup, and cleanup.
    A single RoomManager instance is used by the server.
    """

    def __init__(self) -> None:
        """Initialize an empty room manager."""
        self.rooms: dict[str, Room] = {}

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a unique uppercase room code."""
        for _ in range(max_attempts):
            code = "".join(random.choices(string.ascii_uppercase, k=ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create_room(
        self,
        host_id: str,
        host_name: str,
        host_websocket: Optional[WebSocket] = None,
        cpu_count: int = 0,
        cpu_difficulty: Difficulty = Difficulty.MEDIUM,
        rules: Optional[Rules] = None,
        seed: Optional[int] = None,
    ) -> Room:
        """
        Create a room, seat the host and CPUs, and deal the first hand.

        Args:
            host_id: ID for the host's seat (seat 0).
            host_name: Host display name.
            host_websocket: Host connection.
            cpu_count: Number of CPU seats (clamped to 0..MAX_CPU_PLAYERS).
            cpu_difficulty: Tier for every CPU seat.
            rules: Room rules (defaults from config).
            seed: Initial shuffle seed (random if omitted).

        Returns:
            The newly created Room, already in its first hand.
        """
        code = self._generate_code()
        game = Game(rules=rules or Rules())
        if seed is not None:
            game.seed = seed

        room = Room(code=code, game=game, cpu_difficulty=cpu_difficulty)
        room.add_player(host_id, host_name, host_websocket, restart_hand=False)

        cpu_count = max(0, min(cpu_count, MAX_CPU_PLAYERS))
        for i in range(cpu_count):
            room.add_cpu_player(f"cpu_{uuid.uuid4().hex[:8]}", f"CPU {i + 1}")

        game.start_hand()
        self.rooms[code] = room
        logger.info(
            f"Room {code} created by {host_name} with {cpu_count} "
            f"{cpu_difficulty.value} CPU players"
        )
        return room

    def get_room(self, code: str) -> Optional[Room]:
        """
        Get a room by its code (case-insensitive).

        Args:
            code: The room code.

        Returns:
            The Room if found, None otherwise.
        """
        return self.rooms.get(code.strip().upper())

    def remove_room(self, code: str) -> None:
        """
        Delete a room.

        Args:
            code: The room code to remove.
        """
        if code in self.rooms:
            del self.rooms[code]
            logger.info(f"Room {code} removed")

    def find_player_room(self, player_id: str) -> Optional[Room]:
        """
        Find which room a player is in.

        Args:
            player_id: The player ID to search for.

        Returns:
            The Room containing the player, or None.
        """
        for room in self.rooms.values():
            if player_id in room.players:
                return room
        return None
