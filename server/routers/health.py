"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the app handle requests?)
- /metrics - Room and game metrics for monitoring
"""

import json
import logging
from collections import Counter
from datetime import datetime, timezone

from fastapi import APIRouter, Response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_room_manager = None


def set_health_dependencies(room_manager=None):
    """Set dependencies for health checks."""
    global _room_manager
    _room_manager = room_manager


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app handle requests?

    Returns 503 until the room manager has been wired in at startup.
    """
    ready = _room_manager is not None
    checks = {"room_manager": {"status": "ok" if ready else "not_configured"}}

    return Response(
        content=json.dumps({
            "status": "ok" if ready else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }),
        status_code=200 if ready else 503,
        media_type="application/json",
    )


@router.get("/metrics")
async def metrics():
    """
    Expose room and game metrics for monitoring.

    Counts rooms, seats (human, CPU, connected) and rooms per game phase.
    """
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if _room_manager is None:
        return metrics_data

    rooms = list(_room_manager.rooms.values())
    seats = [p for room in rooms for p in room.players.values()]
    phases = Counter(room.game.phase.value for room in rooms)

    metrics_data.update({
        "active_rooms": len(rooms),
        "total_players": len(seats),
        "human_players": sum(1 for p in seats if not p.is_cpu),
        "cpu_players": sum(1 for p in seats if p.is_cpu),
        "connected_players": sum(1 for p in seats if p.websocket is not None),
        "spectators": sum(len(room.spectators) for room in rooms),
        "rooms_by_phase": dict(phases),
    })
    return metrics_data
