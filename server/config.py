"""
Centralized configuration for the Scat (31) game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.rule_defaults.starting_lives)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_optional_number(key: str, default: Optional[float]) -> Optional[float]:
    """
    Get an optional numeric environment variable.

    "none"/"null"/"off" explicitly disable the value; unset or unparsable
    values fall back to the default.
    """
    raw = os.environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in ("none", "null", "off"):
        return None
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class RuleDefaults:
    """Default rules for newly created rooms (overridable per room)."""
    starting_lives: int = 3
    allow_knock_any_score: bool = True
    knock_min_score: Optional[int] = None
    three_of_kind_value: Optional[float] = 30.5


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Room settings
    MAX_PLAYERS_PER_ROOM: int = 9
    MAX_CPU_PLAYERS: int = 8
    ROOM_CODE_LENGTH: int = 4

    # CPU driver
    CPU_LOOP_LIMIT: int = 50
    CPU_TURN_DELAY: float = 0.4
    DEFAULT_CPU_DIFFICULTY: str = "medium"

    # Rule defaults
    rule_defaults: RuleDefaults = field(default_factory=RuleDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        knock_min = get_env_optional_number("DEFAULT_KNOCK_MIN_SCORE", None)

        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            MAX_PLAYERS_PER_ROOM=get_env_int("MAX_PLAYERS_PER_ROOM", 9),
            MAX_CPU_PLAYERS=get_env_int("MAX_CPU_PLAYERS", 8),
            ROOM_CODE_LENGTH=get_env_int("ROOM_CODE_LENGTH", 4),
            CPU_LOOP_LIMIT=get_env_int("CPU_LOOP_LIMIT", 50),
            CPU_TURN_DELAY=get_env_float("CPU_TURN_DELAY", 0.4),
            DEFAULT_CPU_DIFFICULTY=get_env("DEFAULT_CPU_DIFFICULTY", "medium"),
            rule_defaults=RuleDefaults(
                starting_lives=get_env_int("DEFAULT_STARTING_LIVES", 3),
                allow_knock_any_score=get_env_bool("DEFAULT_ALLOW_KNOCK_ANY_SCORE", True),
                knock_min_score=int(knock_min) if knock_min is not None else None,
                three_of_kind_value=get_env_optional_number("DEFAULT_THREE_OF_KIND_VALUE", 30.5),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
