"""
Card value and game constants for Scat (31).

This module is the single source of truth for card point values and the
fixed numbers the rules engine and CPU players rely on.

Standard 31 Scoring:
    - Ace: 11 points
    - King, Queen, Jack: 10 points
    - 2-10: Face value
    - A hand scores its best same-suit total (or its best single card)
    - Three of a kind scores a fixed 30.5 unless disabled by room rules
"""

from config import config


# =============================================================================
# Card Values - Single Source of Truth
# =============================================================================

DEFAULT_CARD_VALUES: dict[str, int] = {
    'A': 11,
    'K': 10,
    'Q': 10,
    'J': 10,
    '10': 10,
    '9': 9,
    '8': 8,
    '7': 7,
    '6': 6,
    '5': 5,
    '4': 4,
    '3': 3,
    '2': 2,
}

HAND_SIZE = 3
TARGET_SCORE = 31
DECK_SIZE = 52


# =============================================================================
# Deterministic Shuffle (LCG parameters)
# =============================================================================

LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2 ** 32


# =============================================================================
# CPU Difficulty Tiers
# =============================================================================

# tier -> (knock threshold, discard-take bias)
DIFFICULTY_SETTINGS: dict[str, tuple[int, float]] = {
    "easy": (28, 0.2),
    "medium": (27, 0.6),
    "hard": (25, 0.9),
}

# Easy CPUs throw away a random card this often
EASY_RANDOM_DISCARD_RATE = 0.6

# Hard CPUs favour keeping two or more cards of one suit
HARD_SUITED_BONUS = 0.15


# =============================================================================
# Game Constants
# =============================================================================

MAX_PLAYERS = config.MAX_PLAYERS_PER_ROOM
MAX_CPU_PLAYERS = config.MAX_CPU_PLAYERS
ROOM_CODE_LENGTH = config.ROOM_CODE_LENGTH
CPU_LOOP_LIMIT = config.CPU_LOOP_LIMIT

# Lines of game log included in each client view
LOG_TAIL = 12

