"""CPU opponents for Scat (31)."""

import asyncio
import logging
import os
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from constants import (
    CPU_LOOP_LIMIT,
    DIFFICULTY_SETTINGS,
    EASY_RANDOM_DISCARD_RATE,
    HARD_SUITED_BONUS,
)
from game import (
    ACTIVE_PHASES,
    Action,
    Card,
    Discard,
    DrawDiscard,
    DrawStock,
    Game,
    InvariantViolation,
    Knock,
    Player,
    Rules,
    format_value,
    hand_value,
)


# Debug logging configuration
# Set AI_DEBUG=1 environment variable to enable detailed AI decision logging
AI_DEBUG = os.environ.get("AI_DEBUG", "0") == "1"

# Create a dedicated logger for AI decisions
ai_logger = logging.getLogger("scat.ai")
if AI_DEBUG:
    ai_logger.setLevel(logging.DEBUG)
    if not ai_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [AI] %(message)s", datefmt="%H:%M:%S"
        ))
        ai_logger.addHandler(handler)


def ai_log(message: str):
    """Log AI decision info when AI_DEBUG is enabled."""
    if AI_DEBUG:
        ai_logger.debug(message)


# =============================================================================
# CPU Turn Timing Configuration (seconds)
# =============================================================================
# Pacing for CPU turns played over the WebSocket, so humans can follow along.
# The synchronous drivers used by tests and simulations never sleep.

CPU_TIMING = {
    # Delay before the CPU "looks at" the discard pile
    "think": (0.3, 0.6),
    # Pause after the draw broadcast so the draw animation can finish
    "post_draw_settle": 0.6,
    # Pause after the discard before the next seat moves
    "post_action_pause": (0.3, 0.5),
}


class CPUStallError(InvariantViolation):
    """A CPU seat failed to move the game forward."""


class Difficulty(str, Enum):
    """CPU difficulty tiers (one per room)."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def parse(cls, value: Optional[str], default: Optional["Difficulty"] = None) -> "Difficulty":
        """Parse a client-supplied tier name, falling back to the default (medium)."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return default or cls.MEDIUM


@dataclass(frozen=True)
class CPUSettings:
    """Tuning for one difficulty tier."""
    # Knock as soon as the hand is worth at least this much
    knock_threshold: int
    # Chance of taking an improving discard (hard always takes it)
    take_discard_bias: float


def get_settings(difficulty: Union[Difficulty, str]) -> CPUSettings:
    knock_threshold, bias = DIFFICULTY_SETTINGS[Difficulty(difficulty).value]
    return CPUSettings(knock_threshold=knock_threshold, take_discard_bias=bias)


def _hand_str(hand: list[Card]) -> str:
    return " ".join(str(card) for card in hand)


class ScatAI:
    """AI decision-making for 31."""

    @staticmethod
    def should_knock(game: Game, player: Player, difficulty: Difficulty) -> bool:
        """Knock when the hand reaches the tier's threshold and knocking is legal."""
        settings = get_settings(difficulty)
        value = hand_value(player.hand, game.rules)
        if value < settings.knock_threshold:
            return False
        return game.can_knock(player.id)

    @staticmethod
    def best_value_after_adding(hand: list[Card], card: Card, rules: Rules) -> float:
        """Best 3-card value reachable by adding card and dropping any one card."""
        cards = hand + [card]
        best = -1
        for drop in cards:
            remaining = [c for c in cards if c.id != drop.id]
            best = max(best, hand_value(remaining, rules))
        return best

    @staticmethod
    def should_take_discard(
        discard_card: Optional[Card],
        player: Player,
        rules: Rules,
        difficulty: Difficulty,
        rng=random,
    ) -> bool:
        """
        Decide between the visible discard and a blind stock draw.

        Only a card that improves the best achievable hand is considered.
        Hard CPUs always take it; easier tiers take it at their bias rate.
        """
        if discard_card is None:
            return False

        current = hand_value(player.hand, rules)
        best_after = ScatAI.best_value_after_adding(player.hand, discard_card, rules)
        if best_after <= current:
            return False

        if difficulty == Difficulty.HARD:
            return True
        return rng.random() < get_settings(difficulty).take_discard_bias

    @staticmethod
    def _candidates(hand: list[Card], exclude_id: Optional[str]) -> list[Card]:
        return [c for c in hand if c.id != exclude_id]

    @staticmethod
    def choose_best_discard(hand: list[Card], rules: Rules, exclude_id: Optional[str] = None) -> str:
        """Discard whichever card leaves the most valuable 3-card hand."""
        best_value = -1
        best_id = None
        for card in ScatAI._candidates(hand, exclude_id):
            remaining = [c for c in hand if c.id != card.id]
            value = hand_value(remaining, rules)
            if value > best_value:
                best_value = value
                best_id = card.id
        return best_id

    @staticmethod
    def choose_discard_easy(hand: list[Card], rules: Rules, rng=random, exclude_id: Optional[str] = None) -> str:
        """Throw a random card most of the time, otherwise play it straight."""
        if rng.random() < EASY_RANDOM_DISCARD_RATE:
            return rng.choice(ScatAI._candidates(hand, exclude_id)).id
        return ScatAI.choose_best_discard(hand, rules, exclude_id)

    @staticmethod
    def choose_discard_hard(hand: list[Card], rules: Rules, exclude_id: Optional[str] = None) -> str:
        """Best discard, nudged toward keeping two or more cards of one suit."""
        best_score = float("-inf")
        best_id = None
        for card in ScatAI._candidates(hand, exclude_id):
            remaining = [c for c in hand if c.id != card.id]
            value = hand_value(remaining, rules)

            suit_counts: dict = {}
            for c in remaining:
                suit_counts[c.suit] = suit_counts.get(c.suit, 0) + 1
            bonus = HARD_SUITED_BONUS if max(suit_counts.values()) >= 2 else 0

            score = value + bonus
            if score > best_score:
                best_score = score
                best_id = card.id
        return best_id

    @staticmethod
    def choose_discard(
        hand: list[Card],
        rules: Rules,
        difficulty: Difficulty,
        rng=random,
        exclude_id: Optional[str] = None,
    ) -> str:
        """
        Pick the card to discard from a 4-card hand.

        Args:
            hand: The CPU's hand after drawing.
            rules: Room rules.
            difficulty: CPU tier.
            rng: Source of randomness (defaults to the random module).
            exclude_id: Card that may not be discarded (just taken from the pile).

        Returns:
            ID of the card to discard.
        """
        if difficulty == Difficulty.EASY:
            return ScatAI.choose_discard_easy(hand, rules, rng, exclude_id)
        if difficulty == Difficulty.HARD:
            return ScatAI.choose_discard_hard(hand, rules, exclude_id)
        return ScatAI.choose_best_discard(hand, rules, exclude_id)


# =============================================================================
# Turn Drivers
# =============================================================================

def _apply_cpu_action(game: Game, player: Player, action: Action) -> Action:
    result = game.apply_action(player.id, action)
    if not result:
        raise CPUStallError(f"CPU {player.name} could not play {action.type.value}: {result.error}")
    return action


def take_cpu_draw_step(game: Game, player: Player, difficulty: Difficulty, rng=random) -> Action:
    """Open a CPU turn: knock, or draw from the discard pile or the stock."""
    value = hand_value(player.hand, game.rules)
    top = game.discard_top()

    if ScatAI.should_knock(game, player, difficulty):
        ai_log(f"{player.name} [{difficulty.value}] knocks on {format_value(value)} ({_hand_str(player.hand)})")
        return _apply_cpu_action(game, player, Knock())

    take = ScatAI.should_take_discard(top, player, game.rules, difficulty, rng)
    ai_log(
        f"{player.name} [{difficulty.value}] holds {_hand_str(player.hand)} = {format_value(value)}, "
        f"{'takes ' + str(top) if take else 'draws from stock'}"
    )
    return _apply_cpu_action(game, player, DrawDiscard() if take else DrawStock())


def take_cpu_discard_step(game: Game, player: Player, difficulty: Difficulty, rng=random) -> Action:
    """Close a CPU turn by discarding (never the card just taken from the pile)."""
    taken_id = game.pending.took_discard_id if game.pending else None
    card_id = ScatAI.choose_discard(player.hand, game.rules, difficulty, rng, exclude_id=taken_id)
    ai_log(f"{player.name} discards {card_id}")
    return _apply_cpu_action(game, player, Discard(card_id))


def run_cpu_turn(game: Game, player: Player, difficulty: Difficulty, rng=random) -> list[Action]:
    """
    Play one complete CPU turn synchronously.

    Returns:
        The actions applied, in order.

    Raises:
        CPUStallError: If the game rejected a CPU move.
    """
    first = take_cpu_draw_step(game, player, difficulty, rng)
    if isinstance(first, Knock):
        return [first]
    return [first, take_cpu_discard_step(game, player, difficulty, rng)]


DifficultySource = Union[Difficulty, str, Callable[[Player], Difficulty]]


def _difficulty_for(source: DifficultySource, player: Player) -> Difficulty:
    if callable(source) and not isinstance(source, str):
        return source(player)
    return Difficulty(source)


def run_cpu_loop(
    game: Game,
    difficulty: DifficultySource,
    max_iterations: int = CPU_LOOP_LIMIT,
    rng=random,
) -> int:
    """
    Play consecutive CPU seats until a human is up or the hand ends.

    Args:
        game: The game to drive.
        difficulty: A tier for every CPU, or a callable picking one per player.
        max_iterations: Upper bound on CPU turns in one call.
        rng: Source of randomness for CPU choices.

    Returns:
        Number of CPU turns played.

    Raises:
        CPUStallError: If a CPU turn left the turn index unchanged mid-hand.
    """
    turns = 0
    for _ in range(max_iterations):
        if game.phase not in ACTIVE_PHASES:
            break
        current = game.current_player()
        if current is None or not current.is_cpu:
            break

        before = game.turn_index
        run_cpu_turn(game, current, _difficulty_for(difficulty, current), rng)
        turns += 1

        if game.phase in ACTIVE_PHASES and game.turn_index == before:
            raise CPUStallError(f"CPU {current.name} did not advance the turn")
    return turns


async def process_cpu_turn(
    game: Game,
    cpu_player: Player,
    difficulty: Difficulty,
    broadcast_callback: Callable[[], Awaitable[None]],
    rng=random,
    pace: bool = True,
) -> list[Action]:
    """Play one CPU turn with pacing delays and a broadcast after each move."""
    if pace:
        think = CPU_TIMING["think"]
        await asyncio.sleep(random.uniform(think[0], think[1]))

    first = take_cpu_draw_step(game, cpu_player, difficulty, rng)
    await broadcast_callback()
    if isinstance(first, Knock):
        return [first]

    if pace:
        await asyncio.sleep(CPU_TIMING["post_draw_settle"])

    second = take_cpu_discard_step(game, cpu_player, difficulty, rng)
    await broadcast_callback()

    if pace:
        post_action = CPU_TIMING["post_action_pause"]
        await asyncio.sleep(random.uniform(post_action[0], post_action[1]))

    return [first, second]


async def drive_cpu_turns(
    game: Game,
    difficulty: Difficulty,
    broadcast_callback: Callable[[], Awaitable[None]],
    max_iterations: int = CPU_LOOP_LIMIT,
    pace: bool = True,
) -> int:
    """Async counterpart of run_cpu_loop, used by the WebSocket server."""
    turns = 0
    for _ in range(max_iterations):
        if game.phase not in ACTIVE_PHASES:
            break
        current = game.current_player()
        if current is None or not current.is_cpu:
            break

        before = game.turn_index
        await process_cpu_turn(game, current, difficulty, broadcast_callback, pace=pace)
        turns += 1

        if game.phase in ACTIVE_PHASES and game.turn_index == before:
            raise CPUStallError(f"CPU {current.name} did not advance the turn")
    return turns
