"""
Game logic for Scat (31).

This module implements the core rules engine for the card game "31" (Scat),
including card/deck management, hand scoring, the turn state machine, the
knock/showdown resolution and life-based elimination.

31 Rules Summary:
    - Each player holds 3 cards and starts with a number of lives
    - On your turn: draw from the stock or take the top discard, then discard one
    - A hand scores the best total of cards in one suit (A=11, K/Q/J=10)
    - Holding exactly 31 ends the hand at once: everyone else loses a life
    - Instead of drawing you may knock: everyone else gets one final turn,
      then the lowest hand loses a life (a knocker who is alone at the bottom
      loses two)
    - Players reaching 0 lives are eliminated; the last player standing wins

Turn flow:
    START --draw--> DREW --discard--> (next seat)
    START --knock--> (next seat, phase KNOCKED)

Phases:
    PLAYING -> KNOCKED -> SHOWDOWN -> HAND_OVER -> (next hand) PLAYING
    Any life loss leaving one survivor -> GAME_OVER
"""

import logging
import random
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, ClassVar, Optional, Union

from config import config
from constants import (
    DECK_SIZE,
    DEFAULT_CARD_VALUES,
    HAND_SIZE,
    LCG_INCREMENT,
    LCG_MODULUS,
    LCG_MULTIPLIER,
    LOG_TAIL,
    MAX_PLAYERS,
    TARGET_SCORE,
)

logger = logging.getLogger(__name__)


class InvariantViolation(RuntimeError):
    """
    Raised when the game state breaks one of its core invariants.

    This signals a logic defect rather than an illegal move. The operation
    is aborted and the affected room should be treated as unrecoverable.
    """


class Suit(Enum):
    """Card suits, in deck build order."""

    SPADES = "S"
    HEARTS = "H"
    DIAMONDS = "D"
    CLUBS = "C"


class Rank(Enum):
    """
    Card ranks, in deck build order.

    31 scoring:
        - Ace: 11 points
        - King/Queen/Jack: 10 points
        - 2-10: Face value
    """

    ACE = "A"
    KING = "K"
    QUEEN = "Q"
    JACK = "J"
    TEN = "10"
    NINE = "9"
    EIGHT = "8"
    SEVEN = "7"
    SIX = "6"
    FIVE = "5"
    FOUR = "4"
    THREE = "3"
    TWO = "2"


# Map Rank enum to point values (derived from constants.py as single source of truth)
RANK_VALUES: dict[Rank, int] = {rank: DEFAULT_CARD_VALUES[rank.value] for rank in Rank}


def rank_value(rank: Rank) -> int:
    """Point value of a rank: A=11, K/Q/J=10, numerals at face value."""
    return RANK_VALUES[rank]


@dataclass
class Card:
    """
    A playing card.

    Attributes:
        suit: The card's suit.
        rank: The card's rank.
        id: Identifier unique within one deck instance (e.g. "SA-0").
            Defaults to suit+rank for hand-built cards.
    """

    suit: Suit
    rank: Rank
    id: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            self.id = f"{self.suit.value}{self.rank.value}"

    def to_dict(self) -> dict:
        """Convert card to dictionary for JSON serialization."""
        return {
            "suit": self.suit.value,
            "rank": self.rank.value,
            "id": self.id,
        }

    def value(self) -> int:
        """Get point value of this card."""
        return RANK_VALUES[self.rank]

    def __str__(self) -> str:
        return f"{self.rank.value}{self.suit.value}"


# =============================================================================
# Deterministic Deck
# =============================================================================

def make_rng(seed: int) -> Callable[[], float]:
    """
    Create a linear-congruential generator yielding floats in [0, 1).

    The same seed always yields the same stream, which keeps deals
    reproducible across runs and machines.
    """
    state = seed % LCG_MODULUS

    def next_float() -> float:
        nonlocal state
        state = (LCG_MULTIPLIER * state + LCG_INCREMENT) % LCG_MODULUS
        return state / LCG_MODULUS

    return next_float


def shuffle_in_place(cards: list, seed: int) -> None:
    """Fisher-Yates shuffle driven by the seeded LCG."""
    rng = make_rng(seed)
    for i in range(len(cards) - 1, 0, -1):
        j = int(rng() * (i + 1))
        cards[i], cards[j] = cards[j], cards[i]


def build_deck() -> list[Card]:
    """Build an unshuffled 52-card deck with per-instance card ids."""
    cards = []
    for suit in Suit:
        for rank in Rank:
            cards.append(Card(suit, rank, id=f"{suit.value}{rank.value}-{len(cards)}"))
    return cards


def make_deck(seed: int) -> list[Card]:
    """
    Build and shuffle a fresh deck.

    Args:
        seed: Shuffle seed. Equal seeds produce identical decks.

    Returns:
        The shuffled deck as a stack (top = last element).
    """
    cards = build_deck()
    shuffle_in_place(cards, seed)
    return cards


# =============================================================================
# Hand Values
# =============================================================================

def hand_value(hand: list[Card], rules: "Rules") -> float:
    """
    Score a 3-card hand.

    Scoring rules:
        - Three of a kind scores rules.three_of_kind_value when configured
        - Otherwise the best same-suit total, or the best single card if higher

    Args:
        hand: Exactly 3 cards (anything else scores 0).
        rules: Room rules.

    Returns:
        Hand value (higher is better).
    """
    if len(hand) != HAND_SIZE:
        return 0

    if rules.three_of_kind_value is not None:
        if len({card.rank for card in hand}) == 1:
            return rules.three_of_kind_value

    suit_totals: dict[Suit, int] = {}
    for card in hand:
        suit_totals[card.suit] = suit_totals.get(card.suit, 0) + card.value()

    best_suit = max(suit_totals.values())
    best_single = max(card.value() for card in hand)
    return max(best_suit, best_single)


def has_exact_31(hand: list[Card], rules: "Rules") -> bool:
    """Check whether a hand is worth exactly 31."""
    return hand_value(hand, rules) == TARGET_SCORE


def format_value(value: float) -> str:
    """Render a hand value for log lines (30.5 stays, 27.0 becomes 27)."""
    return f"{value:g}"


# =============================================================================
# Rules & Players
# =============================================================================

@dataclass(frozen=True)
class Rules:
    """
    Per-room rule configuration, fixed when the room is created.

    Defaults come from config.rule_defaults.
    """

    starting_lives: int = field(default_factory=lambda: config.rule_defaults.starting_lives)
    """Lives each player starts with (at least 1)."""

    allow_knock_any_score: bool = field(default_factory=lambda: config.rule_defaults.allow_knock_any_score)
    """If True, a player may knock regardless of hand value."""

    knock_min_score: Optional[int] = field(default_factory=lambda: config.rule_defaults.knock_min_score)
    """Minimum hand value needed to knock when allow_knock_any_score is False."""

    three_of_kind_value: Optional[float] = field(default_factory=lambda: config.rule_defaults.three_of_kind_value)
    """Fixed value for three of a kind; None scores them like any other hand."""

    def __post_init__(self) -> None:
        if self.starting_lives < 1:
            raise ValueError(f"starting_lives must be at least 1, got {self.starting_lives}")
        if self.knock_min_score is not None and self.knock_min_score < 0:
            raise ValueError(f"knock_min_score must not be negative, got {self.knock_min_score}")

    def to_dict(self) -> dict:
        return asdict(self)


class PlayerType(Enum):
    """Who controls a seat."""

    HUMAN = "HUMAN"
    CPU = "CPU"


@dataclass
class Player:
    """
    A seat in a game of 31.

    Attributes:
        id: Unique identifier for the player.
        name: Display name.
        type: HUMAN or CPU.
        hand: Held cards (3 between turns, 4 between draw and discard).
        lives: Remaining lives.
        eliminated: True once lives reach 0; permanent for the game.
    """

    id: str
    name: str
    type: PlayerType = PlayerType.HUMAN
    hand: list[Card] = field(default_factory=list)
    lives: int = 3
    eliminated: bool = False

    @property
    def is_cpu(self) -> bool:
        return self.type == PlayerType.CPU

    def find_card(self, card_id: str) -> Optional[Card]:
        """Get a held card by id, or None if not held."""
        for card in self.hand:
            if card.id == card_id:
                return card
        return None

    def lose_lives(self, count: int) -> bool:
        """
        Remove lives, clamping at 0 and eliminating the player there.

        Eliminated players never lose (or regain) lives afterwards.

        Returns:
            True if this loss eliminated the player.
        """
        if self.eliminated:
            return False
        self.lives -= count
        if self.lives <= 0:
            self.lives = 0
            self.eliminated = True
            return True
        return False

    def reset(self, lives: int) -> None:
        """Restore a seat for a new game."""
        self.lives = lives
        self.eliminated = False
        self.hand = []

    def hand_to_dict(self) -> list[dict]:
        return [card.to_dict() for card in self.hand]


# =============================================================================
# Turn State & Actions
# =============================================================================

class GamePhase(Enum):
    """
    Phases of a game of 31.

    Flow: PLAYING -> KNOCKED -> SHOWDOWN -> HAND_OVER -> PLAYING (next hand)
    When one player remains: GAME_OVER
    """

    PLAYING = "PLAYING"        # Normal turns
    KNOCKED = "KNOCKED"        # Someone knocked; others take their final turns
    SHOWDOWN = "SHOWDOWN"      # Hands compared, lives being taken
    HAND_OVER = "HAND_OVER"    # Hand resolved, waiting for the next deal
    GAME_OVER = "GAME_OVER"    # One player left standing


ACTIVE_PHASES = (GamePhase.PLAYING, GamePhase.KNOCKED)
REVEAL_PHASES = (GamePhase.SHOWDOWN, GamePhase.HAND_OVER, GamePhase.GAME_OVER)


class TurnStage(Enum):
    """Where a seat is within its turn."""

    NONE = "NONE"      # Not this seat's turn
    START = "START"    # Current seat, has not drawn yet
    DREW = "DREW"      # Current seat, holding 4 cards, must discard


@dataclass
class PendingTurn:
    """
    Turn sub-state of the acting seat between its draw and its discard.

    Only exists while the current player holds a fourth card; cleared when
    the turn advances or the hand ends.
    """

    player_id: str
    drawn_card_id: Optional[str] = None
    took_discard_id: Optional[str] = None
    stage: TurnStage = TurnStage.DREW


class ActionType(str, Enum):
    DRAW_STOCK = "DRAW_STOCK"
    DRAW_DISCARD = "DRAW_DISCARD"
    DISCARD = "DISCARD"
    KNOCK = "KNOCK"


@dataclass(frozen=True)
class DrawStock:
    """Take the top card of the stock."""

    type: ClassVar[ActionType] = ActionType.DRAW_STOCK


@dataclass(frozen=True)
class DrawDiscard:
    """Take the top card of the discard pile."""

    type: ClassVar[ActionType] = ActionType.DRAW_DISCARD


@dataclass(frozen=True)
class Discard:
    """Throw a held card onto the discard pile."""

    card_id: str
    type: ClassVar[ActionType] = ActionType.DISCARD


@dataclass(frozen=True)
class Knock:
    """Declare the last round of the hand instead of drawing."""

    type: ClassVar[ActionType] = ActionType.KNOCK


Action = Union[DrawStock, DrawDiscard, Discard, Knock]


class RejectReason:
    """Human-readable reasons for rejected actions."""

    HAND_NOT_ACTIVE = "Hand is not active."
    NOT_YOUR_TURN = "Not your turn."
    KNOCK_AFTER_DRAW = "You can only knock at the start of your turn."
    ALREADY_KNOCKED = "Someone already knocked this hand."
    KNOCK_NOT_ALLOWED = "Knock not allowed."
    ALREADY_DREW = "You already drew."
    NO_CARDS = "No cards left to draw."
    DISCARD_EMPTY = "Discard is empty."
    MUST_DRAW_FIRST = "You must draw first."
    CARD_NOT_HELD = "You don't have that card."
    SAME_CARD = "Illegal: cannot discard the same card you took from discard."
    HAND_NOT_OVER = "Hand is not over."


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a submitted action: success, or a rejection with a reason."""

    ok: bool
    error: Optional[str] = None

    @classmethod
    def success(cls) -> "ActionResult":
        return cls(ok=True)

    @classmethod
    def reject(cls, reason: str) -> "ActionResult":
        return cls(ok=False, error=reason)

    def __bool__(self) -> bool:
        return self.ok


# =============================================================================
# Game
# =============================================================================

@dataclass
class Game:
    """
    Main game state and rules engine for 31.

    One Game lives for the lifetime of a room and is mutated in place across
    hands. Callers must serialize access (see room.Room.game_lock).

    Attributes:
        room_id: Owning room code.
        rules: Room rules.
        players: Seats in fixed order.
        dealer_index: Seat that dealt the current hand.
        turn_index: Seat whose turn it is.
        phase: Current game phase.
        knocked_by: ID of the player who knocked this hand, if any.
        final_turns_left: Turns remaining after a knock.
        stock: Draw pile (top = last element).
        discard: Face-up pile (top = last element).
        log: Human-readable lines for the current hand.
        winner_id: Last player standing, once the game is over.
        seed: Next shuffle seed; incremented by every shuffle.
        pending: Turn sub-state of the acting seat after it drew.
        hand_number: Hands dealt so far in this game.
    """

    room_id: str = ""
    rules: Rules = field(default_factory=Rules)
    players: list[Player] = field(default_factory=list)
    dealer_index: int = 0
    turn_index: int = 0
    phase: GamePhase = GamePhase.PLAYING
    knocked_by: Optional[str] = None
    final_turns_left: int = 0
    stock: list[Card] = field(default_factory=list)
    discard: list[Card] = field(default_factory=list)
    log: list[str] = field(default_factory=list)
    winner_id: Optional[str] = None
    seed: int = field(default_factory=lambda: random.randint(0, 999_999_999))
    pending: Optional[PendingTurn] = None
    hand_number: int = 0

    # -------------------------------------------------------------------------
    # Player Management
    # -------------------------------------------------------------------------

    def add_player(self, player: Player) -> bool:
        """
        Seat a player with the room's starting lives.

        Returns:
            True if added, False if the table is full.
        """
        if len(self.players) >= MAX_PLAYERS:
            return False
        player.reset(self.rules.starting_lives)
        self.players.append(player)
        return True

    def get_player(self, player_id: Optional[str]) -> Optional[Player]:
        """Find a player by their ID."""
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def current_player(self) -> Optional[Player]:
        """Get the player whose turn it currently is."""
        if self.players:
            return self.players[self.turn_index]
        return None

    def active_players(self) -> list[Player]:
        """Players who have not been eliminated, in seat order."""
        return [p for p in self.players if not p.eliminated]

    def next_active_index(self, from_index: int) -> int:
        """
        Next non-eliminated seat after from_index, wrapping around.

        Returns from_index itself if no other seat is active.
        """
        n = len(self.players)
        for step in range(1, n + 1):
            idx = (from_index + step) % n
            if not self.players[idx].eliminated:
                return idx
        return from_index

    def turn_stage(self, player_id: str) -> TurnStage:
        """Turn sub-stage of a seat (NONE unless it is the acting seat)."""
        current = self.current_player()
        if self.phase not in ACTIVE_PHASES or not current or current.id != player_id:
            return TurnStage.NONE
        if self.pending and self.pending.player_id == player_id:
            return self.pending.stage
        return TurnStage.START

    # -------------------------------------------------------------------------
    # Hand Lifecycle
    # -------------------------------------------------------------------------

    def _next_seed(self) -> int:
        seed = self.seed
        self.seed += 1
        return seed

    def start_hand(self, note: Optional[str] = None) -> None:
        """
        Deal a new hand.

        Shuffles a fresh deck with the next seed, deals 3 cards to each active
        player (round-robin starting left of the dealer), turns one card face
        up and hands the turn to the seat left of the dealer. A dealt 31 ends
        the hand immediately.

        Args:
            note: Optional first log line for the new hand.
        """
        self.phase = GamePhase.PLAYING
        self.knocked_by = None
        self.final_turns_left = 0
        self.pending = None
        self.winner_id = None
        self.hand_number += 1
        self.log = [note] if note else []

        self.stock = make_deck(self._next_seed())
        self.discard = []
        for player in self.players:
            player.hand = []

        active = self.active_players()
        if not active:
            raise InvariantViolation("Cannot deal a hand without active players")

        order = []
        idx = self.dealer_index
        for _ in range(len(active)):
            idx = self.next_active_index(idx)
            order.append(idx)

        for _ in range(HAND_SIZE):
            for seat in order:
                if not self.stock:
                    raise InvariantViolation("Stock empty during deal")
                self.players[seat].hand.append(self.stock.pop())

        if not self.stock:
            raise InvariantViolation("Stock empty starting discard")
        self.discard.append(self.stock.pop())

        self.turn_index = self.next_active_index(self.dealer_index)
        self._check_card_count()

        dealer = self.players[self.dealer_index]
        self._log(f"Hand {self.hand_number}: {dealer.name} deals.")
        logger.info(
            f"Room {self.room_id}: hand {self.hand_number} dealt by {dealer.name} "
            f"({len(active)} active players)"
        )

        dealt_31 = [p for p in active if has_exact_31(p.hand, self.rules)]
        if dealt_31:
            names = ", ".join(p.name for p in dealt_31)
            self._declare_31(dealt_31, f"Dealt 31! {names} declare immediately.")

    def next_hand(self) -> ActionResult:
        """
        Rotate the dealer to the next active seat and deal again.

        Only legal once the current hand is over.
        """
        if self.phase != GamePhase.HAND_OVER:
            return ActionResult.reject(RejectReason.HAND_NOT_OVER)
        self.dealer_index = self.next_active_index(self.dealer_index)
        self.start_hand()
        return ActionResult.success()

    def rematch(self) -> None:
        """Reset all lives and start a new game from dealer seat 0."""
        for player in self.players:
            player.reset(self.rules.starting_lives)
        self.winner_id = None
        self.dealer_index = 0
        self.turn_index = 0
        self.hand_number = 0
        logger.info(f"Room {self.room_id}: rematch started")
        self.start_hand(note="Rematch started. Lives reset.")

    # -------------------------------------------------------------------------
    # Turn Actions
    # -------------------------------------------------------------------------

    def can_knock(self, player_id: str) -> bool:
        """
        Check whether a player may knock right now.

        Requires phase PLAYING, the caller's turn (before drawing), no knock
        yet this hand and at least one opponent still in. Unless the rules
        allow knocking at any score, the caller's hand must also reach
        knock_min_score.
        """
        if self.phase != GamePhase.PLAYING:
            return False
        current = self.current_player()
        if not current or current.id != player_id:
            return False
        if self.pending is not None:
            return False
        if self.knocked_by is not None:
            return False
        if len(self.active_players()) < 2:
            return False
        if self.rules.allow_knock_any_score:
            return True
        if self.rules.knock_min_score is None:
            return False
        return hand_value(current.hand, self.rules) >= self.rules.knock_min_score

    def apply_action(self, player_id: str, action: Action) -> ActionResult:
        """
        Validate and apply a player's action.

        Rejected actions leave the state untouched.

        Args:
            player_id: ID of the acting player.
            action: One of DrawStock, DrawDiscard, Discard, Knock.

        Returns:
            ActionResult (ok, or a rejection reason).

        Raises:
            InvariantViolation: If the state is corrupt.
        """
        if self.phase not in ACTIVE_PHASES:
            return ActionResult.reject(RejectReason.HAND_NOT_ACTIVE)

        player = self.current_player()
        if not player or player.id != player_id:
            return ActionResult.reject(RejectReason.NOT_YOUR_TURN)
        if player.eliminated:
            raise InvariantViolation(f"Turn index {self.turn_index} points at eliminated seat")
        if self.pending and self.pending.player_id != player.id:
            raise InvariantViolation(f"Pending turn belongs to {self.pending.player_id}, not the current seat")

        if isinstance(action, Knock):
            result = self._knock(player)
        elif isinstance(action, DrawStock):
            result = self._draw_stock(player)
        elif isinstance(action, DrawDiscard):
            result = self._draw_discard(player)
        elif isinstance(action, Discard):
            result = self._discard(player, action.card_id)
        else:
            raise TypeError(f"Unsupported action: {action!r}")

        if result.ok:
            self._check_card_count()
        return result

    def _knock(self, player: Player) -> ActionResult:
        if self.pending is not None:
            return ActionResult.reject(RejectReason.KNOCK_AFTER_DRAW)
        if self.knocked_by is not None:
            return ActionResult.reject(RejectReason.ALREADY_KNOCKED)
        if not self.can_knock(player.id):
            return ActionResult.reject(RejectReason.KNOCK_NOT_ALLOWED)

        self.knocked_by = player.id
        self.phase = GamePhase.KNOCKED
        self.final_turns_left = len(self.active_players()) - 1
        self._log(f"{player.name} knocks.")
        logger.info(f"Room {self.room_id}: {player.name} knocked")
        self._advance_turn()
        return ActionResult.success()

    def _draw_stock(self, player: Player) -> ActionResult:
        if self.pending is not None:
            return ActionResult.reject(RejectReason.ALREADY_DREW)
        if not self.stock and not self._refill_stock_from_discard():
            return ActionResult.reject(RejectReason.NO_CARDS)

        card = self.stock.pop()
        player.hand.append(card)
        self.pending = PendingTurn(player_id=player.id, drawn_card_id=card.id)
        self._log(f"{player.name} draws from stock.")
        return ActionResult.success()

    def _draw_discard(self, player: Player) -> ActionResult:
        if self.pending is not None:
            return ActionResult.reject(RejectReason.ALREADY_DREW)
        if not self.discard:
            return ActionResult.reject(RejectReason.DISCARD_EMPTY)

        card = self.discard.pop()
        player.hand.append(card)
        self.pending = PendingTurn(player_id=player.id, took_discard_id=card.id)
        self._log(f"{player.name} takes the top discard ({card}).")
        return ActionResult.success()

    def _discard(self, player: Player, card_id: str) -> ActionResult:
        if self.pending is None:
            return ActionResult.reject(RejectReason.MUST_DRAW_FIRST)

        card = player.find_card(card_id)
        if card is None:
            return ActionResult.reject(RejectReason.CARD_NOT_HELD)
        if self.pending.took_discard_id == card_id:
            return ActionResult.reject(RejectReason.SAME_CARD)
        if len(player.hand) != HAND_SIZE + 1:
            raise InvariantViolation(f"{player.name} holds {len(player.hand)} cards at discard")

        player.hand.remove(card)
        self.discard.append(card)
        self.pending = None

        if has_exact_31(player.hand, self.rules):
            self._declare_31([player], f"{player.name} declares 31! Everyone else loses 1 life.")
            return ActionResult.success()

        self._log(f"{player.name} discards {card}.")

        if self.phase == GamePhase.KNOCKED:
            self.final_turns_left -= 1
            if self.final_turns_left <= 0:
                self.phase = GamePhase.SHOWDOWN
                self.score_showdown()
                return ActionResult.success()

        self._advance_turn()
        return ActionResult.success()

    def _refill_stock_from_discard(self) -> bool:
        """
        Shuffle the discard pile (minus its top card) back into the stock.

        Returns:
            False if the discard pile has no cards to spare.
        """
        if len(self.discard) <= 1:
            return False

        top = self.discard[-1]
        recycled = self.discard[:-1]
        shuffle_in_place(recycled, self._next_seed())
        self.stock = recycled
        self.discard = [top]

        self._log("Stock exhausted: reshuffled discard pile into stock.")
        logger.debug(f"Room {self.room_id}: reshuffled {len(recycled)} cards into stock")
        return True

    def _advance_turn(self) -> None:
        self.pending = None
        self.turn_index = self.next_active_index(self.turn_index)

    # -------------------------------------------------------------------------
    # Scoring & Elimination
    # -------------------------------------------------------------------------

    def _declare_31(self, declarers: list[Player], message: str) -> None:
        """Everyone active except the declarers loses a life; the hand ends."""
        self._log(message)
        logger.info(f"Room {self.room_id}: 31 by {', '.join(p.name for p in declarers)}")

        declarer_ids = {p.id for p in declarers}
        for player in self.active_players():
            if player.id not in declarer_ids:
                self._take_lives(player, 1)

        self._finish_hand()

    def score_showdown(self) -> None:
        """
        Compare all active hands after the knock's final turns.

        Resolution, in priority order:
            1. Knocker alone at the lowest value: knocker loses 2 lives
            2. Knocker tied for lowest: the other tied players lose 1, knocker is spared
            3. Otherwise: every lowest player loses 1
        """
        knocker_id = self.knocked_by
        active = self.active_players()
        scores = [(p, hand_value(p.hand, self.rules)) for p in active]
        min_value = min(value for _, value in scores)
        lowest = [p for p, value in scores if value == min_value]
        lowest_ids = [p.id for p in lowest]

        self._log("Showdown. " + ", ".join(f"{p.name}:{format_value(v)}" for p, v in scores))

        if knocker_id is not None and lowest_ids == [knocker_id]:
            knocker = lowest[0]
            self._log(f"{knocker.name} knocked and is the sole lowest: loses 2 lives.")
            self._take_lives(knocker, 2)
        elif knocker_id is not None and knocker_id in lowest_ids:
            for player in lowest:
                if player.id == knocker_id:
                    continue
                self._log(f"{player.name} ties lowest with knocker: loses 1 life.")
                self._take_lives(player, 1)
        else:
            for player in lowest:
                self._log(f"{player.name} is lowest: loses 1 life.")
                self._take_lives(player, 1)

        self._finish_hand()

    def _take_lives(self, player: Player, count: int) -> None:
        if player.lose_lives(count):
            self._log(f"{player.name} is eliminated.")
            logger.info(f"Room {self.room_id}: {player.name} eliminated")

    def _finish_hand(self) -> None:
        """Settle the hand: GAME_OVER with one survivor, else HAND_OVER."""
        self.pending = None
        alive = self.active_players()
        if not alive:
            raise InvariantViolation("Every player was eliminated")

        if len(alive) == 1:
            self.winner_id = alive[0].id
            self.phase = GamePhase.GAME_OVER
            self._log(f"{alive[0].name} wins the game!")
            logger.info(f"Room {self.room_id}: game over, winner {alive[0].name}")
        else:
            self.winner_id = None
            self.phase = GamePhase.HAND_OVER

    # -------------------------------------------------------------------------
    # State Queries
    # -------------------------------------------------------------------------

    def _log(self, line: str) -> None:
        self.log.append(line)

    def _check_card_count(self) -> None:
        held = sum(len(p.hand) for p in self.players)
        total = len(self.stock) + len(self.discard) + held
        if total != DECK_SIZE:
            raise InvariantViolation(f"Card count is {total}, expected {DECK_SIZE}")

    def discard_top(self) -> Optional[Card]:
        """Get the top card of the discard pile (if any)."""
        if self.discard:
            return self.discard[-1]
        return None

    def get_state(self, viewer_id: Optional[str]) -> dict:
        """
        Get the game state from one viewer's perspective.

        Returns a dictionary suitable for JSON serialization. Opponent hands
        stay hidden until the showdown; the viewer's own hand is always shown.

        Args:
            viewer_id: The receiving player, or None for a spectator.

        Returns:
            Dict with table info, seats, the viewer's own controls and the
            tail of the game log.
        """
        reveal_all = self.phase in REVEAL_PHASES
        turn_player = self.current_player()

        players_data = []
        for player in self.players:
            reveal = reveal_all or (viewer_id is not None and player.id == viewer_id)
            value = None
            if reveal and len(player.hand) == HAND_SIZE:
                value = hand_value(player.hand, self.rules)

            players_data.append({
                "id": player.id,
                "name": player.name,
                "type": player.type.value,
                "lives": player.lives,
                "eliminated": player.eliminated,
                "hand_count": len(player.hand),
                "hand": player.hand_to_dict() if reveal else None,
                "value": value,
            })

        you = self.get_player(viewer_id) if viewer_id is not None else None
        you_data = None
        if you:
            took_discard_id = None
            if self.pending and self.pending.player_id == you.id:
                took_discard_id = self.pending.took_discard_id
            you_data = {
                "id": you.id,
                "name": you.name,
                "hand": you.hand_to_dict(),
                "can_act": self.phase in ACTIVE_PHASES and turn_player is you,
                "can_knock": self.can_knock(you.id),
                "must_discard": self.turn_stage(you.id) == TurnStage.DREW,
                "took_discard_id": took_discard_id,
            }

        top = self.discard_top()

        return {
            "room_id": self.room_id,
            "rules": self.rules.to_dict(),
            "phase": self.phase.value,
            "hand_number": self.hand_number,
            "dealer_index": self.dealer_index,
            "turn_index": self.turn_index,
            "turn_player_id": turn_player.id if turn_player else None,
            "knocked_by": self.knocked_by,
            "final_turns_left": self.final_turns_left if self.phase == GamePhase.KNOCKED else None,
            "winner_id": self.winner_id,
            "stock_count": len(self.stock),
            "top_discard": top.to_dict() if top else None,
            "players": players_data,
            "you": you_data,
            "log": self.log[-LOG_TAIL:],
        }
