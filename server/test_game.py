"""
Test suite for the 31 (Scat) rules engine.

Verifies our implementation matches the house rules:
- Card values (A=11, K/Q/J/10=10, 2-9 face value)
- Hand values (best suit total, three of a kind = 30.5)
- Seeded, reproducible deck
- Draw/discard mechanics
- Cannot re-discard card taken from discard pile
- Knock, final turns and showdown penalties
- Declaring 31 and elimination

Run with: pytest test_game.py -v
"""

import pytest

import game as game_module
from game import (
    ActionResult,
    Card,
    Discard,
    DrawDiscard,
    DrawStock,
    Game,
    GamePhase,
    InvariantViolation,
    Knock,
    PendingTurn,
    Player,
    Rank,
    RejectReason,
    Rules,
    Suit,
    TurnStage,
    RANK_VALUES,
    build_deck,
    format_value,
    hand_value,
    has_exact_31,
    make_deck,
    make_rng,
    shuffle_in_place,
)


# =============================================================================
# Helpers
# =============================================================================

def c(code: str) -> Card:
    """Build a card from a short code like 'QH' or '10S'."""
    return Card(Suit(code[-1]), Rank(code[:-1]))


def hand(*codes: str) -> list[Card]:
    return [c(code) for code in codes]


def rig_game(
    hands: list,
    discard_top: str = None,
    stock_top: list = None,
    rules: Rules = None,
    turn_index: int = 0,
    lives: list = None,
    eliminated: tuple = (),
    names: list = None,
) -> Game:
    """
    Build a mid-hand game with chosen cards, keeping all 52 cards in play.

    hands[i] is a list of card codes, or None for 3 arbitrary cards.
    stock_top[0] is the next card drawn from the stock.
    """
    deck = build_deck()

    def take(code: str) -> Card:
        target = c(code)
        for i, card in enumerate(deck):
            if card.suit == target.suit and card.rank == target.rank:
                return deck.pop(i)
        raise ValueError(f"{code} already used")

    game = Game(room_id="TEST", rules=rules or Rules(), seed=1000)
    for i in range(len(hands)):
        name = names[i] if names else f"P{i}"
        game.add_player(Player(id=f"p{i}", name=name))

    for player, codes in zip(game.players, hands):
        if codes is not None:
            player.hand = [take(code) for code in codes]

    top = take(discard_top) if discard_top else None
    stock_cards = [take(code) for code in (stock_top or [])]

    for i, (player, codes) in enumerate(zip(game.players, hands)):
        if i in eliminated:
            player.hand = []
        elif codes is None:
            player.hand = [deck.pop() for _ in range(3)]

    if top is None:
        top = deck.pop()

    game.discard = [top]
    game.stock = deck + list(reversed(stock_cards))

    for i, player in enumerate(game.players):
        if lives:
            player.lives = lives[i]
        if i in eliminated:
            player.lives = 0
            player.eliminated = True

    game.phase = GamePhase.PLAYING
    game.turn_index = turn_index
    game.dealer_index = (turn_index - 1) % len(game.players)
    game.hand_number = 1
    return game


def draw_and_discard_drawn(game: Game, player_id: str) -> ActionResult:
    """Draw from the stock and throw the same card away."""
    assert game.apply_action(player_id, DrawStock())
    return game.apply_action(player_id, Discard(game.pending.drawn_card_id))


@pytest.fixture
def unshuffled_deck(monkeypatch):
    """Deal from an unshuffled deck: the top cards are C2, C3, C4..."""
    monkeypatch.setattr(game_module, "make_deck", lambda seed: build_deck())


def new_game(num_players: int, rules: Rules = None, seed: int = 42) -> Game:
    game = Game(room_id="TEST", rules=rules or Rules(), seed=seed)
    for i in range(num_players):
        game.add_player(Player(id=f"p{i}", name=f"P{i}"))
    return game


# =============================================================================
# Card Value Tests
# =============================================================================

class TestCardValues:
    """Verify card values match standard 31 rules."""

    def test_ace_worth_11(self):
        assert RANK_VALUES[Rank.ACE] == 11

    def test_face_cards_worth_10(self):
        assert RANK_VALUES[Rank.KING] == 10
        assert RANK_VALUES[Rank.QUEEN] == 10
        assert RANK_VALUES[Rank.JACK] == 10
        assert RANK_VALUES[Rank.TEN] == 10

    def test_numerals_face_value(self):
        assert RANK_VALUES[Rank.TWO] == 2
        assert RANK_VALUES[Rank.FIVE] == 5
        assert RANK_VALUES[Rank.NINE] == 9

    def test_card_str(self):
        assert str(c("QH")) == "QH"
        assert str(c("10S")) == "10S"


# =============================================================================
# Deck Tests
# =============================================================================

class TestDeck:

    def test_build_order_and_ids(self):
        deck = build_deck()
        assert len(deck) == 52
        assert deck[0].id == "SA-0"
        assert deck[12].id == "S2-12"
        assert deck[13].id == "HA-13"
        assert deck[51].id == "C2-51"

    def test_make_deck_is_permutation(self):
        for seed in (0, 1, 42, 123456789):
            deck = make_deck(seed)
            pairs = {(card.suit, card.rank) for card in deck}
            assert len(deck) == 52
            assert len(pairs) == 52

    def test_same_seed_same_deck(self):
        assert [card.id for card in make_deck(7)] == [card.id for card in make_deck(7)]

    def test_different_seed_different_deck(self):
        assert [card.id for card in make_deck(7)] != [card.id for card in make_deck(8)]

    def test_lcg_first_value(self):
        rng = make_rng(0)
        assert rng() == 1013904223 / 2 ** 32

    def test_lcg_stays_in_unit_interval(self):
        rng = make_rng(99)
        for _ in range(1000):
            value = rng()
            assert 0 <= value < 1

    def test_shuffle_in_place_keeps_cards(self):
        cards = build_deck()
        shuffle_in_place(cards, 5)
        assert sorted(card.id for card in cards) == sorted(card.id for card in build_deck())


# =============================================================================
# Hand Value Tests
# =============================================================================

class TestHandValue:

    def setup_method(self):
        self.rules = Rules(three_of_kind_value=30.5)

    def test_same_suit_sum(self):
        assert hand_value(hand("AS", "KS", "9S"), self.rules) == 30

    def test_best_suit_wins(self):
        assert hand_value(hand("KH", "10H", "AS"), self.rules) == 20

    def test_best_single_card_when_no_suit_pair(self):
        assert hand_value(hand("AS", "2H", "3D"), self.rules) == 11

    def test_order_does_not_matter(self):
        cards = hand("7H", "8H", "KD")
        assert hand_value(cards, self.rules) == hand_value(list(reversed(cards)), self.rules) == 15

    def test_exact_31(self):
        assert has_exact_31(hand("AS", "KS", "QS"), self.rules)
        assert not has_exact_31(hand("AS", "KS", "9S"), self.rules)

    def test_three_of_a_kind_fixed_value(self):
        assert hand_value(hand("7S", "7H", "7D"), self.rules) == 30.5

    def test_three_queens_beat_any_suit_but_are_not_31(self):
        queens = hand("QS", "QH", "QD")
        assert hand_value(queens, self.rules) == 30.5
        assert hand_value(queens, self.rules) > hand_value(hand("KS", "QS", "JS"), self.rules)
        assert not has_exact_31(queens, self.rules)

    def test_three_of_a_kind_disabled(self):
        rules = Rules(three_of_kind_value=None)
        assert hand_value(hand("7S", "7H", "7D"), rules) == 7

    def test_wrong_size_scores_zero(self):
        assert hand_value(hand("AS", "KS"), self.rules) == 0
        assert hand_value(hand("AS", "KS", "QS", "JS"), self.rules) == 0

    def test_format_value(self):
        assert format_value(30.5) == "30.5"
        assert format_value(27) == "27"
        assert format_value(27.0) == "27"


# =============================================================================
# Rules & Player Tests
# =============================================================================

class TestRules:

    def test_defaults(self):
        rules = Rules()
        assert rules.starting_lives == 3
        assert rules.allow_knock_any_score is True
        assert rules.knock_min_score is None
        assert rules.three_of_kind_value == 30.5

    def test_zero_lives_rejected(self):
        with pytest.raises(ValueError):
            Rules(starting_lives=0)

    def test_negative_knock_min_rejected(self):
        with pytest.raises(ValueError):
            Rules(knock_min_score=-1)

    def test_add_player_uses_starting_lives(self):
        game = Game(rules=Rules(starting_lives=5))
        player = Player(id="p0", name="P0", lives=1)
        assert game.add_player(player)
        assert player.lives == 5


class TestPlayerLives:

    def test_lose_life(self):
        player = Player(id="p", name="P", lives=3)
        assert player.lose_lives(1) is False
        assert player.lives == 2

    def test_clamps_at_zero_and_eliminates(self):
        player = Player(id="p", name="P", lives=1)
        assert player.lose_lives(2) is True
        assert player.lives == 0
        assert player.eliminated

    def test_eliminated_player_never_changes(self):
        player = Player(id="p", name="P", lives=1)
        player.lose_lives(1)
        assert player.lose_lives(1) is False
        assert player.lives == 0


# =============================================================================
# Dealing Tests
# =============================================================================

class TestStartHand:

    def test_deal_shape(self):
        game = new_game(3)
        game.start_hand()

        assert all(len(p.hand) == 3 for p in game.players)
        assert len(game.discard) == 1
        assert len(game.stock) == 52 - 9 - 1
        assert game.hand_number == 1
        assert game.seed == 43
        assert game.turn_index == 1
        assert game.log[0] == "Hand 1: P0 deals."

    def test_deal_order_starts_left_of_dealer(self):
        expected = make_deck(42)
        game = new_game(3, seed=42)
        game.start_hand()

        # Pops go seat 1, 2, 0, 1, 2, 0, ...
        assert [card.id for card in game.players[1].hand] == [expected[-1].id, expected[-4].id, expected[-7].id]
        assert [card.id for card in game.players[0].hand] == [expected[-3].id, expected[-6].id, expected[-9].id]
        assert game.discard[0].id == expected[-10].id

    def test_same_seed_same_deal(self):
        a = new_game(4, seed=2024)
        b = new_game(4, seed=2024)
        a.start_hand()
        b.start_hand()
        for pa, pb in zip(a.players, b.players):
            assert [card.id for card in pa.hand] == [card.id for card in pb.hand]

    def test_eliminated_seat_gets_no_cards(self, unshuffled_deck):
        game = new_game(3)
        game.players[1].lives = 0
        game.players[1].eliminated = True
        game.start_hand()

        assert game.players[1].hand == []
        assert len(game.stock) == 52 - 6 - 1
        assert game.turn_index == 2

    def test_note_kept_as_first_line(self, unshuffled_deck):
        game = new_game(2)
        game.start_hand(note="Bob joined. Restarting hand.")
        assert game.log[:2] == ["Bob joined. Restarting hand.", "Hand 1: P0 deals."]

    def test_unshuffled_deal(self, unshuffled_deck):
        game = new_game(2)
        game.start_hand()
        assert [str(card) for card in game.players[1].hand] == ["2C", "4C", "6C"]
        assert [str(card) for card in game.players[0].hand] == ["3C", "5C", "7C"]
        assert str(game.discard_top()) == "8C"
        assert game.phase == GamePhase.PLAYING

    def test_dealt_31_ends_hand(self, monkeypatch):
        deck = build_deck()
        picks = {}
        for code in ("AS", "KS", "QS", "2H", "3D", "4C", "9D"):
            target = c(code)
            for i, card in enumerate(deck):
                if card.suit == target.suit and card.rank == target.rank:
                    picks[code] = deck.pop(i)
                    break
        # Two players, dealer 0: pops go seat 1, seat 0, seat 1, ... then the discard
        stacked = deck + [picks[code] for code in ("9D", "4C", "QS", "3D", "KS", "2H", "AS")]
        monkeypatch.setattr(game_module, "make_deck", lambda seed: stacked)

        game = new_game(2)
        game.start_hand()

        assert "Dealt 31! P1 declare immediately." in game.log
        assert game.players[0].lives == 2
        assert game.players[1].lives == 3
        assert game.phase == GamePhase.HAND_OVER
        assert game.pending is None


class TestNextHandAndRematch:

    def test_next_hand_only_when_over(self):
        game = rig_game([None, None])
        result = game.next_hand()
        assert not result
        assert result.error == RejectReason.HAND_NOT_OVER

    def test_next_hand_rotates_dealer(self, unshuffled_deck):
        game = new_game(3)
        game.start_hand()
        game.phase = GamePhase.HAND_OVER

        assert game.next_hand()
        assert game.dealer_index == 1
        assert game.turn_index == 2
        assert game.hand_number == 2

    def test_next_hand_skips_eliminated_dealer(self, unshuffled_deck):
        game = new_game(3)
        game.start_hand()
        game.players[1].lose_lives(3)
        game.phase = GamePhase.HAND_OVER

        assert game.next_hand()
        assert game.dealer_index == 2
        assert game.turn_index == 0

    def test_rematch_resets_everything(self, unshuffled_deck):
        game = new_game(2)
        game.start_hand()
        game.players[0].lose_lives(3)
        game.winner_id = "p1"
        game.phase = GamePhase.GAME_OVER
        game.dealer_index = 1

        game.rematch()

        assert all(p.lives == 3 and not p.eliminated for p in game.players)
        assert game.winner_id is None
        assert game.dealer_index == 0
        assert game.hand_number == 1
        assert game.phase == GamePhase.PLAYING
        assert game.log[0] == "Rematch started. Lives reset."


# =============================================================================
# Turn Action Tests
# =============================================================================

class TestDrawAndDiscard:

    def test_not_your_turn(self):
        game = rig_game([None, None])
        result = game.apply_action("p1", DrawStock())
        assert result.error == RejectReason.NOT_YOUR_TURN
        assert len(game.players[1].hand) == 3

    def test_hand_not_active(self):
        game = rig_game([None, None])
        game.phase = GamePhase.HAND_OVER
        assert game.apply_action("p0", DrawStock()).error == RejectReason.HAND_NOT_ACTIVE

    def test_draw_stock(self):
        game = rig_game([None, None], stock_top=["9H"])
        assert game.apply_action("p0", DrawStock())

        player = game.players[0]
        assert len(player.hand) == 4
        assert game.pending.drawn_card_id == player.hand[-1].id
        assert str(player.hand[-1]) == "9H"
        assert game.turn_stage("p0") == TurnStage.DREW
        assert game.turn_stage("p1") == TurnStage.NONE
        assert game.log[-1] == "P0 draws from stock."

    def test_start_stage_without_pending(self):
        game = rig_game([None, None])
        assert game.turn_stage("p0") == TurnStage.START

    def test_draw_twice_rejected(self):
        game = rig_game([None, None])
        game.apply_action("p0", DrawStock())
        assert game.apply_action("p0", DrawStock()).error == RejectReason.ALREADY_DREW
        assert game.apply_action("p0", DrawDiscard()).error == RejectReason.ALREADY_DREW

    def test_discard_before_draw(self):
        game = rig_game([["2H", "3D", "4C"], None])
        result = game.apply_action("p0", Discard(game.players[0].hand[0].id))
        assert result.error == RejectReason.MUST_DRAW_FIRST

    def test_discard_card_not_held(self):
        game = rig_game([None, None])
        game.apply_action("p0", DrawStock())
        assert game.apply_action("p0", Discard("nope")).error == RejectReason.CARD_NOT_HELD

    def test_take_discard(self):
        game = rig_game([["2H", "3D", "4C"], None], discard_top="QH")
        assert game.apply_action("p0", DrawDiscard())
        assert game.pending.took_discard_id == game.players[0].hand[-1].id
        assert game.log[-1] == "P0 takes the top discard (QH)."

    def test_cannot_discard_card_just_taken(self):
        game = rig_game([["2H", "3D", "4C"], None], discard_top="QH")
        game.apply_action("p0", DrawDiscard())
        taken = game.pending.took_discard_id

        result = game.apply_action("p0", Discard(taken))
        assert result.error == RejectReason.SAME_CARD
        assert len(game.players[0].hand) == 4

    def test_cannot_discard_taken_card_any_seed(self):
        for seed in range(25):
            game = new_game(2, seed=seed)
            game.start_hand()
            if game.phase != GamePhase.PLAYING:
                continue
            current = game.current_player()
            game.apply_action(current.id, DrawDiscard())
            result = game.apply_action(current.id, Discard(game.pending.took_discard_id))
            assert result.error == RejectReason.SAME_CARD

    def test_discard_advances_turn(self):
        game = rig_game([["2H", "3D", "4C"], None, None], stock_top=["5S"])
        game.apply_action("p0", DrawStock())
        two = game.players[0].hand[0]

        assert game.apply_action("p0", Discard(two.id))
        assert game.turn_index == 1
        assert game.pending is None
        assert len(game.players[0].hand) == 3
        assert game.discard_top() is two
        assert game.log[-1] == "P0 discards 2H."

    def test_turn_wraps_and_skips_eliminated(self):
        game = rig_game([None, None, None, None], turn_index=3, eliminated=(0, 1))
        assert draw_and_discard_drawn(game, "p3")
        assert game.turn_index == 2

        assert draw_and_discard_drawn(game, "p2")
        assert game.turn_index == 3

    def test_next_active_index(self):
        game = rig_game([None, None, None, None], eliminated=(1, 2))
        assert game.next_active_index(0) == 3
        assert game.next_active_index(3) == 0

    def test_rejection_leaves_state_untouched(self):
        game = rig_game([None, None])
        before = game.get_state("p0")
        game.apply_action("p1", Knock())
        game.apply_action("p0", Discard("x"))
        assert game.get_state("p0") == before

    def test_unknown_action_raises(self):
        game = rig_game([None, None])
        with pytest.raises(TypeError):
            game.apply_action("p0", "DRAW")


class TestStockRefill:

    def test_empty_stock_reshuffles_discard(self):
        game = rig_game([None, None], discard_top="KH")
        game.discard = game.stock + game.discard
        game.stock = []
        seed_before = game.seed

        assert game.apply_action("p0", DrawStock())
        assert [str(card) for card in game.discard] == ["KH"]
        assert game.seed == seed_before + 1
        assert "Stock exhausted: reshuffled discard pile into stock." in game.log

    def test_no_cards_anywhere(self):
        game = rig_game([None, None])
        game.stock = []
        game.discard = game.discard[-1:]

        assert game.apply_action("p0", DrawStock()).error == RejectReason.NO_CARDS
        assert game.pending is None

    def test_empty_discard(self):
        game = rig_game([None, None])
        game.stock.extend(game.discard)
        game.discard = []
        assert game.apply_action("p0", DrawDiscard()).error == RejectReason.DISCARD_EMPTY


# =============================================================================
# Knock Tests
# =============================================================================

class TestKnock:

    def test_knock(self):
        game = rig_game([None, None, None])
        assert game.apply_action("p0", Knock())

        assert game.phase == GamePhase.KNOCKED
        assert game.knocked_by == "p0"
        assert game.final_turns_left == 2
        assert game.turn_index == 1
        assert game.log[-1] == "P0 knocks."

    def test_knock_after_draw(self):
        game = rig_game([None, None])
        game.apply_action("p0", DrawStock())
        assert game.apply_action("p0", Knock()).error == RejectReason.KNOCK_AFTER_DRAW

    def test_second_knock_rejected(self):
        game = rig_game([None, None, None])
        game.apply_action("p0", Knock())
        assert game.apply_action("p1", Knock()).error == RejectReason.ALREADY_KNOCKED

    def test_knock_disabled_without_min_score(self):
        game = rig_game([None, None], rules=Rules(allow_knock_any_score=False, knock_min_score=None))
        assert not game.can_knock("p0")
        assert game.apply_action("p0", Knock()).error == RejectReason.KNOCK_NOT_ALLOWED

    def test_knock_min_score(self):
        rules = Rules(allow_knock_any_score=False, knock_min_score=20)
        low = rig_game([["2H", "3D", "9C"], None], rules=rules)
        assert not low.can_knock("p0")

        high = rig_game([["KH", "QH", "2C"], None], rules=rules)
        assert high.can_knock("p0")
        assert high.apply_action("p0", Knock())

    def test_cannot_knock_out_of_turn(self):
        game = rig_game([None, None])
        assert not game.can_knock("p1")

    def test_cannot_knock_alone(self):
        game = rig_game([None, None], eliminated=(1,))
        assert not game.can_knock("p0")

    def test_final_turns_then_showdown(self):
        game = rig_game(
            [["2H", "3D", "5C"], ["KS", "QS", "2D"], ["AC", "KC", "3H"]],
            stock_top=["4S", "6D"],
        )
        game.apply_action("p0", Knock())

        assert draw_and_discard_drawn(game, "p1")
        assert game.phase == GamePhase.KNOCKED
        assert game.final_turns_left == 1

        assert draw_and_discard_drawn(game, "p2")
        assert game.phase == GamePhase.HAND_OVER
        assert game.players[0].lives == 1
        assert game.pending is None

    def test_discard_31_during_knock_ends_hand(self):
        game = rig_game(
            [["2H", "3D", "5C"], ["AS", "KS", "4H"], None],
            stock_top=["QS"],
        )
        game.apply_action("p0", Knock())
        game.apply_action("p1", DrawStock())
        four_hearts = game.players[1].find_card(game.players[1].hand[2].id)

        assert game.apply_action("p1", Discard(four_hearts.id))
        assert game.log[-1] == "P1 declares 31! Everyone else loses 1 life."
        assert game.phase == GamePhase.HAND_OVER
        assert [p.lives for p in game.players] == [2, 3, 2]


# =============================================================================
# Showdown Tests
# =============================================================================

class TestShowdown:

    def showdown(self, hands, knocker, lives=None):
        game = rig_game(hands, lives=lives)
        game.knocked_by = knocker
        game.phase = GamePhase.SHOWDOWN
        game.score_showdown()
        return game

    def test_sole_lowest_knocker_loses_two(self):
        game = self.showdown([["2H", "3D", "5C"], ["KS", "QS", "2D"], ["AC", "KC", "3H"]], "p0")
        assert [p.lives for p in game.players] == [1, 3, 3]
        assert "P0 knocked and is the sole lowest: loses 2 lives." in game.log

    def test_knocker_tie_spares_knocker(self):
        game = self.showdown([["2H", "3D", "5C"], ["4H", "5D", "2S"], ["AC", "KC", "3H"]], "p0")
        assert [p.lives for p in game.players] == [3, 2, 3]
        assert "P1 ties lowest with knocker: loses 1 life." in game.log

    def test_lowest_non_knockers_lose_one(self):
        game = self.showdown([["2H", "3D", "5C"], ["4H", "5D", "2S"], ["AC", "KC", "3H"]], "p2")
        assert [p.lives for p in game.players] == [2, 2, 3]

    def test_showdown_log_line(self):
        game = self.showdown([["2H", "3D", "5C"], ["KS", "QS", "2D"]], "p1")
        assert "Showdown. P0:5, P1:20" in game.log

    def test_elimination_ends_game(self):
        game = self.showdown([["2H", "3D", "5C"], ["KS", "QS", "2D"]], "p0", lives=[1, 3])
        assert game.players[0].lives == 0
        assert game.players[0].eliminated
        assert game.phase == GamePhase.GAME_OVER
        assert game.winner_id == "p1"
        assert game.log[-2:] == ["P0 is eliminated.", "P1 wins the game!"]

    def test_two_player_example(self):
        """A knocks, B draws and discards, showdown A=20 vs B=29."""
        game = rig_game(
            [["KH", "10H", "2C"], ["KS", "9S", "3D"]],
            stock_top=["QS"],
            names=["A", "B"],
        )
        assert game.apply_action("p0", Knock())
        assert game.apply_action("p1", DrawStock())
        three = next(card for card in game.players[1].hand if str(card) == "3D")
        assert game.apply_action("p1", Discard(three.id))

        assert "Showdown. A:20, B:29" in game.log
        assert game.players[0].lives == 1
        assert game.players[1].lives == 3
        assert game.phase == GamePhase.HAND_OVER
        assert game.winner_id is None


# =============================================================================
# Invariant Tests
# =============================================================================

class TestInvariants:

    def test_card_count_checked(self):
        game = rig_game([None, None])
        game.stock.pop()
        with pytest.raises(InvariantViolation):
            game.apply_action("p0", DrawStock())

    def test_pending_for_other_seat(self):
        game = rig_game([None, None])
        game.pending = PendingTurn(player_id="p1")
        with pytest.raises(InvariantViolation):
            game.apply_action("p0", DrawStock())

    def test_turn_on_eliminated_seat(self):
        game = rig_game([None, None, None], eliminated=(0,))
        with pytest.raises(InvariantViolation):
            game.apply_action("p0", DrawStock())


# =============================================================================
# Perspective View Tests
# =============================================================================

class TestGetState:

    def test_own_hand_visible_opponents_hidden(self):
        game = rig_game([["KH", "QH", "2C"], None])
        state = game.get_state("p0")

        me, other = state["players"]
        assert me["hand"] is not None
        assert me["value"] == 20
        assert other["hand"] is None
        assert other["value"] is None
        assert other["hand_count"] == 3
        assert state["you"]["id"] == "p0"

    def test_spectator_view(self):
        game = rig_game([None, None])
        state = game.get_state(None)
        assert state["you"] is None
        assert all(p["hand"] is None for p in state["players"])

    def test_reveal_after_hand(self):
        game = rig_game([None, None])
        game.phase = GamePhase.HAND_OVER
        state = game.get_state("p0")
        assert all(p["hand"] is not None for p in state["players"])
        assert all(p["value"] is not None for p in state["players"])

    def test_controls(self):
        game = rig_game([None, None], discard_top="9C")
        you = game.get_state("p0")["you"]
        assert you["can_act"] and you["can_knock"]
        assert not you["must_discard"]

        game.apply_action("p0", DrawDiscard())
        you = game.get_state("p0")["you"]
        assert you["must_discard"]
        assert not you["can_knock"]
        assert you["took_discard_id"] == game.pending.took_discard_id
        assert game.get_state("p0")["players"][0]["value"] is None

        other = game.get_state("p1")["you"]
        assert not other["can_act"]
        assert other["took_discard_id"] is None

    def test_table_fields(self):
        game = rig_game([None, None], discard_top="9C")
        state = game.get_state("p0")
        assert state["phase"] == "PLAYING"
        assert state["turn_player_id"] == "p0"
        assert state["top_discard"]["rank"] == "9"
        assert state["top_discard"]["suit"] == "C"
        assert state["stock_count"] == len(game.stock)
        assert state["final_turns_left"] is None
        assert state["rules"]["three_of_kind_value"] == 30.5

        game.apply_action("p0", Knock())
        assert game.get_state("p0")["final_turns_left"] == 1

    def test_log_tail(self):
        game = rig_game([None, None])
        game.log = [f"line {i}" for i in range(20)]
        state = game.get_state("p0")
        assert state["log"] == [f"line {i}" for i in range(8, 20)]
