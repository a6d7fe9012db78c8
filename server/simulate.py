"""
Scat (31) AI Simulation Runner

Runs CPU-vs-CPU games to compare the difficulty tiers.
No server/websocket needed - runs games directly.

Usage:
    python simulate.py [num_games] [num_players]
    python simulate.py detail [num_players] [seed]

Examples:
    python simulate.py 10        # Run 10 games with 4 players each
    python simulate.py 50 2      # Run 50 games with 2 players each
    python simulate.py detail 3 42   # Play one seeded 3-player game hand by hand
"""

import random
import sys
from typing import Iterable, Optional

from ai import Difficulty, run_cpu_loop, run_cpu_turn
from constants import MAX_PLAYERS
from game import ACTIVE_PHASES, Game, GamePhase, Player, PlayerType, Rules, format_value, hand_value

# Safety limits
MAX_HANDS = 200
MAX_TURNS_PER_HAND = 500


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.games_played = 0
        self.unfinished_games = 0
        self.total_hands = 0
        self.knocks = 0
        self.failed_knocks = 0  # knocker lost lives at the showdown
        self.declared_31 = 0
        self.seat_wins: dict[str, int] = {}
        self.tier_wins: dict[str, int] = {}
        self.tier_seats: dict[str, int] = {}

    def record_hand(self, game: Game, lives_before: dict[str, int]):
        self.total_hands += 1

        declared = any("31!" in line for line in game.log)
        if declared:
            self.declared_31 += 1

        if game.knocked_by:
            self.knocks += 1
            knocker = game.get_player(game.knocked_by)
            lost = knocker and knocker.lives < lives_before.get(knocker.id, knocker.lives)
            if lost and not declared:
                self.failed_knocks += 1

    def record_game(self, game: Game, tiers: dict[str, Difficulty]):
        self.games_played += 1
        for tier in tiers.values():
            self.tier_seats[tier.value] = self.tier_seats.get(tier.value, 0) + 1

        winner = game.get_player(game.winner_id)
        if not winner:
            self.unfinished_games += 1
            return

        self.seat_wins[winner.name] = self.seat_wins.get(winner.name, 0) + 1
        tier = tiers[winner.id].value
        self.tier_wins[tier] = self.tier_wins.get(tier, 0) + 1

    def report(self) -> str:
        lines = [
            "=" * 50,
            "SIMULATION RESULTS",
            "=" * 50,
            f"Games played: {self.games_played}",
            f"Unfinished games: {self.unfinished_games}",
            f"Total hands: {self.total_hands}",
            f"Avg hands/game: {self.total_hands / max(1, self.games_played):.1f}",
            "",
            "WINS BY SEAT:",
        ]

        total_wins = sum(self.seat_wins.values())
        for name, wins in sorted(self.seat_wins.items(), key=lambda x: -x[1]):
            pct = wins / max(1, total_wins) * 100
            lines.append(f"  {name}: {wins} wins ({pct:.1f}%)")

        lines.append("")
        lines.append("WINS BY DIFFICULTY (per seat played):")
        for tier in Difficulty:
            seats = self.tier_seats.get(tier.value, 0)
            if not seats:
                continue
            wins = self.tier_wins.get(tier.value, 0)
            lines.append(f"  {tier.value}: {wins} wins over {seats} seats ({wins / seats * 100:.1f}%)")

        lines.append("")
        lines.append("HAND OUTCOMES:")
        lines.append(f"  Knocks: {self.knocks}")
        knock_fail_pct = self.failed_knocks / max(1, self.knocks) * 100
        lines.append(f"  Failed knocks: {self.failed_knocks} ({knock_fail_pct:.1f}%)")
        lines.append(f"  31 declared: {self.declared_31}")

        return "\n".join(lines)


def create_cpu_game(
    num_players: int,
    difficulties: Optional[Iterable] = None,
    seed: Optional[int] = None,
    rules: Optional[Rules] = None,
) -> tuple[Game, dict[str, Difficulty]]:
    """
    Seat num_players CPUs. Tiers cycle through difficulties (all tiers by default).

    Returns:
        The undealt game and a map of player ID to tier.
    """
    if not 2 <= num_players <= MAX_PLAYERS:
        raise ValueError(f"num_players must be between 2 and {MAX_PLAYERS}, got {num_players}")

    tiers = [Difficulty(d) for d in difficulties] if difficulties else list(Difficulty)

    game = Game(room_id="SIM", rules=rules or Rules())
    if seed is not None:
        game.seed = seed

    tier_by_id = {}
    for i in range(num_players):
        player = Player(id=f"cpu_{i}", name=f"CPU {i + 1}", type=PlayerType.CPU)
        game.add_player(player)
        tier_by_id[player.id] = tiers[i % len(tiers)]

    return game, tier_by_id


def _lives(game: Game) -> dict[str, int]:
    return {p.id: p.lives for p in game.players}


def run_game(
    num_players: int = 4,
    difficulties: Optional[Iterable] = None,
    seed: Optional[int] = None,
    stats: Optional[SimulationStats] = None,
    rules: Optional[Rules] = None,
    max_hands: int = MAX_HANDS,
) -> Game:
    """
    Play a complete CPU-only game.

    With a seed, both the deals and the CPU choices are reproducible.

    Returns:
        The finished Game (winner_id is None if a safety limit stopped it).
    """
    game, tier_by_id = create_cpu_game(num_players, difficulties, seed, rules)
    rng = random.Random(seed)

    lives_before = _lives(game)
    game.start_hand()

    while True:
        turns = 0
        while game.phase in ACTIVE_PHASES and turns < MAX_TURNS_PER_HAND:
            played = run_cpu_loop(game, lambda p: tier_by_id[p.id], rng=rng)
            if not played:
                break
            turns += played
        if game.phase in ACTIVE_PHASES:
            break

        if stats:
            stats.record_hand(game, lives_before)

        if game.phase == GamePhase.GAME_OVER or game.hand_number >= max_hands:
            break

        lives_before = _lives(game)
        game.next_hand()

    if stats:
        stats.record_game(game, tier_by_id)
    return game


def run_simulation(
    num_games: int = 10,
    num_players: int = 4,
    verbose: bool = True,
    seed: Optional[int] = None,
) -> SimulationStats:
    """Run multiple games and report statistics."""

    print(f"\nRunning {num_games} games with {num_players} players each...")
    print("=" * 50)

    stats = SimulationStats()

    for i in range(num_games):
        game_seed = seed + i if seed is not None else None
        game = run_game(num_players, seed=game_seed, stats=stats)

        if verbose:
            winner = game.get_player(game.winner_id)
            result = winner.name if winner else "unfinished"
            print(f"Game {i + 1}/{num_games}: {result} after {game.hand_number} hands")

    print("\n")
    print(stats.report())
    return stats


def _describe_hand(player: Player, rules: Rules) -> str:
    cards = " ".join(str(c) for c in player.hand)
    return f"{cards} = {format_value(hand_value(player.hand, rules))}"


def run_detailed_game(num_players: int = 4, seed: Optional[int] = None) -> Game:
    """Run a single game with hand-by-hand output."""

    print(f"\nRunning detailed game with {num_players} players...")
    print("=" * 50)

    game, tier_by_id = create_cpu_game(num_players, seed=seed)
    rng = random.Random(seed)

    for player in game.players:
        print(f"  {player.name} ({tier_by_id[player.id].value})")
    print(f"  Seed: {game.seed}")

    game.start_hand()

    while True:
        dealer = game.players[game.dealer_index]
        print("\n" + "-" * 50)
        print(f"Hand {game.hand_number} (dealer: {dealer.name})")
        for player in game.active_players():
            print(f"  {player.name}: {_describe_hand(player, game.rules)}")

        turns = 0
        while game.phase in ACTIVE_PHASES:
            if turns >= MAX_TURNS_PER_HAND:
                raise RuntimeError(f"Hand {game.hand_number} did not finish in {MAX_TURNS_PER_HAND} turns")
            current = game.current_player()
            run_cpu_turn(game, current, tier_by_id[current.id], rng)
            turns += 1

        print()
        for line in game.log:
            print(f"  {line}")
        print("  Lives: " + ", ".join(f"{p.name}={p.lives}" for p in game.players))

        if game.phase == GamePhase.GAME_OVER or game.hand_number >= MAX_HANDS:
            break
        game.next_hand()

    print("\n" + "=" * 50)
    winner = game.get_player(game.winner_id)
    if winner:
        print(f"Winner: {winner.name} ({tier_by_id[winner.id].value}) after {game.hand_number} hands")
    else:
        print(f"No winner after {game.hand_number} hands")
    return game


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "detail":
        # Detailed single game
        num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
        seed = int(sys.argv[3]) if len(sys.argv) > 3 else None
        run_detailed_game(num_players, seed)
    else:
        # Batch simulation
        num_games = int(sys.argv[1]) if len(sys.argv) > 1 else 10
        num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
        run_simulation(num_games, num_players)
