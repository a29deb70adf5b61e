"""Darts scoring arithmetic.

Stateless helpers shared by the HTTP layer (validation, remaining score
re-derivation after corrections) and the client library (round table
bookkeeping). Nothing in here touches the database.
"""
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

MAX_THROW_SCORE = 180
MAX_CHECKOUT = 170
DARTS_PER_ROUND = 3

PLAYER = 'player'
OPPONENT = 'opponent'


@dataclass
class RoundScore:
    round: int
    player1_scored: Optional[int]
    player1_to_go: int
    player2_scored: Optional[int]
    player2_to_go: int

    def scored(self, player: str) -> Optional[int]:
        return self.player1_scored if player == PLAYER else self.player2_scored

    def to_go(self, player: str) -> int:
        return self.player1_to_go if player == PLAYER else self.player2_to_go

    def with_player(self, player: str, scored: Optional[int], to_go: int) -> 'RoundScore':
        if player == PLAYER:
            return replace(self, player1_scored=scored, player1_to_go=to_go)
        return replace(self, player2_scored=scored, player2_to_go=to_go)


def is_bust(current_score: int, thrown: int) -> bool:
    remaining = current_score - thrown
    # a leftover of 1 can never be finished on a double
    return remaining < 0 or remaining == 1


def is_winning_throw(current_score: int, thrown: int) -> bool:
    return current_score - thrown == 0


def is_checkout_attempt(remaining: int) -> bool:
    return 0 < remaining <= MAX_CHECKOUT


def next_remaining(previous: int, scored: int) -> int:
    """Remaining score after ``scored``; a bust leaves ``previous`` untouched."""
    if is_bust(previous, scored):
        return previous
    return previous - scored


def get_player_number(player: str) -> int:
    return 1 if player == PLAYER else 2


def get_player_identifier(player_number: int) -> str:
    return PLAYER if player_number == 1 else OPPONENT


def initialize_rounds(start_score: int, count: int = 4) -> List[RoundScore]:
    return [
        RoundScore(
            round=i + 1,
            player1_scored=None,
            player1_to_go=start_score if i == 0 else 0,
            player2_scored=None,
            player2_to_go=start_score if i == 0 else 0,
        )
        for i in range(count)
    ]


def recalculate_to_go_scores(rounds: List[RoundScore], from_index: int, player: str,
                             start_score: int) -> List[RoundScore]:
    """Recompute ``player``'s "to go" column from ``from_index`` onwards.

    Each round subtracts its scored value from the previous round's "to go"
    (``start_score`` before the first round). Busts keep the previous value
    and unscored rounds carry it forward. Returns a new list; the rounds
    passed in are not modified.
    """
    updated = list(rounds)
    for i in range(max(from_index, 0), len(updated)):
        prev_to_go = updated[i - 1].to_go(player) if i > 0 else start_score
        scored = updated[i].scored(player)
        if scored is None:
            to_go = prev_to_go
        else:
            to_go = next_remaining(prev_to_go, scored)
        updated[i] = updated[i].with_player(player, scored, to_go)
    return updated


def calculate_average(rounds: Iterable[RoundScore], player: str) -> float:
    """Three-dart average over the scored rounds of ``player``."""
    total = 0
    darts = 0
    for r in rounds:
        scored = r.scored(player)
        if scored is not None:
            total += scored
            darts += DARTS_PER_ROUND
    if darts == 0:
        return 0.0
    return total / darts * DARTS_PER_ROUND


def find_current_active_cell(rounds: List[RoundScore]):
    """First unscored (round_index, player) pair, or None once every round is filled."""
    for i, r in enumerate(rounds):
        if r.player1_scored is None:
            return i, PLAYER
        if r.player2_scored is None:
            return i, OPPONENT
    return None


def is_editing_previous_round(rounds: List[RoundScore], current_round_index: int) -> bool:
    return any(
        r.player1_scored is not None or r.player2_scored is not None
        for r in rounds[current_round_index + 1:]
    )


def get_current_display_score(rounds: List[RoundScore], player: str, start_score: int) -> int:
    for r in reversed(rounds):
        if r.to_go(player) > 0 or r.scored(player) is not None:
            return r.to_go(player)
    return start_score


def recalculate_remaining(throws, previous: int) -> int:
    """Re-derive ``remaining_score`` on an ordered run of throw rows.

    ``previous`` is the remaining score before the first throw. Rows are
    updated in place; the number of rows whose value changed is returned.
    """
    changed = 0
    for t in throws:
        remaining = next_remaining(previous, t.score)
        if t.remaining_score != remaining:
            t.remaining_score = remaining
            changed += 1
        previous = remaining
    return changed
