"""Per-player match statistics, rebuilt from the recorded throws.

Every throw mutation recomputes both players' rows from all throws of the
match; nothing is counted incrementally.
"""
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from flask import current_app

from darter import db
from darter.models import Match, MatchStats, Throw
from darter.services.matches.scoring import DARTS_PER_ROUND

SCORE_BANDS = (
    ('scores_60_plus', 60),
    ('scores_80_plus', 80),
    ('scores_100_plus', 100),
    ('scores_120_plus', 120),
    ('scores_140_plus', 140),
    ('scores_170_plus', 170),
)
FIRST_NINE_ROUNDS = 3

RoundKey = Tuple[int, int, int, int]


def leg_starter(leg_number: int) -> int:
    # players alternate the throw: player 1 opens odd legs
    return 1 if leg_number % 2 == 1 else 2


def group_rounds(throws: List[Throw]) -> Dict[RoundKey, List[Throw]]:
    rounds: Dict[RoundKey, List[Throw]] = defaultdict(list)
    for t in throws:
        rounds[(t.set_number, t.leg_number, t.player_number, t.round_number)].append(t)
    return rounds


def is_counted_round(round_throws: List[Throw]) -> bool:
    """A round is finished once its third dart is in or it checked out."""
    return any(t.throw_number == 3 or t.is_winning for t in round_throws)


def leg_winners(throws: List[Throw]) -> Dict[Tuple[int, int], Throw]:
    """Winning throw of each (set, leg); the earliest one wins when several exist."""
    winners: Dict[Tuple[int, int], Throw] = {}
    for t in sorted(throws, key=lambda x: x.sort_key()):
        if t.is_winning:
            winners.setdefault((t.set_number, t.leg_number), t)
    return winners


def is_after_finish(t: Throw, winners: Dict[Tuple[int, int], Throw]) -> bool:
    """True for rows that sit past the checkout of their leg."""
    winner = winners.get((t.set_number, t.leg_number))
    return winner is not None and t.sort_key() > winner.sort_key()


def round_totals(rounds: Dict[RoundKey, List[Throw]],
                 start_score: Optional[int] = None) -> Dict[RoundKey, int]:
    """Points each round took off the player's score.

    A bust leaves the remaining score where it was, so the round totals 0
    whatever was entered for it. Without ``start_score`` the opening round of
    a leg is taken at face value.
    """
    totals: Dict[RoundKey, int] = {}
    before: Dict[Tuple[int, int, int], Optional[int]] = {}
    for key in sorted(rounds):
        rows = sorted(rounds[key], key=lambda x: x.sort_key())
        leg = key[:3]
        opening = before.get(leg, start_score)
        closing = rows[-1].remaining_score
        scored = sum(t.score for t in rows)
        if opening is not None and scored > 0 and closing == opening:
            scored = 0
        totals[key] = scored
        before[leg] = closing
    return totals


def compute_player_stats(throws: List[Throw], player_number: int, start_score: Optional[int] = None) -> dict:
    winners = leg_winners(throws)
    own = [t for t in throws if t.player_number == player_number and not is_after_finish(t, winners)]
    grouped = group_rounds(own)
    rounds = {k: v for k, v in grouped.items() if is_counted_round(v)}
    totals = {k: score for k, score in round_totals(grouped, start_score).items() if k in rounds}
    total_score = sum(totals.values())
    darts = len(totals) * DARTS_PER_ROUND
    first_nine = [score for (_, _, _, rnd), score in totals.items() if rnd <= FIRST_NINE_ROUNDS]

    stats = {
        'total_score': total_score,
        'darts_thrown': darts,
        'rounds_played': len(totals),
        'average_score': round(total_score / darts * DARTS_PER_ROUND, 2) if darts else 0.0,
        'first_9_average': (round(sum(first_nine) / len(first_nine), 2) if first_nine else None),
    }
    for field, threshold in SCORE_BANDS:
        stats[field] = sum(1 for score in totals.values() if score >= threshold)
    stats['scores_180'] = sum(1 for score in totals.values() if score == 180)

    won = [t for t in winners.values() if t.player_number == player_number]
    finishes = [t.score for t in won]
    stats['checkout_attempts'] = sum(1 for t in own if t.is_checkout_attempt or t.is_winning)
    stats['successful_checkouts'] = len(won)
    stats['high_finish'] = max(finishes) if finishes else None
    stats['finishes_100_plus'] = sum(1 for f in finishes if f >= 100)

    leg_darts = []
    for t in won:
        leg_rounds = [k for k in rounds if k[0] == t.set_number and k[1] == t.leg_number]
        if leg_rounds:
            leg_darts.append(len(leg_rounds) * DARTS_PER_ROUND)
    stats['best_leg_darts'] = min(leg_darts) if leg_darts else None
    stats['worst_leg_darts'] = max(leg_darts) if leg_darts else None
    stats['legs_won_on_own_throw'] = sum(1 for t in won if leg_starter(t.leg_number) == player_number)
    stats['legs_won_on_opponent_throw'] = len(won) - stats['legs_won_on_own_throw']
    return stats


def recompute_match_stats(match: Match) -> List[MatchStats]:
    """Rewrite both players' MatchStats rows from the match's throws (no commit)."""
    throws = Throw.query.filter_by(match_id=match.id).all()
    rows = []
    for player_number in (1, 2):
        row = MatchStats.query.filter_by(match_id=match.id, player_number=player_number).first()
        if row is None:
            row = MatchStats(match_id=match.id, player_number=player_number)
        for field, value in compute_player_stats(throws, player_number, match.start_score).items():
            setattr(row, field, value)
        db.session.add(row)
        rows.append(row)
    current_app.logger.debug(
        f"[stats] match={match.id} p1_avg={rows[0].average_score} p2_avg={rows[1].average_score}")
    return rows
