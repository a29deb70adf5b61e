from typing import Optional

from flask import current_app

from darter import db
from darter.models import Match, Throw
from darter.services.matches import lifecycle
from darter.services.matches.scoring import next_remaining, recalculate_remaining
from darter.services.matches.stats import leg_winners, recompute_match_stats


def apply_throw_result(t: Throw) -> bool:
    """Stamp (or clear) the winner fields of a throw; returns True if it won the leg."""
    if t.is_winning:
        t.winner_player_number = t.player_number
        t.winning_checkout = t.score
        return True
    t.winner_player_number = None
    t.winning_checkout = None
    return False


def previous_remaining(match: Match, t: Throw) -> int:
    """Remaining score of the player just before ``t`` in the same leg."""
    earlier = [x for x in _player_leg_throws(t) if x.sort_key() < t.sort_key()]
    return earlier[-1].remaining_score if earlier else match.start_score


def recalculate_after(t: Throw) -> int:
    """Re-derive remaining scores of the player's later throws in the leg.

    Nothing follows a checkout: rows past the throw that now finishes the
    leg are deleted. Returns how many rows changed or were deleted. Winner
    fields follow the new values.
    """
    later = [x for x in _player_leg_throws(t) if x.sort_key() > t.sort_key()]
    kept = []
    previous = t.remaining_score
    for x in later:
        if previous == 0:
            break
        kept.append(x)
        previous = next_remaining(previous, x.score)
    dropped = later[len(kept):]

    changed = recalculate_remaining(kept, t.remaining_score)
    for x in kept:
        apply_throw_result(x)
        db.session.add(x)
    for x in dropped:
        db.session.delete(x)
    if dropped:
        current_app.logger.info(
            f"[leg-cutoff] match={t.match_id} leg={t.leg_number} p{t.player_number} removed={len(dropped)}")
    return changed + len(dropped)


def _player_leg_throws(t: Throw):
    rows = Throw.query.filter(
        Throw.match_id == t.match_id,
        Throw.set_number == t.set_number,
        Throw.leg_number == t.leg_number,
        Throw.player_number == t.player_number,
        Throw.id != t.id,
    ).all()
    return sorted(rows, key=lambda x: x.sort_key())


def match_winner(match: Match) -> Optional[int]:
    """Player who has reached the format's leg target, if any."""
    target = match.legs_count
    if not target or match.format_type == 'unlimited':
        return None
    for player, won in ((1, match.player1_legs_won), (2, match.player2_legs_won)):
        if match.format_type == 'first_to' and won >= target:
            return player
        if match.format_type == 'best_of' and won > target // 2:
            return player
    return None


def refresh_leg_results(match: Match) -> dict:
    """Recount legs won from winning throws and move ``current_leg`` on.

    Does not commit.
    """
    throws = Throw.query.filter_by(match_id=match.id).all()
    winners = leg_winners(throws)
    won = {1: 0, 2: 0}
    for t in winners.values():
        won[t.player_number] += 1

    before = (match.player1_legs_won, match.player2_legs_won)
    match.player1_legs_won = won[1]
    match.player2_legs_won = won[2]
    finished_in_set = [leg for (set_no, leg) in winners if set_no == match.current_set]
    match.current_leg = (max(finished_in_set) + 1) if finished_in_set else 1
    db.session.add(match)
    return {
        'leg_completed': (won[1], won[2]) != before and sum(won.values()) > sum(before),
        'winner_player_number': match_winner(match),
    }


def settle_throw_changes(match: Match) -> dict:
    """Recompute stats and leg progression after throws changed, then commit.

    A match whose format target was reached is completed and unlocked.
    Returns the response metadata describing what changed.
    """
    recompute_match_stats(match)
    outcome = refresh_leg_results(match)
    db.session.commit()

    winner = outcome['winner_player_number']
    match_completed = False
    if winner is not None and not match.is_terminal:
        lifecycle.complete_from_throws(match, winner)
        match_completed = True
    if outcome['leg_completed']:
        current_app.logger.info(
            f"[leg-complete] match={match.id} legs={match.player1_legs_won}-{match.player2_legs_won} "
            f"current_leg={match.current_leg}")
    return {
        'stats_updated': True,
        'match_updated': outcome['leg_completed'] or match_completed,
        'leg_completed': outcome['leg_completed'],
        'match_completed': match_completed or match.match_status == 'completed',
        'winner_player_number': match.winner_player_number,
    }
