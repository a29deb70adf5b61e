"""Match status transitions and their side effects."""
from typing import Optional

from flask import current_app

from darter import db
from darter.errors import Conflict, LockConflict
from darter.models import Match, utcnow
from darter.services.matches import locks

TRANSITIONS = {
    'setup': ('in_progress', 'cancelled'),
    'in_progress': ('paused', 'completed', 'cancelled'),
    'paused': ('in_progress', 'completed', 'cancelled'),
    'completed': (),
    'cancelled': (),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, ())


def ensure_not_finished(match: Match) -> None:
    if match.match_status == 'completed':
        raise Conflict('Match is already completed', code='MATCH_ALREADY_COMPLETED')
    if match.match_status == 'cancelled':
        raise Conflict('Match has been cancelled', code='MATCH_CANCELLED')


def ensure_no_foreign_lock(match: Match, session_id: str) -> None:
    holder = locks.active_foreign_lock(match.id, session_id)
    if holder is not None:
        raise LockConflict(holder)


def _mark_completed(match: Match, winner_player_number: Optional[int]) -> None:
    now = utcnow()
    match.match_status = 'completed'
    if winner_player_number is not None:
        match.winner_player_number = winner_player_number
    match.completed_at = now
    started = match.started_at or now
    match.duration_seconds = max(0, int((now - started).total_seconds()))


def transition(match: Match, target: str, session_id: str,
               winner_player_number: Optional[int] = None) -> Match:
    """Move ``match`` to ``target`` on behalf of ``session_id`` and commit.

    Finished matches are rejected before any lock check, so a repeated end
    request is a 409 rather than a second completion. Entering play or
    completing requires the caller's own live lock; every other change is
    refused while another session holds one.
    """
    previous = match.match_status
    ensure_not_finished(match)
    if target != previous and not can_transition(previous, target):
        raise Conflict(f'Cannot change match status from {previous} to {target}',
                       code='INVALID_TRANSITION', details={'from': previous, 'to': target})
    ensure_no_foreign_lock(match, session_id)

    if target == 'in_progress':
        locks.require_lock(match.id, session_id, 'start it')
        if match.started_at is None:
            match.started_at = utcnow()
    elif target == 'completed':
        locks.require_lock(match.id, session_id, 'end it')
        _mark_completed(match, winner_player_number)
    elif target == 'cancelled':
        match.completed_at = utcnow()

    match.match_status = target
    db.session.add(match)
    db.session.commit()
    current_app.logger.info(f"[match-status] match={match.id} {previous} -> {target} session={session_id}")

    if target in ('completed', 'cancelled'):
        if target == 'completed':
            current_app.logger.info(
                f"[match-complete] match={match.id} winner={match.winner_player_number} "
                f"duration={match.duration_seconds}s")
        locks.release_any_lock(match.id)
    return match


def complete_from_throws(match: Match, winner_player_number: int) -> None:
    """Finish a match whose format target was reached by a recorded leg."""
    if match.is_terminal:
        return
    _mark_completed(match, winner_player_number)
    db.session.add(match)
    db.session.commit()
    current_app.logger.info(
        f"[match-complete] match={match.id} winner={winner_player_number} auto=True "
        f"legs={match.player1_legs_won}-{match.player2_legs_won}")
    locks.release_any_lock(match.id)
