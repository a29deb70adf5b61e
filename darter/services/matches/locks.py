from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from darter import db
from darter.errors import Forbidden, NotFound, LockConflict
from darter.models import MatchLock, utcnow


def _ttl() -> int:
    return int(current_app.config.get('LOCK_TTL_SEC', 300))


def get_lock(match_id: str) -> Optional[MatchLock]:
    # Bulk UPDATE/DELETE below bypass the identity map, so always reload
    return MatchLock.query.filter_by(match_id=match_id).populate_existing().first()


def _take_over(match_id: str, session_id: str, values: dict, now) -> int:
    """Claim an existing lock row that this session owns or that has expired.

    The predicate is evaluated by the database inside the UPDATE, so two
    sessions racing for the same expired row cannot both match it.
    """
    return MatchLock.query.filter(
        MatchLock.match_id == match_id,
        or_(MatchLock.locked_by_session_id == session_id, MatchLock.expires_at <= now),
    ).update(dict(values, locked_by_session_id=session_id), synchronize_session=False)


def acquire_lock(match_id: str, session_id: str, device_info=None, auto_extend: bool = True,
                 ttl: Optional[int] = None) -> MatchLock:
    """Acquire (or refresh) the scoring lock of a match for ``session_id``.

    Raises LockConflict when another session holds a lock that has not
    expired. Any lock the session holds on a different match is dropped:
    one device scores one match at a time.
    """
    now = utcnow()
    values = {
        'device_info': device_info or {},
        'auto_extend': bool(auto_extend),
        'locked_at': now,
        'expires_at': now + timedelta(seconds=ttl or _ttl()),
        'last_activity_at': now,
    }
    MatchLock.query.filter(
        MatchLock.locked_by_session_id == session_id,
        MatchLock.match_id != match_id,
    ).delete(synchronize_session=False)

    if not _take_over(match_id, session_id, values, now):
        try:
            db.session.add(MatchLock(match_id=match_id, locked_by_session_id=session_id, **values))
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            holder = get_lock(match_id)
            if holder is None:
                raise
            raise LockConflict(holder)
    db.session.commit()
    lock = get_lock(match_id)
    current_app.logger.info(
        f"[lock-acquire] match={match_id} session={session_id} expires_at={lock.expires_at.isoformat()}")
    return lock


def extend_lock(match_id: str, session_id: str, extend_by_seconds: int,
                auto_extend: Optional[bool] = None) -> MatchLock:
    now = utcnow()
    values = {
        'expires_at': now + timedelta(seconds=extend_by_seconds),
        'last_activity_at': now,
    }
    if auto_extend is not None:
        values['auto_extend'] = auto_extend
    updated = MatchLock.query.filter_by(match_id=match_id, locked_by_session_id=session_id) \
        .update(values, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise NotFound('Lock not found or not owned by this session', code='LOCK_NOT_FOUND')
    db.session.commit()
    current_app.logger.info(f"[lock-extend] match={match_id} session={session_id} by={extend_by_seconds}s")
    return get_lock(match_id)


def release_lock(match_id: str, session_id: str) -> int:
    """Delete the lock of ``match_id`` held by ``session_id``.

    Releasing a lock owned by somebody else, or one that does not exist, is a
    no-op. Returns the number of rows removed.
    """
    removed = MatchLock.query.filter_by(match_id=match_id, locked_by_session_id=session_id) \
        .delete(synchronize_session=False)
    db.session.commit()
    if removed:
        current_app.logger.info(f"[lock-release] match={match_id} session={session_id}")
    return removed


def release_any_lock(match_id: str) -> None:
    """Best-effort removal of whatever lock sits on a finished match.

    Database errors are logged and swallowed; the status change that
    triggered the cleanup is already committed.
    """
    try:
        MatchLock.query.filter_by(match_id=match_id).delete(synchronize_session=False)
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning(f"[lock-release-failed] match={match_id} error={exc}")


def lock_status(match_id: str, session_id: str) -> dict:
    """Read-only view of a match's lock from the point of view of ``session_id``."""
    lock = get_lock(match_id)
    if lock is None:
        return {
            'match_id': match_id,
            'is_locked': False,
            'is_expired': False,
            'is_current_session': False,
            'time_remaining_seconds': 0,
        }
    now = utcnow()
    expired = lock.is_expired(now)
    remaining = 0 if expired else int((lock.expires_at - now).total_seconds())
    status = lock.to_dict()
    status.update({
        'is_locked': not expired,
        'is_expired': expired,
        'is_current_session': lock.locked_by_session_id == session_id,
        'time_remaining_seconds': remaining,
    })
    return status


def active_foreign_lock(match_id: str, session_id: str) -> Optional[MatchLock]:
    """The live lock of another session on the match, if there is one."""
    lock = get_lock(match_id)
    if lock is None or lock.locked_by_session_id == session_id or lock.is_expired():
        return None
    return lock


def require_lock(match_id: str, session_id: str, action: str = 'modify this match') -> MatchLock:
    """Return the caller's live lock or raise LOCK_REQUIRED / LOCK_EXPIRED."""
    lock = get_lock(match_id)
    if lock is None or lock.locked_by_session_id != session_id:
        if lock is not None and not lock.is_expired():
            raise LockConflict(lock)
        raise Forbidden(f'Match must be locked to {action}', code='LOCK_REQUIRED')
    if lock.is_expired():
        raise Forbidden('Lock has expired', code='LOCK_EXPIRED')
    return lock


def touch_lock(lock: MatchLock) -> None:
    """Record activity on a lock; auto-extending locks also get a fresh TTL."""
    now = utcnow()
    lock.last_activity_at = now
    if lock.auto_extend:
        lock.expires_at = now + timedelta(seconds=_ttl())
    db.session.add(lock)
