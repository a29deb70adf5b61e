from flask import jsonify
from flask_login import current_user
from sqlalchemy import or_, select

from darter.errors import NotFound
from darter.models import Match, MatchLock


def data_response(data, status=200, meta=None):
    body = {'data': data}
    if meta is not None:
        body['meta'] = meta
    return jsonify(body), status


def current_user_id():
    if current_user and current_user.is_authenticated:
        return current_user.id
    return None


def visibility_filter(session_id):
    """SQL criterion for the matches ``session_id`` (and the logged in user) may see."""
    user_id = current_user_id()
    held = select(MatchLock.match_id).where(MatchLock.locked_by_session_id == session_id)
    clauses = [
        Match.is_private.is_(False),
        Match.created_by_session_id == session_id,
        Match.id.in_(held),
    ]
    if user_id:
        clauses += [
            Match.created_by_user_id == user_id,
            Match.player1_user_id == user_id,
            Match.player2_user_id == user_id,
        ]
    return or_(*clauses)


def get_match_or_404(match_id, session_id):
    """Load a match the caller may see; private matches of others look missing."""
    match = Match.query.filter(Match.id == match_id, visibility_filter(session_id)) \
        .populate_existing().first()
    if match is None:
        raise NotFound('Match not found', code='MATCH_NOT_FOUND')
    return match
