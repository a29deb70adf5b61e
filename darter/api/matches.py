from flask import Blueprint, request, current_app
import time

from darter import db
from darter.api.common import data_response, current_user_id, get_match_or_404, visibility_filter
from darter.api.locks import parse_device_info
from darter.api.validation import (Fields, json_body, require_session_id,
                                   query_int, query_bool, query_choice)
from darter.errors import Conflict, Forbidden, NotFound, ValidationFailed
from darter.models import (Match, MatchType, MatchStats, MatchLock, Throw, User,
                           CHECKOUT_RULES, FORMAT_TYPES, MATCH_STATUSES)
from darter.services.matches import lifecycle, locks
from darter.socketio_events import emit_match_update

matches = Blueprint('matches', __name__)

# Duplicate-creation guard keyed by session id -> last create time (ms)
_last_create_by_session: dict[str, float] = {}

INCLUDES = ('stats', 'lock', 'legs')
SORT_FIELDS = ('created_at', 'started_at', 'completed_at')
COUNTER_FIELDS = ('current_leg', 'current_set', 'player1_legs_won', 'player2_legs_won',
                  'player1_sets_won', 'player2_sets_won')


def _debounced(session_id: str) -> bool:
    try:
        debounce_ms = int(current_app.config.get('MATCH_CREATE_DEBOUNCE_MS', 0))
    except (TypeError, ValueError):
        debounce_ms = 0
    if debounce_ms <= 0:
        return False
    now = time.time() * 1000.0
    for sid, created in list(_last_create_by_session.items()):
        if now - created >= debounce_ms:
            del _last_create_by_session[sid]
    last = _last_create_by_session.get(session_id, 0)
    if now - last < debounce_ms:
        return True
    _last_create_by_session[session_id] = now
    return False


def _read_player(fields: Fields, name: str):
    raw = fields.data.get(name)
    if not isinstance(raw, dict):
        fields.error(name, 'Required')
        return None, None
    player = Fields(raw, prefix=f'{name}.')
    user_id = player.string('user_id', required=False, max_length=36)
    guest_name = player.string('guest_name', required=False, max_length=255)
    fields.errors.extend(player.errors)
    if bool(user_id) == bool(guest_name):
        fields.error(name, 'Exactly one of user_id or guest_name must be provided')
    return user_id or None, guest_name or None


def _parse_includes():
    raw = request.args.get('include') or ''
    requested = [part.strip() for part in raw.split(',') if part.strip()]
    unknown = [part for part in requested if part not in INCLUDES]
    if unknown:
        raise ValidationFailed('Validation failed', details=[
            {'field': 'include', 'message': f"Expected any of: {', '.join(INCLUDES)}"}])
    return requested


def match_payload(match: Match, includes=()) -> dict:
    payload = match.to_dict()
    if 'stats' in includes:
        rows = MatchStats.query.filter_by(match_id=match.id).order_by(MatchStats.player_number).all()
        payload['stats'] = [row.to_dict() for row in rows]
    if 'lock' in includes:
        lock = locks.get_lock(match.id)
        payload['lock'] = lock.to_dict() if lock else None
    if 'legs' in includes:
        throws = Throw.query.filter_by(match_id=match.id).all()
        payload['legs'] = [t.to_dict() for t in sorted(throws, key=lambda x: x.sort_key())]
    return payload


@matches.route('', methods=['POST'])
def create_match():
    session_id = require_session_id()
    if _debounced(session_id):
        current_app.logger.warning(f"[match-create] duplicate creation prevented session={session_id}")
        raise Conflict('A match creation is already in progress for this session',
                       code='DUPLICATE_CREATION')

    fields = Fields(json_body())
    match_type_id = fields.string('match_type_id', max_length=36)
    p1_user, p1_guest = _read_player(fields, 'player1')
    p2_user, p2_guest = _read_player(fields, 'player2')
    start_score = fields.integer('start_score', minimum=1)
    checkout_rule = fields.choice('checkout_rule', CHECKOUT_RULES)
    format_type = fields.choice('format_type', FORMAT_TYPES)
    legs_count = fields.integer('legs_count', required=False, minimum=1)
    sets_count = fields.integer('sets_count', required=False, minimum=1, nullable=True)
    is_private = fields.boolean('is_private', default=False)
    if format_type in ('first_to', 'best_of') and legs_count is None:
        fields.error('legs_count', 'legs_count is required for first_to and best_of formats')
    fields.raise_if_errors()

    if MatchType.query.filter_by(id=match_type_id).first() is None:
        raise NotFound('Invalid match_type_id', code='INVALID_REFERENCE')
    for user_id in filter(None, (p1_user, p2_user)):
        if db.session.get(User, user_id) is None:
            raise NotFound(f'Unknown user {user_id}', code='INVALID_REFERENCE')

    match = Match(
        match_type_id=match_type_id,
        player1_user_id=p1_user,
        player1_guest_name=p1_guest,
        player2_user_id=p2_user,
        player2_guest_name=p2_guest,
        start_score=start_score,
        checkout_rule=checkout_rule,
        format_type=format_type,
        legs_count=legs_count,
        sets_count=sets_count,
        is_private=is_private,
        created_by_user_id=current_user_id(),
        created_by_session_id=session_id,
    )
    db.session.add(match)
    db.session.commit()
    current_app.logger.info(
        f"[match-create] match={match.id} format={format_type}/{legs_count} start={start_score} session={session_id}")
    return data_response(match.to_dict(), 201)


@matches.route('', methods=['GET'])
def list_matches():
    session_id = require_session_id()
    status = query_choice('status', MATCH_STATUSES)
    player_user_id = request.args.get('player_user_id')
    is_private = query_bool('is_private')
    match_type_id = request.args.get('match_type_id')
    limit = query_int('limit', default=current_app.config.get('MATCHES_PAGE_DEFAULT', 20),
                      minimum=1, maximum=current_app.config.get('MATCHES_PAGE_MAX', 100))
    offset = query_int('offset', default=0, minimum=0)
    sort = query_choice('sort', SORT_FIELDS, default='created_at')
    order = query_choice('order', ('asc', 'desc'), default='desc')

    query = Match.query.filter(visibility_filter(session_id))
    if status:
        query = query.filter(Match.match_status == status)
    if player_user_id:
        query = query.filter((Match.player1_user_id == player_user_id) |
                             (Match.player2_user_id == player_user_id))
    if is_private is not None:
        query = query.filter(Match.is_private.is_(is_private))
    if match_type_id:
        query = query.filter(Match.match_type_id == match_type_id)

    total = query.count()
    column = getattr(Match, sort)
    query = query.order_by(column.asc() if order == 'asc' else column.desc(), Match.id)
    items = [m.to_list_item() for m in query.offset(offset).limit(limit).all()]
    return data_response(items, meta={
        'total': total,
        'limit': limit,
        'offset': offset,
        'has_more': offset + len(items) < total,
    })


@matches.route('/<string:match_id>', methods=['GET'])
def get_match(match_id):
    session_id = require_session_id()
    includes = _parse_includes()
    match = get_match_or_404(match_id, session_id)
    return data_response(match_payload(match, includes))


@matches.route('/<string:match_id>', methods=['PATCH'])
def update_match(match_id):
    session_id = require_session_id()
    fields = Fields(json_body())
    status = fields.choice('match_status', MATCH_STATUSES, required=False)
    counters = {}
    for name in COUNTER_FIELDS:
        minimum = 1 if name.startswith('current_') else 0
        value = fields.integer(name, required=False, minimum=minimum)
        if fields.has(name) and value is not None:
            counters[name] = value
    winner = fields.integer('winner_player_number', required=False, minimum=1, maximum=2, nullable=True)
    is_private = fields.boolean('is_private')
    if not fields.data:
        fields.error('body', 'At least one field must be provided')
    fields.raise_if_errors()

    match = get_match_or_404(match_id, session_id)
    config_changed = bool(counters) or is_private is not None or \
        (fields.has('winner_player_number') and status != 'completed')
    if config_changed:
        lifecycle.ensure_not_finished(match)
        lifecycle.ensure_no_foreign_lock(match, session_id)
        for name, value in counters.items():
            setattr(match, name, value)
        if is_private is not None:
            match.is_private = is_private
        if fields.has('winner_player_number') and status != 'completed':
            match.winner_player_number = winner

    if status is not None:
        lifecycle.transition(match, status, session_id, winner_player_number=winner)
    else:
        db.session.add(match)
        db.session.commit()
    current_app.logger.info(f"[match-update] match={match.id} fields={sorted(fields.data)}")
    emit_match_update(match.id, 'match_updated')
    return data_response(match.to_dict())


@matches.route('/<string:match_id>', methods=['DELETE'])
def delete_match(match_id):
    session_id = require_session_id()
    match = get_match_or_404(match_id, session_id)
    user_id = current_user_id()
    if match.created_by_session_id != session_id and not (user_id and match.created_by_user_id == user_id):
        raise Forbidden('Only the creator of a match can delete it')
    lifecycle.ensure_no_foreign_lock(match, session_id)
    if match.match_status == 'in_progress':
        raise Conflict('Cannot delete a match in progress; cancel it first', code='MATCH_IN_PROGRESS')

    Throw.query.filter_by(match_id=match.id).delete(synchronize_session=False)
    MatchStats.query.filter_by(match_id=match.id).delete(synchronize_session=False)
    MatchLock.query.filter_by(match_id=match.id).delete(synchronize_session=False)
    db.session.delete(match)
    db.session.commit()
    current_app.logger.info(f"[match-delete] match={match_id} session={session_id}")
    emit_match_update(match_id, 'match_deleted')
    return '', 204


@matches.route('/<string:match_id>/start', methods=['POST'])
def start_match(match_id):
    session_id = require_session_id()
    fields = Fields(json_body(optional=True))
    device_info = fields.string('device_info', required=False, max_length=500)
    fields.raise_if_errors()

    match = get_match_or_404(match_id, session_id)
    lifecycle.ensure_not_finished(match)
    if match.match_status != 'setup':
        raise Conflict('Match has already been started', code='MATCH_ALREADY_STARTED')
    lifecycle.ensure_no_foreign_lock(match, session_id)

    info = parse_device_info(device_info) or {
        'user_agent': request.headers.get('User-Agent', 'Unknown'),
    }
    lock = locks.acquire_lock(match.id, session_id, device_info=info)
    lifecycle.transition(match, 'in_progress', session_id)
    emit_match_update(match.id, 'match_started')
    return data_response({'match': match.to_dict(), 'lock': lock.to_dict()})


@matches.route('/<string:match_id>/end', methods=['POST'])
def end_match(match_id):
    session_id = require_session_id()
    fields = Fields(json_body(optional=True))
    winner = fields.integer('winner_player_number', required=False, minimum=1, maximum=2, nullable=True)
    fields.raise_if_errors()

    match = get_match_or_404(match_id, session_id)
    lifecycle.transition(match, 'completed', session_id, winner_player_number=winner)
    emit_match_update(match.id, 'match_completed')
    return data_response(match.to_dict())


@matches.route('/<string:match_id>/cancel', methods=['DELETE'])
def cancel_match(match_id):
    session_id = require_session_id()
    match = get_match_or_404(match_id, session_id)
    lifecycle.transition(match, 'cancelled', session_id)
    emit_match_update(match.id, 'match_cancelled')
    return data_response(match.to_dict())
