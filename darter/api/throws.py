from flask import Blueprint, current_app

from darter import db
from darter.api.common import data_response, get_match_or_404
from darter.api.validation import Fields, json_body, require_session_id, query_int
from darter.errors import Conflict, NotFound
from darter.models import Match, MatchStats, Throw
from darter.services.matches import lifecycle, locks
from darter.services.matches.legs import (apply_throw_result, previous_remaining,
                                          recalculate_after, settle_throw_changes)
from darter.services.matches.scoring import MAX_THROW_SCORE, next_remaining
from darter.socketio_events import emit_match_update

throws = Blueprint('throws', __name__)

THROW_KEY = ('leg_number', 'set_number', 'player_number', 'throw_number', 'round_number')


def _read_throw(fields: Fields) -> dict:
    return {
        'leg_number': fields.integer('leg_number', minimum=1),
        'set_number': fields.integer('set_number', required=False, default=1, minimum=1),
        'player_number': fields.integer('player_number', minimum=1, maximum=2),
        'throw_number': fields.integer('throw_number', minimum=1, maximum=3),
        'round_number': fields.integer('round_number', minimum=1),
        'score': fields.integer('score', minimum=0, maximum=MAX_THROW_SCORE),
        'remaining_score': fields.integer('remaining_score', minimum=0),
        'is_checkout_attempt': fields.boolean('is_checkout_attempt', default=False),
    }


def _require_scoring(match: Match, session_id: str, statuses=('in_progress',)):
    """The caller's live lock on a match that is currently accepting throws."""
    if match.match_status not in statuses:
        lifecycle.ensure_not_finished(match)
        raise Conflict(f'Throws cannot be changed while the match is {match.match_status}',
                       code='MATCH_NOT_IN_PROGRESS')
    return locks.require_lock(match.id, session_id, 'record throws')


def _ensure_legs_open(match: Match, batch) -> None:
    """New rows cannot be added to a leg once somebody has checked out in it.

    Rewriting a row that already exists stays allowed, so a checkout can be
    re-sent or corrected.
    """
    existing = {tuple(row) for row in db.session.query(*[getattr(Throw, name) for name in THROW_KEY])
                .filter(Throw.match_id == match.id).all()}
    won = {(set_no, leg) for (set_no, leg) in db.session.query(Throw.set_number, Throw.leg_number)
           .filter(Throw.match_id == match.id, Throw.remaining_score == 0).all()}
    for values in batch:
        key = tuple(values[name] for name in THROW_KEY)
        leg = (values['set_number'], values['leg_number'])
        if key not in existing and leg in won:
            raise Conflict(f"Leg {values['leg_number']} of set {values['set_number']} is already won",
                           code='LEG_ALREADY_WON', details={'set_number': leg[0], 'leg_number': leg[1]})
        existing.add(key)
        if values['remaining_score'] == 0:
            won.add(leg)


def _upsert_throw(match: Match, values: dict) -> Throw:
    key = {name: values[name] for name in THROW_KEY}
    t = Throw.query.filter_by(match_id=match.id, **key).first()
    if t is None:
        t = Throw(match_id=match.id, **key)
    t.score = values['score']
    t.remaining_score = values['remaining_score']
    t.is_checkout_attempt = values['is_checkout_attempt']
    apply_throw_result(t)
    db.session.add(t)
    return t


def _get_throw_or_404(match: Match, throw_id: str) -> Throw:
    t = Throw.query.filter_by(id=throw_id, match_id=match.id).first()
    if t is None:
        raise NotFound('Throw not found', code='THROW_NOT_FOUND')
    return t


@throws.route('/<string:match_id>/legs/throws', methods=['POST'])
def record_throw(match_id):
    session_id = require_session_id()
    fields = Fields(json_body())
    values = _read_throw(fields)
    fields.raise_if_errors()

    match = get_match_or_404(match_id, session_id)
    lock = _require_scoring(match, session_id)
    _ensure_legs_open(match, [values])
    t = _upsert_throw(match, values)
    locks.touch_lock(lock)
    db.session.commit()
    current_app.logger.info(
        f"[throw] match={match.id} leg={t.leg_number} round={t.round_number} p{t.player_number} "
        f"score={t.score} remaining={t.remaining_score}")

    meta = settle_throw_changes(match)
    emit_match_update(match.id, 'throw_recorded')
    return data_response(t.to_dict(), 201, meta)


@throws.route('/<string:match_id>/legs/throws/batch', methods=['POST'])
def record_throws_batch(match_id):
    session_id = require_session_id()
    body = json_body()
    items = body.get('throws')
    batch_max = int(current_app.config.get('BATCH_THROWS_MAX', 50))
    fields = Fields(body)
    if not isinstance(items, list):
        fields.error('throws', 'Expected array')
        items = []
    elif not items:
        fields.error('throws', 'Must contain at least 1 throw')
    elif len(items) > batch_max:
        fields.error('throws', f'Must contain at most {batch_max} throws')
        items = []
    parsed = []
    for index, item in enumerate(items):
        item_fields = Fields(item, prefix=f'throws.{index}.')
        if not isinstance(item, dict):
            item_fields.error('', 'Expected object')
        parsed.append(_read_throw(item_fields))
        fields.errors.extend(item_fields.errors)
    fields.raise_if_errors()

    match = get_match_or_404(match_id, session_id)
    lock = _require_scoring(match, session_id)
    _ensure_legs_open(match, parsed)
    rows = [_upsert_throw(match, values) for values in parsed]
    locks.touch_lock(lock)
    db.session.commit()
    current_app.logger.info(f"[throw-batch] match={match.id} count={len(rows)}")

    meta = settle_throw_changes(match)
    emit_match_update(match.id, 'throws_recorded')
    return data_response({
        'created_count': len(rows),
        'throws': [t.to_dict() for t in sorted(rows, key=lambda x: x.sort_key())],
    }, 201, meta)


@throws.route('/<string:match_id>/legs', methods=['GET'])
@throws.route('/<string:match_id>/legs/throws', methods=['GET'])
def list_throws(match_id):
    session_id = require_session_id()
    cfg = current_app.config
    leg_number = query_int('leg_number', minimum=1)
    set_number = query_int('set_number', minimum=1)
    player_number = query_int('player_number', minimum=1, maximum=2)
    limit = query_int('limit', default=cfg.get('THROWS_PAGE_DEFAULT', 100),
                      minimum=1, maximum=cfg.get('THROWS_PAGE_MAX', 500))
    offset = query_int('offset', default=0, minimum=0)

    match = get_match_or_404(match_id, session_id)
    query = Throw.query.filter_by(match_id=match.id)
    if leg_number is not None:
        query = query.filter_by(leg_number=leg_number)
    if set_number is not None:
        query = query.filter_by(set_number=set_number)
    if player_number is not None:
        query = query.filter_by(player_number=player_number)
    total = query.count()
    query = query.order_by(Throw.set_number, Throw.leg_number, Throw.round_number,
                           Throw.throw_number, Throw.created_at)
    items = [t.to_dict() for t in query.offset(offset).limit(limit).all()]
    return data_response(items, meta={'count': len(items), 'total': total,
                                      'limit': limit, 'offset': offset})


@throws.route('/<string:match_id>/legs/throws/<string:throw_id>', methods=['PATCH'])
def update_throw(match_id, throw_id):
    session_id = require_session_id()
    fields = Fields(json_body())
    score = fields.integer('score', required=False, minimum=0, maximum=MAX_THROW_SCORE)
    remaining = fields.integer('remaining_score', required=False, minimum=0)
    checkout = fields.boolean('is_checkout_attempt')
    if not any(fields.has(name) for name in ('score', 'remaining_score', 'is_checkout_attempt')):
        fields.error('body', 'At least one of score, remaining_score, is_checkout_attempt is required')
    fields.raise_if_errors()

    match = get_match_or_404(match_id, session_id)
    lock = _require_scoring(match, session_id, statuses=('in_progress', 'paused'))
    t = _get_throw_or_404(match, throw_id)
    if score is not None:
        t.score = score
    if remaining is not None:
        t.remaining_score = remaining
    elif score is not None:
        t.remaining_score = next_remaining(previous_remaining(match, t), score)
    if checkout is not None:
        t.is_checkout_attempt = checkout
    apply_throw_result(t)
    db.session.add(t)
    affected = recalculate_after(t)
    locks.touch_lock(lock)
    db.session.commit()
    current_app.logger.info(
        f"[throw-update] match={match.id} throw={t.id} score={t.score} remaining={t.remaining_score} "
        f"affected={affected}")

    meta = settle_throw_changes(match)
    meta.update({'stats_recalculated': True, 'subsequent_throws_affected': affected})
    emit_match_update(match.id, 'throw_updated')
    return data_response(t.to_dict(), 200, meta)


@throws.route('/<string:match_id>/legs/throws/<string:throw_id>', methods=['DELETE'])
def delete_throw(match_id, throw_id):
    session_id = require_session_id()
    match = get_match_or_404(match_id, session_id)
    lock = _require_scoring(match, session_id, statuses=('in_progress', 'paused'))
    t = _get_throw_or_404(match, throw_id)
    # later throws continue from what the player had before the removed one
    t.remaining_score = previous_remaining(match, t)
    affected = recalculate_after(t)
    db.session.delete(t)
    locks.touch_lock(lock)
    db.session.commit()
    current_app.logger.info(f"[throw-delete] match={match.id} throw={throw_id} affected={affected}")

    settle_throw_changes(match)
    emit_match_update(match.id, 'throw_deleted')
    return '', 204


@throws.route('/<string:match_id>/stats', methods=['GET'])
def get_stats(match_id):
    session_id = require_session_id()
    player_number = query_int('player_number', minimum=1, maximum=2)
    match = get_match_or_404(match_id, session_id)
    query = MatchStats.query.filter_by(match_id=match.id)
    if player_number is not None:
        query = query.filter_by(player_number=player_number)
    rows = query.order_by(MatchStats.player_number).all()
    return data_response([row.to_dict() for row in rows], meta={'count': len(rows)})
