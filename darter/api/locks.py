import json

from flask import Blueprint, current_app

from darter.api.common import data_response, get_match_or_404
from darter.api.validation import Fields, json_body, require_session_id
from darter.services.matches import lifecycle
from darter.services.matches import locks as lock_service
from darter.socketio_events import emit_match_update

locks = Blueprint('locks', __name__)


def parse_device_info(raw):
    """Device info arrives as a JSON encoded string; anything unreadable becomes {}."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        current_app.logger.warning(f"[lock] invalid device_info ignored: {raw[:80]!r}")
        return {}
    return value if isinstance(value, dict) else {'value': value}


@locks.route('/<string:match_id>/lock', methods=['POST'])
def acquire(match_id):
    session_id = require_session_id()
    fields = Fields(json_body(optional=True))
    device_info = fields.string('device_info', required=False, max_length=500, min_length=0)
    auto_extend = fields.boolean('auto_extend', default=True)
    fields.raise_if_errors()

    match = get_match_or_404(match_id, session_id)
    lifecycle.ensure_not_finished(match)
    lock = lock_service.acquire_lock(match.id, session_id,
                                     device_info=parse_device_info(device_info),
                                     auto_extend=auto_extend)
    emit_match_update(match.id, 'lock_acquired')
    return data_response(lock.to_dict(), 201)


@locks.route('/<string:match_id>/lock', methods=['PUT'])
def extend(match_id):
    session_id = require_session_id()
    cfg = current_app.config
    fields = Fields(json_body(optional=True))
    extend_by = fields.integer('extend_by_seconds', required=False,
                               default=int(cfg.get('LOCK_DEFAULT_EXTEND_SEC', 300)),
                               minimum=1, maximum=int(cfg.get('LOCK_MAX_EXTEND_SEC', 3600)))
    auto_extend = fields.boolean('auto_extend')
    fields.raise_if_errors()

    lock = lock_service.extend_lock(match_id, session_id, extend_by, auto_extend=auto_extend)
    return data_response(lock.to_dict())


@locks.route('/<string:match_id>/lock', methods=['DELETE'])
def release(match_id):
    session_id = require_session_id()
    if lock_service.release_lock(match_id, session_id):
        emit_match_update(match_id, 'lock_released')
    return '', 204


@locks.route('/<string:match_id>/lock', methods=['GET'])
def status(match_id):
    session_id = require_session_id()
    return data_response(lock_service.lock_status(match_id, session_id))
