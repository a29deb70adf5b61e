from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException

from darter.errors import ApiException, LockConflict


def error_response(code, message, status, details=None):
    body = {'code': code, 'message': message}
    if details is not None:
        body['details'] = details
    return jsonify({'error': body}), status


_HTTP_CODES = {
    400: 'BAD_REQUEST',
    401: 'UNAUTHORIZED',
    403: 'FORBIDDEN',
    404: 'NOT_FOUND',
    405: 'METHOD_NOT_ALLOWED',
    409: 'CONFLICT',
}


def register_error_handlers(app):

    @app.errorhandler(LockConflict)
    def handle_lock_conflict(exc):
        current_app.logger.info(
            f"[lock-conflict] match={exc.match_id} held_by={exc.details['locked_by_session_id']}")
        return jsonify(exc.to_dict()), exc.status

    @app.errorhandler(ApiException)
    def handle_api_exception(exc):
        return jsonify(exc.to_dict()), exc.status

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc):
        code = _HTTP_CODES.get(exc.code, 'HTTP_ERROR')
        return error_response(code, exc.description or exc.name, exc.code)

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        from darter import db
        db.session.rollback()
        current_app.logger.exception(f"[unhandled] {exc}")
        return error_response('INTERNAL_ERROR', 'Internal server error', 500)
