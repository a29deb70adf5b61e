"""Exceptions carrying the machine readable code and HTTP status of a failure.

Raised from services and handlers alike; ``darter.api.errors`` renders them
as ``{"error": {"code", "message", "details"?}}``.
"""


class ApiException(Exception):
    status = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message, code=None, details=None, status=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.details = details

    def to_dict(self):
        body = {'code': self.code, 'message': self.message}
        if self.details is not None:
            body['details'] = self.details
        return {'error': body}


class ValidationFailed(ApiException):
    status = 400
    code = 'VALIDATION_ERROR'


class Unauthorized(ApiException):
    status = 401
    code = 'UNAUTHORIZED'


class Forbidden(ApiException):
    status = 403
    code = 'FORBIDDEN'


class NotFound(ApiException):
    status = 404
    code = 'NOT_FOUND'


class Conflict(ApiException):
    status = 409
    code = 'CONFLICT'


class LockConflict(Conflict):
    """Another session holds a live lock on the match."""
    code = 'LOCK_CONFLICT'

    def __init__(self, lock, message='Match is locked by another session'):
        snapshot = lock.to_dict()
        details = {
            'locked_by_session_id': snapshot['locked_by_session_id'],
            'locked_at': snapshot['locked_at'],
            'expires_at': snapshot['expires_at'],
            'device_info': snapshot['device_info'],
        }
        super().__init__(message, details=details)
        self.match_id = lock.match_id
