"""Request parsing helpers.

Handlers collect every problem with a payload before rejecting it, so a
client sees all bad fields at once as ``[{"field", "message"}]``.
"""
import re
from datetime import date

from flask import request, current_app

from darter.errors import ValidationFailed, Unauthorized

SESSION_HEADER = 'X-Session-ID'

_MISSING = object()
DATE_RE = re.compile(r'\d{4}-\d{2}-\d{2}')
DATE_FORMAT_MESSAGE = 'Must be a date in YYYY-MM-DD format'


def require_session_id():
    session_id = (request.headers.get(SESSION_HEADER) or '').strip()
    if not session_id:
        raise Unauthorized(f'{SESSION_HEADER} header is required', code='MISSING_SESSION_ID')
    return session_id


def json_body(optional=False):
    """Parsed JSON object from the request; ``optional`` bodies may be absent or empty."""
    if optional and not request.get_data():
        return {}
    data = request.get_json(silent=True)
    if data is None:
        if optional:
            return {}
        raise ValidationFailed('Invalid JSON in request body', code='INVALID_JSON')
    if not isinstance(data, dict):
        raise ValidationFailed('Request body must be a JSON object', code='INVALID_JSON')
    return data


def _parse_date(raw):
    try:
        return date.fromisoformat(raw) if DATE_RE.fullmatch(raw) else None
    except ValueError:
        return None


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


class Fields:
    """Reads typed fields out of a JSON object, recording errors instead of raising."""

    def __init__(self, data, prefix=''):
        self.data = data if isinstance(data, dict) else {}
        self.prefix = prefix
        self.errors = []

    def _name(self, name):
        return f'{self.prefix}{name}'

    def error(self, name, message):
        self.errors.append({'field': self._name(name), 'message': message})

    def has(self, name):
        return name in self.data

    def integer(self, name, required=True, default=None, minimum=None, maximum=None, nullable=False):
        value = self.data.get(name, _MISSING)
        if value is _MISSING or (value is None and not nullable):
            if required:
                self.error(name, 'Required')
            return default
        if value is None:
            return None
        if not _is_int(value):
            self.error(name, 'Expected integer')
            return default
        if minimum is not None and value < minimum:
            self.error(name, f'Must be greater than or equal to {minimum}')
        elif maximum is not None and value > maximum:
            self.error(name, f'Must be less than or equal to {maximum}')
        return value

    def number(self, name, required=True, default=None, minimum=None, maximum=None):
        value = self.data.get(name, _MISSING)
        if value is _MISSING or value is None:
            if required:
                self.error(name, 'Required')
            return default
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self.error(name, 'Expected number')
            return default
        if minimum is not None and value < minimum:
            self.error(name, f'Must be greater than or equal to {minimum}')
        elif maximum is not None and value > maximum:
            self.error(name, f'Must be less than or equal to {maximum}')
        return value

    def date(self, name, required=True):
        value = self.string(name, required=required)
        if not value:
            return None
        parsed = _parse_date(value)
        if parsed is None:
            self.error(name, DATE_FORMAT_MESSAGE)
        return parsed

    def boolean(self, name, default=None):
        value = self.data.get(name, _MISSING)
        if value is _MISSING or value is None:
            return default
        if not isinstance(value, bool):
            self.error(name, 'Expected boolean')
            return default
        return value

    def string(self, name, required=True, max_length=None, min_length=1, default=None):
        value = self.data.get(name, _MISSING)
        if value is _MISSING or value is None:
            if required:
                self.error(name, 'Required')
            return default
        if not isinstance(value, str):
            self.error(name, 'Expected string')
            return default
        value = value.strip()
        if len(value) < min_length:
            self.error(name, f'Must contain at least {min_length} character(s)')
        elif max_length is not None and len(value) > max_length:
            self.error(name, f'Must contain at most {max_length} character(s)')
        return value

    def choice(self, name, choices, required=True, default=None):
        value = self.data.get(name, _MISSING)
        if value is _MISSING or value is None:
            if required:
                self.error(name, 'Required')
            return default
        if value not in choices:
            self.error(name, f"Expected one of: {', '.join(str(c) for c in choices)}")
            return default
        return value

    def raise_if_errors(self):
        if self.errors:
            current_app.logger.info(f"[validation] {request.method} {request.path} errors={self.errors}")
            raise ValidationFailed('Validation failed', details=self.errors)


def query_int(name, default=None, minimum=None, maximum=None):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationFailed('Validation failed',
                               details=[{'field': name, 'message': 'Expected integer'}])
    if minimum is not None and value < minimum:
        raise ValidationFailed('Validation failed',
                               details=[{'field': name, 'message': f'Must be greater than or equal to {minimum}'}])
    if maximum is not None and value > maximum:
        raise ValidationFailed('Validation failed',
                               details=[{'field': name, 'message': f'Must be less than or equal to {maximum}'}])
    return value


def query_bool(name, default=None):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    lowered = raw.lower()
    if lowered in ('1', 'true', 'yes'):
        return True
    if lowered in ('0', 'false', 'no'):
        return False
    raise ValidationFailed('Validation failed',
                           details=[{'field': name, 'message': 'Expected boolean'}])


def query_choice(name, choices, default=None):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    if raw not in choices:
        raise ValidationFailed('Validation failed',
                               details=[{'field': name, 'message': f"Expected one of: {', '.join(choices)}"}])
    return raw


def query_date(name, required=False):
    raw = request.args.get(name)
    if raw is None or raw == '':
        if required:
            raise ValidationFailed('Validation failed', details=[{'field': name, 'message': 'Required'}])
        return None
    parsed = _parse_date(raw)
    if parsed is None:
        raise ValidationFailed('Validation failed', details=[{'field': name, 'message': DATE_FORMAT_MESSAGE}])
    return parsed
