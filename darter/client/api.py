"""HTTP client for the match scoring API.

``MatchApiClient`` wraps one ``requests.Session`` per scoring device. Every
call carries the device's session id in ``X-Session-ID``; the server uses it
to decide who holds a match lock. The composite helpers at the bottom chain
the plain calls into the flows a scoring screen needs (start, resume, pause,
end, cancel).
"""
import logging
from typing import Iterable, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

SESSION_HEADER = 'X-Session-ID'


class ApiError(Exception):
    """Non-2xx answer from the API, carrying the server's error envelope."""

    def __init__(self, code: str, message: str, status: int, details=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status
        self.details = details

    def __repr__(self):
        return f'ApiError(code={self.code!r}, status={self.status}, message={self.message!r})'


def build_session() -> requests.Session:
    s = requests.Session()
    retry = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=(429, 502, 503, 504),
        allowed_methods=frozenset(["GET", "HEAD"]),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


def _clean_params(params: Optional[dict]) -> Optional[dict]:
    if not params:
        return None
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        cleaned[key] = str(value).lower() if isinstance(value, bool) else value
    return cleaned


class MatchApiClient:

    def __init__(self, base_url: str, session_id: str, http=None, timeout: float = 10):
        self.base_url = base_url.rstrip('/')
        self.session_id = session_id
        self.http = http if http is not None else build_session()
        self.timeout = timeout

    def _request(self, method: str, path: str, params: Optional[dict] = None, body=None,
                 with_session: bool = True):
        headers = {'Content-Type': 'application/json'}
        if with_session and self.session_id:
            headers[SESSION_HEADER] = self.session_id
        response = self.http.request(method, f'{self.base_url}{path}', params=_clean_params(params),
                                     headers=headers, json=body, timeout=self.timeout)
        if response.status_code >= 400:
            try:
                error = (response.json() or {}).get('error') or {}
            except ValueError:
                logger.warning(f"[api] {method} {path} -> {response.status_code} (non-JSON body)")
                raise ApiError('UNKNOWN_ERROR', 'An unexpected error occurred', response.status_code)
            if not isinstance(error, dict):
                error = {'message': str(error)}
            raise ApiError(error.get('code') or 'UNKNOWN_ERROR',
                           error.get('message') or 'An error occurred',
                           response.status_code, error.get('details'))
        if response.status_code == 204:
            return None
        return response.json()

    # ---- match types ----

    def get_match_types(self, is_active: bool = True) -> List[dict]:
        return self._request('GET', '/match-types', params={'is_active': is_active},
                             with_session=False)['data']

    def get_match_type(self, match_type_id: str) -> dict:
        return self._request('GET', f'/match-types/{match_type_id}', with_session=False)['data']

    # ---- matches ----

    def create_match(self, command: dict) -> dict:
        return self._request('POST', '/matches', body=command)['data']

    def get_match(self, match_id: str, include: Optional[Iterable[str]] = None) -> dict:
        params = {'include': ','.join(include)} if include else None
        return self._request('GET', f'/matches/{match_id}', params=params)['data']

    def update_match(self, match_id: str, command: dict) -> dict:
        return self._request('PATCH', f'/matches/{match_id}', body=command)['data']

    def delete_match(self, match_id: str) -> None:
        self._request('DELETE', f'/matches/{match_id}')

    def list_matches(self, **query) -> dict:
        """Returns ``{"matches": [...], "meta": {...}}``."""
        response = self._request('GET', '/matches', params=query)
        return {'matches': response['data'], 'meta': response.get('meta', {})}

    # ---- locks ----

    def acquire_lock(self, match_id: str, command: Optional[dict] = None) -> dict:
        return self._request('POST', f'/matches/{match_id}/lock', body=command or {})['data']

    def extend_lock(self, match_id: str, extend_by_seconds: Optional[int] = None,
                    auto_extend: Optional[bool] = None) -> dict:
        body = {}
        if extend_by_seconds is not None:
            body['extend_by_seconds'] = extend_by_seconds
        if auto_extend is not None:
            body['auto_extend'] = auto_extend
        return self._request('PUT', f'/matches/{match_id}/lock', body=body)['data']

    def release_lock(self, match_id: str) -> None:
        self._request('DELETE', f'/matches/{match_id}/lock')

    def get_lock_status(self, match_id: str) -> dict:
        return self._request('GET', f'/matches/{match_id}/lock')['data']

    # ---- throws ----

    def record_throw(self, match_id: str, command: dict) -> dict:
        """Returns ``{"throw": {...}, "meta": {...}}``."""
        response = self._request('POST', f'/matches/{match_id}/legs/throws', body=command)
        return {'throw': response['data'], 'meta': response.get('meta', {})}

    def record_throws_batch(self, match_id: str, commands: List[dict]) -> dict:
        response = self._request('POST', f'/matches/{match_id}/legs/throws/batch',
                                 body={'throws': list(commands)})
        return {
            'created_count': response['data']['created_count'],
            'throws': response['data']['throws'],
            'meta': response.get('meta', {}),
        }

    def get_match_legs(self, match_id: str, **query) -> dict:
        response = self._request('GET', f'/matches/{match_id}/legs', params=query)
        return {'throws': response['data'], 'meta': response.get('meta', {})}

    def update_throw(self, match_id: str, throw_id: str, command: dict) -> dict:
        response = self._request('PATCH', f'/matches/{match_id}/legs/throws/{throw_id}', body=command)
        return {'throw': response['data'], 'meta': response.get('meta', {})}

    def delete_throw(self, match_id: str, throw_id: str) -> None:
        self._request('DELETE', f'/matches/{match_id}/legs/throws/{throw_id}')

    def get_match_stats(self, match_id: str, player_number: Optional[int] = None) -> List[dict]:
        params = {'player_number': player_number} if player_number else None
        return self._request('GET', f'/matches/{match_id}/stats', params=params)['data']

    # ---- composite operations ----

    def start_new_match(self, command: dict, device_info: Optional[str] = None) -> dict:
        """Create a match and start it; the server takes the lock while starting.

        Returns ``{"match": {...}, "lock": {...}}``.
        """
        match = self.create_match(command)
        body = {'device_info': device_info} if device_info else {}
        return self._request('POST', f"/matches/{match['id']}/start", body=body)['data']

    def resume_match(self, match_id: str, lock_command: Optional[dict] = None) -> dict:
        lock = self.acquire_lock(match_id, lock_command)
        self.update_match(match_id, {'match_status': 'in_progress'})
        match = self.get_match(match_id, include=('stats', 'lock'))
        return {'match': match, 'lock': lock}

    def pause_match(self, match_id: str) -> dict:
        return self.update_match(match_id, {'match_status': 'paused'})

    def complete_leg(self, match_id: str) -> dict:
        return self.get_match(match_id, include=('stats', 'lock'))

    def end_match(self, match_id: str, winner_player_number: Optional[int] = None) -> dict:
        body = {}
        if winner_player_number is not None:
            body['winner_player_number'] = winner_player_number
        self._request('POST', f'/matches/{match_id}/end', body=body)
        self._release_quietly(match_id)
        return self.get_match(match_id, include=('stats',))

    def cancel_match(self, match_id: str) -> dict:
        match = self._request('DELETE', f'/matches/{match_id}/cancel')['data']
        self._release_quietly(match_id)
        return match

    def _release_quietly(self, match_id: str) -> None:
        try:
            self.release_lock(match_id)
        except (ApiError, requests.RequestException) as exc:
            # the lock may already be gone or expired
            logger.warning(f"[api] lock release for match {match_id} failed: {exc!r}")
