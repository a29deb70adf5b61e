import logging

import pytest
import requests

from darter.client.api import ApiError, MatchApiClient, _clean_params, build_session
from darter.client.models import (
    MatchSetup, PLAYER, build_acquire_lock_command, build_create_match_command,
    build_create_throw_command, make_throw_entry,
)
from darter.seed import DEFAULT_501_ID


def _setup_command(**kwargs):
    return build_create_match_command(MatchSetup('Alice', 'Bob', **kwargs), DEFAULT_501_ID)


class _StubResponse:

    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError('no JSON')
        return self._payload


class _StubTransport:

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def test_build_session_retries_idempotent_requests():
    session = build_session()
    retry = session.get_adapter('https://darts.example').max_retries
    assert retry.total == 3
    assert 'GET' in retry.allowed_methods
    assert 'POST' not in retry.allowed_methods


def test_clean_params():
    assert _clean_params({'a': True, 'b': None, 'c': 5, 'd': False}) == {'a': 'true', 'c': 5, 'd': 'false'}
    assert _clean_params({}) is None


def test_match_types(api_client):
    types = api_client.get_match_types()
    assert len(types) == 6
    inactive = api_client.get_match_types(is_active=False)
    assert [t['name'] for t in inactive] == ['Cricket']
    assert api_client.http.calls[-1][2] == {'is_active': 'false'}
    assert api_client.get_match_type(DEFAULT_501_ID)['name'] == '501'


def test_start_new_match(api_client):
    started = api_client.start_new_match(_setup_command(), device_info='{"os": "Linux"}')
    assert started['match']['match_status'] == 'in_progress'
    assert started['lock']['locked_by_session_id'] == 'device-a'
    assert started['lock']['device_info'] == {'os': 'Linux'}


def test_lock_conflict_is_raised_as_api_error(api_client, other_api_client):
    match = api_client.start_new_match(_setup_command())['match']
    with pytest.raises(ApiError) as excinfo:
        other_api_client.acquire_lock(match['id'], build_acquire_lock_command())
    error = excinfo.value
    assert error.status == 409
    assert error.code == 'LOCK_CONFLICT'
    assert error.details['locked_by_session_id'] == 'device-a'

    status = other_api_client.get_lock_status(match['id'])
    assert status['is_locked'] is True
    assert status['is_current_session'] is False


def test_scoring_flow(api_client):
    match = api_client.start_new_match(_setup_command())['match']
    entry = make_throw_entry(PLAYER, 1, 501, 100)
    recorded = api_client.record_throw(match['id'], build_create_throw_command(entry, leg_number=1))
    assert recorded['throw']['remaining_score'] == 401
    assert recorded['meta']['stats_updated'] is True

    batch = api_client.record_throws_batch(match['id'], [
        build_create_throw_command(make_throw_entry(PLAYER, 2, 401, 140), leg_number=1),
        build_create_throw_command(make_throw_entry(PLAYER, 3, 261, 140), leg_number=1),
    ])
    assert batch['created_count'] == 2

    legs = api_client.get_match_legs(match['id'], leg_number=1)
    assert [t['remaining_score'] for t in legs['throws']] == [401, 261, 121]
    assert legs['meta']['total'] == 3

    updated = api_client.update_throw(match['id'], recorded['throw']['id'], {'score': 60})
    assert updated['meta']['subsequent_throws_affected'] == 2

    api_client.delete_throw(match['id'], batch['throws'][-1]['id'])
    stats = api_client.get_match_stats(match['id'], player_number=1)
    assert stats[0]['total_score'] == 200


def test_pause_resume_and_end(api_client):
    match = api_client.start_new_match(_setup_command())['match']
    assert api_client.pause_match(match['id'])['match_status'] == 'paused'

    resumed = api_client.resume_match(match['id'], build_acquire_lock_command(device_info={'os': 'test'}))
    assert resumed['match']['match_status'] == 'in_progress'
    assert resumed['match']['lock']['device_info'] == {'os': 'test'}
    assert resumed['lock']['locked_by_session_id'] == 'device-a'

    assert api_client.complete_leg(match['id'])['id'] == match['id']

    ended = api_client.end_match(match['id'], winner_player_number=2)
    assert ended['match_status'] == 'completed'
    assert ended['winner_player_number'] == 2
    # no throws were recorded, so no stats rows exist yet
    assert ended['stats'] == []
    assert api_client.get_lock_status(match['id'])['is_locked'] is False


def test_cancel_and_delete(api_client):
    match = api_client.start_new_match(_setup_command())['match']
    cancelled = api_client.cancel_match(match['id'])
    assert cancelled['match_status'] == 'cancelled'

    listed = api_client.list_matches(status='cancelled')
    assert [m['id'] for m in listed['matches']] == [match['id']]
    assert listed['meta']['total'] == 1

    assert api_client.delete_match(match['id']) is None
    with pytest.raises(ApiError) as excinfo:
        api_client.get_match(match['id'])
    assert excinfo.value.code == 'MATCH_NOT_FOUND'
    assert excinfo.value.status == 404


def test_update_match(api_client):
    match = api_client.create_match(_setup_command())
    updated = api_client.update_match(match['id'], {'is_private': True})
    assert updated['is_private'] is True
    lock = api_client.acquire_lock(match['id'])
    extended = api_client.extend_lock(match['id'], extend_by_seconds=600, auto_extend=False)
    assert extended['auto_extend'] is False
    assert extended['expires_at'] > lock['expires_at']
    assert api_client.release_lock(match['id']) is None


def test_non_json_error_body():
    client = MatchApiClient('http://darts.example/api', 'device-a',
                            http=_StubTransport(_StubResponse(502)))
    with pytest.raises(ApiError) as excinfo:
        client.get_match('m-1')
    assert excinfo.value.code == 'UNKNOWN_ERROR'
    assert excinfo.value.status == 502


def test_session_header_and_url():
    transport = _StubTransport(_StubResponse(200, {'data': {'id': 'm-1'}}))
    client = MatchApiClient('http://darts.example/api/', 'device-a', http=transport)
    assert client.get_match('m-1', include=('stats', 'lock')) == {'id': 'm-1'}
    method, url, kwargs = transport.calls[0]
    assert (method, url) == ('GET', 'http://darts.example/api/matches/m-1')
    assert kwargs['headers']['X-Session-ID'] == 'device-a'
    assert kwargs['params'] == {'include': 'stats,lock'}

    client.get_match_types()
    assert 'X-Session-ID' not in transport.calls[-1][2]['headers']


@pytest.mark.parametrize('error', [
    requests.ConnectionError('connection refused'),
    ApiError('LOCK_NOT_FOUND', 'gone', 404),
])
def test_release_failures_are_swallowed(error, caplog):
    client = MatchApiClient('http://darts.example/api', 'device-a', http=_StubTransport(error=error))
    with caplog.at_level(logging.WARNING, logger='darter.client.api'):
        client._release_quietly('m-1')
    assert 'lock release for match m-1 failed' in caplog.text
