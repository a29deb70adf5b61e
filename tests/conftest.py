import os
import sys
import pytest

# Ensure the repository root (containing the `darter` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
REPO_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from config import Config
from darter import create_app, db, socketio
from darter.client.api import MatchApiClient
from darter.seed import DEFAULT_501_ID


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = 'DEBUG'
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = ['http://localhost:4321']
    MATCH_CREATE_DEBOUNCE_MS = 0


def session_headers(session_id='device-a'):
    return {'X-Session-ID': session_id}


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import darter.models  # noqa: F401
        from darter.seed import seed_match_types, seed_tournament_types
        db.create_all()
        seed_match_types()
        seed_tournament_types()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def match_type_id(flask_app):
    return DEFAULT_501_ID


@pytest.fixture()
def new_match(client, match_type_id):
    """Factory creating a match over HTTP; returns the match payload."""

    def _create(session_id='device-a', **overrides):
        payload = {
            'match_type_id': match_type_id,
            'player1': {'guest_name': 'Alice'},
            'player2': {'guest_name': 'Bob'},
            'start_score': 501,
            'checkout_rule': 'double_out',
            'format_type': 'unlimited',
        }
        payload.update(overrides)
        res = client.post('/api/matches', json=payload, headers=session_headers(session_id))
        assert res.status_code == 201, res.get_json()
        return res.get_json()['data']

    return _create


@pytest.fixture()
def started_match(client, new_match):
    """Factory creating a match and starting it (which locks it) for ``session_id``."""

    def _start(session_id='device-a', **overrides):
        match = new_match(session_id, **overrides)
        res = client.post(f"/api/matches/{match['id']}/start", json={}, headers=session_headers(session_id))
        assert res.status_code == 200, res.get_json()
        return res.get_json()['data']['match']

    return _start


class FlaskResponse:
    """The parts of ``requests.Response`` the API client reads."""

    def __init__(self, response):
        self._response = response
        self.status_code = response.status_code
        self.content = response.data
        self.ok = response.status_code < 400

    def json(self):
        data = self._response.get_json(silent=True)
        if data is None:
            raise ValueError('response body is not JSON')
        return data


class FlaskTransport:
    """Routes MatchApiClient requests into the Flask test client."""

    def __init__(self, test_client):
        self.test_client = test_client
        self.calls = []

    def request(self, method, url, params=None, headers=None, json=None, timeout=None):
        self.calls.append((method, url, params))
        kwargs = {'method': method, 'query_string': params, 'headers': headers}
        if json is not None:
            kwargs['json'] = json
        return FlaskResponse(self.test_client.open(url, **kwargs))


@pytest.fixture()
def api_client(flask_app):
    return MatchApiClient('/api', 'device-a', http=FlaskTransport(flask_app.test_client()))


@pytest.fixture()
def other_api_client(flask_app):
    return MatchApiClient('/api', 'device-b', http=FlaskTransport(flask_app.test_client()))
