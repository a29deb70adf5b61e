"""Persistence of a scoring device's local state.

``MatchSessionStore`` keeps the match setup, the in-progress match state and
the device session id in a key/value storage that is passed in
(``MemoryStorage`` or ``JsonFileStorage``).
"""
import json
import logging
import os
import uuid
from typing import Optional

from darter.client.models import MatchSetup, MatchState

logger = logging.getLogger(__name__)

MATCH_SETUP_KEY = 'dartMatchSetup'
MATCH_STATE_KEY = 'dartMatchState'
SESSION_ID_KEY = 'dartSessionId'


class MemoryStorage:
    """Dict backed storage with the get/set/remove interface the store expects."""

    def __init__(self, initial: Optional[dict] = None):
        self._data = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """Storage persisted as one JSON object in ``path``; written on every change."""

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as fh:
            data = json.load(fh)
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        tmp = f'{self.path}.tmp'
        with open(tmp, 'w', encoding='utf-8') as fh:
            json.dump(data, fh)
        os.replace(tmp, self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


class MatchSessionStore:

    def __init__(self, storage):
        self.storage = storage

    def _save(self, key: str, payload: dict) -> None:
        try:
            self.storage.set_item(key, json.dumps(payload))
        except (OSError, TypeError, ValueError):
            logger.exception(f"[storage] failed to save {key}")

    def _load(self, key: str) -> Optional[dict]:
        try:
            raw = self.storage.get_item(key)
            return json.loads(raw) if raw else None
        except (OSError, ValueError):
            logger.exception(f"[storage] failed to load {key}")
            return None

    def _clear(self, key: str) -> None:
        try:
            self.storage.remove_item(key)
        except (OSError, ValueError):
            logger.exception(f"[storage] failed to clear {key}")

    def save_match_setup(self, setup: MatchSetup) -> None:
        self._save(MATCH_SETUP_KEY, setup.to_dict())

    def load_match_setup(self) -> Optional[MatchSetup]:
        data = self._load(MATCH_SETUP_KEY)
        if data is None:
            return None
        try:
            return MatchSetup.from_dict(data)
        except (AttributeError, TypeError):
            logger.exception("[storage] stored match setup is malformed")
            return None

    def clear_match_setup(self) -> None:
        self._clear(MATCH_SETUP_KEY)

    def save_match_state(self, state: MatchState) -> None:
        self._save(MATCH_STATE_KEY, state.to_dict())

    def load_match_state(self) -> Optional[MatchState]:
        data = self._load(MATCH_STATE_KEY)
        if data is None:
            return None
        try:
            return MatchState.from_dict(data)
        except (AttributeError, TypeError):
            logger.exception("[storage] stored match state is malformed")
            return None

    def clear_match_state(self) -> None:
        self._clear(MATCH_STATE_KEY)

    def save_session_id(self, session_id: str) -> None:
        try:
            self.storage.set_item(SESSION_ID_KEY, session_id)
        except OSError:
            logger.exception("[storage] failed to save session id")

    def load_session_id(self) -> Optional[str]:
        try:
            return self.storage.get_item(SESSION_ID_KEY)
        except (OSError, ValueError):
            logger.exception("[storage] failed to load session id")
            return None

    def get_or_create_session_id(self) -> str:
        session_id = self.load_session_id()
        if not session_id:
            session_id = str(uuid.uuid4())
            self.save_session_id(session_id)
        return session_id
