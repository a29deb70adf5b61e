"""Client side of a scoring device: API client, view models and local storage."""
from darter.client.api import ApiError, MatchApiClient
from darter.client.storage import JsonFileStorage, MatchSessionStore, MemoryStorage

__all__ = ['ApiError', 'MatchApiClient', 'JsonFileStorage', 'MatchSessionStore', 'MemoryStorage']
