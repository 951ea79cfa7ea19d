"""
Core module for api_platform.

Query building and Hydra decoding, the transport wrapper, CRUD repositories,
the token session and the event router.
"""

from .events import EventRouter, Source
from .exceptions import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    DuplicateError,
    NetworkError,
    RefreshTokenExpired,
    UnexpectedError,
)
from .items import ItemsRepository
from .models import (
    CollectionPage,
    EntityType,
    EventEnvelope,
    Pagination,
    QueryOptions,
    SessionState,
    Sort,
    TokenPair,
)
from .preprocessors import PreprocessorContext, PreprocessorRegistry
from .query_builder import build_query_string, decode_collection
from .session import TokenSession
from .storage import CredentialStore, MediaStorage, MemoryCredentialStore
from .transport import Transport

__all__ = [
    "ApiError",
    "AuthenticationError",
    "CollectionPage",
    "ConfigurationError",
    "CredentialStore",
    "DuplicateError",
    "EntityType",
    "EventEnvelope",
    "EventRouter",
    "ItemsRepository",
    "MediaStorage",
    "MemoryCredentialStore",
    "NetworkError",
    "Pagination",
    "PreprocessorContext",
    "PreprocessorRegistry",
    "QueryOptions",
    "RefreshTokenExpired",
    "SessionState",
    "Sort",
    "Source",
    "TokenPair",
    "TokenSession",
    "Transport",
    "UnexpectedError",
    "build_query_string",
    "decode_collection",
]
