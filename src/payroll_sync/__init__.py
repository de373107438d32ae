"""
Payroll sync adapter package for HR/payroll REST APIs
Provides a rate-limited, auth-aware HTTP layer and per-entity record readers feeding a local cache
"""

from .config_loader import ConfigLoader, ConfigurationError, EnvironmentVariableError, SyncConfig
from .exceptions import (
    AuthError,
    DeserializationError,
    HttpStatusError,
    PassFatalError,
    SyncCancelledError,
    SyncError,
    TransportError,
)
from .rate_limiter import RateLimiter
from .token_manager import TokenLifecycleManager, TokenState
from .http_client import RateLimitedGateway, APIRequest, APIResponse
from .pagination_strategy import PaginationFactory
from .collection_fetcher import CollectionEndpoint, PagedCollectionFetcher
from .fetch_result import FetchResult, FetchStatus, PerParentFailure
from .api_client import PayrollAPIClient
from .record_expander import DependentLevel, HierarchicalRecordExpander, SyncStats
from .sync_reader import READER_REGISTRY, SyncReader, WorkerRoster, create_reader
from .cache_store import CacheStore, CacheStoreError
from .sync_orchestrator import PassResult, SyncOrchestrator

__all__ = [
    'ConfigLoader',
    'ConfigurationError',
    'EnvironmentVariableError',
    'SyncConfig',
    'SyncError',
    'TransportError',
    'HttpStatusError',
    'DeserializationError',
    'AuthError',
    'PassFatalError',
    'SyncCancelledError',
    'RateLimiter',
    'TokenLifecycleManager',
    'TokenState',
    'RateLimitedGateway',
    'APIRequest',
    'APIResponse',
    'PaginationFactory',
    'CollectionEndpoint',
    'PagedCollectionFetcher',
    'FetchResult',
    'FetchStatus',
    'PerParentFailure',
    'PayrollAPIClient',
    'DependentLevel',
    'HierarchicalRecordExpander',
    'SyncStats',
    'READER_REGISTRY',
    'SyncReader',
    'WorkerRoster',
    'create_reader',
    'CacheStore',
    'CacheStoreError',
    'PassResult',
    'SyncOrchestrator',
]
