"""
SyncOrchestrator module running entity passes and reporting their outcome
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

import requests

from .api_client import PayrollAPIClient
from .cache_store import CacheStore, CacheStoreError
from .collection_fetcher import PagedCollectionFetcher
from .config_loader import ConfigLoader, SyncConfig
from .exceptions import PassFatalError, SyncError
from .http_client import RateLimitedGateway
from .rate_limiter import RateLimiter
from .sync_reader import WorkerRoster, create_reader
from .token_manager import TokenLifecycleManager


@dataclass
class PassResult:
    """Outcome of one entity pass as reported to the caller"""
    load_id: str
    entity: str
    status: str
    records_written: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    error_category: Optional[str] = None
    cause_category: Optional[str] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['duration_seconds'] = self.duration_seconds
        return result


class SyncOrchestrator:
    """
    High-level coordinator for entity passes of one connected account

    A pass either succeeds, fails or is cancelled as a whole. Per-parent
    failures only show up in the counters; a pass-fatal or authentication
    error marks the pass failed with its category and status code. Records
    written before a failure stay in the cache.
    """

    def __init__(self, config: SyncConfig, client: PayrollAPIClient,
                 cache_store: Optional[CacheStore] = None,
                 token_manager: Optional[TokenLifecycleManager] = None,
                 cancel_event: Optional[threading.Event] = None):
        """
        Initialise SyncOrchestrator with dependency injection

        Args:
            config: Validated sync configuration
            client: API client wired to the shared gateway
            cache_store: Connected cache writer; passes only count records when omitted
            token_manager: Closed together with the client when given
            cancel_event: Default cancellation signal shared by the readers and the gateway
        """
        self.config = config
        self.client = client
        self.cache_store = cache_store
        self.token_manager = token_manager
        self.cancel_event = cancel_event or threading.Event()
        self.roster = WorkerRoster(client)
        self.results: List[PassResult] = []
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: SyncConfig, credentials: Optional[Dict[str, Any]] = None,
                    cache_store: Optional[CacheStore] = None,
                    session: Optional[requests.Session] = None,
                    cancel_event: Optional[threading.Event] = None) -> 'SyncOrchestrator':
        """
        Wire limiter, token manager, gateway, fetcher and client from configuration

        Args:
            config: Validated sync configuration
            credentials: client_id/client_secret/cert; resolved from the
                environment when omitted
            cache_store: Connected cache writer
            session: Shared HTTP session
            cancel_event: Cancellation signal observed before every HTTP call
        """
        credentials = credentials or ConfigLoader.resolve_credentials(config)
        session = session or requests.Session()

        token_manager = TokenLifecycleManager(
            token_url=config.token_url,
            client_id=credentials['client_id'],
            client_secret=credentials['client_secret'],
            session=session,
            cert=credentials.get('cert'),
            timeout=config.request_timeout,
        )
        gateway = RateLimitedGateway(
            base_url=config.base_url,
            rate_limiter=RateLimiter.from_requests_per_second(config.requests_per_second),
            token_manager=token_manager,
            session=session,
            cert=credentials.get('cert'),
            timeout=config.request_timeout,
            cancel_event=cancel_event,
        )
        fetcher = PagedCollectionFetcher(
            gateway,
            max_retries=config.max_retries,
            backoff_factor=config.backoff_factor,
            max_pages=config.max_pages,
        )
        client = PayrollAPIClient(gateway, fetcher, endpoints=config.endpoints,
                                  page_size=config.page_size)
        return cls(config, client, cache_store=cache_store, token_manager=token_manager,
                   cancel_event=gateway.cancel_event)

    def generate_load_id(self, entity: str) -> str:
        """
        Generate unique load identifier for one pass

        Args:
            entity: Entity type being synchronised

        Returns:
            Unique load identifier combining source, entity and timestamp
        """
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        unique_suffix = str(uuid.uuid4())[:8]
        load_id = f"{self.config.name}_{entity}_{timestamp}_{unique_suffix}"

        self.logger.info(f"Generated load ID: {load_id}")
        return load_id

    def run_pass(self, entity: str, cancel_event: Optional[threading.Event] = None) -> PassResult:
        """
        Run one pass for an entity type

        Args:
            entity: Entity type to synchronise
            cancel_event: Stops the pass when set; defaults to the orchestrator's signal.
                The same signal is checked between parents and before every HTTP call

        Returns:
            PassResult with status 'succeeded', 'failed' or 'cancelled'

        Raises:
            ValueError: If the entity type is unknown
        """
        reader = create_reader(
            entity,
            self.client,
            roster=self.roster,
            max_workers=self.config.max_workers,
            progress_interval=self.config.progress_interval,
        )
        result = PassResult(load_id=self.generate_load_id(entity), entity=entity, status='running')
        self.logger.info(f"Starting {entity} pass {result.load_id}")

        cancel_event = cancel_event or self.cancel_event
        counted = _CountingStream(reader.read(cancel_event))
        with self._gateway_cancellation(cancel_event):
            try:
                if self.cache_store is not None:
                    self.cache_store.write_records(entity, counted, result.load_id)
                else:
                    for _ in counted:
                        pass
                result.status = 'cancelled' if reader.stats.cancelled else 'succeeded'
            except PassFatalError as e:
                self._mark_failed(result, e, e.category)
                result.cause_category = e.cause_category
            except SyncError as e:
                self._mark_failed(result, e, e.category)
            except CacheStoreError as e:
                self._mark_failed(result, e, 'cache')
            finally:
                result.records_written = counted.count
                result.processed = reader.stats.processed
                result.succeeded = reader.stats.succeeded
                result.failed = reader.stats.failed
                result.finished_at = datetime.now(timezone.utc)

        self._report(result)
        self.results.append(result)
        return result

    def run_passes(self, entities: Iterable[str],
                   cancel_event: Optional[threading.Event] = None) -> List[PassResult]:
        """Run several passes sharing one worker roster; stops early when cancelled"""
        cancel_event = cancel_event or self.cancel_event
        results = []
        for entity in entities:
            if cancel_event.is_set():
                self.logger.warning(f"Skipping {entity} pass: sync cancelled")
                break
            results.append(self.run_pass(entity, cancel_event))
        return results

    def cancel(self) -> None:
        """Ask the running pass to stop; in-flight requests finish, no new ones start"""
        self.cancel_event.set()

    def close(self) -> None:
        self.client.close()
        if self.token_manager is not None:
            self.token_manager.close()

    @contextmanager
    def _gateway_cancellation(self, cancel_event: threading.Event) -> Iterator[None]:
        # The gateway checks the pass's own signal before every HTTP call
        gateway = self.client.gateway
        previous = gateway.cancel_event
        gateway.cancel_event = cancel_event
        try:
            yield
        finally:
            gateway.cancel_event = previous

    def _mark_failed(self, result: PassResult, error: Exception, category: str) -> None:
        result.status = 'failed'
        result.error_category = category
        result.error_message = str(error)
        result.status_code = getattr(error, 'status_code', None)
        self.logger.error(f"{result.entity} pass {result.load_id} failed ({category}): {error}")

    def _report(self, result: PassResult) -> None:
        self.logger.info(
            f"{result.entity} pass {result.load_id} {result.status}: "
            f"{result.records_written} records written, {result.processed} processed, "
            f"{result.failed} failed in {result.duration_seconds:.1f}s"
        )
        if self.cache_store is not None and self.cache_store.connected:
            try:
                self.cache_store.record_pass(result.to_dict())
            except CacheStoreError as e:
                self.logger.error(f"Could not record pass {result.load_id}: {e}")


class _CountingStream:
    """Iterator wrapper counting the records that reached the writer"""

    def __init__(self, records: Iterator[Any]):
        self._records = records
        self.count = 0

    def __iter__(self) -> Iterator[Any]:
        for record in self._records:
            yield record
            # Only counted once the consumer asks for the next record
            self.count += 1
