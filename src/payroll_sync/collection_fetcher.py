"""
PagedCollectionFetcher module for reading a complete paginated collection
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .exceptions import DeserializationError, HttpStatusError, TransportError
from .http_client import RateLimitedGateway
from .pagination_strategy import PaginationFactory, PaginationStrategy


@dataclass(frozen=True)
class CollectionEndpoint:
    """A list endpoint whose items sit under a named top-level array property"""
    path: str
    collection_key: str
    pagination: Dict[str, Any] = field(default_factory=lambda: {'strategy': 'offset_limit'})
    parameters: Dict[str, Any] = field(default_factory=dict)


class PagedCollectionFetcher:
    """
    Drives pagination over one endpoint and returns the whole collection

    fetch_all is all-or-nothing: a failed page discards everything collected so
    far and re-raises, so a caller can never mistake a partial list for a
    complete one.
    """

    # HTTP status codes that should trigger retries
    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(self, gateway: RateLimitedGateway, max_retries: int = 0,
                 backoff_factor: float = 2.0, max_pages: Optional[int] = None,
                 sleeper: Callable[[float], None] = time.sleep):
        self.gateway = gateway
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.max_pages = max_pages
        self._sleeper = sleeper
        self.logger = logging.getLogger(__name__)

    def fetch_all(self, endpoint: CollectionEndpoint) -> List[Dict[str, Any]]:
        """
        Fetch every page of an endpoint

        Args:
            endpoint: Endpoint description with path, collection key and pagination

        Returns:
            All items of the collection in upstream order

        Raises:
            TransportError, HttpStatusError, DeserializationError, AuthError:
                If any page fails; nothing collected is returned
        """
        strategy = PaginationFactory.create_strategy(endpoint.pagination)
        collected: List[Dict[str, Any]] = []
        page_num = 1

        while True:
            if self.max_pages is not None and page_num > self.max_pages:
                self.logger.warning(
                    f"Stopping {endpoint.path} at the configured limit of {self.max_pages} pages"
                )
                break

            raw_data = self._fetch_page(endpoint, strategy, page_num)
            items = self.extract_items(raw_data, endpoint.collection_key)
            collected.extend(items)

            self.logger.debug(
                f"Fetched page {page_num} of {endpoint.path}: {len(items)} items"
            )

            if not strategy.has_more(raw_data, len(items), page_num):
                break
            page_num += 1

        self.logger.info(f"Fetched {len(collected)} items from {endpoint.path} in {page_num} page(s)")
        return collected

    @staticmethod
    def extract_items(raw_data: Any, collection_key: str) -> List[Dict[str, Any]]:
        """
        Extract the item list from a list-endpoint body

        Args:
            raw_data: Decoded JSON body (None for an empty response)
            collection_key: Name of the top-level array property

        Returns:
            List of items; empty when the property is absent

        Raises:
            DeserializationError: If the body, the property or one of its items has the wrong shape
        """
        if raw_data is None:
            return []
        if not isinstance(raw_data, dict):
            raise DeserializationError(
                f"Expected a JSON object wrapping '{collection_key}', got {type(raw_data).__name__}"
            )
        items = raw_data.get(collection_key)
        if items is None:
            return []
        if not isinstance(items, list):
            raise DeserializationError(f"Property '{collection_key}' is not an array")
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise DeserializationError(
                    f"Item {index} of '{collection_key}' is {type(item).__name__}, not an object"
                )
        return items

    def _fetch_page(self, endpoint: CollectionEndpoint,
                    strategy: PaginationStrategy, page_num: int) -> Any:
        params = {**endpoint.parameters, **strategy.get_page_params(page_num)}
        attempt = 0

        while True:
            try:
                return self.gateway.get(endpoint.path, params).raw_data
            except (HttpStatusError, TransportError) as e:
                retryable = isinstance(e, TransportError) or e.status_code in self.RETRYABLE_STATUS_CODES
                if not retryable or attempt >= self.max_retries:
                    raise
                attempt += 1
                # Exponential backoff with a 1 second base delay
                delay = 1.0 * (self.backoff_factor ** (attempt - 1))
                self.logger.warning(
                    f"Page {page_num} of {endpoint.path} failed ({e}), "
                    f"retry {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                self._sleeper(delay)
