"""
PayrollAPIClient module exposing the upstream endpoints used by the readers
"""

import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from .collection_fetcher import CollectionEndpoint, PagedCollectionFetcher
from .config_loader import DEFAULT_ENDPOINTS, MAX_PAGE_SIZE
from .exceptions import DeserializationError, SyncError
from .fetch_result import FetchResult
from .http_client import RateLimitedGateway


class PayrollAPIClient:
    """
    Endpoint catalogue for one connected account

    Collection reads (workers, labor charge codes) raise on failure because a
    partial collection must never be mistaken for a complete one. Per-worker
    reads return a FetchResult so the expander can decide between skipping the
    worker and aborting the pass without catching exceptions itself.
    """

    def __init__(self, gateway: RateLimitedGateway, fetcher: PagedCollectionFetcher,
                 endpoints: Optional[Dict[str, str]] = None,
                 page_size: int = MAX_PAGE_SIZE):
        self.gateway = gateway
        self.fetcher = fetcher
        self.endpoints = {**DEFAULT_ENDPOINTS, **(endpoints or {})}
        self.page_size = page_size
        self.logger = logging.getLogger(__name__)

    # Endpoint descriptions

    def workers_endpoint(self) -> CollectionEndpoint:
        return CollectionEndpoint(
            path=self.endpoints['workers'],
            collection_key='workers',
            pagination={'strategy': 'offset_limit', 'page_size': self.page_size},
        )

    def labor_charge_codes_endpoint(self) -> CollectionEndpoint:
        return CollectionEndpoint(
            path=self.endpoints['labor_charge_codes'],
            collection_key='laborChargeCodes',
            pagination={'strategy': 'page_based', 'page_size': self.page_size},
        )

    def time_cards_endpoint(self, associate_oid: str) -> CollectionEndpoint:
        return CollectionEndpoint(
            path=self._path('time_cards', associate_oid=associate_oid),
            collection_key='timeCards',
            pagination={'strategy': 'offset_limit', 'page_size': self.page_size},
        )

    # Collection reads

    def fetch_workers(self) -> List[Dict[str, Any]]:
        """Fetch the full worker list; raises on any page failure"""
        return self.fetcher.fetch_all(self.workers_endpoint())

    def fetch_labor_charge_codes(self) -> List[Dict[str, Any]]:
        """Fetch the full labor charge code list; raises on any page failure"""
        return self.fetcher.fetch_all(self.labor_charge_codes_endpoint())

    # Dependent reads

    def fetch_tax_profile(self, associate_oid: str) -> FetchResult:
        """
        Fetch one worker's US tax profile

        The endpoint returns a single object, not an array. A body without a
        usTaxProfiles object succeeds with no data.

        Args:
            associate_oid: Worker whose profile is requested

        Returns:
            FetchResult carrying the usTaxProfiles object or None
        """
        def read() -> Optional[Dict[str, Any]]:
            body = self.gateway.get(self._path('tax_profile', associate_oid=associate_oid)).raw_data
            profile = self._require_object(body).get('usTaxProfiles')
            if profile is None:
                return None
            if not isinstance(profile, dict):
                raise DeserializationError("Property 'usTaxProfiles' is not an object")
            return profile

        return self._guard(read)

    def fetch_state_tax_withholdings(self, associate_oid: str, profile_id: str) -> FetchResult:
        """
        Fetch the state withholding detail for one worker's tax profile

        Args:
            associate_oid: Worker the profile belongs to
            profile_id: itemID of the worker's US tax profile

        Returns:
            FetchResult carrying the list of stateTaxWithholding objects
        """
        def read() -> List[Dict[str, Any]]:
            path = self._path('state_tax_profile', associate_oid=associate_oid, profile_id=profile_id)
            body = self._require_object(self.gateway.get(path).raw_data)
            wrappers = PagedCollectionFetcher.extract_items(body, 'stateTaxWithholdings')
            withholdings = []
            for wrapper in wrappers:
                withholding = wrapper.get('stateTaxWithholding') if isinstance(wrapper, dict) else None
                if isinstance(withholding, dict):
                    withholdings.append(withholding)
            return withholdings

        return self._guard(read)

    def fetch_time_cards(self, associate_oid: str) -> FetchResult:
        """Fetch every time card of one worker"""
        return self._guard(lambda: self.fetcher.fetch_all(self.time_cards_endpoint(associate_oid)))

    def close(self) -> None:
        self.gateway.close_connection()

    def _path(self, endpoint_name: str, **keys: str) -> str:
        template = self.endpoints[endpoint_name]
        return template.format(**{name: quote(str(value), safe='') for name, value in keys.items()})

    @staticmethod
    def _require_object(body: Any) -> Dict[str, Any]:
        if body is None:
            return {}
        if not isinstance(body, dict):
            raise DeserializationError(f"Expected a JSON object, got {type(body).__name__}")
        return body

    def _guard(self, read: Callable[[], Any]) -> FetchResult:
        try:
            return FetchResult.success(read())
        except SyncError as e:
            self.logger.debug(f"Dependent fetch failed: {e}")
            return FetchResult.from_error(e)
