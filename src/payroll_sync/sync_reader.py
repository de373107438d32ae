"""
SyncReader classes exposing one lazy record stream per entity type
"""

import logging
import threading
from collections import Counter
from typing import Any, Callable, Dict, Iterator, List, Optional, Type

from .api_client import PayrollAPIClient
from .exceptions import AuthError, PassFatalError, SyncCancelledError, SyncError
from .models import (
    FederalTaxProfileRecord,
    LaborChargeCodeRecord,
    LocalTaxProfileRecord,
    StateTaxProfileRecord,
    TimeCardRecord,
    WorkerRecord,
)
from .record_expander import DependentLevel, HierarchicalRecordExpander, SyncStats
from .record_mapper import (
    map_federal_tax_profile,
    map_labor_charge_code,
    map_local_tax_profile,
    map_state_tax_profile,
    map_time_card,
    map_worker,
    profile_id_of,
)


class WorkerRoster:
    """
    One-time worker list shared by the readers of a pass set

    The first caller fetches the list; concurrent callers wait for it and
    every later caller reuses it. A failed fetch is not memoised.
    """

    def __init__(self, client: PayrollAPIClient):
        self.client = client
        self._lock = threading.Lock()
        self._workers: Optional[List[Dict[str, Any]]] = None
        self.logger = logging.getLogger(__name__)

    @property
    def loaded(self) -> bool:
        return self._workers is not None

    def get_workers(self) -> List[Dict[str, Any]]:
        with self._lock:
            if self._workers is None:
                workers = self.client.fetch_workers()
                self._warn_duplicates(workers)
                self._workers = workers
            return self._workers

    def _warn_duplicates(self, workers: List[Dict[str, Any]]) -> None:
        counts = Counter(w.get('associateOID') for w in workers if isinstance(w, dict))
        duplicates = [oid for oid, count in counts.items() if oid and count > 1]
        if duplicates:
            self.logger.warning(
                f"Found {len(duplicates)} duplicate associateOID values in workers: "
                f"{', '.join(sorted(map(str, duplicates))[:10])}"
            )


class SyncReader:
    """
    Base class for entity readers

    read() is finite and starts from the full parent list on every call.
    Collection failures become PassFatalError; AuthError passes through as is.
    """

    entity_name = ''
    record_type: Optional[type] = None

    def __init__(self, client: PayrollAPIClient, roster: Optional[WorkerRoster] = None,
                 expander: Optional[HierarchicalRecordExpander] = None):
        self.client = client
        self.roster = roster or WorkerRoster(client)
        self.expander = expander or HierarchicalRecordExpander(entity_name='workers')
        self.stats = SyncStats()
        self.logger = logging.getLogger(__name__)

    def read(self, cancel_event: Optional[threading.Event] = None) -> Iterator[Any]:
        """
        Produce the records of one pass

        Args:
            cancel_event: Stops the pass after in-flight work when set

        Yields:
            Canonical records of this reader's entity type

        Raises:
            PassFatalError: If the parent or flat collection cannot be fetched
            AuthError: If authentication fails at any point
        """
        self.stats = SyncStats()
        cancel_event = cancel_event or threading.Event()
        self.logger.info(f"Starting {self.entity_name} read")
        try:
            yield from self._records(cancel_event)
        except SyncCancelledError as e:
            # Cancelled while a collection was being fetched; nothing partial is emitted
            self.stats.cancelled = True
            self.logger.warning(f"{self.entity_name} read cancelled: {e}")
        except AuthError as e:
            self.logger.error(f"Authentication failed during {self.entity_name} read: {e}")
            raise

    def _records(self, cancel_event: threading.Event) -> Iterator[Any]:
        raise NotImplementedError

    def _fetch_collection(self, description: str,
                          fetch: Callable[[], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        try:
            return fetch()
        except (AuthError, SyncCancelledError):
            raise
        except SyncError as e:
            self.logger.error(
                f"Failed to fetch {description} for {self.entity_name}: {e}"
            )
            raise PassFatalError(
                f"Fetching {description} failed: {e}",
                status_code=e.status_code,
                cause_category=e.category,
            ) from e

    def _workers(self) -> List[Dict[str, Any]]:
        return self._fetch_collection('workers', self.roster.get_workers)

    def _emit_flat(self, items: List[Dict[str, Any]], mapper: Callable[[Dict[str, Any]], Any],
                   cancel_event: threading.Event) -> Iterator[Any]:
        for item in items:
            if cancel_event.is_set():
                self.stats.cancelled = True
                self.logger.warning(f"{self.entity_name} read cancelled after {self.stats.processed} items")
                return
            record = mapper(item)
            self.stats.processed += 1
            self.stats.succeeded += 1
            self.stats.records_emitted += 1
            yield record
        self.logger.info(f"Completed {self.entity_name} read: {self.stats.records_emitted} records")

    def _expand(self, levels: List[DependentLevel], cancel_event: threading.Event) -> Iterator[Any]:
        workers = self._workers()
        yield from self.expander.expand(workers, levels, cancel_event=cancel_event, stats=self.stats)


class WorkersReader(SyncReader):
    entity_name = 'workers'
    record_type = WorkerRecord

    def _records(self, cancel_event):
        yield from self._emit_flat(self._workers(), map_worker, cancel_event)


class LaborChargeCodesReader(SyncReader):
    entity_name = 'labor_charge_codes'
    record_type = LaborChargeCodeRecord

    def _records(self, cancel_event):
        codes = self._fetch_collection('labor charge codes', self.client.fetch_labor_charge_codes)
        yield from self._emit_flat(codes, map_labor_charge_code, cancel_event)


class FederalTaxProfilesReader(SyncReader):
    entity_name = 'federal_tax_profiles'
    record_type = FederalTaxProfileRecord

    def levels(self) -> List[DependentLevel]:
        return [
            DependentLevel(
                name='tax_profile',
                fetch=self.client.fetch_tax_profile,
                map_records=lambda parent, keys, profile: [map_federal_tax_profile(keys[0], profile)],
            ),
        ]

    def _records(self, cancel_event):
        yield from self._expand(self.levels(), cancel_event)


class StateTaxProfilesReader(SyncReader):
    entity_name = 'state_tax_profiles'
    record_type = StateTaxProfileRecord

    def levels(self) -> List[DependentLevel]:
        # State detail is keyed by the worker's tax profile id
        return [
            DependentLevel(
                name='tax_profile',
                fetch=self.client.fetch_tax_profile,
                extract_key=profile_id_of,
            ),
            DependentLevel(
                name='state_tax_profile',
                fetch=self.client.fetch_state_tax_withholdings,
                map_records=lambda parent, keys, withholdings: [
                    map_state_tax_profile(keys[0], keys[1], withholding)
                    for withholding in withholdings
                ],
            ),
        ]

    def _records(self, cancel_event):
        yield from self._expand(self.levels(), cancel_event)


class LocalTaxProfilesReader(SyncReader):
    entity_name = 'local_tax_profiles'
    record_type = LocalTaxProfileRecord

    @staticmethod
    def map_local_instructions(parent, keys, profile) -> List[LocalTaxProfileRecord]:
        federal_id = profile_id_of(profile) or ""
        instructions = profile.get('usLocalTaxInstructions')
        if not isinstance(instructions, list):
            return []
        return [
            map_local_tax_profile(keys[0], federal_id, instruction)
            for instruction in instructions
            if isinstance(instruction, dict)
        ]

    def levels(self) -> List[DependentLevel]:
        return [
            DependentLevel(
                name='tax_profile',
                fetch=self.client.fetch_tax_profile,
                map_records=self.map_local_instructions,
            ),
        ]

    def _records(self, cancel_event):
        yield from self._expand(self.levels(), cancel_event)


class TimeCardsReader(SyncReader):
    entity_name = 'time_cards'
    record_type = TimeCardRecord

    def levels(self) -> List[DependentLevel]:
        return [
            DependentLevel(
                name='time_cards',
                fetch=self.client.fetch_time_cards,
                map_records=lambda parent, keys, cards: [map_time_card(keys[0], card) for card in cards],
            ),
        ]

    def _records(self, cancel_event):
        yield from self._expand(self.levels(), cancel_event)


READER_REGISTRY: Dict[str, Type[SyncReader]] = {
    'workers': WorkersReader,
    'federal_tax_profiles': FederalTaxProfilesReader,
    'state_tax_profiles': StateTaxProfilesReader,
    'local_tax_profiles': LocalTaxProfilesReader,
    'time_cards': TimeCardsReader,
    'labor_charge_codes': LaborChargeCodesReader,
}


def create_reader(entity: str, client: PayrollAPIClient, roster: Optional[WorkerRoster] = None,
                  max_workers: int = 1, progress_interval: int = 100) -> SyncReader:
    """
    Create the reader for an entity type

    Args:
        entity: Key of READER_REGISTRY
        client: API client shared by the pass set
        roster: Worker roster shared by the pass set
        max_workers: Parents processed concurrently by hierarchical readers
        progress_interval: Parents between progress log lines

    Raises:
        ValueError: If the entity type is unknown
    """
    if entity not in READER_REGISTRY:
        raise ValueError(
            f"Unsupported entity type: {entity}. Expected one of: {', '.join(READER_REGISTRY)}"
        )
    expander = HierarchicalRecordExpander(
        max_workers=max_workers,
        progress_interval=progress_interval,
        entity_name='workers',
    )
    return READER_REGISTRY[entity](client, roster=roster, expander=expander)
