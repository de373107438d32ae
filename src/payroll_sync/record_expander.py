"""
HierarchicalRecordExpander module for per-parent dependent fetch fan-out
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

from .fetch_result import FetchResult, FetchStatus, PerParentFailure

_EXHAUSTED = object()


@dataclass
class DependentLevel:
    """
    One dependent call made for every parent

    Attributes:
        name: Level name used in logs and failure records
        fetch: Called with the parent key followed by the keys extracted by
            earlier levels; returns a FetchResult
        extract_key: Reads the key handed to the next level from this level's
            data; returning None means the parent has no usable data
        map_records: Maps (parent, keys, data) to the records this level emits
    """
    name: str
    fetch: Callable[..., FetchResult]
    extract_key: Optional[Callable[[Any], Optional[str]]] = None
    map_records: Optional[Callable[[Dict[str, Any], List[str], Any], List[Any]]] = None


@dataclass
class SyncStats:
    """Counters for one pass, mutated only by the thread consuming the stream"""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    records_emitted: int = 0
    cancelled: bool = False
    failures: List[PerParentFailure] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            'processed': self.processed,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'records_emitted': self.records_emitted,
            'cancelled': self.cancelled,
        }


@dataclass
class ParentOutcome:
    parent_key: str
    records: List[Any] = field(default_factory=list)
    failure: Optional[PerParentFailure] = None
    cancelled: bool = False


def associate_oid_of(parent: Dict[str, Any]) -> Optional[str]:
    value = parent.get('associateOID') if isinstance(parent, dict) else None
    if value is None or str(value).strip() == "":
        return None
    return str(value)


class HierarchicalRecordExpander:
    """
    Turns a parent list into a lazy stream of dependent records

    Each parent runs its levels in order. A recoverable failure or missing key
    skips the rest of that parent and counts one failure; a fatal result
    re-raises and ends the stream. Parents never share state, so with
    max_workers > 1 they run concurrently and records come out in completion
    order. With max_workers == 1 output follows input order.
    """

    def __init__(self, max_workers: int = 1, progress_interval: int = 100,
                 entity_name: str = 'parents'):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.progress_interval = max(1, progress_interval)
        self.entity_name = entity_name
        self.logger = logging.getLogger(__name__)

    def expand(self, parents: Iterable[Dict[str, Any]], levels: List[DependentLevel],
               key_fn: Callable[[Dict[str, Any]], Optional[str]] = associate_oid_of,
               cancel_event: Optional[threading.Event] = None,
               stats: Optional[SyncStats] = None) -> Iterator[Any]:
        """
        Expand parents into dependent records

        Args:
            parents: Parent objects in upstream order
            levels: Dependent levels, first level first
            key_fn: Reads the join key of a parent
            cancel_event: Checked before each parent is started
            stats: Counters to update; a fresh SyncStats when omitted

        Yields:
            Mapped records, flushed per parent as soon as it completes

        Raises:
            SyncError: The error of the first fatal result
        """
        if not levels:
            raise ValueError("At least one dependent level is required")
        cancel_event = cancel_event or threading.Event()
        stats = stats if stats is not None else SyncStats()

        if self.max_workers == 1:
            outcomes = self._run_sequential(parents, levels, key_fn, cancel_event, stats)
        else:
            outcomes = self._run_concurrent(parents, levels, key_fn, cancel_event, stats)

        for outcome in outcomes:
            yield from self._record_outcome(outcome, stats)

        if stats.cancelled:
            self.logger.warning(
                f"Cancelled after {stats.processed} {self.entity_name}: "
                f"{stats.succeeded} succeeded, {stats.failed} failed, "
                f"{stats.records_emitted} records emitted"
            )
        else:
            self.logger.info(
                f"Completed {stats.processed} {self.entity_name}: "
                f"{stats.succeeded} succeeded, {stats.failed} failed, "
                f"{stats.records_emitted} records emitted"
            )

    def process_parent(self, parent: Dict[str, Any], parent_key: str,
                       levels: List[DependentLevel]) -> ParentOutcome:
        """
        Run every level for one parent

        Records mapped by earlier levels are kept when a later level fails.

        Raises:
            SyncError: When a level returns a fatal result
        """
        keys = [parent_key]
        records: List[Any] = []

        for level in levels:
            result = level.fetch(*keys)

            if result.status is FetchStatus.CANCELLED:
                return ParentOutcome(parent_key, records, cancelled=True)
            if result.status is FetchStatus.FATAL:
                raise result.error
            if not result.ok or result.data is None:
                return ParentOutcome(parent_key, records, failure=result.to_failure(parent_key, level.name))

            if level.map_records is not None:
                records.extend(level.map_records(parent, keys, result.data))

            if level.extract_key is not None:
                next_key = level.extract_key(result.data)
                if next_key is None:
                    return ParentOutcome(parent_key, records, failure=PerParentFailure(
                        parent_key=parent_key,
                        level=level.name,
                        category='no_data',
                        message=f"No key for the level after '{level.name}'",
                    ))
                keys = keys + [next_key]

        return ParentOutcome(parent_key, records)

    def _missing_key(self, parent: Any) -> ParentOutcome:
        return ParentOutcome('', failure=PerParentFailure(
            parent_key='',
            level='parent',
            category='missing_key',
            message=f"Parent has no key: {str(parent)[:200]}",
        ))

    def _run_sequential(self, parents, levels, key_fn, cancel_event, stats) -> Iterator[ParentOutcome]:
        for parent in parents:
            if cancel_event.is_set():
                stats.cancelled = True
                return
            parent_key = key_fn(parent)
            if parent_key is None:
                yield self._missing_key(parent)
                continue
            yield self.process_parent(parent, parent_key, levels)

    def _run_concurrent(self, parents, levels, key_fn, cancel_event, stats) -> Iterator[ParentOutcome]:
        parent_iter = iter(parents)
        in_flight: Set[Future] = set()
        exhausted = False

        with ThreadPoolExecutor(max_workers=self.max_workers,
                                thread_name_prefix='payroll-sync') as executor:
            while True:
                # Keep at most max_workers parents in flight
                while not exhausted and len(in_flight) < self.max_workers:
                    if cancel_event.is_set():
                        stats.cancelled = True
                        exhausted = True
                        break
                    parent = next(parent_iter, _EXHAUSTED)
                    if parent is _EXHAUSTED:
                        exhausted = True
                        break
                    parent_key = key_fn(parent)
                    if parent_key is None:
                        yield self._missing_key(parent)
                        continue
                    in_flight.add(executor.submit(self.process_parent, parent, parent_key, levels))

                if not in_flight:
                    return

                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    yield future.result()

    def _record_outcome(self, outcome: ParentOutcome, stats: SyncStats) -> List[Any]:
        if outcome.cancelled:
            stats.cancelled = True
        else:
            stats.processed += 1
            if outcome.failure is not None:
                stats.failed += 1
                stats.failures.append(outcome.failure)
                failure = outcome.failure
                status = f" (HTTP {failure.status_code})" if failure.status_code else ""
                self.logger.warning(
                    f"Skipping {failure.parent_key or '<no key>'} at {failure.level}: "
                    f"{failure.category}{status} {failure.message}"
                )
            else:
                stats.succeeded += 1

            if stats.processed % self.progress_interval == 0:
                self.logger.info(
                    f"Progress: {stats.processed} {self.entity_name} processed, "
                    f"{stats.succeeded} succeeded, {stats.failed} failed"
                )

        stats.records_emitted += len(outcome.records)
        return outcome.records
