"""
Test suite for SyncReader classes and the shared worker roster
Following AAA pattern and descriptive naming
"""

import logging
import threading
from unittest.mock import Mock

import pytest

from payroll_sync.exceptions import (
    AuthError,
    HttpStatusError,
    PassFatalError,
    SyncCancelledError,
    TransportError,
)
from payroll_sync.fetch_result import FetchResult
from payroll_sync.models import (
    FederalTaxProfileRecord,
    LaborChargeCodeRecord,
    LocalTaxProfileRecord,
    StateTaxProfileRecord,
    TimeCardRecord,
    WorkerRecord,
)
from payroll_sync.sync_reader import (
    FederalTaxProfilesReader,
    LaborChargeCodesReader,
    LocalTaxProfilesReader,
    StateTaxProfilesReader,
    TimeCardsReader,
    WorkerRoster,
    WorkersReader,
    create_reader,
)


def _client(workers=None):
    client = Mock()
    client.fetch_workers.return_value = workers if workers is not None else [
        {'associateOID': 'A1'}, {'associateOID': 'A2'}, {'associateOID': 'A3'},
    ]
    return client


def _profile(oid, **extra):
    return {'itemID': f"TP-{oid}", 'payrollFileNumber': oid, **extra}


class TestWorkerRoster:
    """Test suite for the memoised worker list"""

    def test_get_workers_fetches_once_and_reuses_list(self):
        """
        Test that repeated calls share a single upstream fetch
        """
        # Arrange
        client = _client()
        roster = WorkerRoster(client)

        # Act
        first = roster.get_workers()
        second = roster.get_workers()

        # Assert
        assert first is second
        assert roster.loaded is True
        client.fetch_workers.assert_called_once()

    def test_concurrent_first_callers_share_one_fetch(self):
        """
        Test that simultaneous first callers wait for a single fetch
        """
        # Arrange
        client = _client()
        roster = WorkerRoster(client)
        barrier = threading.Barrier(5)

        def call():
            barrier.wait()
            roster.get_workers()

        threads = [threading.Thread(target=call) for _ in range(5)]

        # Act
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        # Assert
        client.fetch_workers.assert_called_once()

    def test_failed_fetch_is_not_memoised(self):
        """
        Test that a failure lets the next caller fetch again
        """
        # Arrange
        client = _client()
        client.fetch_workers.side_effect = [TransportError("reset"), [{'associateOID': 'A1'}]]
        roster = WorkerRoster(client)
        with pytest.raises(TransportError):
            roster.get_workers()

        # Act
        workers = roster.get_workers()

        # Assert
        assert workers == [{'associateOID': 'A1'}]
        assert client.fetch_workers.call_count == 2

    def test_duplicate_associate_oids_are_logged(self, caplog):
        """
        Test that duplicate worker keys produce a warning but are kept
        """
        # Arrange
        roster = WorkerRoster(_client([{'associateOID': 'A1'}, {'associateOID': 'A1'}]))

        # Act
        with caplog.at_level(logging.WARNING, logger='payroll_sync.sync_reader'):
            workers = roster.get_workers()

        # Assert
        assert len(workers) == 2
        assert "duplicate associateOID" in caplog.text


class TestFlatReaders:
    """Test suite for readers without dependent calls"""

    def test_workers_reader_maps_every_worker(self):
        """
        Test that the workers reader yields one record per worker
        """
        # Arrange
        reader = WorkersReader(_client())

        # Act
        records = list(reader.read())

        # Assert
        assert [r.associate_oid for r in records] == ['A1', 'A2', 'A3']
        assert all(isinstance(r, WorkerRecord) for r in records)
        assert reader.stats.records_emitted == 3

    def test_read_restarts_from_full_list_on_each_call(self):
        """
        Test that a second read yields the same records again
        """
        # Arrange
        reader = WorkersReader(_client())

        # Act
        first = list(reader.read())
        second = list(reader.read())

        # Assert
        assert len(first) == len(second) == 3
        assert reader.stats.processed == 3

    def test_labor_charge_codes_reader_does_not_fetch_workers(self):
        """
        Test that labor charge codes are read from their own collection
        """
        # Arrange
        client = _client()
        client.fetch_labor_charge_codes.return_value = [{'itemID': 'L1', 'codeValue': 'LC-10'}]
        reader = LaborChargeCodesReader(client)

        # Act
        records = list(reader.read())

        # Assert
        assert isinstance(records[0], LaborChargeCodeRecord)
        assert records[0].code_value == 'LC-10'
        client.fetch_workers.assert_not_called()

    def test_flat_reader_stops_when_cancelled(self):
        """
        Test that a set cancellation signal ends the flat stream
        """
        # Arrange
        cancel_event = threading.Event()
        cancel_event.set()
        reader = WorkersReader(_client())

        # Act
        records = list(reader.read(cancel_event))

        # Assert
        assert records == []
        assert reader.stats.cancelled is True


class TestPassFatalErrors:
    """Test suite for collection failures aborting the pass"""

    def test_parent_collection_503_raises_pass_fatal_error_without_records(self):
        """
        Test that a 503 on the first workers page fails the pass with status 503
        """
        # Arrange
        client = _client()
        client.fetch_workers.side_effect = HttpStatusError("HTTP 503", status_code=503)
        reader = FederalTaxProfilesReader(client)
        records = []

        # Act & Assert
        with pytest.raises(PassFatalError) as exc_info:
            for record in reader.read():
                records.append(record)

        assert exc_info.value.status_code == 503
        assert exc_info.value.cause_category == 'http_status'
        assert isinstance(exc_info.value.__cause__, HttpStatusError)
        assert records == []
        client.fetch_tax_profile.assert_not_called()

    def test_flat_collection_failure_raises_pass_fatal_error(self):
        """
        Test that a failed labor charge code collection fails the pass
        """
        # Arrange
        client = _client()
        client.fetch_labor_charge_codes.side_effect = TransportError("timed out")
        reader = LaborChargeCodesReader(client)

        # Act & Assert
        with pytest.raises(PassFatalError) as exc_info:
            list(reader.read())

        assert exc_info.value.cause_category == 'transport'

    def test_cancelled_collection_fetch_ends_read_as_cancelled(self):
        """
        Test that a cancellation during the worker list fetch is not wrapped as pass fatal
        """
        # Arrange
        client = _client()
        client.fetch_workers.side_effect = SyncCancelledError("Sync cancelled before request")
        reader = TimeCardsReader(client)

        # Act
        records = list(reader.read())

        # Assert
        assert records == []
        assert reader.stats.cancelled is True
        client.fetch_time_cards.assert_not_called()

    def test_cancelled_flat_collection_fetch_ends_read_as_cancelled(self):
        """
        Test that a cancellation during the labor charge code fetch ends the read cleanly
        """
        # Arrange
        client = _client()
        client.fetch_labor_charge_codes.side_effect = SyncCancelledError("Sync cancelled before request")
        reader = LaborChargeCodesReader(client)

        # Act
        records = list(reader.read())

        # Assert
        assert records == []
        assert reader.stats.cancelled is True

    def test_token_rejection_propagates_as_auth_error(self):
        """
        Test that an authentication failure is not wrapped into PassFatalError
        """
        # Arrange
        client = _client()
        client.fetch_workers.side_effect = AuthError("token endpoint returned 401", status_code=401)
        reader = WorkersReader(client)

        # Act & Assert
        with pytest.raises(AuthError) as exc_info:
            list(reader.read())

        assert not isinstance(exc_info.value, PassFatalError)
        assert exc_info.value.status_code == 401

    def test_auth_error_in_dependent_call_aborts_pass(self):
        """
        Test that a fatal dependent result surfaces as AuthError from read()
        """
        # Arrange
        client = _client()
        client.fetch_tax_profile.return_value = FetchResult.from_error(
            AuthError("re-authentication failed", status_code=401))
        reader = FederalTaxProfilesReader(client)

        # Act & Assert
        with pytest.raises(AuthError):
            list(reader.read())


class TestHierarchicalReaders:
    """Test suite for readers driven by per-worker dependent calls"""

    def test_federal_reader_skips_failed_worker(self):
        """
        Test that a 500 for one worker is counted and the others are emitted
        """
        # Arrange
        client = _client()
        client.fetch_tax_profile.side_effect = lambda oid: (
            FetchResult.from_error(HttpStatusError("HTTP 500", status_code=500))
            if oid == 'A2' else FetchResult.success(_profile(oid))
        )
        reader = FederalTaxProfilesReader(client)

        # Act
        records = list(reader.read())

        # Assert
        assert [r.profile_id for r in records] == ['TP-A1', 'TP-A3']
        assert all(isinstance(r, FederalTaxProfileRecord) for r in records)
        assert reader.stats.failed == 1

    def test_state_reader_chains_profile_id_into_state_call(self):
        """
        Test that the state call receives the worker's tax profile id
        """
        # Arrange
        client = _client([{'associateOID': 'A1'}])
        client.fetch_tax_profile.return_value = FetchResult.success(_profile('A1'))
        client.fetch_state_tax_withholdings.return_value = FetchResult.success([
            {'itemID': 'S1', 'stateIncomeTaxInstruction': {'stateCode': {'codeValue': 'NJ'}}},
            {'itemID': 'S2', 'stateIncomeTaxInstruction': {'stateCode': {'codeValue': 'NY'}}},
        ])
        reader = StateTaxProfilesReader(client)

        # Act
        records = list(reader.read())

        # Assert
        client.fetch_state_tax_withholdings.assert_called_once_with('A1', 'TP-A1')
        assert all(isinstance(r, StateTaxProfileRecord) for r in records)
        assert [r.state_income_tax_instruction.state_code.code_value for r in records] == ['NJ', 'NY']
        assert all(r.federal_tax_profile_id == 'TP-A1' for r in records)

    def test_state_reader_with_profile_missing_item_id_counts_failure(self):
        """
        Test that a tax profile without itemID skips the state call for that worker
        """
        # Arrange
        client = _client([{'associateOID': 'A1'}])
        client.fetch_tax_profile.return_value = FetchResult.success({'payrollFileNumber': '1'})
        reader = StateTaxProfilesReader(client)

        # Act
        records = list(reader.read())

        # Assert
        assert records == []
        assert reader.stats.failed == 1
        client.fetch_state_tax_withholdings.assert_not_called()

    def test_state_reader_with_no_withholdings_succeeds_without_records(self):
        """
        Test that an empty state list is a success contributing no records
        """
        # Arrange
        client = _client([{'associateOID': 'A1'}])
        client.fetch_tax_profile.return_value = FetchResult.success(_profile('A1'))
        client.fetch_state_tax_withholdings.return_value = FetchResult.success([])
        reader = StateTaxProfilesReader(client)

        # Act
        records = list(reader.read())

        # Assert
        assert records == []
        assert reader.stats.succeeded == 1
        assert reader.stats.failed == 0

    def test_local_reader_maps_local_instructions_of_profile(self):
        """
        Test that each usLocalTaxInstructions entry becomes a local record
        """
        # Arrange
        client = _client([{'associateOID': 'A1'}])
        client.fetch_tax_profile.return_value = FetchResult.success(_profile('A1', usLocalTaxInstructions=[
            {'itemID': 'L1', 'localIncomeTaxInstruction': {'localityCode': {'codeValue': 'NEWARK'}}},
            'not an object',
        ]))
        reader = LocalTaxProfilesReader(client)

        # Act
        records = list(reader.read())

        # Assert
        assert len(records) == 1
        assert isinstance(records[0], LocalTaxProfileRecord)
        assert records[0].locality_code.code_value == 'NEWARK'
        assert records[0].federal_tax_profile_id == 'TP-A1'

    def test_time_cards_reader_maps_cards_per_worker(self):
        """
        Test that every time card of every worker is emitted
        """
        # Arrange
        client = _client([{'associateOID': 'A1'}, {'associateOID': 'A2'}])
        client.fetch_time_cards.side_effect = lambda oid: FetchResult.success(
            [{'itemID': f"{oid}-C1"}, {'itemID': f"{oid}-C2"}])
        reader = TimeCardsReader(client)

        # Act
        records = list(reader.read())

        # Assert
        assert [r.time_card_id for r in records] == ['A1-C1', 'A1-C2', 'A2-C1', 'A2-C2']
        assert all(isinstance(r, TimeCardRecord) for r in records)

    def test_readers_sharing_a_roster_fetch_workers_once(self):
        """
        Test that passes over one roster reuse the worker list
        """
        # Arrange
        client = _client()
        client.fetch_tax_profile.side_effect = lambda oid: FetchResult.success(_profile(oid))
        client.fetch_time_cards.return_value = FetchResult.success([])
        roster = WorkerRoster(client)

        # Act
        list(FederalTaxProfilesReader(client, roster=roster).read())
        list(TimeCardsReader(client, roster=roster).read())

        # Assert
        client.fetch_workers.assert_called_once()


class TestCreateReader:
    """Test suite for the reader factory"""

    def test_create_reader_returns_registered_reader(self):
        """
        Test that each entity name maps to its reader
        """
        # Act
        reader = create_reader('state_tax_profiles', _client(), max_workers=4)

        # Assert
        assert isinstance(reader, StateTaxProfilesReader)
        assert reader.expander.max_workers == 4

    def test_create_reader_with_unknown_entity_raises_value_error(self):
        """
        Test that unsupported entity types are rejected
        """
        # Act & Assert
        with pytest.raises(ValueError) as exc_info:
            create_reader('benefits', _client())

        assert "Unsupported entity type" in str(exc_info.value)
