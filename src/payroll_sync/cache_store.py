"""
CacheStore module persisting synchronised records into DuckDB
"""

import duckdb
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

from .models import primary_key_of


class CacheStoreError(Exception):
    """Raised when cache database operations fail"""
    pass


# Entity type -> cache table
ENTITY_TABLES = {
    'workers': 'workers',
    'federal_tax_profiles': 'federal_tax_profiles',
    'state_tax_profiles': 'state_tax_profiles',
    'local_tax_profiles': 'local_tax_profiles',
    'time_cards': 'time_cards',
    'labor_charge_codes': 'labor_charge_codes',
}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serialisable")


def _naive(value: datetime) -> datetime:
    # TIMESTAMP columns hold naive UTC values
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def serialise_record(record: Any) -> str:
    """Serialise a canonical record to JSON text"""
    payload = asdict(record) if is_dataclass(record) else record
    return json.dumps(payload, default=_json_default, sort_keys=True)


class CacheStore:
    """Manages the DuckDB reference cache: one table per entity type, upserted by primary key"""

    def __init__(self):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None

    def __enter__(self) -> 'CacheStore':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_connection()

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def create_connection(self, db_path: Union[Path, str] = ':memory:') -> duckdb.DuckDBPyConnection:
        """
        Create DuckDB database connection

        Args:
            db_path: Path to the database file, or ':memory:'

        Returns:
            DuckDB connection object

        Raises:
            CacheStoreError: If connection fails or already exists
        """
        if self._connection is not None:
            raise CacheStoreError("Connection already exists. Close existing connection first.")

        try:
            if str(db_path) != ':memory:':
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = duckdb.connect(str(db_path))
            return self._connection
        except duckdb.Error as e:
            raise CacheStoreError(f"Failed to create database connection: {e}") from e

    def close_connection(self) -> None:
        """
        Close database connection and release resources
        """
        if self._connection:
            try:
                self._connection.close()
            finally:
                self._connection = None

    def create_tables(self) -> None:
        """
        Create entity tables and the pass history table

        Raises:
            CacheStoreError: If no active connection exists or DDL fails
        """
        connection = self._require_connection()

        try:
            for table in ENTITY_TABLES.values():
                connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    primary_key VARCHAR PRIMARY KEY,
                    associate_oid VARCHAR,
                    payload JSON NOT NULL,
                    load_id VARCHAR NOT NULL,
                    synced_at TIMESTAMP NOT NULL
                )
                """)

            connection.execute("""
            CREATE TABLE IF NOT EXISTS sync_passes (
                load_id VARCHAR PRIMARY KEY,
                entity VARCHAR NOT NULL,
                status VARCHAR NOT NULL,
                summary JSON NOT NULL,
                started_at TIMESTAMP NOT NULL,
                finished_at TIMESTAMP NOT NULL
            )
            """)
        except duckdb.Error as e:
            raise CacheStoreError(f"Failed to create tables: {e}") from e

    def upsert_record(self, entity: str, record: Any, load_id: str) -> None:
        """
        Insert or update one record using DuckDB INSERT ON CONFLICT

        Args:
            entity: Entity type of the record
            record: Canonical record dataclass
            load_id: Identifier of the pass writing the record
        """
        connection = self._require_connection()
        table = self._table_for(entity)

        upsert_sql = f"""
        INSERT INTO {table} (primary_key, associate_oid, payload, load_id, synced_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT (primary_key) DO UPDATE SET
            associate_oid = EXCLUDED.associate_oid,
            payload = EXCLUDED.payload,
            load_id = EXCLUDED.load_id,
            synced_at = EXCLUDED.synced_at
        """
        params = (
            primary_key_of(record),
            getattr(record, 'associate_oid', None),
            serialise_record(record),
            load_id,
            _naive(datetime.now(timezone.utc)),
        )

        try:
            connection.execute(upsert_sql, params)
        except duckdb.Error as e:
            raise CacheStoreError(f"Failed to upsert {entity} record {params[0]}: {e}") from e

    def write_records(self, entity: str, records: Iterable[Any], load_id: str) -> int:
        """
        Write a record stream as it arrives

        Records already written stay written if the stream raises.

        Returns:
            Number of records written
        """
        written = 0
        for record in records:
            self.upsert_record(entity, record, load_id)
            written += 1
        return written

    def record_pass(self, pass_summary: Dict[str, Any]) -> None:
        """Store the summary of a finished pass"""
        connection = self._require_connection()

        sql = """
        INSERT INTO sync_passes (load_id, entity, status, summary, started_at, finished_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (load_id) DO UPDATE SET
            status = EXCLUDED.status,
            summary = EXCLUDED.summary,
            finished_at = EXCLUDED.finished_at
        """
        params = (
            pass_summary['load_id'],
            pass_summary['entity'],
            pass_summary['status'],
            json.dumps(pass_summary, default=_json_default, sort_keys=True),
            _naive(pass_summary['started_at']),
            _naive(pass_summary['finished_at']),
        )

        try:
            connection.begin()
            connection.execute(sql, params)
            connection.commit()
        except duckdb.Error as e:
            connection.rollback()
            raise CacheStoreError(f"Failed to record pass {pass_summary['load_id']}: {e}") from e

    def count_records(self, entity: str) -> int:
        connection = self._require_connection()
        result = connection.execute(f"SELECT COUNT(*) FROM {self._table_for(entity)}").fetchone()
        return result[0] if result else 0

    def get_record(self, entity: str, primary_key: str) -> Optional[Dict[str, Any]]:
        """Return the stored payload of one record, or None"""
        connection = self._require_connection()
        result = connection.execute(
            f"SELECT payload FROM {self._table_for(entity)} WHERE primary_key = ?",
            (primary_key,),
        ).fetchone()
        return json.loads(result[0]) if result else None

    def get_pass(self, load_id: str) -> Optional[Dict[str, Any]]:
        connection = self._require_connection()
        result = connection.execute(
            "SELECT summary FROM sync_passes WHERE load_id = ?", (load_id,)
        ).fetchone()
        return json.loads(result[0]) if result else None

    def _require_connection(self) -> duckdb.DuckDBPyConnection:
        if not self._connection:
            raise CacheStoreError("No active database connection")
        return self._connection

    @staticmethod
    def _table_for(entity: str) -> str:
        if entity not in ENTITY_TABLES:
            raise CacheStoreError(f"Unknown entity type: {entity}")
        return ENTITY_TABLES[entity]
