"""
SQLite persistence adapter for FondCAS.

Stores organizations, locations, historical fund records, consumption
patterns and crowd reports, and provides the run-level lock that serializes
resolution runs against the same store.
"""

import json
import sqlite3
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional
import pandas as pd

from ..funds.reports import parse_timestamp
from ..merge.index import EntityIndex
from ..models import (
    ConsumptionPattern, HistoricalFundRecord, Location, LocationSource, Organization,
    Provenance, ReportType, SourceKind, UserReport
)
from ..normalize.normalizer import Normalizer

logger = logging.getLogger(__name__)


class RunLockError(RuntimeError):
    """Raised when another live run holds the resolution lock."""


def _none_if_nan(value):
    if value is None:
        return None
    if isinstance(value, float) and value != value:
        return None
    return value


class FundStore:
    """
    Relational store for FondCAS entities, history, patterns and reports.
    """

    def __init__(self, db_path: str = "data/fondcas.db"):
        """
        Initialize store, creating the database schema if needed.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

        logger.info(f"Initialized FundStore at {db_path}")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_database(self):
        """Initialize database with required tables."""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS organizations (
                id TEXT PRIMARY KEY,
                legal_name TEXT NOT NULL,
                provider_category TEXT,
                tax_id TEXT,
                network_brand TEXT,
                email TEXT,
                phone TEXT,
                address TEXT,
                website TEXT,
                provenance TEXT,
                field_sources TEXT,
                position INTEGER,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS locations (
                id TEXT PRIMARY KEY,
                organization_id TEXT NOT NULL,
                name TEXT,
                address TEXT,
                address_key TEXT,
                city TEXT,
                county TEXT,
                lat REAL,
                lng REAL,
                phone TEXT,
                email TEXT,
                website TEXT,
                confidence INTEGER,
                source TEXT,
                is_primary INTEGER,
                position INTEGER
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS historical_fund_data (
                record_id INTEGER PRIMARY KEY AUTOINCREMENT,
                provider_key TEXT NOT NULL,
                provider_tax_id TEXT,
                provider_name TEXT NOT NULL,
                year INTEGER NOT NULL,
                month INTEGER NOT NULL,
                service_type TEXT NOT NULL,
                allocated_amount REAL NOT NULL,
                consumed_amount REAL,
                consumption_rate REAL,
                is_end_of_quarter INTEGER,
                is_december INTEGER,
                source_file TEXT,
                UNIQUE(provider_key, year, month, service_type)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS consumption_patterns (
                provider_key TEXT PRIMARY KEY,
                avg_consumption_rate REAL,
                stddev_consumption_rate REAL,
                monthly_pattern TEXT,
                depletion_curve TEXT,
                early_depletion_frequency REAL,
                typical_depletion_day INTEGER,
                data_points_count INTEGER,
                first_data_date TEXT,
                last_data_date TEXT,
                model_updated_at TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS user_reports (
                report_id INTEGER PRIMARY KEY AUTOINCREMENT,
                location_id TEXT NOT NULL,
                report_type TEXT NOT NULL,
                reported_at TEXT NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS run_locks (
                name TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                acquired_at TEXT NOT NULL
            )
        ''')

        conn.commit()
        conn.close()

    # Organizations and locations

    def save_organizations(self, organizations: Iterable[Organization], locations: Iterable[Location] = ()):
        """
        Upsert organizations and locations by id.

        Args:
            organizations: Organizations to store
            locations: Locations to store
        """
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT COALESCE(MAX(position), -1) FROM organizations")
            next_position = cursor.fetchone()[0] + 1

            org_count = 0
            for organization in organizations:
                cursor.execute("SELECT position FROM organizations WHERE id = ?", [organization.id])
                row = cursor.fetchone()
                position = row[0] if row else next_position
                if not row:
                    next_position += 1

                cursor.execute('''
                    INSERT OR REPLACE INTO organizations
                    (id, legal_name, provider_category, tax_id, network_brand, email, phone,
                     address, website, provenance, field_sources, position, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ''', [
                    organization.id, organization.legal_name, organization.provider_category,
                    organization.tax_id, organization.network_brand, organization.email,
                    organization.phone, organization.address, organization.website,
                    json.dumps([
                        {
                            "source_file": p.source_file,
                            "source_kind": p.source_kind.value,
                            "source_date": p.source_date.isoformat() if p.source_date else None
                        }
                        for p in organization.provenance
                    ]),
                    json.dumps({k: v.value for k, v in organization.field_sources.items()}),
                    position
                ])
                org_count += 1

            cursor.execute("SELECT COALESCE(MAX(position), -1) FROM locations")
            next_location = cursor.fetchone()[0] + 1

            location_count = 0
            for location in locations:
                cursor.execute("SELECT position FROM locations WHERE id = ?", [location.id])
                row = cursor.fetchone()
                position = row[0] if row else next_location
                if not row:
                    next_location += 1

                cursor.execute('''
                    INSERT OR REPLACE INTO locations
                    (id, organization_id, name, address, address_key, city, county, lat, lng,
                     phone, email, website, confidence, source, is_primary, position)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', [
                    location.id, location.organization_id, location.name, location.address,
                    location.address_key, location.city, location.county, location.lat, location.lng,
                    location.phone, location.email, location.website, location.confidence,
                    location.source.value, int(location.is_primary), position
                ])
                location_count += 1

            conn.commit()
            logger.info(f"Saved {org_count} organizations and {location_count} locations")

        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Failed to save organizations: {e}")
            raise
        finally:
            conn.close()

    def load_organizations(self) -> List[Organization]:
        """Load all organizations in insertion order."""
        conn = self._connect()
        df = pd.read_sql_query("SELECT * FROM organizations ORDER BY position", conn)
        conn.close()

        organizations = []
        for row in df.to_dict("records"):
            provenance = [
                Provenance(
                    source_file=p["source_file"],
                    source_kind=SourceKind(p["source_kind"]),
                    source_date=datetime.fromisoformat(p["source_date"]).date() if p.get("source_date") else None,
                )
                for p in json.loads(row.get("provenance") or "[]")
            ]
            field_sources = {k: SourceKind(v) for k, v in json.loads(row.get("field_sources") or "{}").items()}

            organizations.append(Organization(
                id=row["id"],
                legal_name=row["legal_name"],
                provider_category=row.get("provider_category") or "clinic",
                tax_id=_none_if_nan(row.get("tax_id")),
                network_brand=_none_if_nan(row.get("network_brand")),
                email=_none_if_nan(row.get("email")),
                phone=_none_if_nan(row.get("phone")),
                address=_none_if_nan(row.get("address")),
                website=_none_if_nan(row.get("website")),
                provenance=provenance,
                field_sources=field_sources,
            ))
        return organizations

    def load_locations(self) -> List[Location]:
        conn = self._connect()
        df = pd.read_sql_query("SELECT * FROM locations ORDER BY position", conn)
        conn.close()

        locations = []
        for row in df.to_dict("records"):
            locations.append(Location(
                id=row["id"],
                organization_id=row["organization_id"],
                name=row.get("name") or "",
                address=_none_if_nan(row.get("address")),
                address_key=_none_if_nan(row.get("address_key")),
                city=_none_if_nan(row.get("city")),
                county=_none_if_nan(row.get("county")),
                lat=_none_if_nan(row.get("lat")),
                lng=_none_if_nan(row.get("lng")),
                phone=_none_if_nan(row.get("phone")),
                email=_none_if_nan(row.get("email")),
                website=_none_if_nan(row.get("website")),
                confidence=int(row.get("confidence") or 0),
                source=LocationSource(row.get("source") or LocationSource.PRIMARY_SOURCE.value),
                is_primary=bool(row.get("is_primary")),
            ))
        return locations

    def load_index(self, normalizer: Optional[Normalizer] = None) -> EntityIndex:
        """
        Build a fresh entity index for a resolution run.

        Args:
            normalizer: Normalizer used to seed the match keys

        Returns:
            EntityIndex of all stored organizations and locations
        """
        return EntityIndex.from_organizations(self.load_organizations(), self.load_locations(), normalizer)

    # Historical records and patterns

    def save_historical_records(self, records: Iterable[HistoricalFundRecord]) -> int:
        """
        Insert historical records; records already stored under the same key are kept.

        Args:
            records: Historical fund records

        Returns:
            Number of newly inserted records
        """
        conn = self._connect()
        cursor = conn.cursor()

        inserted = 0
        for record in records:
            cursor.execute('''
                INSERT OR IGNORE INTO historical_fund_data
                (provider_key, provider_tax_id, provider_name, year, month, service_type,
                 allocated_amount, consumed_amount, consumption_rate, is_end_of_quarter,
                 is_december, source_file)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', [
                record.provider_key, record.provider_tax_id, record.provider_name,
                int(record.year), int(record.month), record.service_type,
                float(record.allocated_amount), record.consumed_amount, record.consumption_rate,
                int(record.is_end_of_quarter), int(record.is_december), record.source_file
            ])
            inserted += cursor.rowcount

        conn.commit()
        conn.close()

        logger.info(f"Historical data stored: {inserted} new records")
        return inserted

    def load_historical_records(self) -> List[HistoricalFundRecord]:
        conn = self._connect()
        df = pd.read_sql_query("SELECT * FROM historical_fund_data ORDER BY record_id", conn)
        conn.close()

        return [
            HistoricalFundRecord(
                provider_name=row["provider_name"],
                year=int(row["year"]),
                month=int(row["month"]),
                service_type=row["service_type"],
                allocated_amount=float(row["allocated_amount"]),
                provider_tax_id=_none_if_nan(row.get("provider_tax_id")),
                consumed_amount=_none_if_nan(row.get("consumed_amount")),
                source_file=_none_if_nan(row.get("source_file")),
            )
            for row in df.to_dict("records")
        ]

    def save_patterns(self, patterns: Iterable[ConsumptionPattern], replace_all: bool = True) -> int:
        """
        Store consumption patterns, overwriting any previous pattern per provider.

        Args:
            patterns: Freshly built patterns
            replace_all: Drop every stored pattern first (wholesale rebuild)

        Returns:
            Number of patterns stored
        """
        conn = self._connect()
        cursor = conn.cursor()

        try:
            if replace_all:
                cursor.execute("DELETE FROM consumption_patterns")

            count = 0
            for pattern in patterns:
                data = pattern.to_dict()
                cursor.execute('''
                    INSERT OR REPLACE INTO consumption_patterns
                    (provider_key, avg_consumption_rate, stddev_consumption_rate, monthly_pattern,
                     depletion_curve, early_depletion_frequency, typical_depletion_day,
                     data_points_count, first_data_date, last_data_date, model_updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', [
                    data["provider_key"], data["avg_consumption_rate"], data["stddev_consumption_rate"],
                    json.dumps(data["monthly_pattern"]), json.dumps(data["depletion_curve"]),
                    data["early_depletion_frequency"], data["typical_depletion_day"],
                    data["data_points_count"], data["first_data_date"], data["last_data_date"],
                    data["model_updated_at"]
                ])
                count += 1

            conn.commit()
            logger.info(f"Patterns stored: {count}")
            return count

        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Failed to save patterns: {e}")
            raise
        finally:
            conn.close()

    def get_pattern(self, provider_key: str) -> Optional[ConsumptionPattern]:
        conn = self._connect()
        df = pd.read_sql_query("SELECT * FROM consumption_patterns WHERE provider_key = ?",
                               conn, params=[provider_key])
        conn.close()

        if df.empty:
            return None
        return ConsumptionPattern.from_dict(df.iloc[0].to_dict())

    def count_patterns(self) -> int:
        conn = self._connect()
        count = conn.execute("SELECT COUNT(*) FROM consumption_patterns").fetchone()[0]
        conn.close()
        return count

    # Crowd reports

    def add_report(self, report: UserReport) -> str:
        """
        Store a crowd report.

        Args:
            report: Report to store

        Returns:
            Stored report id
        """
        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO user_reports (location_id, report_type, reported_at)
            VALUES (?, ?, ?)
        ''', [report.location_id, ReportType.parse(report.report_type).value, report.reported_at.isoformat()])
        report_id = str(cursor.lastrowid)
        conn.commit()
        conn.close()
        return report_id

    def get_recent_reports(self, location_id: str, now: Optional[datetime] = None,
                           window_hours: float = 48) -> List[UserReport]:
        """
        Get reports for a location within the recent window, newest first.

        Args:
            location_id: Location identifier
            now: Reference time (current UTC time when omitted)
            window_hours: Window length in hours

        Returns:
            Reports newer than ``now - window_hours``
        """
        now = now or datetime.now(timezone.utc)

        conn = self._connect()
        df = pd.read_sql_query("SELECT * FROM user_reports WHERE location_id = ?", conn, params=[location_id])
        conn.close()

        reports = []
        for row in df.to_dict("records"):
            reported_at = parse_timestamp(row["reported_at"])
            if reported_at.tzinfo is None and now.tzinfo is not None:
                reported_at = reported_at.replace(tzinfo=timezone.utc)
            elif reported_at.tzinfo is not None and now.tzinfo is None:
                reported_at = reported_at.astimezone(timezone.utc).replace(tzinfo=None)

            if now - timedelta(hours=window_hours) <= reported_at <= now:
                reports.append(UserReport(
                    location_id=row["location_id"],
                    report_type=ReportType.parse(row["report_type"]),
                    reported_at=reported_at,
                    id=str(row["report_id"]),
                ))

        reports.sort(key=lambda r: r.reported_at, reverse=True)
        return reports

    # Run lock

    def acquire_run_lock(self, name: str, owner: str, stale_after_seconds: float = 3600):
        """
        Take the named run-level lock.

        A lock older than ``stale_after_seconds`` is considered abandoned and
        is taken over.

        Args:
            name: Lock name
            owner: Identifier of the acquiring run

        Raises:
            RunLockError: If another run holds a live lock
        """
        now = datetime.now(timezone.utc)
        conn = sqlite3.connect(self.db_path, isolation_level=None)

        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT owner, acquired_at FROM run_locks WHERE name = ?", [name]).fetchone()

            if row and row[0] != owner:
                age = (now - parse_timestamp(row[1])).total_seconds()
                if age < stale_after_seconds:
                    conn.execute("ROLLBACK")
                    raise RunLockError(f"Run lock '{name}' is held by {row[0]} since {row[1]}")
                logger.warning(f"Taking over stale run lock '{name}' from {row[0]}")

            conn.execute("INSERT OR REPLACE INTO run_locks (name, owner, acquired_at) VALUES (?, ?, ?)",
                         [name, owner, now.isoformat()])
            conn.execute("COMMIT")
            logger.info(f"Acquired run lock '{name}' for {owner}")
        finally:
            conn.close()

    def release_run_lock(self, name: str, owner: str) -> bool:
        """
        Release the named lock if held by ``owner``.

        Returns:
            True if the lock was released
        """
        conn = self._connect()
        cursor = conn.cursor()
        cursor.execute("DELETE FROM run_locks WHERE name = ? AND owner = ?", [name, owner])
        released = cursor.rowcount > 0
        conn.commit()
        conn.close()

        if released:
            logger.info(f"Released run lock '{name}' for {owner}")
        else:
            logger.warning(f"Run lock '{name}' was not held by {owner}")
        return released

    def get_statistics(self) -> Dict[str, int]:
        conn = self._connect()
        stats = {}
        for table in ["organizations", "locations", "historical_fund_data", "consumption_patterns", "user_reports"]:
            stats[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        conn.close()
        return stats
