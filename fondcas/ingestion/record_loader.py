"""
Record loader for FondCAS.

Loads already-parsed candidate rows, historical fund records and crowd
reports from CSV, JSON or JSON-lines files into domain records, with a
required-column check and per-row validation.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Any, List, Optional
import pandas as pd

from ..funds.reports import parse_timestamp
from ..models import CandidateRecord, HistoricalFundRecord, ReportType, SourceKind, UserReport

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = {".csv", ".json", ".jsonl"}

CANDIDATE_REQUIRED = ["legal_name"]
HISTORICAL_REQUIRED = ["provider_name", "year", "month", "service_type", "allocated_amount"]
REPORT_REQUIRED = ["location_id", "report_type", "reported_at"]


def _text(value: Any) -> Optional[str]:
    """Cell value as stripped text, or None when empty."""
    if value is None:
        return None
    if isinstance(value, float):
        if value != value:
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None


def _number(value: Any) -> Optional[float]:
    number = pd.to_numeric(value, errors="coerce")
    if pd.isna(number):
        return None
    return float(number)


def _parse_date(text: Optional[str]) -> Optional[date]:
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.warning(f"Ignoring unparsable source date: {text}")
        return None


class RecordLoader:
    """
    Loads FondCAS input files with pandas.
    """

    def load_file(self, path: str) -> pd.DataFrame:
        """
        Load a tabular file.

        Args:
            path: Path to a .csv, .json or .jsonl file

        Returns:
            DataFrame with all values as read

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the format is not supported
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.error(f"Input file not found: {path}")
            raise FileNotFoundError(f"Input file not found: {path}")

        suffix = file_path.suffix.lower()
        if suffix not in SUPPORTED_FORMATS:
            logger.error(f"Unsupported file format: {suffix}")
            raise ValueError(f"Unsupported file format: {suffix}")

        if suffix == ".csv":
            df = pd.read_csv(file_path, dtype=str, keep_default_na=False, na_values=[""])
        else:
            df = pd.read_json(file_path, lines=suffix == ".jsonl", dtype=False,
                              convert_dates=False, keep_default_dates=False)

        logger.info(f"Loaded {file_path.name} with {len(df)} rows")
        return df

    def check_columns(self, df: pd.DataFrame, required: List[str], path: str):
        missing = [column for column in required if column not in df.columns]
        if missing:
            logger.error(f"{path} is missing required columns: {missing}")
            raise ValueError(f"{path} is missing required columns: {missing}")

    def load_candidate_records(self, path: str, source_file: Optional[str] = None,
                               source_kind: Optional[SourceKind] = None) -> List[CandidateRecord]:
        """
        Load candidate provider rows.

        Args:
            path: Input file
            source_file: Source identifier for rows without one (file name by default)
            source_kind: Source classification overriding the file's ``source_kind`` column

        Returns:
            Candidate records in file order
        """
        df = self.load_file(path)
        self.check_columns(df, CANDIDATE_REQUIRED, path)
        default_source = source_file or Path(path).name

        candidates = []
        dropped = 0
        for row in df.to_dict("records"):
            legal_name = _text(row.get("legal_name"))
            if not legal_name:
                dropped += 1
                continue

            kind = source_kind
            if kind is None:
                kind_text = (_text(row.get("source_kind")) or SourceKind.PRIMARY.value).lower()
                kind = SourceKind.SUPPLEMENTARY if kind_text == SourceKind.SUPPLEMENTARY.value else SourceKind.PRIMARY

            source_date = _parse_date(_text(row.get("source_date")))
            confidence = _number(row.get("confidence"))

            candidates.append(CandidateRecord(
                legal_name=legal_name,
                source_file=_text(row.get("source_file")) or default_source,
                service_category=_text(row.get("service_category")) or "clinic",
                tax_id=_text(row.get("tax_id")),
                email=_text(row.get("email")),
                phone=_text(row.get("phone")),
                address=_text(row.get("address")),
                city=_text(row.get("city")),
                county=_text(row.get("county")),
                website=_text(row.get("website")),
                source_date=source_date,
                source_kind=kind,
                network_brand=_text(row.get("network_brand")),
                confidence=int(confidence) if confidence is not None else None,
            ))

        if dropped:
            logger.warning(f"Dropped {dropped} candidate rows without a legal name")
        logger.info(f"Loaded {len(candidates)} candidate records from {path}")
        return candidates

    def load_historical_records(self, path: str) -> List[HistoricalFundRecord]:
        """
        Load historical fund records.

        Args:
            path: Input file

        Returns:
            Historical records in file order
        """
        df = self.load_file(path)
        self.check_columns(df, HISTORICAL_REQUIRED, path)

        records = []
        dropped = 0
        for row in df.to_dict("records"):
            name = _text(row.get("provider_name"))
            service_type = _text(row.get("service_type"))
            year = _number(row.get("year"))
            month = _number(row.get("month"))
            allocated = _number(row.get("allocated_amount"))

            if not name or not service_type or year is None or month is None or allocated is None \
                    or not 1 <= month <= 12:
                dropped += 1
                continue

            records.append(HistoricalFundRecord(
                provider_name=name,
                year=int(year),
                month=int(month),
                service_type=service_type,
                allocated_amount=allocated,
                provider_tax_id=_text(row.get("provider_tax_id")),
                consumed_amount=_number(row.get("consumed_amount")),
                source_file=_text(row.get("source_file")) or Path(path).name,
            ))

        if dropped:
            logger.warning(f"Dropped {dropped} invalid historical rows")
        logger.info(f"Loaded {len(records)} historical records from {path}")
        return records

    def load_user_reports(self, path: str) -> List[UserReport]:
        """
        Load crowd reports.

        Args:
            path: Input file

        Returns:
            Reports in file order
        """
        df = self.load_file(path)
        self.check_columns(df, REPORT_REQUIRED, path)

        reports = []
        dropped = 0
        for row in df.to_dict("records"):
            location_id = _text(row.get("location_id"))
            reported_at = _text(row.get("reported_at"))
            if not location_id or not reported_at:
                dropped += 1
                continue
            try:
                timestamp = parse_timestamp(reported_at)
            except ValueError:
                dropped += 1
                continue

            reports.append(UserReport(
                location_id=location_id,
                report_type=ReportType.parse(row.get("report_type")),
                reported_at=timestamp,
                id=_text(row.get("id")),
            ))

        if dropped:
            logger.warning(f"Dropped {dropped} invalid report rows")
        logger.info(f"Loaded {len(reports)} user reports from {path}")
        return reports


def load_candidate_records(path: str, source_file: Optional[str] = None,
                           source_kind: Optional[SourceKind] = None) -> List[CandidateRecord]:
    return RecordLoader().load_candidate_records(path, source_file, source_kind)


def load_historical_records(path: str) -> List[HistoricalFundRecord]:
    return RecordLoader().load_historical_records(path)


def load_user_reports(path: str) -> List[UserReport]:
    return RecordLoader().load_user_reports(path)
