"""
Data ingestion module for FondCAS.

Loads already-parsed candidate rows, historical fund records and crowd
reports from local CSV and JSON files.
"""

from .record_loader import (
    RecordLoader, load_candidate_records, load_historical_records, load_user_reports
)

__all__ = [
    "RecordLoader",
    "load_candidate_records",
    "load_historical_records",
    "load_user_reports",
]
