"""
Crowd-report aggregation for FondCAS availability prediction.

Reports are weighted by exponential time decay; negative reports pull the
availability probability down twice as strongly as positive reports push it
up. Reports of other types count toward the total weight only.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
import numpy as np

from ..models import ReportReference, ReportType, UserReport

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def as_datetime(value: Any) -> datetime:
    """Evaluation time from a datetime, a date (midnight) or an ISO string."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return parse_timestamp(value)


def coerce_report(report: Any) -> UserReport:
    """Accept a UserReport or a mapping with ``report_type`` and ``reported_at``."""
    if isinstance(report, UserReport):
        return report
    return UserReport(
        location_id=str(report.get("location_id", "")),
        report_type=ReportType.parse(report.get("report_type", report.get("type"))),
        reported_at=parse_timestamp(report["reported_at"]),
        id=report.get("id"),
    )


def _comparable(moment: datetime, reference: datetime) -> datetime:
    # Naive timestamps are taken as UTC when compared with aware ones
    if moment.tzinfo is None and reference.tzinfo is not None:
        return moment.replace(tzinfo=timezone.utc)
    if moment.tzinfo is not None and reference.tzinfo is None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


class ReportAggregator:
    """
    Time-decayed aggregation of crowd reports.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize report aggregator.

        Args:
            config: The ``prediction`` configuration section
        """
        config = config or {}
        self.decay_hours = float(config.get("report_decay_hours", 24))
        weights = config.get("report_weights", {})
        self.weights = {
            ReportType.FUNDS_AVAILABLE: float(weights.get("funds_available", 0.2)),
            ReportType.FUNDS_EXHAUSTED: float(weights.get("funds_exhausted", -0.4)),
        }
        self.recent_hours = float(config.get("confidence", {}).get("recent_report_hours", 24))

    def hours_ago(self, report: UserReport, now: datetime) -> float:
        reported_at = _comparable(report.reported_at, now)
        return max(0.0, (now - reported_at).total_seconds() / 3600.0)

    def adjustment(self, reports: Iterable[UserReport], now: datetime) -> float:
        """
        Weighted average report signal.

        Args:
            reports: Recent reports
            now: Evaluation time

        Returns:
            Adjustment added to the availability probability (0.0 without reports)
        """
        reports = list(reports)
        if not reports:
            return 0.0

        hours = np.array([self.hours_ago(r, now) for r in reports], dtype=float)
        decay = np.exp(-hours / self.decay_hours)
        signal = np.array([self.weights.get(r.report_type, 0.0) for r in reports], dtype=float)

        total_weight = decay.sum()
        if total_weight <= 0:
            return 0.0
        return float((signal * decay).sum() / total_weight)

    def has_recent(self, reports: Iterable[UserReport], now: datetime) -> bool:
        return any(self.hours_ago(r, now) < self.recent_hours for r in reports)

    def most_recent(self, reports: Iterable[UserReport], now: datetime) -> Optional[ReportReference]:
        """Reference to the newest report, or None."""
        reports: List[UserReport] = list(reports)
        if not reports:
            return None

        latest = min(reports, key=lambda r: self.hours_ago(r, now))
        return ReportReference(
            report_type=latest.report_type,
            reported_at=latest.reported_at,
            is_recent=self.hours_ago(latest, now) < self.recent_hours,
        )
