"""
Rule-based fund availability estimator for FondCAS.

Used when the actual consumed amount for the period is known, or as a simple
fallback beside the statistical predictor: consumption thresholds decide when
a consumed amount exists, otherwise the newest crowd report, otherwise the
week of the month. Thresholds and confidences come from the
``prediction.estimator`` configuration section.
"""

import calendar
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .explanation import ExplanationBuilder, month_name, percent
from .reports import ReportAggregator, as_datetime, coerce_report
from ..config import resolve_config
from ..models import AvailabilityStatus, AvailabilityTier, ReportType, RiskLevel

logger = logging.getLogger(__name__)

TIER_RISK = {
    AvailabilityTier.LIKELY_AVAILABLE: RiskLevel.LOW,
    AvailabilityTier.UNCERTAIN: RiskLevel.MEDIUM,
    AvailabilityTier.LIKELY_EXHAUSTED: RiskLevel.HIGH,
}

WEEK_MESSAGES = ["week_first", "week_second", "week_third", "week_last"]


def _report_confidence(hours: int, age_limits: List[float], confidences: List[int]) -> int:
    """Confidence for a report of the given age: fresh, within a day, older."""
    for limit, confidence in zip(age_limits, confidences):
        if hours < limit:
            return int(confidence)
    return int(confidences[-1])


def estimate_fund_availability(allocated_amount: Optional[float], consumed_amount: Optional[float] = None,
                               reports: Optional[List[Any]] = None, current_date: Any = None,
                               window_hours: Optional[float] = None, locale: Optional[str] = None,
                               config: Optional[Dict] = None) -> AvailabilityStatus:
    """
    Estimate fund availability with fixed rules.

    Args:
        allocated_amount: Allocation for the period
        consumed_amount: Actual consumed amount, when known
        reports: Crowd reports for the location
        current_date: Evaluation date (now when omitted)
        window_hours: Only reports newer than this are considered (configured window by default)
        locale: Message locale (configured locale by default)
        config: FondCAS configuration

    Returns:
        AvailabilityStatus (probability is the share of the allocation left)
    """
    prediction_config = resolve_config(config)["prediction"]
    rules = prediction_config["estimator"]
    confidences = rules["confidence"]
    if window_hours is None:
        window_hours = float(rules["report_window_hours"])

    now = as_datetime(current_date) if current_date is not None else datetime.now()
    explanations = ExplanationBuilder(locale or prediction_config.get("locale"))
    aggregator = ReportAggregator(prediction_config)
    day_of_month = now.day
    days_in_month = calendar.monthrange(now.year, now.month)[1]

    def status(tier, confidence, allocated, consumed, message, last_report=None):
        available = max(0.0, allocated - consumed)
        return AvailabilityStatus(
            status=tier,
            risk_level=TIER_RISK[tier],
            probability=available / allocated if allocated > 0 else 0.0,
            confidence=int(confidence),
            allocated_amount=allocated,
            estimated_consumed=consumed,
            estimated_available=available,
            day_of_month=day_of_month,
            message=message,
            last_user_report=last_report,
        )

    if not allocated_amount or allocated_amount <= 0:
        return status(AvailabilityTier.UNCERTAIN, prediction_config["confidence"]["no_allocation"],
                      0.0, 0.0, explanations.render("no_allocation"))

    allocated = float(allocated_amount)

    if consumed_amount is not None:
        consumed = float(consumed_amount)
        share = consumed / allocated

        if share >= rules["exhausted_share"]:
            message = explanations.render("consumed_exhausted", month_name=month_name(now.month, explanations.locale),
                                          consumed=percent(share))
            return status(AvailabilityTier.LIKELY_EXHAUSTED, confidences["consumed_exhausted"],
                          allocated, consumed, message)
        if share >= rules["limited_share"]:
            message = explanations.render("consumed_limited", available=percent(1 - share))
            return status(AvailabilityTier.UNCERTAIN, confidences["consumed_limited"], allocated, consumed, message)

        message = explanations.render("consumed_available", available=percent(1 - share))
        return status(AvailabilityTier.LIKELY_AVAILABLE, confidences["consumed_available"],
                      allocated, consumed, message)

    consumed = allocated / days_in_month * day_of_month

    recent = [r for r in (coerce_report(r) for r in (reports or []))
              if aggregator.hours_ago(r, now) < window_hours]
    last_report = aggregator.most_recent(recent, now)

    if last_report is not None and last_report.report_type in (ReportType.FUNDS_EXHAUSTED,
                                                               ReportType.FUNDS_AVAILABLE):
        newest = min(recent, key=lambda r: aggregator.hours_ago(r, now))
        hours = int(aggregator.hours_ago(newest, now) + 0.5)
        unit = explanations.hours_unit(hours)

        if last_report.report_type is ReportType.FUNDS_EXHAUSTED:
            message = explanations.render("report_exhausted", hours=hours, hours_unit=unit)
            confidence = _report_confidence(hours, rules["report_age_hours"], confidences["report_exhausted"])
            return status(AvailabilityTier.LIKELY_EXHAUSTED, confidence, allocated, consumed, message, last_report)

        message = explanations.render("report_available", hours=hours, hours_unit=unit)
        confidence = _report_confidence(hours, rules["report_age_hours"], confidences["report_available"])
        return status(AvailabilityTier.LIKELY_AVAILABLE, confidence, allocated, consumed, message, last_report)

    weeks = rules["weeks"]
    week_index = len(weeks) - 1
    for i, (last_day, _) in enumerate(weeks):
        if day_of_month <= last_day:
            week_index = i
            break
    confidence = weeks[week_index][1]
    key = WEEK_MESSAGES[min(week_index, len(WEEK_MESSAGES) - 1)]

    if week_index < 2:
        tier = AvailabilityTier.LIKELY_AVAILABLE
    elif week_index == 2:
        tier = AvailabilityTier.UNCERTAIN
    else:
        remaining = allocated - consumed
        low_remaining = remaining <= allocated * rules["low_remaining_share"]
        tier = AvailabilityTier.LIKELY_EXHAUSTED if low_remaining else AvailabilityTier.UNCERTAIN

    return status(tier, confidence, allocated, consumed, explanations.render(key), last_report)
