"""
Fund availability predictor for FondCAS.

Estimates, for one provider and month, the probability that reimbursement
funds are still available. Combines the provider's consumption pattern (or a
linear global fallback), a seasonal multiplier and time-decayed crowd
reports into a probability, confidence, risk tier, predicted depletion date
and explanation. The predictor holds no mutable state and never raises on
missing data.
"""

import calendar
import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from .explanation import ExplanationBuilder
from .reports import ReportAggregator, as_datetime, coerce_report
from .seasonality import SeasonalityTable
from ..config import resolve_config
from ..models import (
    AvailabilityStatus, AvailabilityTier, ConsumptionPattern, RiskLevel, UserReport
)

logger = logging.getLogger(__name__)


class AvailabilityPredictor:
    """
    Best-effort availability estimator.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize availability predictor with configuration.

        Args:
            config: FondCAS configuration (defaults when omitted)
        """
        full_config = resolve_config(config)
        self.config = full_config["prediction"]
        self.days_per_month = int(full_config["patterns"]["days_per_month"])

        self.seasonality = SeasonalityTable(self.config["seasonal_multipliers"],
                                            self.config.get("category_aliases"))
        self.reports = ReportAggregator(self.config)
        self.explanations = ExplanationBuilder(self.config.get("locale", "ro"))

        self.fallback_daily_rate = float(self.config["fallback_daily_rate"])
        self.confidence_config = self.config["confidence"]
        self.risk_config = self.config["risk"]

        logger.info("Initialized AvailabilityPredictor")

    def predict(self, provider_key: str, service_category: str, current_date: Any,
                allocated_amount: Optional[float], recent_reports: Optional[List[Any]] = None,
                pattern: Optional[ConsumptionPattern] = None) -> AvailabilityStatus:
        """
        Predict fund availability.

        Args:
            provider_key: Provider tax id (or name when it has none)
            service_category: Service category of the allocation
            current_date: Evaluation date or datetime
            allocated_amount: Allocation for the current period
            recent_reports: Reports from the recent window, already filtered by the caller
            pattern: Stored consumption pattern of the provider, if any

        Returns:
            Fully populated AvailabilityStatus
        """
        now = as_datetime(current_date)
        reports = [coerce_report(r) for r in (recent_reports or [])]
        day_of_month = now.day
        last_report = self.reports.most_recent(reports, now)

        allocated = self._clean_amount(allocated_amount)
        if allocated <= 0:
            logger.info(f"No allocation for {provider_key}, returning no-allocation status")
            return AvailabilityStatus(
                status=AvailabilityTier.UNCERTAIN,
                risk_level=RiskLevel.HIGH,
                probability=0.0,
                confidence=int(self.confidence_config["no_allocation"]),
                allocated_amount=0.0,
                estimated_consumed=0.0,
                estimated_available=0.0,
                day_of_month=day_of_month,
                message=self.explanations.render("no_allocation"),
                last_user_report=last_report,
            )

        curve = pattern.depletion_curve if pattern and pattern.depletion_curve else self.fallback_curve()
        if day_of_month in curve:
            expected_rate = float(curve[day_of_month])
        else:
            expected_rate = day_of_month / self.days_per_month

        seasonal_multiplier = self.seasonality.multiplier(now.month, service_category)
        adjusted_rate = expected_rate * seasonal_multiplier

        predicted_consumed = allocated * adjusted_rate
        predicted_remaining = allocated - predicted_consumed

        reports_adjustment = self.reports.adjustment(reports, now)
        probability = max(0.0, min(1.0, predicted_remaining / allocated + reports_adjustment))

        confidence = self.calculate_confidence(pattern, reports, now)
        risk_level = self.calculate_risk_level(probability, day_of_month, pattern)
        depletion_date = self.predict_depletion_date(now.date(), adjusted_rate, pattern)

        message = self.explanations.availability(probability, risk_level, day_of_month, depletion_date)

        logger.debug(f"Predicted {provider_key}: probability={probability:.2f}, risk={risk_level.value}, "
                     f"confidence={confidence}")

        return AvailabilityStatus(
            status=AvailabilityTier.from_risk(risk_level),
            risk_level=risk_level,
            probability=probability,
            confidence=confidence,
            allocated_amount=allocated,
            estimated_consumed=predicted_consumed,
            estimated_available=max(0.0, predicted_remaining),
            day_of_month=day_of_month,
            message=message,
            predicted_depletion_date=depletion_date,
            last_user_report=last_report,
            factors={
                "expected_rate": expected_rate,
                "seasonal_multiplier": seasonal_multiplier,
                "adjusted_rate": adjusted_rate,
                "reports_adjustment": reports_adjustment,
                "has_pattern": 1.0 if pattern else 0.0,
            },
        )

    def fallback_curve(self) -> Dict[int, float]:
        """Linear global depletion curve (day / days_per_month)."""
        return {d: d / self.days_per_month for d in range(1, 32)}

    def calculate_confidence(self, pattern: Optional[ConsumptionPattern],
                             reports: List[UserReport], now: datetime) -> int:
        """
        Calculate confidence from history depth and report freshness.

        Args:
            pattern: Provider pattern, if any
            reports: Recent reports
            now: Evaluation time

        Returns:
            Confidence (0-100)
        """
        confidence = int(self.confidence_config["base"])

        if pattern:
            for min_points, bonus in self.confidence_config["data_points"]:
                if pattern.data_points_count >= min_points:
                    confidence += int(bonus)
                    break

        if self.reports.has_recent(reports, now):
            confidence += int(self.confidence_config["recent_report_bonus"])

        return min(int(self.confidence_config["max"]), confidence)

    def calculate_risk_level(self, probability: float, day_of_month: int,
                             pattern: Optional[ConsumptionPattern]) -> RiskLevel:
        risk = self.risk_config

        if probability < risk["high_probability"]:
            return RiskLevel.HIGH
        if probability < risk["late_month_probability"] and day_of_month > risk["late_month_day"]:
            return RiskLevel.HIGH

        if pattern and pattern.early_depletion_frequency > risk["early_depletion_frequency"]:
            if day_of_month > risk["early_depletion_high_day"]:
                return RiskLevel.HIGH
            if day_of_month > risk["early_depletion_medium_day"]:
                return RiskLevel.MEDIUM

        if probability < risk["medium_probability"]:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def predict_depletion_date(self, current: date, adjusted_rate: float,
                               pattern: Optional[ConsumptionPattern]) -> Optional[date]:
        """
        Predict the day the allocation runs out this month.

        Args:
            current: Evaluation date
            adjusted_rate: Fraction of the allocation expected consumed so far
            pattern: Provider pattern, if any

        Returns:
            Depletion date, or None when funds last past month-end
        """
        if pattern:
            daily_rate = pattern.avg_consumption_rate / self.days_per_month
        else:
            daily_rate = self.fallback_daily_rate

        if daily_rate <= 0:
            return None

        days_in_month = calendar.monthrange(current.year, current.month)[1]
        remaining_fraction = max(0.0, 1.0 - adjusted_rate)
        offset = max(1, math.floor(remaining_fraction / daily_rate))

        if current.day + offset > days_in_month:
            return None
        return current + timedelta(days=offset)

    @staticmethod
    def _clean_amount(value: Optional[float]) -> float:
        try:
            amount = float(value)
        except (TypeError, ValueError):
            return 0.0
        if math.isnan(amount):
            return 0.0
        return amount


def predict_availability(input_data: Dict[str, Any], pattern: Optional[ConsumptionPattern] = None,
                         config: Optional[Dict] = None) -> AvailabilityStatus:
    """
    Convenience function to predict availability from a request mapping.

    Args:
        input_data: Mapping with provider_key, service_category, current_date,
            allocated_amount and recent_reports
        pattern: Stored consumption pattern of the provider
        config: FondCAS configuration

    Returns:
        AvailabilityStatus
    """
    predictor = AvailabilityPredictor(config)
    return predictor.predict(
        provider_key=input_data.get("provider_key", ""),
        service_category=input_data.get("service_category", "clinic"),
        current_date=input_data.get("current_date") or datetime.now(),
        allocated_amount=input_data.get("allocated_amount"),
        recent_reports=input_data.get("recent_reports") or [],
        pattern=pattern,
    )
