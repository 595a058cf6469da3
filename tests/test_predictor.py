"""
Unit tests for the availability predictor.
"""

import pytest
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from fondcas.funds.predictor import AvailabilityPredictor, predict_availability
from fondcas.funds.reports import ReportAggregator
from fondcas.funds.seasonality import SeasonalityTable
from fondcas.config import get_default_config
from fondcas.models import (
    AvailabilityTier, ConsumptionPattern, ReportType, RiskLevel, UserReport
)


def make_pattern(avg_rate=0.5, early_frequency=0.0, data_points=12):
    return ConsumptionPattern(
        provider_key="111",
        avg_consumption_rate=avg_rate,
        stddev_consumption_rate=0.1,
        monthly_pattern={m: avg_rate for m in range(1, 13)},
        depletion_curve={d: min(1.0, avg_rate / 30 * d) for d in range(1, 32)},
        early_depletion_frequency=early_frequency,
        typical_depletion_day=30,
        data_points_count=data_points,
    )


def report(report_type, now, hours_ago):
    return UserReport(location_id="LOC-1", report_type=report_type, reported_at=now - timedelta(hours=hours_ago))


class TestAvailabilityPredictor:
    """Test cases for availability prediction."""

    def setup_method(self):
        """Setup test fixtures."""
        self.predictor = AvailabilityPredictor()
        # April uses multiplier 1.0 for clinics
        self.now = datetime(2026, 4, 5, 12, 0)

    def test_zero_allocation(self):
        """A zero allocation returns a defined status without dividing by zero."""
        status = self.predictor.predict("111", "clinic", self.now, 0)

        assert status.status is AvailabilityTier.UNCERTAIN
        assert status.probability == 0.0
        assert status.confidence == 20
        assert status.estimated_available == 0.0
        assert status.message == "Nu avem date despre alocarea fondurilor. Vă rugăm să contactați clinica."

    def test_missing_allocation(self):
        for allocated in [None, float("nan"), -100, "n/a"]:
            status = self.predictor.predict("111", "clinic", self.now, allocated)
            assert status.probability == 0.0
            assert status.confidence == 20

    def test_no_pattern_early_month(self):
        """Day 5 without history uses the linear curve at base confidence."""
        status = self.predictor.predict("111", "clinic", self.now, 10000)

        assert status.risk_level in (RiskLevel.LOW, RiskLevel.MEDIUM)
        assert status.confidence <= 30
        assert status.probability == pytest.approx(25 / 30)
        assert status.estimated_consumed == pytest.approx(10000 * 5 / 30)
        assert status.factors["has_pattern"] == 0.0
        assert status.day_of_month == 5

    def test_early_depletion_mid_month(self):
        """Frequent early depletion raises the risk after mid-month."""
        pattern = make_pattern(avg_rate=0.5, early_frequency=0.8)
        status = self.predictor.predict("111", "clinic", datetime(2026, 4, 18), 10000, pattern=pattern)

        assert status.risk_level in (RiskLevel.MEDIUM, RiskLevel.HIGH)
        assert status.risk_level is RiskLevel.HIGH
        assert status.status is AvailabilityTier.LIKELY_EXHAUSTED

    def test_early_depletion_medium_window(self):
        pattern = make_pattern(avg_rate=0.5, early_frequency=0.8)
        status = self.predictor.predict("111", "clinic", datetime(2026, 4, 12), 10000, pattern=pattern)
        assert status.risk_level is RiskLevel.MEDIUM

    def test_recent_negative_report_dominates(self):
        """A fresh exhausted report outweighs an old available one."""
        reports = [
            report(ReportType.FUNDS_EXHAUSTED, self.now, 1),
            report(ReportType.FUNDS_AVAILABLE, self.now, 40),
        ]
        baseline = self.predictor.predict("111", "clinic", self.now, 10000)
        status = self.predictor.predict("111", "clinic", self.now, 10000, recent_reports=reports)

        assert status.factors["reports_adjustment"] < 0
        assert status.probability < baseline.probability
        assert status.confidence == baseline.confidence + 15
        assert status.last_user_report.report_type is ReportType.FUNDS_EXHAUSTED
        assert status.last_user_report.is_recent

    def test_confidence_tiers(self):
        """History depth and fresh reports raise confidence up to the cap."""
        assert self.predictor.predict("111", "clinic", self.now, 1000,
                                      pattern=make_pattern(data_points=6)).confidence == 40
        assert self.predictor.predict("111", "clinic", self.now, 1000,
                                      pattern=make_pattern(data_points=12)).confidence == 50
        assert self.predictor.predict("111", "clinic", self.now, 1000,
                                      pattern=make_pattern(data_points=36)).confidence == 60

        fresh = [report(ReportType.GOOD_SERVICE, self.now, 2)]
        assert self.predictor.predict("111", "clinic", self.now, 1000, fresh,
                                      make_pattern(data_points=36)).confidence == 75

    def test_confidence_cap(self):
        predictor = AvailabilityPredictor({"prediction": {"confidence": {"base": 80}}})
        fresh = [report(ReportType.FUNDS_AVAILABLE, self.now, 1)]
        status = predictor.predict("111", "clinic", self.now, 1000, fresh, make_pattern(data_points=30))
        assert status.confidence == 95

    def test_late_month_risk(self):
        """Below one half after day 20 is high risk."""
        assert self.predictor.calculate_risk_level(0.45, 21, None) is RiskLevel.HIGH
        assert self.predictor.calculate_risk_level(0.45, 20, None) is RiskLevel.MEDIUM
        assert self.predictor.calculate_risk_level(0.25, 2, None) is RiskLevel.HIGH
        assert self.predictor.calculate_risk_level(0.65, 25, None) is RiskLevel.LOW

    def test_seasonal_multiplier_applied(self):
        status = self.predictor.predict("111", "paraclinic", datetime(2026, 12, 10), 1000)

        assert status.factors["seasonal_multiplier"] == pytest.approx(1.15)
        assert status.factors["adjusted_rate"] == pytest.approx(10 / 30 * 1.15)

    def test_depletion_date(self):
        """Depletion inside the month yields a date, otherwise none."""
        heavy = make_pattern(avg_rate=1.5)
        depletion = self.predictor.predict_depletion_date(date(2026, 4, 10), 0.48, heavy)
        assert depletion == date(2026, 4, 20)

        light = make_pattern(avg_rate=0.3)
        assert self.predictor.predict_depletion_date(date(2026, 4, 10), 0.1, light) is None

        idle = make_pattern(avg_rate=0.0)
        assert self.predictor.predict_depletion_date(date(2026, 4, 10), 0.0, idle) is None

    def test_depletion_at_least_one_day_ahead(self):
        heavy = make_pattern(avg_rate=3.0)
        assert self.predictor.predict_depletion_date(date(2026, 4, 10), 1.0, heavy) == date(2026, 4, 11)

    def test_no_depletion_date_on_last_day_of_month(self):
        """The one-day minimum never pushes the date into the next month."""
        heavy = make_pattern(avg_rate=3.0)
        assert self.predictor.predict_depletion_date(date(2026, 3, 31), 1.0, heavy) is None
        assert self.predictor.predict_depletion_date(date(2026, 4, 30), 1.0, heavy) is None
        assert self.predictor.predict_depletion_date(date(2026, 4, 29), 1.0, heavy) == date(2026, 4, 30)

        for current in [date(2026, 3, 31), date(2026, 4, 30)]:
            status = self.predictor.predict("111", "clinic", current, 10000)
            assert status.predicted_depletion_date is None

    def test_high_risk_message_mentions_depletion(self):
        pattern = make_pattern(avg_rate=1.5, early_frequency=0.9)
        status = self.predictor.predict("111", "clinic", datetime(2026, 4, 16), 1000, pattern=pattern)

        assert status.risk_level is RiskLevel.HIGH
        assert status.predicted_depletion_date is not None
        assert str(status.predicted_depletion_date.day) in status.message

    def test_english_locale(self):
        predictor = AvailabilityPredictor({"prediction": {"locale": "en"}})
        status = predictor.predict("111", "clinic", self.now, 10000)
        assert status.message.endswith("Low risk.")

    def test_aware_reports_with_naive_date(self):
        aware_now = datetime(2026, 4, 5, 12, 0, tzinfo=timezone.utc)
        reports = [report(ReportType.FUNDS_AVAILABLE, aware_now, 3)]
        status = self.predictor.predict("111", "clinic", self.now, 1000, reports)

        assert status.factors["reports_adjustment"] == pytest.approx(0.2)

    def test_predict_availability_function(self):
        status = predict_availability({
            "provider_key": "111",
            "service_category": "recuperare",
            "current_date": "2026-08-05",
            "allocated_amount": 5000,
            "recent_reports": [
                {"report_type": "funds_available", "reported_at": "2026-08-04T20:00:00"}
            ],
        })

        assert status.factors["seasonal_multiplier"] == pytest.approx(0.75)
        assert status.factors["reports_adjustment"] == pytest.approx(0.2)
        data = status.to_dict()
        assert data["status"] in {tier.value for tier in AvailabilityTier}
        assert data["last_user_report"]["type"] == "funds_available"


class TestReportAggregator:
    """Test cases for time-decayed report aggregation."""

    def setup_method(self):
        """Setup test fixtures."""
        self.aggregator = ReportAggregator(get_default_config()["prediction"])
        self.now = datetime(2026, 4, 5, 12, 0)

    def test_no_reports(self):
        assert self.aggregator.adjustment([], self.now) == 0.0
        assert self.aggregator.most_recent([], self.now) is None

    def test_single_reports(self):
        assert self.aggregator.adjustment([report(ReportType.FUNDS_AVAILABLE, self.now, 5)], self.now) == \
            pytest.approx(0.2)
        assert self.aggregator.adjustment([report(ReportType.FUNDS_EXHAUSTED, self.now, 5)], self.now) == \
            pytest.approx(-0.4)

    def test_other_reports_dilute(self):
        reports = [
            report(ReportType.FUNDS_AVAILABLE, self.now, 0),
            report(ReportType.LONG_WAIT, self.now, 0),
        ]
        assert self.aggregator.adjustment(reports, self.now) == pytest.approx(0.1)

    def test_future_report_clamped(self):
        future = report(ReportType.FUNDS_AVAILABLE, self.now, -5)
        assert self.aggregator.hours_ago(future, self.now) == 0.0


class TestSeasonalityTable:
    """Test cases for seasonal multipliers."""

    def setup_method(self):
        """Setup test fixtures."""
        config = get_default_config()["prediction"]
        self.table = SeasonalityTable(config["seasonal_multipliers"], config["category_aliases"])

    def test_aliases(self):
        assert self.table.table_name("Paraclinice") == "paraclinic"
        assert self.table.table_name("recuperare") == "recovery"
        assert self.table.table_name("dental") == "default"
        assert self.table.table_name(None) == "default"

    def test_multiplier(self):
        assert self.table.multiplier(8, "recovery") == 0.75
        assert self.table.multiplier(12, "unknown") == 1.1
        assert self.table.multiplier(13, "clinic") == 1.0


if __name__ == "__main__":
    pytest.main([__file__])
