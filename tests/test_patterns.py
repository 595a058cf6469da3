"""
Unit tests for consumption pattern building.
"""

import pytest
import sys
from datetime import date
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from fondcas.funds.patterns import ConsumptionPatternBuilder, build_consumption_patterns
from fondcas.models import ConsumptionPattern, HistoricalFundRecord


def history(provider_name, consumed, tax_id=None, year=2025, allocated=1000.0, service_type="clinic"):
    """Monthly records starting in January, one per consumed amount."""
    return [
        HistoricalFundRecord(
            provider_name=provider_name,
            provider_tax_id=tax_id,
            year=year,
            month=i + 1,
            service_type=service_type,
            allocated_amount=allocated,
            consumed_amount=amount,
        )
        for i, amount in enumerate(consumed)
    ]


class TestConsumptionPatternBuilder:
    """Test cases for pattern statistics."""

    def setup_method(self):
        """Setup test fixtures."""
        self.builder = ConsumptionPatternBuilder()
        self.records = history("Clinica Sante", [500, 600, 700, 800, 900, 1000], tax_id="111")

    def test_insufficient_history_skipped(self):
        """Fewer than six valid records yield no pattern."""
        patterns = self.builder.build(self.records[:5])
        assert patterns == []

    def test_pattern_statistics(self):
        """Test averages, curve and depletion figures."""
        patterns = self.builder.build(self.records)
        assert len(patterns) == 1

        pattern = patterns[0]
        assert pattern.provider_key == "111"
        assert pattern.data_points_count == 6
        assert pattern.avg_consumption_rate == pytest.approx(0.75)
        assert 0.0 <= pattern.avg_consumption_rate <= 2.0
        assert pattern.stddev_consumption_rate == pytest.approx(0.1707825, rel=1e-5)
        assert pattern.early_depletion_frequency == pytest.approx(1 / 6)
        assert pattern.typical_depletion_day == 30

    def test_monthly_pattern_fallback(self):
        pattern = self.builder.build(self.records)[0]

        assert set(pattern.monthly_pattern) == set(range(1, 13))
        assert pattern.monthly_pattern[1] == pytest.approx(0.5)
        assert pattern.monthly_pattern[6] == pytest.approx(1.0)
        # Months without observations use the average
        assert pattern.monthly_pattern[9] == pytest.approx(0.75)

    def test_depletion_curve(self):
        pattern = self.builder.build(self.records)[0]

        assert set(pattern.depletion_curve) == set(range(1, 32))
        assert pattern.depletion_curve[10] == pytest.approx(0.25)
        assert pattern.depletion_curve[31] == pytest.approx(0.775)

        heavy = self.builder.build(history("Heavy", [1800] * 6))[0]
        assert heavy.depletion_curve[20] == 1.0
        assert heavy.typical_depletion_day == 15

    def test_data_range(self):
        pattern = self.builder.build(self.records)[0]
        assert pattern.first_data_date == date(2025, 1, 1)
        assert pattern.last_data_date == date(2025, 6, 1)
        assert pattern.model_updated_at is not None

    def test_invalid_rates_excluded(self):
        """Missing consumption, zero allocation and rates above 2 are not counted."""
        records = self.records[:5] + [
            HistoricalFundRecord("Clinica Sante", 2025, 7, "clinic", 1000.0, "111", None),
            HistoricalFundRecord("Clinica Sante", 2025, 8, "clinic", 0.0, "111", 100.0),
            HistoricalFundRecord("Clinica Sante", 2025, 9, "clinic", 1000.0, "111", 2500.0),
        ]
        assert self.builder.build(records) == []

        records.append(HistoricalFundRecord("Clinica Sante", 2025, 10, "clinic", 1000.0, "111", 2000.0))
        patterns = self.builder.build(records)
        assert len(patterns) == 1
        assert patterns[0].data_points_count == 6

    def test_duplicates_keep_first(self):
        duplicate = HistoricalFundRecord("Clinica Sante", 2025, 1, "clinic", 1000.0, "111", 0.0)
        pattern = self.builder.build(self.records + [duplicate])[0]

        assert pattern.data_points_count == 6
        assert pattern.monthly_pattern[1] == pytest.approx(0.5)

    def test_provider_key_falls_back_to_name(self):
        patterns = self.builder.build(history("Cabinet Pop", [300] * 6))
        assert patterns[0].provider_key == "Cabinet Pop"

    def test_zero_consumption(self):
        pattern = self.builder.build(history("Idle", [0] * 6))[0]
        assert pattern.avg_consumption_rate == 0.0
        assert pattern.typical_depletion_day == 30

    def test_providers_in_first_seen_order(self):
        records = history("B", [500] * 6) + history("A", [500] * 6) + history("C", [500] * 3)
        patterns = build_consumption_patterns(records)

        assert [p.provider_key for p in patterns] == ["B", "A"]

    def test_order_follows_all_records(self):
        """A provider whose first records are invalid keeps its input position."""
        records = (
            history("B", [None] * 2 + [500] * 6, year=2024)
            + history("A", [500] * 6)
            + history("B", [400] * 6)
            + history("Empty", [None] * 6)
        )
        patterns = build_consumption_patterns(records)

        assert [p.provider_key for p in patterns] == ["B", "A"]
        assert patterns[0].data_points_count == 12

    def test_configured_minimum(self):
        builder = ConsumptionPatternBuilder({"patterns": {"min_data_points": 3}})
        assert len(builder.build(self.records[:3])) == 1

    def test_pattern_dict_round_trip(self):
        pattern = self.builder.build(self.records)[0]
        restored = ConsumptionPattern.from_dict(pattern.to_dict())

        assert restored.provider_key == pattern.provider_key
        assert restored.depletion_curve == pattern.depletion_curve
        assert restored.last_data_date == pattern.last_data_date

    def test_training_statistics(self):
        """Test global statistics over built patterns."""
        patterns = self.builder.build(self.records + history("Heavy", [1800] * 6))
        stats = self.builder.get_training_statistics(patterns, top_n=1)

        assert stats["providers_with_patterns"] == 2
        assert stats["total_data_points"] == 12
        assert stats["high_early_depletion_count"] == 1
        assert stats["top_consumers"][0]["provider_key"] == "Heavy"
        assert self.builder.get_training_statistics([]) == {"providers_with_patterns": 0}


if __name__ == "__main__":
    pytest.main([__file__])
