"""
Consumption pattern builder for FondCAS.

Aggregates historical monthly fund-consumption records per provider into a
statistical profile used by the availability predictor.
"""

import logging
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional
import numpy as np
import pandas as pd

from ..config import resolve_config
from ..models import ConsumptionPattern, HistoricalFundRecord

logger = logging.getLogger(__name__)


class ConsumptionPatternBuilder:
    """
    Builds one ConsumptionPattern per provider with enough valid history.

    Records are grouped by provider key (tax id, else legal name). A record is
    valid when its consumption rate is defined and within
    ``[0, max_valid_rate]``. Providers with fewer than ``min_data_points``
    valid records get no pattern.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize pattern builder with configuration.

        Args:
            config: FondCAS configuration (defaults when omitted)
        """
        patterns_config = resolve_config(config)["patterns"]
        self.min_data_points = int(patterns_config["min_data_points"])
        self.max_valid_rate = float(patterns_config["max_valid_rate"])
        self.early_depletion_rate = float(patterns_config["early_depletion_rate"])
        self.days_per_month = int(patterns_config["days_per_month"])

        logger.info("Initialized ConsumptionPatternBuilder")

    def records_to_dataframe(self, records: Iterable[HistoricalFundRecord]) -> pd.DataFrame:
        """
        Tabulate records, keeping the first occurrence of each unique key.

        Args:
            records: Historical fund records

        Returns:
            DataFrame with provider_key, year, month, service_type and rate
        """
        rows = [
            {
                "provider_key": record.provider_key,
                "year": int(record.year),
                "month": int(record.month),
                "service_type": record.service_type,
                "rate": record.consumption_rate,
            }
            for record in records
        ]
        df = pd.DataFrame(rows, columns=["provider_key", "year", "month", "service_type", "rate"])

        before = len(df)
        df = df.drop_duplicates(subset=["provider_key", "year", "month", "service_type"], keep="first")
        if len(df) < before:
            logger.warning(f"Dropped {before - len(df)} duplicate historical records")

        df["rate"] = pd.to_numeric(df["rate"], errors="coerce")
        return df

    def build(self, records: Iterable[HistoricalFundRecord]) -> List[ConsumptionPattern]:
        """
        Build consumption patterns for all qualifying providers.

        Args:
            records: Historical fund records

        Returns:
            Patterns in first-seen provider order
        """
        df = self.records_to_dataframe(records)
        if df.empty:
            logger.info("No historical records to build patterns from")
            return []

        valid = df[df["rate"].notna() & (df["rate"] >= 0) & (df["rate"] <= self.max_valid_rate)]
        updated_at = datetime.now(timezone.utc)

        patterns = []
        skipped = 0
        groups = dict(tuple(valid.groupby("provider_key", sort=False)))
        for provider_key in df["provider_key"].unique():
            provider_df = groups.get(provider_key)
            if provider_df is None or len(provider_df) < self.min_data_points:
                skipped += 1
                continue
            patterns.append(self._build_provider_pattern(provider_key, provider_df, updated_at))

        logger.info(f"Patterns built: {len(patterns)}; skipped (insufficient data): {skipped}")
        return patterns

    def _build_provider_pattern(self, provider_key: str, provider_df: pd.DataFrame,
                                updated_at: datetime) -> ConsumptionPattern:
        rates = provider_df["rate"].to_numpy(dtype=float)
        avg_rate = float(np.mean(rates))
        stddev_rate = float(np.std(rates))

        monthly_means = provider_df.groupby("month")["rate"].mean().to_dict()
        monthly_pattern = {m: float(monthly_means.get(m, avg_rate)) for m in range(1, 13)}

        daily_rate = avg_rate / self.days_per_month
        depletion_curve = {d: float(min(1.0, daily_rate * d)) for d in range(1, 32)}

        early_frequency = float(np.mean(rates > self.early_depletion_rate))

        if avg_rate > 0:
            typical_day = int(self.days_per_month * self.early_depletion_rate / avg_rate + 0.5)
        else:
            typical_day = self.days_per_month
        typical_day = max(1, min(self.days_per_month, typical_day))

        periods = provider_df.sort_values(["year", "month"])
        first, last = periods.iloc[0], periods.iloc[-1]

        return ConsumptionPattern(
            provider_key=provider_key,
            avg_consumption_rate=avg_rate,
            stddev_consumption_rate=stddev_rate,
            monthly_pattern=monthly_pattern,
            depletion_curve=depletion_curve,
            early_depletion_frequency=early_frequency,
            typical_depletion_day=typical_day,
            data_points_count=len(provider_df),
            first_data_date=date(int(first["year"]), int(first["month"]), 1),
            last_data_date=date(int(last["year"]), int(last["month"]), 1),
            model_updated_at=updated_at,
        )

    def get_training_statistics(self, patterns: List[ConsumptionPattern], top_n: int = 5) -> Dict[str, any]:
        """
        Calculate global statistics over built patterns.

        Args:
            patterns: Built consumption patterns
            top_n: Number of highest-consumption providers to list

        Returns:
            Dictionary with global rate statistics and top providers
        """
        if not patterns:
            return {"providers_with_patterns": 0}

        rates = np.array([p.avg_consumption_rate for p in patterns], dtype=float)
        ranked = sorted(patterns, key=lambda p: p.avg_consumption_rate, reverse=True)

        return {
            "providers_with_patterns": len(patterns),
            "global_avg_rate": float(np.mean(rates)),
            "global_stddev_rate": float(np.std(rates)) if len(rates) > 1 else 0.0,
            "total_data_points": int(sum(p.data_points_count for p in patterns)),
            "high_early_depletion_count": int(sum(1 for p in patterns if p.early_depletion_frequency > 0.5)),
            "top_consumers": [
                {"provider_key": p.provider_key, "avg_consumption_rate": p.avg_consumption_rate}
                for p in ranked[:top_n]
            ],
        }


def build_consumption_patterns(records: Iterable[HistoricalFundRecord],
                               config: Optional[Dict] = None) -> List[ConsumptionPattern]:
    """
    Convenience function to build consumption patterns.

    Args:
        records: Historical fund records
        config: FondCAS configuration

    Returns:
        One pattern per qualifying provider
    """
    builder = ConsumptionPatternBuilder(config)
    return builder.build(records)
