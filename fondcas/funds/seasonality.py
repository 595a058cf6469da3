"""
Seasonal consumption multipliers for FondCAS.
"""

import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class SeasonalityTable:
    """
    Month-by-category multipliers applied to the expected consumption rate.

    Service categories are mapped to a table through configured aliases;
    unknown categories use the ``default`` table and unknown months 1.0.
    """

    def __init__(self, multipliers: Dict, aliases: Optional[Dict[str, str]] = None):
        """
        Initialize seasonality table.

        Args:
            multipliers: ``prediction.seasonal_multipliers`` section
            aliases: ``prediction.category_aliases`` section
        """
        self.tables = {
            str(category).lower(): {int(month): float(value) for month, value in table.items()}
            for category, table in multipliers.items()
        }
        self.aliases = {str(k).lower(): str(v).lower() for k, v in (aliases or {}).items()}

    def table_name(self, service_category: Optional[str]) -> str:
        category = str(service_category or "").strip().lower()
        category = self.aliases.get(category, category)
        return category if category in self.tables else "default"

    def multiplier(self, month: int, service_category: Optional[str]) -> float:
        table = self.tables.get(self.table_name(service_category), {})
        return table.get(int(month), 1.0)
