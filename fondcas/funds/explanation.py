"""
Localized availability messages for FondCAS.
"""

import calendar
import logging
from datetime import date
from typing import Dict, Optional

from ..models import RiskLevel

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "ro"

ROMANIAN_MONTHS = [
    "Ianuarie", "Februarie", "Martie", "Aprilie", "Mai", "Iunie",
    "Iulie", "August", "Septembrie", "Octombrie", "Noiembrie", "Decembrie"
]

MESSAGES: Dict[str, Dict[str, str]] = {
    "ro": {
        "low": "Probabilitate {probability}% de fonduri disponibile. Risc scăzut.",
        "medium_depletion": ("Probabilitate {probability}%. Fondurile ar putea fi epuizate în jurul "
                             "datei de {depletion_day}. Recomandăm verificare telefonică."),
        "medium": "Probabilitate {probability}%. Suntem în ziua {day_of_month} a lunii - verificați telefonic.",
        "high_depletion": ("Probabilitate scăzută ({probability}%) de fonduri disponibile, epuizare estimată "
                           "în jurul datei de {depletion_day}. Vă rugăm sunați clinica pentru confirmare "
                           "înainte de deplasare."),
        "high": ("Probabilitate scăzută ({probability}%) de fonduri disponibile în ziua {day_of_month} a lunii. "
                 "Vă rugăm sunați clinica pentru confirmare înainte de deplasare."),
        "no_allocation": "Nu avem date despre alocarea fondurilor. Vă rugăm să contactați clinica.",
        "consumed_exhausted": "Fondurile pentru {month_name} sunt aproape epuizate ({consumed}% consumate).",
        "consumed_limited": "Fonduri limitate - {available}% disponibile. Verificați telefonic.",
        "consumed_available": "Fonduri disponibile - aproximativ {available}% din bugetul lunar.",
        "report_exhausted": "Utilizator a raportat fonduri epuizate acum {hours} {hours_unit}. Verificați telefonic.",
        "report_available": "Utilizator a confirmat fonduri disponibile acum {hours} {hours_unit}.",
        "hour": "oră",
        "hours": "ore",
        "week_first": "Început de lună - probabilitate mare de fonduri disponibile.",
        "week_second": "Prima jumătate a lunii - fonduri probabil disponibile.",
        "week_third": "A treia săptămână a lunii - recomandăm verificare telefonică.",
        "week_last": "Sfârșit de lună - fondurile se pot epuiza. Sunați pentru confirmare.",
    },
    "en": {
        "low": "{probability}% probability that funds are available. Low risk.",
        "medium_depletion": ("{probability}% probability. Funds could run out around day {depletion_day}. "
                             "We recommend calling ahead."),
        "medium": "{probability}% probability. It is day {day_of_month} of the month - please call ahead.",
        "high_depletion": ("Low probability ({probability}%) that funds are available, expected to run out "
                           "around day {depletion_day}. Please call the clinic to confirm before visiting."),
        "high": ("Low probability ({probability}%) that funds are available on day {day_of_month} of the month. "
                 "Please call the clinic to confirm before visiting."),
        "no_allocation": "No fund allocation data is available. Please contact the clinic.",
        "consumed_exhausted": "Funds for {month_name} are almost exhausted ({consumed}% consumed).",
        "consumed_limited": "Limited funds - {available}% available. Please call ahead.",
        "consumed_available": "Funds available - about {available}% of the monthly budget.",
        "report_exhausted": "A user reported exhausted funds {hours} {hours_unit} ago. Please call ahead.",
        "report_available": "A user confirmed available funds {hours} {hours_unit} ago.",
        "hour": "hour",
        "hours": "hours",
        "week_first": "Start of the month - funds are very likely available.",
        "week_second": "First half of the month - funds are probably available.",
        "week_third": "Third week of the month - we recommend calling ahead.",
        "week_last": "End of the month - funds may run out. Call to confirm.",
    },
}


def percent(value: float) -> int:
    """Round a fraction to a whole percentage, halves up."""
    return int(value * 100 + 0.5)


def month_name(month: int, locale: str = DEFAULT_LOCALE) -> str:
    if not 1 <= month <= 12:
        return ""
    if locale == "ro":
        return ROMANIAN_MONTHS[month - 1]
    return calendar.month_name[month]


class ExplanationBuilder:
    """
    Renders message templates for one locale.
    """

    def __init__(self, locale: str = DEFAULT_LOCALE):
        if locale not in MESSAGES:
            logger.warning(f"Unknown locale '{locale}', falling back to '{DEFAULT_LOCALE}'")
            locale = DEFAULT_LOCALE
        self.locale = locale
        self.templates = MESSAGES[locale]

    def render(self, key: str, **values) -> str:
        return self.templates[key].format(**values)

    def availability(self, probability: float, risk_level: RiskLevel, day_of_month: int,
                     depletion_date: Optional[date] = None) -> str:
        """
        Explain a predicted availability.

        Args:
            probability: Availability probability (0-1)
            risk_level: Risk tier
            day_of_month: Current day of month
            depletion_date: Predicted depletion date, if any

        Returns:
            Localized explanation
        """
        values = {"probability": percent(probability), "day_of_month": day_of_month}

        if risk_level is RiskLevel.LOW:
            return self.render("low", **values)

        key = risk_level.value
        if depletion_date is not None:
            return self.render(f"{key}_depletion", depletion_day=depletion_date.day, **values)
        return self.render(key, **values)

    def hours_unit(self, hours: int) -> str:
        return self.templates["hour"] if hours == 1 else self.templates["hours"]
