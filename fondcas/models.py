"""
Domain records for FondCAS.

Candidate rows, resolved organizations and locations, historical fund
observations, consumption patterns, crowd reports and availability results.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceKind(str, Enum):
    """Classification of the file a candidate was extracted from."""

    PRIMARY = "primary"
    SUPPLEMENTARY = "supplementary"

    @property
    def priority(self) -> int:
        return 2 if self is SourceKind.PRIMARY else 1


class LocationSource(str, Enum):
    PRIMARY_SOURCE = "primary_source"
    DERIVED = "derived"


class ReportType(str, Enum):
    FUNDS_AVAILABLE = "funds_available"
    FUNDS_EXHAUSTED = "funds_exhausted"
    LONG_WAIT = "long_wait"
    GOOD_SERVICE = "good_service"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> "ReportType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AvailabilityTier(str, Enum):
    LIKELY_AVAILABLE = "likely_available"
    UNCERTAIN = "uncertain"
    LIKELY_EXHAUSTED = "likely_exhausted"

    @classmethod
    def from_risk(cls, risk: RiskLevel) -> "AvailabilityTier":
        return {
            RiskLevel.LOW: cls.LIKELY_AVAILABLE,
            RiskLevel.MEDIUM: cls.UNCERTAIN,
            RiskLevel.HIGH: cls.LIKELY_EXHAUSTED,
        }[risk]


@dataclass
class CandidateRecord:
    """One provider row extracted from a source file. Never persisted."""

    legal_name: str
    source_file: str
    service_category: str = "clinic"
    tax_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    website: Optional[str] = None
    source_date: Optional[date] = None
    source_kind: SourceKind = SourceKind.PRIMARY
    network_brand: Optional[str] = None
    confidence: Optional[int] = None


@dataclass
class Provenance:
    source_file: str
    source_kind: SourceKind
    source_date: Optional[date] = None


@dataclass
class Organization:
    """Resolved legal entity holding a reimbursement contract."""

    id: str
    legal_name: str
    provider_category: str = "clinic"
    tax_id: Optional[str] = None
    network_brand: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    provenance: List[Provenance] = field(default_factory=list)
    field_sources: Dict[str, SourceKind] = field(default_factory=dict)


@dataclass
class Location:
    """One physical address operated by an organization."""

    id: str
    organization_id: str
    name: str
    address: Optional[str] = None
    address_key: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    confidence: int = 100
    source: LocationSource = LocationSource.PRIMARY_SOURCE
    is_primary: bool = False


@dataclass
class MatchScoreResult:
    score: int
    reasons: List[str] = field(default_factory=list)
    signals: List[Any] = field(default_factory=list)


@dataclass
class HistoricalFundRecord:
    """One (provider, year, month, service type) allocation observation."""

    provider_name: str
    year: int
    month: int
    service_type: str
    allocated_amount: float
    provider_tax_id: Optional[str] = None
    consumed_amount: Optional[float] = None
    source_file: Optional[str] = None

    @property
    def consumption_rate(self) -> Optional[float]:
        if self.consumed_amount is None or not self.allocated_amount or self.allocated_amount <= 0:
            return None
        return self.consumed_amount / self.allocated_amount

    @property
    def provider_key(self) -> str:
        return self.provider_tax_id or self.provider_name

    @property
    def unique_key(self) -> tuple:
        return (self.provider_key, self.year, self.month, self.service_type)

    @property
    def is_end_of_quarter(self) -> bool:
        return self.month in (3, 6, 9, 12)

    @property
    def is_december(self) -> bool:
        return self.month == 12


@dataclass
class ConsumptionPattern:
    """Per-provider consumption statistics; a derived cache rebuilt by training."""

    provider_key: str
    avg_consumption_rate: float
    stddev_consumption_rate: float
    monthly_pattern: Dict[int, float]
    depletion_curve: Dict[int, float]
    early_depletion_frequency: float
    typical_depletion_day: int
    data_points_count: int
    first_data_date: Optional[date] = None
    last_data_date: Optional[date] = None
    model_updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["first_data_date"] = self.first_data_date.isoformat() if self.first_data_date else None
        data["last_data_date"] = self.last_data_date.isoformat() if self.last_data_date else None
        data["model_updated_at"] = self.model_updated_at.isoformat() if self.model_updated_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConsumptionPattern":
        monthly = data.get("monthly_pattern") or {}
        curve = data.get("depletion_curve") or {}
        if isinstance(monthly, str):
            monthly = json.loads(monthly)
        if isinstance(curve, str):
            curve = json.loads(curve)

        def _to_date(value):
            if value is None or isinstance(value, date):
                return value
            return date.fromisoformat(str(value)[:10])

        updated = data.get("model_updated_at")
        if isinstance(updated, str):
            updated = datetime.fromisoformat(updated)

        return cls(
            provider_key=data["provider_key"],
            avg_consumption_rate=float(data.get("avg_consumption_rate") or 0.0),
            stddev_consumption_rate=float(data.get("stddev_consumption_rate") or 0.0),
            monthly_pattern={int(k): float(v) for k, v in monthly.items()},
            depletion_curve={int(k): float(v) for k, v in curve.items()},
            early_depletion_frequency=float(data.get("early_depletion_frequency") or 0.0),
            typical_depletion_day=int(data.get("typical_depletion_day") or 30),
            data_points_count=int(data.get("data_points_count") or 0),
            first_data_date=_to_date(data.get("first_data_date")),
            last_data_date=_to_date(data.get("last_data_date")),
            model_updated_at=updated,
        )


@dataclass
class UserReport:
    """Crowd observation about fund availability at a location."""

    location_id: str
    report_type: ReportType
    reported_at: datetime
    id: Optional[str] = None


@dataclass
class ReportReference:
    report_type: ReportType
    reported_at: datetime
    is_recent: bool


@dataclass
class AvailabilityStatus:
    """Availability estimate for one provider and month. Computed on demand."""

    status: AvailabilityTier
    risk_level: RiskLevel
    probability: float
    confidence: int
    allocated_amount: float
    estimated_consumed: float
    estimated_available: float
    day_of_month: int
    message: str
    predicted_depletion_date: Optional[date] = None
    last_user_report: Optional[ReportReference] = None
    factors: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        report = None
        if self.last_user_report:
            report = {
                "type": self.last_user_report.report_type.value,
                "reported_at": self.last_user_report.reported_at.isoformat(),
                "is_recent": self.last_user_report.is_recent,
            }
        return {
            "status": self.status.value,
            "risk_level": self.risk_level.value,
            "probability": self.probability,
            "confidence": self.confidence,
            "allocated_amount": self.allocated_amount,
            "estimated_consumed": self.estimated_consumed,
            "estimated_available": self.estimated_available,
            "day_of_month": self.day_of_month,
            "predicted_depletion_date": (
                self.predicted_depletion_date.isoformat() if self.predicted_depletion_date else None
            ),
            "last_user_report": report,
            "message": self.message,
            "factors": dict(self.factors),
        }
