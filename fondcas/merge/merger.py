"""
Record merger for FondCAS.

Creates organizations and locations from candidate records and merges
candidates into existing entities with source-priority conflict resolution,
provenance tracking and canonical ID generation.
"""

import logging
import re
import uuid
from typing import Dict, Iterable, List, Optional

from ..models import (
    CandidateRecord, Location, LocationSource, Organization, Provenance, SourceKind
)

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ["tax_id", "email", "phone", "address", "website"]
LOCATION_FIELDS = ["address", "city", "county", "phone", "email", "website"]


def _has_value(value) -> bool:
    return value is not None and str(value).strip() != ""


class RecordMerger:
    """
    Applies candidate records to organizations and locations.

    Missing fields are always filled. A stored value is replaced only by a
    value from a strictly higher-priority source (primary outranks
    supplementary). The display name follows the latest candidate unless that
    candidate comes from a lower-priority source than the stored name.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize record merger with configuration.

        Args:
            config: The ``merge`` configuration section
        """
        self.config = config or {}
        self.canonical_config = self.config.get("canonical_id", {})
        self.algorithm = self.canonical_config.get("algorithm", "uuid4")
        self.derived_confidence = int(self.config.get("derived_location_confidence", 50))
        self._sequences: Dict[str, int] = {}

        logger.info("Initialized RecordMerger")

    def generate_canonical_id(self, prefix: str) -> str:
        """
        Generate a canonical ID.

        Args:
            prefix: ID prefix ("ORG" or "LOC")

        Returns:
            Canonical ID string
        """
        if self.algorithm == "sequential":
            self._sequences[prefix] = self._sequences.get(prefix, 0) + 1
            return f"{prefix}-{self._sequences[prefix]:06d}"

        return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"

    def seed_sequences(self, existing_ids: Iterable[str]):
        """Continue sequential IDs after the highest ones already in use."""
        pattern = re.compile(r"^([A-Z]+)-(\d+)$")
        for existing_id in existing_ids:
            match = pattern.match(str(existing_id))
            if match:
                prefix, number = match.group(1), int(match.group(2))
                self._sequences[prefix] = max(self._sequences.get(prefix, 0), number)

    def create_organization(self, candidate: CandidateRecord, brand_name: Optional[str] = None) -> Organization:
        """
        Create a new organization from a candidate.

        Args:
            candidate: Candidate record
            brand_name: Resolved brand name

        Returns:
            New Organization
        """
        organization = Organization(
            id=self.generate_canonical_id("ORG"),
            legal_name=candidate.legal_name.strip(),
            provider_category=candidate.service_category or "clinic",
            network_brand=brand_name,
        )
        organization.field_sources["legal_name"] = candidate.source_kind

        for field_name in CONTACT_FIELDS:
            value = getattr(candidate, field_name)
            if _has_value(value):
                setattr(organization, field_name, str(value).strip())
                organization.field_sources[field_name] = candidate.source_kind

        organization.provenance.append(self._provenance(candidate))
        return organization

    def merge_organization(self, organization: Organization, candidate: CandidateRecord,
                           brand_name: Optional[str] = None) -> List[str]:
        """
        Merge a matched candidate into an existing organization.

        Args:
            organization: Stored organization (updated in place)
            candidate: Matched candidate record
            brand_name: Resolved brand name

        Returns:
            Names of the fields that changed
        """
        changed = []
        priority = candidate.source_kind.priority

        name_source = organization.field_sources.get("legal_name", SourceKind.PRIMARY)
        new_name = candidate.legal_name.strip()
        if new_name and new_name != organization.legal_name and priority >= name_source.priority:
            organization.legal_name = new_name
            organization.field_sources["legal_name"] = candidate.source_kind
            changed.append("legal_name")

        for field_name in CONTACT_FIELDS:
            value = getattr(candidate, field_name)
            if not _has_value(value):
                continue
            value = str(value).strip()
            current = getattr(organization, field_name)

            if not _has_value(current):
                setattr(organization, field_name, value)
                organization.field_sources[field_name] = candidate.source_kind
                changed.append(field_name)
            elif value != current:
                stored_source = organization.field_sources.get(field_name, SourceKind.PRIMARY)
                if priority > stored_source.priority:
                    setattr(organization, field_name, value)
                    organization.field_sources[field_name] = candidate.source_kind
                    changed.append(field_name)

        if brand_name and not organization.network_brand:
            organization.network_brand = brand_name
            changed.append("network_brand")

        organization.provenance.append(self._provenance(candidate))
        return changed

    def create_location(self, organization: Organization, candidate: CandidateRecord,
                        address_key: Optional[str], is_primary: bool = False) -> Location:
        """
        Create a location of an organization from a candidate.

        Args:
            organization: Owning organization
            candidate: Candidate record
            address_key: Normalized address key of the candidate
            is_primary: Whether this is the organization's first location

        Returns:
            New Location
        """
        location = Location(
            id=self.generate_canonical_id("LOC"),
            organization_id=organization.id,
            name=organization.network_brand or organization.legal_name,
            address_key=address_key,
            is_primary=is_primary,
        )
        for field_name in LOCATION_FIELDS:
            value = getattr(candidate, field_name)
            if _has_value(value):
                setattr(location, field_name, str(value).strip())

        location.source, location.confidence = self._location_provenance(candidate)
        return location

    def merge_location(self, location: Location, candidate: CandidateRecord) -> List[str]:
        """
        Fill a matched location from a candidate with the same address key.

        Args:
            location: Stored location (updated in place)
            candidate: Candidate record

        Returns:
            Names of the fields that changed
        """
        changed = []
        for field_name in LOCATION_FIELDS:
            value = getattr(candidate, field_name)
            if _has_value(value) and not _has_value(getattr(location, field_name)):
                setattr(location, field_name, str(value).strip())
                changed.append(field_name)

        # A primary-source sighting confirms a derived location
        if candidate.source_kind is SourceKind.PRIMARY and location.source is LocationSource.DERIVED:
            location.source, location.confidence = self._location_provenance(candidate)
            changed.append("source")

        return changed

    def _location_provenance(self, candidate: CandidateRecord):
        if candidate.source_kind is SourceKind.PRIMARY:
            return LocationSource.PRIMARY_SOURCE, 100

        confidence = candidate.confidence if candidate.confidence is not None else self.derived_confidence
        return LocationSource.DERIVED, max(0, min(100, int(confidence)))

    @staticmethod
    def _provenance(candidate: CandidateRecord) -> Provenance:
        return Provenance(
            source_file=candidate.source_file,
            source_kind=candidate.source_kind,
            source_date=candidate.source_date,
        )
