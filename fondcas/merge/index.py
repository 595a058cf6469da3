"""
In-memory entity index for FondCAS resolution runs.

The index is an explicit value owned by the caller: a run copies the index it
is given, mutates the copy as candidates are accepted, and hands the updated
copy back to be persisted.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..match.signals import MatchKeys, build_match_keys
from ..models import Location, Organization
from ..normalize.normalizer import Normalizer

logger = logging.getLogger(__name__)


@dataclass
class IndexEntry:
    organization_id: str
    keys: MatchKeys


class EntityIndex:
    """
    Accepted organizations with their precomputed match keys and locations.

    Entries keep insertion order, which is the order ties are broken in.
    """

    def __init__(self):
        self.entries: List[IndexEntry] = []
        self.organizations: Dict[str, Organization] = {}
        self.locations: Dict[str, List[Location]] = {}
        self._positions: Dict[str, int] = {}

    @classmethod
    def from_organizations(cls, organizations: Iterable[Organization],
                           locations: Iterable[Location] = (),
                           normalizer: Optional[Normalizer] = None) -> "EntityIndex":
        """
        Build an index from stored organizations and locations.

        Args:
            organizations: Stored organizations, in load order
            locations: Stored locations of those organizations
            normalizer: Normalizer used to seed the match keys

        Returns:
            Populated EntityIndex
        """
        normalizer = normalizer or Normalizer()
        index = cls()

        for organization in organizations:
            index.add(organization, keys_for_organization(normalizer, organization))

        orphans = 0
        for location in locations:
            if location.organization_id in index.organizations:
                index.add_location(location)
            else:
                orphans += 1

        if orphans:
            logger.warning(f"Ignored {orphans} locations without a known organization")

        logger.info(f"Built entity index with {len(index)} organizations")
        return index

    def __len__(self) -> int:
        return len(self.entries)

    def copy(self) -> "EntityIndex":
        return copy.deepcopy(self)

    def add(self, organization: Organization, keys: MatchKeys):
        """Register a new organization so later candidates can match it."""
        self._positions[organization.id] = len(self.entries)
        self.entries.append(IndexEntry(organization_id=organization.id, keys=keys))
        self.organizations[organization.id] = organization
        self.locations.setdefault(organization.id, [])

    def entry_for(self, organization_id: str) -> Optional[IndexEntry]:
        position = self._positions.get(organization_id)
        if position is None:
            return None
        return self.entries[position]

    def update_keys(self, organization_id: str, keys: MatchKeys):
        entry = self.entry_for(organization_id)
        if entry is not None:
            entry.keys = keys

    def add_location(self, location: Location):
        self.locations.setdefault(location.organization_id, []).append(location)

    def locations_for(self, organization_id: str) -> List[Location]:
        return self.locations.get(organization_id, [])

    def find_location(self, organization_id: str, address_key: Optional[str]) -> Optional[Location]:
        """Location of an organization with the given address key, if any."""
        if not address_key:
            return None
        for location in self.locations_for(organization_id):
            if location.address_key == address_key:
                return location
        return None

    def all_locations(self) -> List[Location]:
        return [location for org_locations in self.locations.values() for location in org_locations]


def keys_for_organization(normalizer: Normalizer, organization: Organization) -> MatchKeys:
    return build_match_keys(
        normalizer,
        organization.legal_name,
        tax_id=organization.tax_id,
        email=organization.email,
        phone=organization.phone,
        address=organization.address,
    )
