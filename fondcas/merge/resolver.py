"""
Entity resolver for FondCAS.

Reconciles candidate provider records against an index of accepted
organizations, deciding per candidate whether to merge into the best
matching organization or create a new one. The index is updated after every
decision so later candidates in the same run can match earlier ones.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .brand_names import BrandNameResolver
from .index import EntityIndex, keys_for_organization
from .merger import RecordMerger
from ..config import resolve_config
from ..match.scorer import MatchScorer
from ..match.signals import MatchKeys
from ..models import CandidateRecord, Location, MatchScoreResult, Organization
from ..normalize.normalizer import Normalizer

logger = logging.getLogger(__name__)

ACTION_CREATE = "create"
ACTION_MERGE = "merge"


@dataclass
class ResolutionDecision:
    """Trace of one create-or-merge decision."""

    candidate_position: int
    candidate_name: str
    source_file: str
    action: str
    organization_id: str
    score: int
    reasons: List[str] = field(default_factory=list)
    location_id: Optional[str] = None
    ambiguous: bool = False
    tied_organization_ids: List[str] = field(default_factory=list)
    changed_fields: List[str] = field(default_factory=list)


@dataclass
class ResolutionResult:
    organizations: List[Organization]
    locations: List[Location]
    index: EntityIndex
    decisions: List[ResolutionDecision]

    def get_statistics(self) -> Dict[str, int]:
        created = sum(1 for d in self.decisions if d.action == ACTION_CREATE)
        return {
            "candidates": len(self.decisions),
            "created": created,
            "merged": len(self.decisions) - created,
            "ambiguous": sum(1 for d in self.decisions if d.ambiguous),
            "organizations": len(self.organizations),
            "locations": len(self.locations),
        }


class EntityResolver:
    """
    Sequential create-or-merge resolution over a caller-owned index.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize entity resolver with configuration.

        Args:
            config: FondCAS configuration (defaults when omitted)
        """
        self.config = resolve_config(config)
        self.normalizer = Normalizer(self.config)
        self.scorer = MatchScorer(self.config, normalizer=self.normalizer)
        self.brands = BrandNameResolver(self.config["merge"].get("brand_names"), self.normalizer)
        self.merge_config = self.config["merge"]

        logger.info("Initialized EntityResolver")

    def resolve(self, candidates: List[CandidateRecord],
                existing_index: Optional[EntityIndex] = None) -> ResolutionResult:
        """
        Resolve candidate records into organizations and locations.

        Args:
            candidates: Candidate records in input order
            existing_index: Index loaded from storage (not modified)

        Returns:
            ResolutionResult with the organizations and locations touched by
            this run, the updated index and the decision trace
        """
        index = existing_index.copy() if existing_index is not None else EntityIndex()

        merger = RecordMerger(self.merge_config)
        merger.seed_sequences(list(index.organizations) +
                              [location.id for location in index.all_locations()])

        touched_orgs: Dict[str, Organization] = {}
        touched_locations: Dict[str, Location] = {}
        decisions: List[ResolutionDecision] = []

        logger.info(f"Resolving {len(candidates)} candidates against {len(index)} indexed organizations")

        for position, candidate in enumerate(candidates):
            candidate_keys = self.scorer.candidate_keys(candidate)
            best_id, best_result, tied_ids = self._find_best_match(index, candidate_keys)
            brand_name = self.brands.resolve(candidate)

            if best_id is not None:
                organization = index.organizations[best_id]
                changed = merger.merge_organization(organization, candidate, brand_name)
                index.update_keys(organization.id,
                                  self._refreshed_keys(index.entry_for(organization.id).keys,
                                                       candidate, candidate_keys, organization))
                action = ACTION_MERGE
                score, reasons = best_result.score, best_result.reasons
            else:
                organization = merger.create_organization(candidate, brand_name)
                index.add(organization, keys_for_organization(self.normalizer, organization))
                changed = []
                action = ACTION_CREATE
                score = best_result.score if best_result else 0
                reasons = best_result.reasons if best_result else []

            location = self._place_location(index, merger, organization, candidate, candidate_keys)

            touched_orgs[organization.id] = organization
            if location is not None:
                touched_locations[location.id] = location

            decision = ResolutionDecision(
                candidate_position=position,
                candidate_name=candidate.legal_name,
                source_file=candidate.source_file,
                action=action,
                organization_id=organization.id,
                score=score,
                reasons=list(reasons),
                location_id=location.id if location else None,
                ambiguous=action == ACTION_MERGE and (score == self.scorer.threshold or len(tied_ids) > 1),
                tied_organization_ids=tied_ids if len(tied_ids) > 1 else [],
                changed_fields=changed,
            )
            decisions.append(decision)
            self._log_decision(decision)

        result = ResolutionResult(
            organizations=list(touched_orgs.values()),
            locations=list(touched_locations.values()),
            index=index,
            decisions=decisions,
        )

        stats = result.get_statistics()
        logger.info(f"Resolution completed: {stats['created']} created, {stats['merged']} merged, "
                    f"{stats['ambiguous']} ambiguous")
        return result

    def _find_best_match(self, index: EntityIndex, candidate_keys: MatchKeys):
        """
        Score a candidate against every index entry.

        Returns:
            (organization id or None, best result seen, ids tied at the best
            accepted score)
        """
        best_id = None
        best_accepted: Optional[MatchScoreResult] = None
        best_seen: Optional[MatchScoreResult] = None
        tied_ids: List[str] = []

        for entry in index.entries:
            result = self.scorer.score(entry.keys, candidate_keys)

            if best_seen is None or result.score > best_seen.score:
                best_seen = result

            if not self.scorer.is_match(result):
                continue

            # First-encountered entry wins ties
            if best_accepted is None or result.score > best_accepted.score:
                best_id = entry.organization_id
                best_accepted = result
                tied_ids = [entry.organization_id]
            elif result.score == best_accepted.score:
                tied_ids.append(entry.organization_id)

        if best_accepted is not None:
            return best_id, best_accepted, tied_ids
        return None, best_seen, []

    def _refreshed_keys(self, previous: MatchKeys, candidate: CandidateRecord,
                        candidate_keys: MatchKeys, organization: Organization) -> MatchKeys:
        """Index keys after a merge: the latest candidate's contact keys where it has them."""
        return dataclasses.replace(
            previous,
            name=organization.legal_name,
            name_key=self.normalizer.normalize_name(organization.legal_name),
            tax_id=candidate_keys.tax_id or previous.tax_id,
            email_domain=candidate_keys.email_domain if candidate.email else previous.email_domain,
            phone_key=candidate_keys.phone_key if candidate.phone else previous.phone_key,
            address_key=candidate_keys.address_key if candidate.address else previous.address_key,
        )

    def _place_location(self, index: EntityIndex, merger: RecordMerger, organization: Organization,
                        candidate: CandidateRecord, candidate_keys: MatchKeys) -> Optional[Location]:
        """
        Attach the candidate's address to the organization.

        Equal address keys within one organization are the same physical
        location. A candidate without a usable address key only creates a
        location for an organization that has none yet.
        """
        address_key = candidate_keys.address_key
        existing = index.find_location(organization.id, address_key)
        if existing is not None:
            merger.merge_location(existing, candidate)
            return existing

        org_locations = index.locations_for(organization.id)
        if not address_key and org_locations:
            return None

        location = merger.create_location(organization, candidate, address_key,
                                          is_primary=not org_locations)
        index.add_location(location)
        return location

    def _log_decision(self, decision: ResolutionDecision):
        reasons = ", ".join(decision.reasons) if decision.reasons else "no signals"
        if decision.action == ACTION_MERGE:
            message = (f"Matched \"{decision.candidate_name}\" -> {decision.organization_id} "
                       f"(score: {decision.score}) - {reasons}")
            if decision.ambiguous:
                logger.warning(f"Ambiguous match: {message}; tied with {decision.tied_organization_ids}")
            else:
                logger.info(message)
        else:
            logger.info(f"Created {decision.organization_id} for \"{decision.candidate_name}\" "
                        f"(best score: {decision.score}) - {reasons}")


def resolve_entities(candidates: List[CandidateRecord], existing_index: Optional[EntityIndex] = None,
                     config: Optional[Dict] = None) -> ResolutionResult:
    """
    Convenience function to resolve candidates.

    Args:
        candidates: Candidate records
        existing_index: Index loaded from storage
        config: FondCAS configuration

    Returns:
        ResolutionResult
    """
    resolver = EntityResolver(config)
    return resolver.resolve(candidates, existing_index)
