"""
Match signals for FondCAS.

Each signal evaluator is a pure function over a pair of precomputed match
keys. It returns a MatchSignal carrying its weight, whether it counts toward
the score, and a human-readable reason, or None when the signal does not
apply to the pair. Conflict-suppression rules live in the evaluator of the
signal they suppress.
"""

from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Callable, Dict, List, Optional

from ..normalize.name_normalizer import NameNormalizer
from ..normalize.normalizer import Normalizer


class SignalKind(str, Enum):
    TAX_ID = "tax_id"
    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"
    NAME_EXACT = "name_exact"
    NAME_SIMILAR = "name_similar"


@dataclass(frozen=True)
class MatchSignal:
    kind: SignalKind
    weight: int
    applied: bool
    reason: str

    @property
    def contribution(self) -> int:
        return self.weight if self.applied else 0


@dataclass(frozen=True)
class MatchKeys:
    """Normalized comparison keys of one side of a pair."""

    name: str
    name_key: str
    tax_id: Optional[str] = None
    email_domain: Optional[str] = None
    phone_key: Optional[str] = None
    address_key: Optional[str] = None


def build_match_keys(normalizer: Normalizer, name: Optional[str], tax_id: Optional[str] = None,
                     email: Optional[str] = None, phone: Optional[str] = None,
                     address: Optional[str] = None) -> MatchKeys:
    """
    Precompute the comparison keys for a set of raw fields.

    Args:
        normalizer: Normalizer to apply
        name: Raw legal name
        tax_id: Raw tax id
        email: Raw e-mail field
        phone: Raw phone number
        address: Raw street address

    Returns:
        MatchKeys for the record
    """
    return MatchKeys(
        name=name or "",
        name_key=normalizer.normalize_name(name),
        tax_id=normalizer.normalized_tax_id(tax_id),
        email_domain=normalizer.business_email_domain(email),
        phone_key=normalizer.normalized_phone(phone),
        address_key=normalizer.normalized_address(address),
    )


class SignalContext:
    """Pairwise facts shared by the evaluators."""

    def __init__(self, entry: MatchKeys, candidate: MatchKeys,
                 weights: Dict[str, int], name_similarity_min: int):
        self.entry = entry
        self.candidate = candidate
        self.weights = weights
        self.name_similarity_min = name_similarity_min

    @staticmethod
    def _both(a, b) -> bool:
        return bool(a) and bool(b)

    @cached_property
    def both_have_emails(self) -> bool:
        return self._both(self.entry.email_domain, self.candidate.email_domain)

    @cached_property
    def both_have_addresses(self) -> bool:
        return self._both(self.entry.address_key, self.candidate.address_key)

    @cached_property
    def emails_match(self) -> bool:
        return self.both_have_emails and self.entry.email_domain == self.candidate.email_domain

    @cached_property
    def phones_match(self) -> bool:
        return (self._both(self.entry.phone_key, self.candidate.phone_key)
                and self.entry.phone_key == self.candidate.phone_key)

    @cached_property
    def addresses_match(self) -> bool:
        return self.both_have_addresses and self.entry.address_key == self.candidate.address_key

    @cached_property
    def names_match_exact(self) -> bool:
        return bool(self.entry.name_key) and self.entry.name_key == self.candidate.name_key

    @cached_property
    def name_similarity(self) -> int:
        if not self.entry.name_key or not self.candidate.name_key:
            return 0
        return NameNormalizer.key_similarity(self.entry.name_key, self.candidate.name_key)


def evaluate_tax_id(ctx: SignalContext) -> Optional[MatchSignal]:
    entry, candidate = ctx.entry, ctx.candidate
    if entry.tax_id and candidate.tax_id and entry.tax_id == candidate.tax_id:
        return MatchSignal(SignalKind.TAX_ID, ctx.weights["tax_id"], True, "tax id match")
    return None


def evaluate_business_email(ctx: SignalContext) -> Optional[MatchSignal]:
    if not ctx.emails_match:
        return None

    weight = ctx.weights["business_email"]
    # One mailbox domain can serve several branch addresses
    if ctx.both_have_addresses and not ctx.addresses_match:
        return MatchSignal(SignalKind.EMAIL, weight, False, "email match ignored (different addresses)")
    return MatchSignal(SignalKind.EMAIL, weight, True, f"email domain: {ctx.candidate.email_domain}")


def evaluate_phone(ctx: SignalContext) -> Optional[MatchSignal]:
    if not ctx.phones_match:
        return None
    return MatchSignal(SignalKind.PHONE, ctx.weights["phone"], True, f"phone: {ctx.candidate.phone_key}")


def evaluate_address(ctx: SignalContext) -> Optional[MatchSignal]:
    if not ctx.addresses_match:
        return None
    return MatchSignal(SignalKind.ADDRESS, ctx.weights["address"], True, f"address: {ctx.candidate.address_key}")


def evaluate_exact_name(ctx: SignalContext) -> Optional[MatchSignal]:
    if not ctx.names_match_exact:
        return None

    weight = ctx.weights["name_exact"]
    # Same display name at another domain or address is a separate branch
    if ctx.both_have_emails and not ctx.emails_match:
        return MatchSignal(SignalKind.NAME_EXACT, weight, False, "name match ignored (different emails)")
    if (ctx.both_have_addresses and not ctx.addresses_match
            and not ctx.emails_match and not ctx.phones_match):
        return MatchSignal(SignalKind.NAME_EXACT, weight, False,
                           "name match ignored (different address, no other matches)")
    return MatchSignal(SignalKind.NAME_EXACT, weight, True, "exact name")


def evaluate_similar_name(ctx: SignalContext) -> Optional[MatchSignal]:
    if ctx.names_match_exact:
        return None

    similarity = ctx.name_similarity
    if similarity >= ctx.name_similarity_min:
        return MatchSignal(SignalKind.NAME_SIMILAR, ctx.weights["name_similar"], True,
                           f"name {similarity}% similar")
    return None


SignalEvaluator = Callable[[SignalContext], Optional[MatchSignal]]

SIGNAL_EVALUATORS: List[SignalEvaluator] = [
    evaluate_tax_id,
    evaluate_business_email,
    evaluate_phone,
    evaluate_address,
    evaluate_exact_name,
    evaluate_similar_name,
]
