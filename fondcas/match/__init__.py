"""
Matching modules for FondCAS.

Signal evaluators and the weighted scorer used by the entity resolver.
"""

from .scorer import MatchScorer, match_score
from .signals import MatchKeys, MatchSignal, SignalKind, build_match_keys

__all__ = [
    "MatchScorer",
    "match_score",
    "MatchKeys",
    "MatchSignal",
    "SignalKind",
    "build_match_keys",
]
