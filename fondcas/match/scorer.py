"""
Match scorer for FondCAS.

Sums the weights of the match signals that survive conflict suppression for
one index entry and one candidate record, and applies the acceptance
threshold.
"""

import logging
from typing import Dict, List, Optional, Union
import pandas as pd

from .signals import (
    SIGNAL_EVALUATORS, MatchKeys, MatchSignal, SignalContext, SignalEvaluator,
    SignalKind, build_match_keys
)
from ..config import resolve_config
from ..models import CandidateRecord, MatchScoreResult
from ..normalize.normalizer import Normalizer

logger = logging.getLogger(__name__)


class MatchScorer:
    """
    Weighted multi-signal scorer.

    A tax id match is definitive and short-circuits every other signal.
    Suppressed signals are kept in the result with ``applied=False`` so the
    reasons explain why a pair did not merge.
    """

    def __init__(self, config: Optional[Dict] = None, normalizer: Optional[Normalizer] = None,
                 evaluators: Optional[List[SignalEvaluator]] = None):
        """
        Initialize match scorer with configuration.

        Args:
            config: FondCAS configuration (defaults when omitted)
            normalizer: Normalizer used for raw candidates
            evaluators: Ordered signal evaluators (the standard set when omitted)
        """
        self.config = resolve_config(config)
        matching = self.config["matching"]

        self.weights = dict(matching["weights"])
        self.threshold = matching["threshold"]
        self.name_similarity_min = matching["name_similarity_min"]
        self.normalizer = normalizer or Normalizer(self.config)
        self.evaluators = list(evaluators or SIGNAL_EVALUATORS)

        logger.info(f"Initialized MatchScorer (threshold={self.threshold})")

    def candidate_keys(self, candidate: CandidateRecord) -> MatchKeys:
        """Precompute the match keys of a raw candidate."""
        return build_match_keys(
            self.normalizer,
            candidate.legal_name,
            tax_id=candidate.tax_id,
            email=candidate.email,
            phone=candidate.phone,
            address=candidate.address,
        )

    def score(self, entry_keys: MatchKeys,
              candidate: Union[CandidateRecord, MatchKeys]) -> MatchScoreResult:
        """
        Score a candidate against one index entry.

        Args:
            entry_keys: Precomputed keys of the index entry
            candidate: Raw candidate, or its precomputed keys

        Returns:
            MatchScoreResult with the total score, reasons and signals
        """
        if isinstance(candidate, CandidateRecord):
            candidate_keys = self.candidate_keys(candidate)
        else:
            candidate_keys = candidate

        context = SignalContext(entry_keys, candidate_keys, self.weights, self.name_similarity_min)

        signals: List[MatchSignal] = []
        for evaluator in self.evaluators:
            signal = evaluator(context)
            if signal is None:
                continue
            if signal.kind is SignalKind.TAX_ID and signal.applied:
                return MatchScoreResult(score=signal.weight, reasons=[signal.reason], signals=[signal])
            signals.append(signal)

        total = sum(signal.contribution for signal in signals)
        return MatchScoreResult(
            score=total,
            reasons=[signal.reason for signal in signals],
            signals=signals,
        )

    def is_match(self, result: MatchScoreResult) -> bool:
        return result.score >= self.threshold

    def get_scoring_statistics(self, results: List[MatchScoreResult]) -> Dict[str, any]:
        """
        Calculate scoring statistics over a batch of results.

        Args:
            results: Scored pairs

        Returns:
            Dictionary with score distribution and signal counts
        """
        if not results:
            return {}

        scores = pd.Series([r.score for r in results], dtype=float)
        signal_rows = [
            {"kind": s.kind.value, "applied": s.applied}
            for r in results for s in r.signals
        ]
        signals_df = pd.DataFrame(signal_rows, columns=["kind", "applied"])

        applied_mask = signals_df["applied"].astype(bool)
        applied_counts = signals_df.loc[applied_mask, "kind"].value_counts().to_dict()
        suppressed_counts = signals_df.loc[~applied_mask, "kind"].value_counts().to_dict()

        matches = int((scores >= self.threshold).sum())

        return {
            "total_pairs": len(results),
            "score_statistics": {
                "mean_score": float(scores.mean()),
                "median_score": float(scores.median()),
                "min_score": float(scores.min()),
                "max_score": float(scores.max())
            },
            "match_count": matches,
            "match_percentage": matches / len(results) * 100,
            "at_threshold_count": int((scores == self.threshold).sum()),
            "applied_signals": {k: int(v) for k, v in applied_counts.items()},
            "suppressed_signals": {k: int(v) for k, v in suppressed_counts.items()},
            "threshold": self.threshold
        }


def match_score(entry_keys: MatchKeys, candidate: Union[CandidateRecord, MatchKeys],
                config: Optional[Dict] = None) -> MatchScoreResult:
    """
    Score one pair with a scorer built from ``config``.

    Args:
        entry_keys: Precomputed keys of the index entry
        candidate: Raw candidate or its keys
        config: FondCAS configuration

    Returns:
        MatchScoreResult
    """
    return MatchScorer(config).score(entry_keys, candidate)
