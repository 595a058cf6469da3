"""
Name normalization for FondCAS.

Turns raw legal names into comparison keys by lower-casing, stripping
punctuation and removing legal-entity markers from the ends of the name,
and scores name similarity with edit distance.
"""

import re
import logging
import unicodedata
from typing import Dict, List, Optional
import Levenshtein

logger = logging.getLogger(__name__)


def fold_diacritics(text: str) -> str:
    """Strip combining marks so that e.g. 'ș', 'ş' and 's' compare equal."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


class NameNormalizer:
    """
    Normalizes provider legal names for entity resolution.

    Legal-entity tokens (company-form prefixes and suffixes) are removed from
    either end of the name only; the same letters inside a brand name are
    left untouched.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize name normalizer with configuration.

        Args:
            config: The ``normalization.name`` configuration section
        """
        config = config or {}
        self.config = config
        self.legal_prefixes = {p.lower() for p in config.get("legal_prefixes", ["sc", "cmi", "smi"])}
        self.legal_suffixes = {s.lower() for s in config.get(
            "legal_suffixes", ["srl", "srld", "sa", "pfa", "ii", "if", "snc", "scs", "sca", "scm"])}
        self.fold_diacritics = config.get("fold_diacritics", True)

        # Dotted initialisms collapse (s.r.l. -> srl); other dots separate words
        self.initialism_pattern = re.compile(r"(?:\b[a-z]\.){2,}")
        self.quote_pattern = re.compile(r"['\"`’]")
        self.punctuation_pattern = re.compile(r"[^\w\s]")
        self.whitespace_pattern = re.compile(r"\s+")

        logger.info("Initialized NameNormalizer")

    def normalize_name(self, name: Optional[str]) -> str:
        """
        Normalize a single legal name into its comparison key.

        Args:
            name: Raw legal name

        Returns:
            Normalized name key ("" for missing input)
        """
        if not name or not isinstance(name, str):
            return ""

        name = name.lower()
        if self.fold_diacritics:
            name = fold_diacritics(name)

        name = self.initialism_pattern.sub(lambda m: m.group(0).replace(".", "") + " ", name)
        name = self.quote_pattern.sub("", name)
        name = self.punctuation_pattern.sub(" ", name)
        name = name.replace("_", " ")

        tokens = self.whitespace_pattern.sub(" ", name).strip().split(" ")
        tokens = self._strip_legal_tokens([t for t in tokens if t])

        return " ".join(tokens)

    def _strip_legal_tokens(self, tokens: List[str]) -> List[str]:
        """Remove legal-entity tokens from the start and end, keeping at least one token."""
        start, end = 0, len(tokens)

        while end - start > 1 and tokens[start] in self.legal_prefixes:
            start += 1
        while end - start > 1 and tokens[end - 1] in self.legal_suffixes:
            end -= 1

        return tokens[start:end]

    def name_similarity(self, name1: Optional[str], name2: Optional[str]) -> int:
        """
        Calculate name similarity on a 0-100 scale.

        Equal keys score 100; when one key contains the other the score is the
        length ratio; otherwise it is the normalized Levenshtein similarity.

        Args:
            name1: First raw name
            name2: Second raw name

        Returns:
            Similarity percentage
        """
        n1 = self.normalize_name(name1)
        n2 = self.normalize_name(name2)
        return self.key_similarity(n1, n2)

    @staticmethod
    def key_similarity(n1: str, n2: str) -> int:
        """Similarity of two already-normalized keys."""
        if n1 == n2:
            return 100

        if n1 in n2 or n2 in n1:
            shorter, longer = sorted((n1, n2), key=len)
            return int(len(shorter) / len(longer) * 100 + 0.5)

        max_len = max(len(n1), len(n2))
        distance = Levenshtein.distance(n1, n2)
        return int((1 - distance / max_len) * 100 + 0.5)
