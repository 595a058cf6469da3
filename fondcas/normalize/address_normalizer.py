"""
Address normalization for FondCAS.

Standardizes street-type abbreviations and extracts a compact
``{street}-{number}-{sector}`` key used to compare provider addresses
across source files.
"""

import re
import logging
from typing import Dict, List, Optional

from .name_normalizer import fold_diacritics

logger = logging.getLogger(__name__)


class AddressNormalizer:
    """
    Normalizes provider street addresses into comparison keys.

    The key keeps only the first meaningful street word, the first street
    number (with an optional letter suffix, never a block, staircase or
    apartment number) and the sector digit. Two buildings on the same street
    without numbers therefore share a key, and "43" and "43B" do not.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize address normalizer with configuration.

        Args:
            config: The ``normalization.address`` configuration section
        """
        config = config or {}
        self.config = config
        self.fold_diacritics = config.get("fold_diacritics", True)
        self.street_types = {k.lower(): v.lower() for k, v in config.get("street_types", {
            "bulevardul": "bd", "b-dul": "bd", "bdul": "bd", "bd": "bd",
            "strada": "str", "str": "str", "calea": "cal", "cal": "cal",
            "soseaua": "sos", "sos": "sos", "prelungirea": "prel", "prel": "prel",
            "aleea": "al", "al": "al", "piata": "pta", "pta": "pta"
        }).items()}
        self.number_markers = {m.lower() for m in config.get("number_markers", ["numar", "numarul", "nr"])}
        self.sector_markers = {m.lower() for m in config.get("sector_markers", ["sectorul", "sector", "sect"])}
        self.building_markers = {m.lower() for m in config.get("building_markers", [
            "bloc", "bl", "scara", "sc", "ap", "et"])}
        self.filler_words = {w.lower() for w in config.get("filler_words", [
            "loc", "localitatea", "judet", "judetul", "bucuresti"])}

        self.canonical_street_types = set(self.street_types.values())
        self.stop_tokens = self.canonical_street_types | {"nr", "sect", "bl"}

        # Compile regex patterns
        markers = sorted(self.number_markers | self.sector_markers, key=len, reverse=True)
        self.glued_marker_pattern = re.compile(r"\b(" + "|".join(map(re.escape, markers)) + r")(\d)")
        self.separator_pattern = re.compile(r"[,;:'\"()/\\]")
        self.sector_pattern = re.compile(r"\bsect\s*(\d)")
        self.number_pattern = re.compile(r"\bnr\s*(\d+[a-z]?)\b")
        # Number ranges (291-293) keep their first number
        self.bare_number_pattern = re.compile(r"^(\d+[a-z]?)(?:-\d+[a-z]?)?$")

        logger.info("Initialized AddressNormalizer")

    def tokenize(self, address: str) -> List[str]:
        """
        Split an address into standardized tokens.

        Args:
            address: Raw street address

        Returns:
            Tokens with street types, number and sector markers canonicalized
            and filler words removed
        """
        text = address.lower()
        if self.fold_diacritics:
            text = fold_diacritics(text)

        text = self.separator_pattern.sub(" ", text)
        text = text.replace(".", ". ")
        text = self.glued_marker_pattern.sub(r"\1 \2", text)

        tokens = []
        for raw in text.split():
            token = raw.strip(".-")
            if not token:
                continue
            if token in self.street_types:
                tokens.append(self.street_types[token])
            elif token in self.number_markers:
                tokens.append("nr")
            elif token in self.sector_markers:
                tokens.append("sect")
            elif token in self.building_markers:
                tokens.append("bl")
            elif token in self.filler_words:
                continue
            else:
                tokens.append(token.replace(".", ""))

        return tokens

    def normalized_address(self, address: Optional[str]) -> Optional[str]:
        """
        Build the comparison key for a street address.

        Args:
            address: Raw street address

        Returns:
            ``{street}-{number}-{sector}`` key, or None when the address has no
            recognizable street-type token (e.g. a bare city name)
        """
        if not address or not isinstance(address, str):
            return None

        tokens = self.tokenize(address)
        if not any(token in self.canonical_street_types for token in tokens):
            return None

        joined = " ".join(tokens)

        sector_match = self.sector_pattern.search(joined)
        sector = sector_match.group(1) if sector_match else ""

        number_match = self.number_pattern.search(joined)
        if number_match:
            street_number = number_match.group(1)
        else:
            street_number = self._first_bare_number(tokens)

        street_name = ""
        for token in tokens:
            if len(token) > 2 and token not in self.stop_tokens and token[0].isalpha():
                street_name = token
                break

        if not street_name:
            return None

        return f"{street_name}-{street_number}-{sector}".rstrip("-")

    def _first_bare_number(self, tokens: List[str]) -> str:
        """First standalone street number, skipping sector, block, staircase and apartment numbers."""
        for i, token in enumerate(tokens):
            match = self.bare_number_pattern.match(token)
            if match and (i == 0 or tokens[i - 1] not in ("sect", "bl")):
                return match.group(1)
        return ""
