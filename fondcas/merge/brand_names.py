"""
Brand-name resolution for FondCAS organizations.

Maps a candidate to the public network name it trades under, using the
configured e-mail-domain, address-key and legal-name tables.
"""

import logging
from typing import Dict, Optional

from ..models import CandidateRecord
from ..normalize.normalizer import Normalizer

logger = logging.getLogger(__name__)


class BrandNameResolver:
    """
    Looks up brand names from configured mappings.

    E-mail domains are checked first, then address-key fragments (for
    networks registered under several legal entities), then normalized legal
    names. A brand proposed by the enrichment step is used only when no
    mapping applies.
    """

    def __init__(self, config: Optional[Dict] = None, normalizer: Optional[Normalizer] = None):
        """
        Initialize brand-name resolver.

        Args:
            config: The ``merge.brand_names`` configuration section
            normalizer: Normalizer for names, e-mails and addresses
        """
        config = config or {}
        self.normalizer = normalizer or Normalizer()

        self.email_domains = {k.lower(): v for k, v in (config.get("email_domains") or {}).items()}
        self.address_keys = dict(config.get("address_keys") or {})
        self.legal_names = {
            self.normalizer.normalize_name(k): v for k, v in (config.get("legal_names") or {}).items()
        }

        logger.info(f"Initialized BrandNameResolver with {len(self.email_domains)} domain, "
                    f"{len(self.address_keys)} address and {len(self.legal_names)} name mappings")

    def resolve(self, candidate: CandidateRecord) -> Optional[str]:
        """
        Get the brand name for a candidate.

        Args:
            candidate: Candidate record

        Returns:
            Brand name or None
        """
        for domain in self.normalizer.contacts.email_domains(candidate.email):
            if domain in self.email_domains:
                return self.email_domains[domain]

        address_key = self.normalizer.normalized_address(candidate.address)
        if address_key:
            for fragment, brand in self.address_keys.items():
                if fragment in address_key:
                    return brand

        name_key = self.normalizer.normalize_name(candidate.legal_name)
        if name_key in self.legal_names:
            return self.legal_names[name_key]

        if candidate.network_brand and str(candidate.network_brand).strip():
            return str(candidate.network_brand).strip()
        return None
