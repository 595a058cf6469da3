"""
Contact normalization for FondCAS.

Extracts comparison keys from e-mail, phone and tax-id fields. Malformed
values yield None instead of raising so that matching proceeds on the
signals that remain.
"""

import re
import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class ContactNormalizer:
    """
    Normalizes e-mail, phone and fiscal identifiers.
    """

    def __init__(self, email_config: Optional[Dict] = None, phone_config: Optional[Dict] = None):
        """
        Initialize contact normalizer with configuration.

        Args:
            email_config: The ``normalization.email`` configuration section
            phone_config: The ``normalization.phone`` configuration section
        """
        email_config = email_config or {}
        phone_config = phone_config or {}

        self.generic_domains = {d.lower() for d in email_config.get("generic_domains", [])}
        self.country_code = str(phone_config.get("country_code", "40"))
        self.min_digits = int(phone_config.get("min_digits", 6))

        self.email_split_pattern = re.compile(r"[\s,;]+")
        self.domain_pattern = re.compile(r"@([a-z0-9.-]+)")
        self.non_digit_pattern = re.compile(r"\D")
        self.tax_id_pattern = re.compile(r"[^0-9A-Z]")

        logger.info("Initialized ContactNormalizer")

    def email_domains(self, email: Optional[str]) -> List[str]:
        """
        Extract all distinct e-mail domains from a possibly multi-address field.

        Args:
            email: Raw e-mail field

        Returns:
            Domains in order of appearance
        """
        if not email or not isinstance(email, str):
            return []

        domains = []
        for part in self.email_split_pattern.split(email.strip().lower()):
            match = self.domain_pattern.search(part)
            if match:
                domain = match.group(1).strip(".")
                if domain and domain not in domains:
                    domains.append(domain)
        return domains

    def business_email_domain(self, email: Optional[str]) -> Optional[str]:
        """
        Get the domain of the first address in the field, unless it is a free mail provider.

        Args:
            email: Raw e-mail field

        Returns:
            Organization-owned domain or None
        """
        domains = self.email_domains(email)
        if not domains:
            return None

        domain = domains[0]
        if domain in self.generic_domains:
            return None
        return domain

    def normalized_phone(self, phone: Optional[str]) -> Optional[str]:
        """
        Normalize phone number for comparison.

        Args:
            phone: Raw phone number

        Returns:
            National digits, or None when too short to match on
        """
        if phone is None:
            return None

        digits = self.non_digit_pattern.sub("", str(phone))
        if len(digits) < self.min_digits:
            return None

        international = "00" + self.country_code
        if digits.startswith(international):
            digits = digits[len(international):]
        elif digits.startswith(self.country_code) and len(digits) > 10:
            digits = digits[len(self.country_code):]

        if len(digits) < self.min_digits:
            return None
        return digits

    def normalized_tax_id(self, tax_id: Optional[str]) -> Optional[str]:
        """
        Normalize a fiscal identifier (CUI), dropping the 'RO' VAT prefix.

        Args:
            tax_id: Raw tax id

        Returns:
            Canonical tax id or None
        """
        if tax_id is None:
            return None
        if isinstance(tax_id, float):
            if tax_id != tax_id:
                return None
            tax_id = int(tax_id)

        value = self.tax_id_pattern.sub("", str(tax_id).upper())
        if value.startswith("RO"):
            value = value[2:]
        if not value:
            return None
        return value.lstrip("0") or None
