"""
Normalizer facade for FondCAS.

Bundles the name, contact and address normalizers behind one object built
from the ``normalization`` configuration section, plus DataFrame helpers
used for data-quality reporting.
"""

import logging
from typing import Dict, Optional
import pandas as pd

from .address_normalizer import AddressNormalizer
from .contact_normalizer import ContactNormalizer
from .name_normalizer import NameNormalizer
from ..config import resolve_config

logger = logging.getLogger(__name__)


class Normalizer:
    """
    Pure, deterministic normalization of raw provider fields.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize normalizer from a full FondCAS configuration.

        Args:
            config: FondCAS configuration (defaults when omitted)
        """
        norm_config = resolve_config(config).get("normalization", {})
        self.names = NameNormalizer(norm_config.get("name", {}))
        self.contacts = ContactNormalizer(norm_config.get("email", {}), norm_config.get("phone", {}))
        self.addresses = AddressNormalizer(norm_config.get("address", {}))

    def normalize_name(self, raw: Optional[str]) -> str:
        return self.names.normalize_name(raw)

    def business_email_domain(self, raw: Optional[str]) -> Optional[str]:
        return self.contacts.business_email_domain(raw)

    def normalized_phone(self, raw: Optional[str]) -> Optional[str]:
        return self.contacts.normalized_phone(raw)

    def normalized_tax_id(self, raw: Optional[str]) -> Optional[str]:
        return self.contacts.normalized_tax_id(raw)

    def normalized_address(self, raw: Optional[str]) -> Optional[str]:
        return self.addresses.normalized_address(raw)

    def name_similarity(self, a: Optional[str], b: Optional[str]) -> int:
        return self.names.name_similarity(a, b)

    def normalize_dataframe(self, df: pd.DataFrame,
                            name_column: str = "legal_name",
                            email_column: str = "email",
                            phone_column: str = "phone",
                            address_column: str = "address") -> pd.DataFrame:
        """
        Add normalized key columns to a DataFrame of candidate rows.

        Args:
            df: Input DataFrame
            name_column: Column with legal names
            email_column: Column with e-mail fields
            phone_column: Column with phone numbers
            address_column: Column with street addresses

        Returns:
            DataFrame with ``*_key`` columns added
        """
        result_df = df.copy()

        if name_column in df.columns:
            result_df["name_key"] = df[name_column].apply(self.normalize_name)
        if email_column in df.columns:
            result_df["email_domain_key"] = df[email_column].apply(self.business_email_domain)
        if phone_column in df.columns:
            result_df["phone_key"] = df[phone_column].apply(self.normalized_phone)
        if address_column in df.columns:
            result_df["address_key"] = df[address_column].apply(self.normalized_address)

        logger.info(f"Normalized keys for {len(result_df)} records")
        return result_df

    def key_coverage(self, df: pd.DataFrame) -> Dict[str, float]:
        """
        Share of rows carrying each usable key (after ``normalize_dataframe``).

        Args:
            df: DataFrame with key columns

        Returns:
            Mapping of key column to coverage fraction
        """
        if df.empty:
            return {}

        coverage = {}
        for column in ["name_key", "email_domain_key", "phone_key", "address_key"]:
            if column in df.columns:
                present = df[column].apply(lambda v: isinstance(v, str) and v != "").sum()
                coverage[column] = float(present) / len(df)
        return coverage


_default_normalizer = None


def get_default_normalizer() -> Normalizer:
    """Shared normalizer built from the default configuration."""
    global _default_normalizer
    if _default_normalizer is None:
        _default_normalizer = Normalizer()
    return _default_normalizer


def normalize_name(raw: Optional[str]) -> str:
    return get_default_normalizer().normalize_name(raw)


def business_email_domain(raw: Optional[str]) -> Optional[str]:
    return get_default_normalizer().business_email_domain(raw)


def normalized_phone(raw: Optional[str]) -> Optional[str]:
    return get_default_normalizer().normalized_phone(raw)


def normalized_address(raw: Optional[str]) -> Optional[str]:
    return get_default_normalizer().normalized_address(raw)


def name_similarity(a: Optional[str], b: Optional[str]) -> int:
    return get_default_normalizer().name_similarity(a, b)
