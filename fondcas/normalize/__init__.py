"""
Data normalization modules for FondCAS.

Turns raw legal names, e-mail fields, phone numbers and street addresses
into canonical comparison keys. All functions are pure and never raise on
malformed input.
"""

from .normalizer import (
    Normalizer,
    business_email_domain,
    name_similarity,
    normalize_name,
    normalized_address,
    normalized_phone,
)

__all__ = [
    "Normalizer",
    "business_email_domain",
    "name_similarity",
    "normalize_name",
    "normalized_address",
    "normalized_phone",
]
