"""
Merge and resolution modules for FondCAS.
"""

from .brand_names import BrandNameResolver
from .index import EntityIndex, IndexEntry
from .merger import RecordMerger
from .resolver import EntityResolver, ResolutionDecision, ResolutionResult, resolve_entities

__all__ = [
    "BrandNameResolver",
    "EntityIndex",
    "IndexEntry",
    "RecordMerger",
    "EntityResolver",
    "ResolutionDecision",
    "ResolutionResult",
    "resolve_entities",
]
