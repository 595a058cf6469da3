"""
Storage modules for FondCAS.
"""

from .fund_store import FundStore, RunLockError

__all__ = ["FundStore", "RunLockError"]
