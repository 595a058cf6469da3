"""
Audit modules for FondCAS.
"""

from .audit_logger import ResolutionAuditLogger

__all__ = ["ResolutionAuditLogger"]
