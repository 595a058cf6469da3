"""
Pipeline orchestration for FondCAS.
"""

from .run_fondcas import FondCASPipeline, main

__all__ = ["FondCASPipeline", "main"]
