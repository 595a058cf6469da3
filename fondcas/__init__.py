"""
FondCAS - Provider Resolution and Fund Availability Engine

Reconciles healthcare provider records extracted from heterogeneous
reimbursement-fund spreadsheets into deduplicated organizations and
locations, and estimates the probability that a provider's monthly
fund allocation is still available.
"""

__version__ = "1.0.0"
__author__ = "FondCAS Team"
