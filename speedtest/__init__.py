"""
Core package for USDC Speedtest.
"""

from .runner import RunReport, run_test
from .stats import TestSummary, compute_stats
from .tester import TesterResult, TransferRecord, run_tester

__all__ = [
    "RunReport",
    "TestSummary",
    "TesterResult",
    "TransferRecord",
    "compute_stats",
    "run_test",
    "run_tester",
]
