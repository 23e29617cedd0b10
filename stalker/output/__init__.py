"""
Stalker Output Module
======================

Rich console display and JSON report generation for StalkerKit results.
"""

from stalker.output.console import StalkerConsoleOutput
from stalker.output.report import StalkerReportGenerator

__all__ = [
    "StalkerConsoleOutput",
    "StalkerReportGenerator",
]
