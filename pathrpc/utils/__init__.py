"""
Utility modules for pathrpc.
"""

from .timers import Timer, TimingResult, time_operation

__all__ = [
    "Timer",
    "TimingResult",
    "time_operation",
]
