"""
Adaptive crawl: subdivision policy and the cycle scheduler.
"""

from .policy import Action, Decision, decide
from .scheduler import CrawlScheduler, CycleStats

__all__ = [
    "Action",
    "Decision",
    "decide",
    "CrawlScheduler",
    "CycleStats",
]
