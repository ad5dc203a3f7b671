"""Pipeline orchestration."""

from .interfaces import CycleStatus, PollCycleResult
from .scheduler import FeedScheduler
from .coordinator import PipelineCoordinator

__all__ = ["CycleStatus", "PollCycleResult", "FeedScheduler", "PipelineCoordinator"]
