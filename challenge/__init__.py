"""Upload challenge schedule and progress engine."""

from .schedule import ChallengeConfig, ScheduleSlot, build_calendar, clamp_config, summarize_plan
from .progress import ProgressRecord, ProgressStore
from .metrics import Metrics, compute_metrics
from .lifecycle import Challenge, PlanLifecycle, PlanState, PersistResult, VideoType

__all__ = [
    "Challenge",
    "ChallengeConfig",
    "Metrics",
    "PersistResult",
    "PlanLifecycle",
    "PlanState",
    "ProgressRecord",
    "ProgressStore",
    "ScheduleSlot",
    "VideoType",
    "build_calendar",
    "clamp_config",
    "compute_metrics",
    "summarize_plan",
]
