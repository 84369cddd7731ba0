"""Upload calendar construction.

A challenge runs for ``duration_months`` months of exactly 30 days each. The
first upload day is always day 1 and every following upload day sits
``cadence_every_days`` later, as long as it still falls inside the challenge.
Each upload day holds ``videos_per_cadence`` slots.

The 30-day month is a fixed rule of the product, so a six month challenge
is always 180 days long no matter which calendar months it spans.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from . import config


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like a dashboard would: 0.5 always goes up, never to even."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def _clamp(value: Any, low: int, high: int) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        number = low
    if number < low:
        return low
    if number > high:
        return high
    return number


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Timestamps without an offset are taken to be UTC."""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


@dataclass(frozen=True)
class ChallengeConfig:
    duration_months: int = config.DEFAULT_DURATION_MONTHS
    cadence_every_days: int = config.DEFAULT_CADENCE_DAYS
    videos_per_cadence: int = config.DEFAULT_VIDEOS_PER_CADENCE
    created_at: Optional[datetime] = field(default=None, compare=False)

    @property
    def total_days(self) -> int:
        return self.duration_months * config.DAYS_PER_MONTH

    def to_dict(self) -> Dict[str, Any]:
        return {
            "durationMonths": self.duration_months,
            "cadenceEveryDays": self.cadence_every_days,
            "videosPerCadence": self.videos_per_cadence,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], max_months: int = config.CUSTOM_MAX_MONTHS) -> "ChallengeConfig":
        """Build a clamped config from a stored record; camelCase and snake_case keys both work."""
        def pick(camel, snake):
            value = data.get(camel)
            return data.get(snake) if value is None else value

        return clamp_config(
            pick("durationMonths", "duration_months"),
            pick("cadenceEveryDays", "cadence_every_days"),
            pick("videosPerCadence", "videos_per_cadence"),
            max_months=max_months,
            created_at=parse_timestamp(pick("createdAt", "created_at")),
        )


@dataclass(frozen=True)
class ScheduleSlot:
    video_number: int
    upload_day: int
    upload_index_in_day: int
    date: Optional[datetime] = None

    @property
    def index(self) -> int:
        """0-based position in the calendar; progress records are keyed by it."""
        return self.video_number - 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "videoNumber": self.video_number,
            "uploadDay": self.upload_day,
            "uploadIndexInDay": self.upload_index_in_day,
            "date": self.date.isoformat() if self.date else None,
        }


@dataclass(frozen=True)
class PlanSummary:
    duration_months: int
    cadence_every_days: int
    videos_per_cadence: int
    total_days: int
    upload_days_count: int
    total_videos: int
    per_month: float
    per_week: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "durationMonths": self.duration_months,
            "cadenceEveryDays": self.cadence_every_days,
            "videosPerCadence": self.videos_per_cadence,
            "totalDays": self.total_days,
            "uploadDaysCount": self.upload_days_count,
            "totalVideos": self.total_videos,
            "perMonth": self.per_month,
            "perWeek": self.per_week,
        }


def clamp_config(duration_months, cadence_every_days, videos_per_cadence,
                 max_months: int = config.CUSTOM_MAX_MONTHS,
                 created_at: Optional[datetime] = None) -> ChallengeConfig:
    """Clamp raw user input into a usable config. Never raises.

    Anything that is not a number counts as the lower bound (1).
    """
    return ChallengeConfig(
        duration_months=_clamp(duration_months, 1, max_months),
        cadence_every_days=_clamp(cadence_every_days, 1, config.MAX_CADENCE_DAYS),
        videos_per_cadence=_clamp(videos_per_cadence, 1, config.MAX_VIDEOS_PER_CADENCE),
        created_at=created_at,
    )


def upload_days_count(total_days: int, cadence_every_days: int) -> int:
    return (max(1, total_days) - 1) // max(1, cadence_every_days) + 1


def build_calendar(start_date, duration_months, cadence_every_days, videos_per_cadence,
                   max_months: int = config.CUSTOM_MAX_MONTHS) -> List[ScheduleSlot]:
    """Return every scheduled upload slot, ordered by (upload_day, upload_index_in_day).

    ``start_date`` may be None while the challenge is still being planned; the
    slots then carry no date.
    """
    plan = clamp_config(duration_months, cadence_every_days, videos_per_cadence, max_months=max_months)
    total_days = plan.total_days

    slots = []
    video_number = 1
    for day in range(1, total_days + 1, plan.cadence_every_days):
        slot_date = start_date + timedelta(days=day - 1) if start_date is not None else None
        for position in range(1, plan.videos_per_cadence + 1):
            slots.append(ScheduleSlot(
                video_number=video_number,
                upload_day=day,
                upload_index_in_day=position,
                date=slot_date,
            ))
            video_number += 1
    return slots


def calendar_for(plan: ChallengeConfig, start_date=None) -> List[ScheduleSlot]:
    return build_calendar(start_date, plan.duration_months, plan.cadence_every_days,
                          plan.videos_per_cadence)


def summarize_plan(plan: ChallengeConfig) -> PlanSummary:
    """Totals shown next to the setup form (videos overall, per month, per week)."""
    plan = clamp_config(plan.duration_months, plan.cadence_every_days, plan.videos_per_cadence)
    total_days = plan.total_days
    days_count = upload_days_count(total_days, plan.cadence_every_days)
    total_videos = days_count * plan.videos_per_cadence
    return PlanSummary(
        duration_months=plan.duration_months,
        cadence_every_days=plan.cadence_every_days,
        videos_per_cadence=plan.videos_per_cadence,
        total_days=total_days,
        upload_days_count=days_count,
        total_videos=total_videos,
        per_month=round_half_up(total_videos / plan.duration_months, 1),
        per_week=round_half_up(total_videos / total_days * 7, 1),
    )


def preview_count(plan: ChallengeConfig, limit: int = config.PREVIEW_LIMIT) -> int:
    """How many upcoming slots the setup preview lists."""
    spaced = max(1, plan.total_days // max(1, plan.cadence_every_days))
    return min(limit, spaced)
