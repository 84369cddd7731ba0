"""Live challenge metrics.

Two different notions of "done" live side by side here:

* date-based: a slot whose date has passed counts as uploaded. This drives
  ``uploaded_count``, ``consistency_percent`` and ``current_streak``.
* flag-based: a slot counts as checked only when its ProgressRecord has
  ``uploaded=True``. This drives the editable checklist
  (``checked_count``, ``pending_count``, ``checklist_percent``).

Neither is derived from the other.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .progress import ProgressStore
from .schedule import ScheduleSlot, as_utc, round_half_up

_DAY_SECONDS = 86400

STREAK_MILESTONES = (
    (90, "Legend", "🏆"),
    (60, "Master", "💎"),
    (30, "Champion", "🥇"),
    (14, "Warrior", "🥈"),
    (7, "Achiever", "🥉"),
)


@dataclass(frozen=True)
class Metrics:
    uploaded_count: int
    consistency_percent: int
    current_streak: int
    days_until_next: int
    total_uploads: int
    next_upload_date: Optional[datetime] = None
    checked_count: int = 0
    pending_count: int = 0
    checklist_percent: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uploadedCount": self.uploaded_count,
            "consistencyPercent": self.consistency_percent,
            "currentStreak": self.current_streak,
            "daysUntilNext": self.days_until_next,
            "totalUploads": self.total_uploads,
            "nextUploadDate": self.next_upload_date.isoformat() if self.next_upload_date else None,
            "checkedCount": self.checked_count,
            "pendingCount": self.pending_count,
            "checklistPercent": self.checklist_percent,
        }


@dataclass(frozen=True)
class ChallengeDay:
    day: int
    total_days: int
    days_elapsed: int


@dataclass(frozen=True)
class Milestone:
    days: int
    title: str
    badge: str


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _as_datetime(value, now: datetime) -> Optional[datetime]:
    """Slot dates may be plain dates; give them ``now``'s timezone at midnight."""
    if value is None or isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=now.tzinfo)
    return value


def _percent(part: int, whole: int) -> int:
    return int(round_half_up(part / max(1, whole) * 100))


def compute_metrics(calendar: Sequence[ScheduleSlot], progress: Optional[ProgressStore],
                    now: datetime) -> Metrics:
    """Fold the calendar, the progress records and the current time into metrics."""
    now = as_utc(now)
    total = len(calendar)
    dates = [_as_datetime(slot.date, now) for slot in calendar]
    today = _start_of_day(now)

    uploaded_count = sum(1 for d in dates if d is not None and d < now)

    # Walk back from the last slot; any slot dated today or later ends the run.
    streak = 0
    for d in reversed(dates):
        if d is None or d >= today:
            break
        streak += 1

    next_date = next((d for d in dates if d is not None and d > now), None)
    if next_date is None:
        days_until_next = 0
    else:
        days_until_next = max(0, math.ceil((next_date - now).total_seconds() / _DAY_SECONDS))

    checked = 0
    if progress is not None:
        checked = sum(1 for i in progress.uploaded_indices() if i < total)

    return Metrics(
        uploaded_count=uploaded_count,
        consistency_percent=_percent(uploaded_count, total),
        current_streak=streak,
        days_until_next=days_until_next,
        total_uploads=total,
        next_upload_date=next_date,
        checked_count=checked,
        pending_count=total - checked,
        checklist_percent=_percent(checked, total) if total else 0,
    )


def slot_status(slot: ScheduleSlot, now: datetime) -> str:
    """Badge for one row of the upload schedule: uploaded, today or upcoming."""
    now = as_utc(now)
    slot_date = _as_datetime(slot.date, now)
    if slot_date is None:
        return "upcoming"
    if slot_date < now:
        return "uploaded"
    if slot_date.date() == now.date():
        return "today"
    return "upcoming"


def challenge_day(start_date, now: datetime, total_days: int) -> ChallengeDay:
    """'Day X of N' for the progress header."""
    now = as_utc(now)
    start = _as_datetime(start_date, now)
    elapsed = 0
    if start is not None:
        elapsed = max(0, math.floor((now - start).total_seconds() / _DAY_SECONDS))
    return ChallengeDay(day=elapsed + 1, total_days=total_days, days_elapsed=elapsed)


def streak_milestone(streak: int) -> Optional[Milestone]:
    """Return the milestone reached when the streak lands exactly on one."""
    for days, title, badge in STREAK_MILESTONES:
        if streak == days:
            return Milestone(days=days, title=title, badge=badge)
    return None


def build_checklist(calendar: Sequence[ScheduleSlot], progress: Optional[ProgressStore],
                    now: datetime) -> List[Dict[str, Any]]:
    rows = []
    for slot in calendar:
        record = progress.get(slot.index) if progress is not None else None
        rows.append({
            "index": slot.index,
            "videoNumber": slot.video_number,
            "uploadDay": slot.upload_day,
            "uploadIndexInDay": slot.upload_index_in_day,
            "date": slot.date.isoformat() if slot.date else None,
            "title": (record.title if record and record.title else f"Video {slot.video_number}"),
            "notes": record.notes if record else None,
            "thumbnail": record.thumbnail if record else None,
            "status": slot_status(slot, now),
            "uploaded": bool(record and record.uploaded),
            "uploadedAt": record.uploaded_at.isoformat() if record and record.uploaded_at else None,
        })
    return rows


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

