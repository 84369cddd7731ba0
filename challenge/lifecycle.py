"""Plan lifecycle: start → setup → video type → progress, plus edit and reset.

The lifecycle owns the in-memory ``Challenge``. Every transition updates it
first and only then asks the store to persist; a failed store call comes back
as a ``PersistResult`` and never undoes the local change.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from . import config
from .metrics import (ChallengeDay, Metrics, build_checklist, challenge_day, compute_metrics,
                      utcnow)
from .progress import ProgressRecord, ProgressStore
from .schedule import (ChallengeConfig, PlanSummary, ScheduleSlot, as_utc, calendar_for,
                       clamp_config, summarize_plan)
from .store import ChallengeStore, ChallengeStoreError, LocalChallengeCache, StoredChallenge

log = logging.getLogger(__name__)


class LifecycleError(Exception):
    """Raised for transitions that are not allowed from the current state."""


class PlanState(enum.Enum):
    START = "start"
    SETUP = "setup"
    VIDEO_TYPE = "videoType"
    PROGRESS = "progress"


class VideoType(enum.Enum):
    LONG = "long"
    SHORTS = "shorts"

    @property
    def aspect_ratio(self) -> str:
        return "16:9" if self is VideoType.LONG else "9:16"


@dataclass
class Challenge:
    config: Optional[ChallengeConfig] = None
    start_date: Optional[datetime] = None
    progress: ProgressStore = field(default_factory=ProgressStore)
    video_type: Optional[VideoType] = None
    challenge_id: Optional[str] = None

    @property
    def is_started(self) -> bool:
        return self.start_date is not None

    def clear(self) -> None:
        """Drop config, start date, progress and video type in one go."""
        self.config = None
        self.start_date = None
        self.progress = ProgressStore()
        self.video_type = None
        self.challenge_id = None

    def to_stored(self) -> StoredChallenge:
        return StoredChallenge(
            challenge_id=self.challenge_id,
            config=self.config,
            started_at=self.start_date,
            progress=self.progress,
            video_type=self.video_type.value if self.video_type else None,
        )

    @classmethod
    def from_stored(cls, stored: StoredChallenge) -> "Challenge":
        video_type = None
        if stored.video_type:
            try:
                video_type = VideoType(stored.video_type)
            except ValueError:
                log.warning("Ignoring unknown video type %r", stored.video_type)
        return cls(
            config=stored.config,
            start_date=stored.started_at,
            progress=stored.progress,
            video_type=video_type,
            challenge_id=stored.challenge_id,
        )


@dataclass(frozen=True)
class PersistResult:
    ok: bool
    operation: str
    challenge_id: Optional[str] = None
    error: Optional[str] = None
    sent: bool = True

    @property
    def message(self) -> str:
        """Short text for a transient notice in the UI."""
        if self.ok:
            return "Saved." if self.sent else "Saved locally."
        return f"Could not save your challenge ({self.operation}): {self.error}. Your changes are kept on this device."

    @classmethod
    def success(cls, operation, challenge_id=None, sent=True) -> "PersistResult":
        return cls(ok=True, operation=operation, challenge_id=challenge_id, sent=sent)

    @classmethod
    def failure(cls, operation, error, challenge_id=None) -> "PersistResult":
        return cls(ok=False, operation=operation, challenge_id=challenge_id, error=str(error))


def _default_draft() -> ChallengeConfig:
    return ChallengeConfig(config.DEFAULT_DURATION_MONTHS, config.DEFAULT_CADENCE_DAYS,
                           config.DEFAULT_VIDEOS_PER_CADENCE)


class PlanLifecycle:

    def __init__(self, store: Optional[ChallengeStore] = None,
                 cache: Optional[LocalChallengeCache] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.cache = cache
        self.clock = clock
        self.challenge = Challenge()
        self.state = PlanState.START
        self.draft = _default_draft()
        self.last_result: Optional[PersistResult] = None

    # ── Loading ───────────────────────────────────────────────────────────────

    def load(self) -> PersistResult:
        """Restore the challenge, preferring the server's copy over the local cache."""
        stored = None
        result = PersistResult.success("load", sent=self.store is not None)
        if self.store is None:
            stored = self._read_cache()
        else:
            try:
                stored = self.store.load()
            except ChallengeStoreError as exc:
                log.warning("Loading challenge from store failed: %s", exc)
                result = PersistResult.failure("load", exc)
                stored = self._read_cache()
            else:
                # Nothing active on the server: the cached copy is stale.
                if stored is None and self.cache is not None:
                    self.cache.clear()
                elif stored is not None and self.cache is not None:
                    self.cache.write(stored)

        self.challenge = Challenge.from_stored(stored) if stored else Challenge()
        self.draft = self.challenge.config or _default_draft()
        self.state = self._resting_state()
        self.last_result = result
        return result

    # ── Transitions ───────────────────────────────────────────────────────────

    def _require(self, *states: PlanState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise LifecycleError(f"not allowed in state {self.state.value!r} (needs {allowed})")

    def _resting_state(self) -> PlanState:
        if self.challenge.is_started:
            return PlanState.PROGRESS
        if self.challenge.config is not None:
            return PlanState.VIDEO_TYPE
        return PlanState.START

    def begin_setup(self) -> None:
        self._require(PlanState.START)
        self.state = PlanState.SETUP

    def cancel_setup(self) -> None:
        self._require(PlanState.SETUP)
        self.state = self._resting_state()

    def commit_setup(self, duration_months, cadence_every_days, videos_per_cadence,
                     max_months: int = config.CUSTOM_MAX_MONTHS) -> PersistResult:
        """Commit the values picked in setup and move on to choosing the video type."""
        self._require(PlanState.SETUP)
        if self.challenge.is_started:
            raise LifecycleError("challenge already running; use save_plan to change it")
        plan = clamp_config(duration_months, cadence_every_days, videos_per_cadence,
                            max_months=max_months, created_at=self.clock())
        self.challenge.config = plan
        self.draft = plan
        self.state = PlanState.VIDEO_TYPE
        self._write_cache()
        return self._persist("save config", {"config": self._config_fields()})

    def back_to_setup(self) -> None:
        self._require(PlanState.VIDEO_TYPE)
        self.state = PlanState.SETUP

    def choose_video_type(self, video_type, now: Optional[datetime] = None) -> PersistResult:
        """Pick long/shorts and start the clock. The state advances even if saving fails."""
        self._require(PlanState.VIDEO_TYPE)
        if video_type is None:
            raise LifecycleError("choose a video type before starting")
        try:
            chosen = VideoType(video_type.value if isinstance(video_type, VideoType) else video_type)
        except ValueError:
            raise LifecycleError(f"unknown video type {video_type!r}") from None

        self.challenge.video_type = chosen
        self.challenge.start_date = as_utc(now or self.clock())
        self.state = PlanState.PROGRESS
        self._write_cache()
        log.info("Challenge started at %s (%s)", self.challenge.start_date.isoformat(), chosen.value)
        return self._persist("start challenge", {
            "config": self._config_fields(),
            "startedAt": self.challenge.start_date.isoformat(),
            "videoType": chosen.value,
        })

    def edit_plan(self) -> None:
        self._require(PlanState.PROGRESS)
        self.draft = self.challenge.config or _default_draft()
        self.state = PlanState.SETUP

    def save_plan(self, duration_months, cadence_every_days, videos_per_cadence,
                  max_months: int = config.CUSTOM_MAX_MONTHS) -> PersistResult:
        """Change the plan of a running challenge.

        Only ``config`` changes. Start date and progress stay as they are, so
        records keep their old slot indices even if those slots moved.
        """
        self._require(PlanState.SETUP)
        if not self.challenge.is_started:
            raise LifecycleError("no running challenge to update")
        plan = clamp_config(duration_months, cadence_every_days, videos_per_cadence,
                            max_months=max_months, created_at=self.clock())
        self.challenge.config = plan
        self.draft = plan
        self.state = PlanState.PROGRESS
        self._write_cache()
        stale = self.challenge.progress.stale_indices(len(self.calendar()))
        if stale:
            log.info("Plan change leaves progress for slots %s outside the calendar", stale)
        return self._persist("update plan", {"config": self._config_fields()})

    def reset(self, confirmed: bool = False) -> PersistResult:
        """Throw the whole challenge away. Irreversible, so it must be confirmed."""
        if not confirmed:
            raise LifecycleError("reset must be confirmed")
        challenge_id = self.challenge.challenge_id
        self.challenge.clear()
        self.draft = _default_draft()
        self.state = PlanState.START
        if self.cache is not None:
            self.cache.clear()

        if challenge_id is None or self.store is None:
            result = PersistResult.success("reset", sent=False)
        else:
            try:
                self.store.delete(challenge_id)
                result = PersistResult.success("reset", challenge_id=challenge_id)
            except ChallengeStoreError as exc:
                log.warning("Deleting challenge %s failed: %s", challenge_id, exc)
                result = PersistResult.failure("reset", exc, challenge_id=challenge_id)
        self.last_result = result
        return result

    # ── Progress ──────────────────────────────────────────────────────────────

    def edit_slot(self, index: int, title: Optional[str] = None, notes: Optional[str] = None,
                  thumbnail: Optional[str] = None) -> PersistResult:
        self._require(PlanState.PROGRESS)
        self._check_slot(index)
        self.challenge.progress.edit(index, title=title, notes=notes, thumbnail=thumbnail)
        self._write_cache()
        return self._persist("save video", {"progress": self.challenge.progress.to_list()})

    def mark_uploaded(self, index: int, uploaded: bool = True,
                      now: Optional[datetime] = None) -> PersistResult:
        self._require(PlanState.PROGRESS)
        self._check_slot(index)
        self.challenge.progress.mark_uploaded(index, uploaded, now=as_utc(now or self.clock()))
        self._write_cache()
        return self._persist("save video", {"progress": self.challenge.progress.to_list()})

    def _check_slot(self, index: int) -> None:
        total = len(self.calendar())
        if not 0 <= index < total:
            raise LifecycleError(f"slot {index} is outside the calendar (0..{total - 1})")

    def record(self, index: int) -> Optional[ProgressRecord]:
        return self.challenge.progress.get(index)

    def retry_persist(self) -> PersistResult:
        """Send the whole current challenge again after a failed save."""
        if self.challenge.config is None:
            return PersistResult.success("retry", sent=False)
        fields: Dict[str, Any] = {
            "config": self._config_fields(),
            "progress": self.challenge.progress.to_list(),
        }
        if self.challenge.video_type is not None:
            fields["videoType"] = self.challenge.video_type.value
        if self.challenge.start_date is not None:
            fields["startedAt"] = self.challenge.start_date.isoformat()
        return self._persist("retry", fields)

    # ── Derived views ─────────────────────────────────────────────────────────

    def calendar(self) -> List[ScheduleSlot]:
        if self.challenge.config is None:
            return []
        return calendar_for(self.challenge.config, self.challenge.start_date)

    def metrics(self, now: Optional[datetime] = None) -> Metrics:
        return compute_metrics(self.calendar(), self.challenge.progress, now or self.clock())

    def checklist(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        return build_checklist(self.calendar(), self.challenge.progress, now or self.clock())

    def summary(self) -> PlanSummary:
        return summarize_plan(self.challenge.config or self.draft)

    def day(self, now: Optional[datetime] = None) -> ChallengeDay:
        plan = self.challenge.config or self.draft
        return challenge_day(self.challenge.start_date, now or self.clock(), plan.total_days)

    # ── Persistence ───────────────────────────────────────────────────────────

    def _config_fields(self) -> Dict[str, Any]:
        fields = self.challenge.config.to_dict()
        if self.challenge.video_type is not None:
            fields["videoType"] = self.challenge.video_type.value
        return fields

    def _create_payload(self) -> Dict[str, Any]:
        plan = self.challenge.config
        return {
            "config": self._config_fields(),
            "progress": self.challenge.progress.to_list(),
            "durationMonths": plan.duration_months,
            "cadenceEveryDays": plan.cadence_every_days,
            "videosPerCadence": plan.videos_per_cadence,
            "videoType": self.challenge.video_type.value if self.challenge.video_type else None,
            "startedAt": self.challenge.start_date.isoformat() if self.challenge.start_date else None,
        }

    def _read_cache(self) -> Optional[StoredChallenge]:
        return self.cache.read() if self.cache is not None else None

    def _write_cache(self) -> None:
        if self.cache is not None:
            self.cache.write(self.challenge.to_stored())

    def _persist(self, operation: str, fields: Dict[str, Any]) -> PersistResult:
        if self.store is None:
            result = PersistResult.success(operation, sent=False)
        elif self.challenge.challenge_id is None:
            # Nothing to patch yet: create the record with everything we have.
            try:
                self.challenge.challenge_id = self.store.create(self._create_payload())
                self._write_cache()
                result = PersistResult.success(operation, self.challenge.challenge_id)
            except ChallengeStoreError as exc:
                log.warning("%s: creating challenge failed: %s", operation, exc)
                result = PersistResult.failure(operation, exc)
        else:
            try:
                self.store.patch(self.challenge.challenge_id, fields)
                result = PersistResult.success(operation, self.challenge.challenge_id)
            except ChallengeStoreError as exc:
                log.warning("%s: patching challenge %s failed: %s",
                            operation, self.challenge.challenge_id, exc)
                result = PersistResult.failure(operation, exc, self.challenge.challenge_id)
        self.last_result = result
        return result
