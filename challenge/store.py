"""Persistence collaborators for the lifecycle.

``RemoteChallengeStore`` talks to the challenge API served by ``app.py`` (or
anything speaking the same JSON). ``LocalChallengeCache`` keeps a copy of the
last known challenge on disk so a restart can show it before the server
answers.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import requests

from . import config
from .progress import ProgressStore
from .schedule import ChallengeConfig, parse_timestamp

log = logging.getLogger(__name__)


class ChallengeStoreError(Exception):
    """A store call failed or the server answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class StoredChallenge:
    challenge_id: Optional[str] = None
    config: Optional[ChallengeConfig] = None
    started_at: Any = None
    progress: ProgressStore = field(default_factory=ProgressStore)
    video_type: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "StoredChallenge":
        raw_config = dict(record.get("config") or {})
        for key in ("durationMonths", "cadenceEveryDays", "videosPerCadence"):
            if raw_config.get(key) is None and record.get(key) is not None:
                raw_config[key] = record[key]
        has_config = any(raw_config.get(k) is not None
                         for k in ("durationMonths", "duration_months"))
        video_type = (record.get("videoType") or record.get("video_type")
                      or raw_config.get("videoType") or None)
        challenge_id = record.get("id")
        return cls(
            challenge_id=str(challenge_id) if challenge_id is not None else None,
            config=ChallengeConfig.from_dict(raw_config) if has_config else None,
            started_at=parse_timestamp(record.get("startedAt", record.get("started_at"))),
            progress=ProgressStore.from_list(record.get("progress")),
            video_type=video_type,
        )

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.challenge_id,
            "config": self.config.to_dict() if self.config else None,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "progress": self.progress.to_list(),
            "videoType": self.video_type,
        }


class ChallengeStore:
    """The narrow interface the lifecycle persists through."""

    def load(self) -> Optional[StoredChallenge]:
        raise NotImplementedError

    def create(self, payload: Mapping[str, Any]) -> str:
        raise NotImplementedError

    def patch(self, challenge_id: str, fields: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, challenge_id: str) -> None:
        raise NotImplementedError


class RemoteChallengeStore(ChallengeStore):
    """HTTP client for ``/api/user-challenge``."""

    def __init__(self, base_url: str = config.API_URL, session: Optional[requests.Session] = None,
                 timeout: float = config.API_TIMEOUT, challenge_key: str = config.CHALLENGE_ID):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.challenge_key = challenge_key

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise ChallengeStoreError(f"{method} {path} failed: {exc}") from exc

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if not response.ok:
            message = data.get("error") if isinstance(data, dict) else None
            raise ChallengeStoreError(
                message or f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return data if isinstance(data, dict) else {}

    def load(self) -> Optional[StoredChallenge]:
        data = self._request("GET", "/api/user-challenge")
        record = data.get("challenge")
        if not record:
            return None
        return StoredChallenge.from_record(record)

    def create(self, payload: Mapping[str, Any]) -> str:
        body = dict(payload)
        body.setdefault("challengeId", self.challenge_key)
        data = self._request("POST", "/api/user-challenge", json=body)
        challenge_id = data.get("id")
        if challenge_id is None:
            raise ChallengeStoreError("create returned no challenge id")
        log.info("Created remote challenge %s", challenge_id)
        return str(challenge_id)

    def patch(self, challenge_id: str, fields: Mapping[str, Any]) -> None:
        self._request("PATCH", "/api/user-challenge", params={"id": challenge_id}, json=dict(fields))

    def delete(self, challenge_id: str) -> None:
        self._request("DELETE", "/api/user-challenge", params={"id": challenge_id})
        log.info("Deleted remote challenge %s", challenge_id)


class LocalChallengeCache:
    """Last known challenge as a JSON file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or config.CACHE_PATH)

    def read(self) -> Optional[StoredChallenge]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, ValueError) as exc:
            log.warning("Ignoring unreadable challenge cache %s: %s", self.path, exc)
            return None
        if not isinstance(record, dict):
            return None
        return StoredChallenge.from_record(record)

    def write(self, stored: StoredChallenge) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(stored.to_record(), f, ensure_ascii=False, indent=2)
        except OSError as exc:
            log.warning("Could not write challenge cache %s: %s", self.path, exc)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
