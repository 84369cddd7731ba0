"""Per-slot progress records.

Records are keyed by the 0-based slot index of the calendar they were entered
against. Changing the plan later does not move them: index 4 stays index 4
even if slot 4 now falls on another date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from .schedule import parse_timestamp


@dataclass
class ProgressRecord:
    title: Optional[str] = None
    notes: Optional[str] = None
    thumbnail: Optional[str] = None
    uploaded: bool = False
    uploaded_at: Optional[datetime] = None

    @property
    def is_blank(self) -> bool:
        return not (self.title or self.notes or self.thumbnail or self.uploaded)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "notes": self.notes,
            "thumbnail": self.thumbnail,
            "uploaded": self.uploaded,
            "uploadedAt": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProgressRecord":
        uploaded_at = data.get("uploadedAt", data.get("uploaded_at"))
        return cls(
            title=data.get("title") or None,
            notes=data.get("notes") or None,
            thumbnail=data.get("thumbnail") or None,
            uploaded=bool(data.get("uploaded", False)),
            uploaded_at=parse_timestamp(uploaded_at),
        )


class ProgressStore:
    """Mutable index → ProgressRecord mapping."""

    def __init__(self, records: Optional[Mapping[int, ProgressRecord]] = None):
        self._records: Dict[int, ProgressRecord] = {}
        for index, record in (records or {}).items():
            self._records[self._check_index(index)] = record

    @staticmethod
    def _check_index(index) -> int:
        index = int(index)
        if index < 0:
            raise ValueError(f"slot index must be >= 0, got {index}")
        return index

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, index) -> bool:
        return index in self._records

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._records))

    def __eq__(self, other) -> bool:
        if not isinstance(other, ProgressStore):
            return NotImplemented
        return self._records == other._records

    def items(self):
        return [(i, self._records[i]) for i in sorted(self._records)]

    def get(self, index: int) -> Optional[ProgressRecord]:
        return self._records.get(self._check_index(index))

    def _get_or_create(self, index: int) -> ProgressRecord:
        index = self._check_index(index)
        record = self._records.get(index)
        if record is None:
            record = ProgressRecord()
            self._records[index] = record
        return record

    def edit(self, index: int, title: Optional[str] = None, notes: Optional[str] = None,
             thumbnail: Optional[str] = None) -> ProgressRecord:
        """Update the given fields of a slot's record; fields left as None are kept."""
        record = self._get_or_create(index)
        if title is not None:
            record.title = title.strip() or None
        if notes is not None:
            record.notes = notes.strip() or None
        if thumbnail is not None:
            record.thumbnail = thumbnail or None
        return record

    def mark_uploaded(self, index: int, uploaded: bool = True,
                      now: Optional[datetime] = None) -> ProgressRecord:
        record = self._get_or_create(index)
        record.uploaded = bool(uploaded)
        if record.uploaded:
            record.uploaded_at = now or datetime.now(timezone.utc)
        else:
            record.uploaded_at = None
        return record

    def clear(self) -> None:
        self._records.clear()

    def uploaded_indices(self) -> List[int]:
        return [i for i in sorted(self._records) if self._records[i].uploaded]

    def stale_indices(self, calendar_length: int) -> List[int]:
        """Indices that no longer exist in a calendar of the given length."""
        return [i for i in sorted(self._records) if i >= calendar_length]

    def copy(self) -> "ProgressStore":
        return ProgressStore({i: ProgressRecord(**vars(r)) for i, r in self._records.items()})

    # ── Wire format: ordered array, position == slot index ──────────────────────

    @classmethod
    def from_list(cls, records: Optional[Iterable[Any]]) -> "ProgressStore":
        store = cls()
        for position, item in enumerate(records or []):
            if not item:
                continue
            if isinstance(item, ProgressRecord):
                store._records[position] = item
            elif isinstance(item, Mapping):
                record = ProgressRecord.from_dict(item)
                if not record.is_blank:
                    store._records[position] = record
        return store

    def to_list(self) -> List[Dict[str, Any]]:
        if not self._records:
            return []
        size = max(self._records) + 1
        return [self._records.get(i, ProgressRecord()).to_dict() for i in range(size)]
