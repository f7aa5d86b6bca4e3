"""Domain models persisted by screenlens."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class AnalysisRecord:
    """One past analysis. Immutable; removed only by delete, clear or eviction.

    Attributes:
        id: Opaque unique identifier (uuid4 string).
        date: Creation time (timezone-aware, UTC).
        instruction: Trimmed user instruction (may be empty).
        summary: Text produced by the model gateway.
    """

    id: str
    date: datetime
    instruction: str
    summary: str

    @classmethod
    def create(cls, instruction: str, summary: str) -> AnalysisRecord:
        return cls(
            id=str(uuid.uuid4()),
            date=datetime.now(timezone.utc),
            instruction=instruction.strip(),
            summary=summary,
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "instruction": self.instruction,
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisRecord:
        """Build a record from its persisted form.

        Raises:
            KeyError, TypeError, ValueError: If *data* is not a valid record.
        """
        date = datetime.fromisoformat(str(data["date"]).replace("Z", "+00:00"))
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        summary = data["summary"]
        instruction = data.get("instruction", "")
        if not isinstance(summary, str) or not isinstance(instruction, str):
            raise TypeError("instruction and summary must be strings")
        return cls(id=str(data["id"]), date=date, instruction=instruction, summary=summary)
