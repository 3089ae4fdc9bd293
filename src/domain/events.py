"""Row-change events pushed to realtime subscribers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import ChangeType


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class RowChange:
    table: str
    type: ChangeType
    record: dict[str, Any] = field(default_factory=dict)
    old_record: Optional[dict[str, Any]] = None
    commit_timestamp: str = field(default_factory=_now_iso)

    @property
    def row_id(self) -> Optional[str]:
        source = self.record or self.old_record or {}
        return source.get("id")

    def to_json(self) -> str:
        return json.dumps(
            {
                "table": self.table,
                "type": self.type.value,
                "record": self.record,
                "old_record": self.old_record,
                "commit_timestamp": self.commit_timestamp,
            },
            default=str,
        )

    @classmethod
    def from_json(cls, data: str) -> RowChange:
        parsed = json.loads(data)
        return cls(
            table=parsed["table"],
            type=ChangeType(parsed["type"]),
            record=parsed.get("record") or {},
            old_record=parsed.get("old_record"),
            commit_timestamp=parsed.get("commit_timestamp") or _now_iso(),
        )
