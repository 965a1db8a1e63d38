"""PreferenceSignal model: one recorded decision event.

Stored as JSON strings in the local preference queue and drained in FIFO
batches for upload.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Optional


class Decision:
    ACCEPTED = "accepted"
    DECLINED = "declined"
    IGNORED = "ignored"


@dataclass
class PreferenceSignal:
    vibe: dict[str, Any]            # vibe snapshot at decision time: {"top": ..., "vector": {...}}
    offer: dict[str, Any]           # what was suggested: {"kind": "merge", "floq_id": ...}
    context: dict[str, Any]         # hour, venue_type, group size, ...
    decision: str = Decision.IGNORED
    outcome: Optional[dict[str, Any]] = None
    signal_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict) -> PreferenceSignal:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_json(cls, raw: str | bytes) -> PreferenceSignal:
        if isinstance(raw, bytes):
            raw = raw.decode()
        return cls.from_dict(json.loads(raw))
