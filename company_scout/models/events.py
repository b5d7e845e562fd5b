from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ScoutStage(str, Enum):
    PLANNING = "planning"
    SEARCH = "search"
    EXTRACT = "extract"
    VERIFY_SEARCH = "verify_search"
    VERIFY_SCORE = "verify_score"
    RANK = "rank"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressEvent:
    stage: ScoutStage
    message: str
    progress: tuple[int, int] | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"stage": self.stage.value, "message": self.message}
        if self.progress is not None:
            current, total = self.progress
            payload["progress"] = {"current": current, "total": total}
        if self.data:
            payload["data"] = self.data
        return payload

    def format(self) -> str:
        return f"event: {self.stage.value}\ndata: {json.dumps(self.to_dict())}\n\n"
