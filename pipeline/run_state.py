# Module: run_state
# License: MIT (Listing Studio project)
# Description: Explicit state object for one listing-generation run.
# Platform: Client
# Dependencies: dataclasses, enum

"""
Run State: the orchestration state passed through the pipeline stages.

    idle → collecting_images → listing_requested → listing_received
         → [mannequin_requested → mannequin_received] → done
    error is reachable from any in-flight stage.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RunStage(str, Enum):
    IDLE = "idle"
    COLLECTING_IMAGES = "collecting_images"
    LISTING_REQUESTED = "listing_requested"
    LISTING_RECEIVED = "listing_received"
    MANNEQUIN_REQUESTED = "mannequin_requested"
    MANNEQUIN_RECEIVED = "mannequin_received"
    DONE = "done"
    ERROR = "error"


class MannequinStatus(str, Enum):
    PENDING = "pending"
    DISABLED = "disabled"
    GENERATED = "generated"
    EMPTY = "empty"
    FAILED = "failed"


IN_FLIGHT = {
    RunStage.COLLECTING_IMAGES,
    RunStage.LISTING_REQUESTED,
    RunStage.LISTING_RECEIVED,
    RunStage.MANNEQUIN_REQUESTED,
    RunStage.MANNEQUIN_RECEIVED,
}

# Allowed transitions, ERROR excluded (reachable from any in-flight stage)
TRANSITIONS = {
    RunStage.IDLE: {RunStage.COLLECTING_IMAGES},
    RunStage.COLLECTING_IMAGES: {RunStage.LISTING_REQUESTED},
    RunStage.LISTING_REQUESTED: {RunStage.LISTING_RECEIVED},
    RunStage.LISTING_RECEIVED: {RunStage.MANNEQUIN_REQUESTED, RunStage.DONE},
    RunStage.MANNEQUIN_REQUESTED: {RunStage.MANNEQUIN_RECEIVED},
    RunStage.MANNEQUIN_RECEIVED: {RunStage.DONE},
}


@dataclass(frozen=True)
class RunOptions:
    use_ai: bool = True
    use_mannequin: bool = True
    gender: str = "femme"
    extra: str = ""


@dataclass
class RunState:
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    stage: RunStage = RunStage.IDLE
    history: List[RunStage] = field(default_factory=lambda: [RunStage.IDLE])
    images: List[str] = field(default_factory=list)
    listing: Optional[Any] = None
    mannequin_status: MannequinStatus = MannequinStatus.PENDING
    mannequin_image: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[RunStage] = None
    notices: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    duration_ms: Optional[int] = None

    def advance(self, stage: RunStage) -> None:
        """
        Move to ``stage``.

        Raises:
            ValueError: on a transition the state machine does not allow.
        """
        if stage == RunStage.ERROR:
            if self.stage not in IN_FLIGHT:
                raise ValueError(f"Cannot fail from stage {self.stage.value}")
        elif stage not in TRANSITIONS.get(self.stage, set()):
            raise ValueError(f"Invalid transition {self.stage.value} → {stage.value}")

        self.stage = stage
        self.history.append(stage)

        if stage in (RunStage.DONE, RunStage.ERROR):
            self.completed_at = time.time()
            self.duration_ms = int((self.completed_at - self.started_at) * 1000)

    def fail(self, message: str) -> None:
        self.failed_stage = self.stage
        self.error = message
        self.notices.append(message)
        self.advance(RunStage.ERROR)

    @property
    def finished(self) -> bool:
        return self.stage in (RunStage.DONE, RunStage.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        listing = self.listing.to_dict() if self.listing is not None else None
        return {
            "run_id": self.run_id,
            "stage": self.stage.value,
            "history": [s.value for s in self.history],
            "image_count": len(self.images),
            "listing": listing,
            "mannequin_status": self.mannequin_status.value,
            "mannequin_image": self.mannequin_image,
            "error": self.error,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "notices": list(self.notices),
            "duration_ms": self.duration_ms,
        }
