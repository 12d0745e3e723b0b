__all__ = [
    "DEFAULT_EFFECTIVENESS_RATE",
    "MEMORY_SCHEMA_VERSION",
    "AgentDecision",
    "DecisionContext",
    "InterventionKind",
    "InterventionRecord",
    "MemoryDocument",
    "ProductivitySession",
    "ScreenClassification",
    "UserProfile",
]

import time
from dataclasses import dataclass, field, replace
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

MEMORY_SCHEMA_VERSION = 1
DEFAULT_EFFECTIVENESS_RATE = 0.5
MAX_CONFIDENCE = 100


class InterventionKind(str, Enum):
    """Intensity of a productivity nudge, strongest first."""

    ALARM = "alarm"
    NOTIFICATION = "notification"
    GENTLE_REMINDER = "gentle_reminder"
    NONE = "none"


@dataclass
class InterventionRecord:
    """One issued intervention and, once known, whether it worked."""

    kind: InterventionKind
    message: str = ""
    issued_at: float = field(default_factory=time.time)
    was_effective: bool | None = None

    @property
    def is_scored(self) -> bool:
        return self.was_effective is not None

    def score(self, was_effective: bool) -> None:  # noqa: FBT001
        """Set the effectiveness outcome. Allowed exactly once."""
        if self.is_scored:
            msg = "intervention effectiveness already recorded"
            raise ValueError(msg)
        self.was_effective = was_effective

    def copy(self) -> "InterventionRecord":
        return replace(self)

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.kind.value,
            "message": self.message,
            "timestamp": self.issued_at,
            "wasEffective": self.was_effective,
        }


@dataclass
class ScreenClassification:
    """Vision model judgment of the current screen.

    ``error`` is set when the value is the safe default produced after a
    capture, backend or parse failure.
    """

    is_off_task: bool
    confidence: int
    reason: str
    suggested_action: str
    error: str | None = None

    @classmethod
    def safe_default(cls, error: str) -> "ScreenClassification":
        return cls(
            is_off_task=False,
            confidence=0,
            reason="Analysis failed",
            suggested_action="Continue working",
            error=error,
        )

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class DecisionContext:
    """Snapshot handed to the decision engine for one cycle."""

    idle_time_seconds: int
    time_of_day: str
    screen_classification: ScreenClassification | None = None
    recent_interventions: tuple[InterventionRecord, ...] = ()
    user_goal_hints: tuple[str, ...] = ()
    current_activity: str = "Unknown"


@dataclass
class AgentDecision:
    """Output of one decision cycle.

    A decision that does not intervene always carries a ``none`` intervention;
    ``__post_init__`` enforces that and clamps ``confidence`` to 0-100.
    """

    should_intervene: bool
    intervention: InterventionRecord
    reasoning: str
    confidence: int = 0
    error: str | None = None

    def __post_init__(self) -> None:
        if self.intervention.kind is InterventionKind.NONE:
            self.should_intervene = False
        if not self.should_intervene and self.intervention.kind is not InterventionKind.NONE:
            self.intervention = replace(self.intervention, kind=InterventionKind.NONE)
        self.confidence = max(0, min(MAX_CONFIDENCE, int(self.confidence)))

    @classmethod
    def default(cls, error: str | None = None, issued_at: float | None = None) -> "AgentDecision":
        """Fail-closed decision: never intervene when the backend is unusable."""
        return cls(
            should_intervene=False,
            intervention=InterventionRecord(
                kind=InterventionKind.NONE,
                message="",
                issued_at=time.time() if issued_at is None else issued_at,
            ),
            reasoning="decision unavailable",
            confidence=0,
            error=error,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "shouldIntervene": self.should_intervene,
            "intervention": self.intervention.to_dict(),
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "error": self.error,
        }


# --- persisted models ---


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ProductivitySession(_CamelModel):
    """A monitoring session; ``end_time`` stays ``None`` while it is open."""

    start_time: float = Field(alias="startTime")
    end_time: float | None = Field(default=None, alias="endTime")
    was_productive: bool = Field(default=True, alias="wasProductive")
    interventions_count: int = Field(default=0, ge=0, alias="interventionsCount")
    activity_summary: str = Field(default="", alias="activitySummary")

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class UserProfile(_CamelModel):
    """Cross-session aggregate of productive hours and nudge responsiveness."""

    productive_hours_map: dict[int, int] = Field(default_factory=dict, alias="productiveHoursMap")
    unproductive_hours_map: dict[int, int] = Field(
        default_factory=dict,
        alias="unproductiveHoursMap",
    )
    intervention_effectiveness_rate: float = Field(
        default=DEFAULT_EFFECTIVENESS_RATE,
        ge=0.0,
        le=1.0,
        alias="interventionEffectivenessRate",
    )
    total_sessions: int = Field(default=0, ge=0, alias="totalSessions")
    productive_sessions: int = Field(default=0, ge=0, alias="productiveSessions")
    total_interventions: int = Field(default=0, ge=0, alias="totalInterventions")
    last_updated: float = Field(default_factory=time.time, alias="lastUpdated")

    @model_validator(mode="after")
    def productive_not_above_total(self) -> "UserProfile":
        """productiveSessions can never exceed totalSessions."""
        if self.productive_sessions > self.total_sessions:
            msg = "productiveSessions must not exceed totalSessions"
            raise ValueError(msg)
        for hours in (self.productive_hours_map, self.unproductive_hours_map):
            if any(not 0 <= hour <= 23 for hour in hours):  # noqa: PLR2004
                msg = "hour keys must be in 0-23"
                raise ValueError(msg)
        return self


class MemoryDocument(_CamelModel):
    """The single JSON unit persisted by the memory store."""

    version: int = MEMORY_SCHEMA_VERSION
    sessions: list[ProductivitySession] = Field(default_factory=list)
    user_profile: UserProfile = Field(default_factory=UserProfile, alias="userProfile")
