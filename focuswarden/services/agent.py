"""Intervention decision engine.

The engine turns a :class:`DecisionContext` into exactly one
:class:`AgentDecision` by asking the reasoning backend, and keeps a short
in-process history of issued interventions so the next prompt can see what
was tried and whether it worked.
"""

import json
import time
from collections import deque
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator

from focuswarden.model.models import (
    AgentDecision,
    DecisionContext,
    InterventionKind,
    InterventionRecord,
)
from focuswarden.services.llm import LLMError, LLMService
from focuswarden.services.payload import coerce_confidence, extract_json_object
from focuswarden.watchers.logger import logger

DEFAULT_MAX_HISTORY = 10
MIN_RECORDS_FOR_ANALYSIS = 3
NOT_ENOUGH_DATA = "Not enough data yet to analyze patterns."
ANALYSIS_UNAVAILABLE = "Pattern analysis unavailable."


class _InterventionPayload(BaseModel):
    type: Literal["alarm", "notification", "gentle_reminder", "none"]
    message: str = ""


class _DecisionPayload(BaseModel):
    """Shape the backend must answer with."""

    model_config = ConfigDict(populate_by_name=True)

    should_intervene: StrictBool = Field(alias="shouldIntervene")
    intervention: _InterventionPayload
    reasoning: str
    confidence: int = 0

    @field_validator("reasoning")
    @classmethod
    def reasoning_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "reasoning must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: object) -> int:
        return coerce_confidence(v)


class ProductivityAgent:
    """Decides whether, and how strongly, to nudge the user."""

    def __init__(
        self,
        llm: LLMService,
        max_history_size: int = DEFAULT_MAX_HISTORY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_history_size < 1:
            msg = "max_history_size must be at least 1"
            raise ValueError(msg)
        self.llm = llm
        self.max_history_size = max_history_size
        self.clock = clock
        self._history: deque[InterventionRecord] = deque(maxlen=max_history_size)
        # most recent intervention still waiting for an effectiveness score
        self._open_intervention: InterventionRecord | None = None

    # ------------------------------------------------------------------
    # decision

    def decide_intervention(self, context: DecisionContext) -> AgentDecision:
        """Ask the backend for a decision. Never raises.

        Backend or parse failures produce :meth:`AgentDecision.default`, which
        never intervenes.
        """
        try:
            prompt = self.build_decision_prompt(context)
            response_text = self.llm.run_task(prompt)
            decision = self.parse_decision(response_text)
        except LLMError as e:
            logger.error("Agent decision failed: %s", e)
            return AgentDecision.default(error="backend_failed", issued_at=self.clock())
        except Exception:
            logger.exception("Agent decision failed unexpectedly")
            return AgentDecision.default(error="backend_failed", issued_at=self.clock())

        if decision.should_intervene:
            self._add_to_history(decision.intervention)
            decision.intervention = decision.intervention.copy()
        return decision

    def build_decision_prompt(self, context: DecisionContext) -> str:
        screen = context.screen_classification
        if screen is None:
            screen_section = "No screen analysis available"
        elif screen.failed:
            screen_section = f"Screen analysis failed this cycle ({screen.error})"
        else:
            screen_section = (
                f"\n  - Is off task: {str(screen.is_off_task).lower()}"
                f"\n  - Confidence: {screen.confidence}%"
                f"\n  - Activity: {screen.reason}"
            )

        if context.user_goal_hints:
            goals = "\n".join(f"- {hint}" for hint in context.user_goal_hints)
        else:
            goals = "No historical data yet"

        return f"""You are a productivity agent helping a user stay focused and avoid procrastination.

## Current Situation
- User idle time: {context.idle_time_seconds} seconds
- Current time: {context.time_of_day}
- Current activity: {context.current_activity}
- Screen analysis: {screen_section}

## Recent Interventions (last {len(context.recent_interventions)})
{self.summarize_history(context.recent_interventions)}

## User Profile & Goals
{goals}

## Intervention Types Available
- "alarm": sound and popup, only for serious or persistent procrastination
- "notification": popup without sound
- "gentle_reminder": console message only
- "none": no intervention needed

## Guidelines
1. Prefer the least intrusive intervention that will work.
2. Avoid repeating the same intervention type back to back.
3. Escalate only when gentler interventions were not effective.
4. Consider the user's productive and unproductive hours.

Respond with exactly one JSON object in this format:
{{
  "shouldIntervene": boolean,
  "intervention": {{
    "type": "alarm" | "notification" | "gentle_reminder" | "none",
    "message": "message shown to the user"
  }},
  "reasoning": "one or two sentences",
  "confidence": number (0-100)
}}"""

    def summarize_history(self, records: tuple[InterventionRecord, ...] | list[InterventionRecord]) -> str:
        if not records:
            return "No previous interventions yet."
        now = self.clock()
        lines = []
        for idx, record in enumerate(records, start=1):
            seconds_ago = max(0, int(now - record.issued_at))
            if record.was_effective is None:
                effectiveness = "? Unknown"
            elif record.was_effective:
                effectiveness = "Effective"
            else:
                effectiveness = "Not effective"
            lines.append(f"{idx}. {record.kind.value} ({seconds_ago}s ago) - {effectiveness}")
        return "\n".join(lines)

    def parse_decision(self, response: str) -> AgentDecision:
        """Parse the backend text into a decision, failing closed."""
        data = extract_json_object(response or "")
        if data is None:
            logger.warning("No decision payload found in agent response")
            return AgentDecision.default(error="parse_failed", issued_at=self.clock())
        try:
            payload = _DecisionPayload.model_validate(data)
        except ValidationError as e:
            logger.warning("Invalid decision payload: %s", e.errors(include_url=False))
            return AgentDecision.default(error="parse_failed", issued_at=self.clock())

        return AgentDecision(
            should_intervene=payload.should_intervene,
            intervention=InterventionRecord(
                kind=InterventionKind(payload.intervention.type),
                message=payload.intervention.message,
                issued_at=self.clock(),
            ),
            reasoning=payload.reasoning,
            confidence=payload.confidence,
        )

    # ------------------------------------------------------------------
    # history & feedback

    def _add_to_history(self, intervention: InterventionRecord) -> None:
        # deque(maxlen) evicts the oldest record first
        self._history.append(intervention)
        self._open_intervention = intervention

    def record_intervention_effectiveness(self, was_effective: bool) -> bool:  # noqa: FBT001
        """Score the most recent intervention.

        Returns False (and changes nothing) when there is no intervention or
        the latest one was already scored.
        """
        record = self._open_intervention
        if record is None or record.is_scored:
            return False
        record.score(was_effective)
        self._open_intervention = None
        logger.info("Recorded intervention effectiveness: %s", "effective" if was_effective else "not effective")
        return True

    @property
    def open_intervention(self) -> InterventionRecord | None:
        return self._open_intervention.copy() if self._open_intervention else None

    def get_intervention_history(self) -> list[InterventionRecord]:
        return [record.copy() for record in self._history]

    # ------------------------------------------------------------------
    # analysis

    def analyze_productivity_patterns(self) -> str:
        """Summarize the history via the backend; needs at least 3 records."""
        if len(self._history) < MIN_RECORDS_FOR_ANALYSIS:
            return NOT_ENOUGH_DATA

        history_json = json.dumps([record.to_dict() for record in self._history], indent=2)
        prompt = f"""You are analyzing a user's productivity patterns from their intervention history.

## Intervention History
{history_json}

## Your Task
1. What patterns do you see?
2. Which intervention types work best?
3. When does the user tend to procrastinate most?
4. What would you recommend?

Answer in 3-4 sentences."""
        try:
            analysis = self.llm.run_task(prompt)
        except LLMError as e:
            logger.error("Pattern analysis failed: %s", e)
            return ANALYSIS_UNAVAILABLE
        return analysis.strip() or ANALYSIS_UNAVAILABLE
