import json
import os
import tempfile
from unittest.mock import Mock

import pytest

# keep test runs from writing ./log/focuswarden.log in the checkout
os.environ.setdefault(
    "FOCUSWARDEN_LOG_PATH",
    os.path.join(tempfile.gettempdir(), "focuswarden-tests", "focuswarden.log"),
)

from focuswarden.services.llm import LLMService  # noqa: E402

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_llm():
    """Reasoning backend double; set ``run_task.return_value`` per test."""
    return Mock(spec=LLMService)


def decision_json(
    should_intervene=True,
    kind="notification",
    message="Time to get back to it",
    reasoning="User has been idle on a video site",
    confidence=80,
):
    return json.dumps(
        {
            "shouldIntervene": should_intervene,
            "intervention": {"type": kind, "message": message},
            "reasoning": reasoning,
            "confidence": confidence,
        },
    )


@pytest.fixture
def make_decision_json():
    return decision_json
