import time
from collections.abc import Callable
from typing import Protocol

from focuswarden.model.models import ScreenClassification
from focuswarden.services.llm import LLMError, LLMService
from focuswarden.services.payload import coerce_confidence, extract_json_object
from focuswarden.watchers.logger import logger

CLASSIFY_PROMPT = """You are looking at a screenshot to decide whether the user is procrastinating or doing productive work.

Guidelines:
- Social media, video streaming, gaming, shopping: off task
- Coding, documentation, writing, research: productive
- Consider context: is this work-related or personal entertainment?

Respond ONLY with a JSON object in this format:
{
  "isOffTask": boolean,
  "confidence": number (0-100),
  "reason": "brief description of what you see",
  "suggestedAction": "what the user should do"
}"""


class Capture(Protocol):
    def capture_as_base64(self) -> str: ...


class ScreenClassifier:
    """Capture the screen and ask a vision model whether the user is off task.

    ``classify`` never raises: capture, backend and parse failures all come
    back as :meth:`ScreenClassification.safe_default` with ``error`` set.
    """

    def __init__(
        self,
        llm: LLMService,
        capture: Capture | None = None,
        model: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.llm = llm
        self._capture = capture
        self.model = model
        self.sleep = sleep

    @property
    def capture(self) -> Capture:
        if self._capture is None:
            # mss needs a display; defer until the first classification
            from focuswarden.watchers.screen_capture import ScreenCapture

            self._capture = ScreenCapture()
        return self._capture

    def classify(self, delay_seconds: float = 0) -> ScreenClassification:
        if delay_seconds > 0:
            logger.info("Waiting %s seconds before screenshot...", delay_seconds)
            self.sleep(delay_seconds)

        try:
            image_b64 = self.capture.capture_as_base64()
        except Exception as e:  # noqa: BLE001
            logger.error("Screen capture failed: %s", e)
            return ScreenClassification.safe_default("capture_failed")

        try:
            response = self.llm.run_task(CLASSIFY_PROMPT, model=self.model, image_b64=image_b64)
        except LLMError as e:
            logger.error("Screen analysis failed: %s", e)
            return ScreenClassification.safe_default("backend_failed")

        return self.parse_response(response)

    def parse_response(self, response: str) -> ScreenClassification:
        data = extract_json_object(response or "")
        if data is None:
            logger.warning("No JSON found in screen analysis response")
            return ScreenClassification.safe_default("parse_failed")

        off_task = data.get("isOffTask", data.get("isProcrastinating"))
        if not isinstance(off_task, bool):
            logger.warning("Screen analysis missing isOffTask flag")
            return ScreenClassification.safe_default("parse_failed")

        return ScreenClassification(
            is_off_task=off_task,
            confidence=coerce_confidence(data.get("confidence")),
            reason=str(data.get("reason") or "No reason given"),
            suggested_action=str(data.get("suggestedAction") or "Continue working"),
        )
