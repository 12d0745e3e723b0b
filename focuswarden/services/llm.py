import json
import os
import time
from collections.abc import Iterator
from typing import Any

import requests

from focuswarden.watchers.logger import logger

HTTP_OK = 200
SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class LLMError(RuntimeError):
    """Raised when the reasoning backend cannot produce a response."""


class LLMService:
    """OpenAI-compatible chat client (LM Studio, OpenAI, llama.cpp server...)."""

    def __init__(
        self,
        base_url: str,
        model_name: str,
        timeout: float = 60.0,
        api_key: str | None = None,
    ) -> None:
        """Initialize.

        Args:
            base_url: API base URL, e.g. http://127.0.0.1:1234
            model_name: default model, e.g. google/gemma-3-4b
            timeout: request timeout in seconds
            api_key: bearer token, if the server requires one

        """
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.timeout = timeout
        self.api_key = api_key
        self.chat_url = f"{self.base_url}/v1/chat/completions"

        # rate limiting
        self.last_call_time: float = 0.0
        self.min_call_interval = 1.0

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def is_available(self) -> bool:
        """Check the backend is reachable."""
        try:
            response = requests.get(
                f"{self.base_url}/v1/models",
                headers=self._headers(),
                timeout=5,
            )
        except requests.RequestException:
            return False
        else:
            status_code: int = response.status_code
            return status_code == HTTP_OK

    def _rate_limit(self) -> None:
        now = time.time()
        elapsed = now - self.last_call_time
        if elapsed < self.min_call_interval:
            time.sleep(self.min_call_interval - elapsed)
        self.last_call_time = time.time()

    def _build_messages(self, prompt: str, image_b64: str | None) -> list[dict[str, Any]]:
        if not image_b64:
            return [{"role": "user", "content": prompt}]
        return [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:image/png;base64,{image_b64}"},
                    },
                    {"type": "text", "text": prompt},
                ],
            },
        ]

    def stream_completion(
        self,
        prompt: str,
        model: str | None = None,
        image_b64: str | None = None,
        max_tokens: int = 1024,
    ) -> Iterator[str]:
        """Yield the text chunks of a streamed completion.

        Non-text events (role headers, finish markers, keep-alives) are skipped.

        Raises:
            LLMError: on transport failure or a non-200 status.

        """
        self._rate_limit()
        payload = {
            "model": model or self.model_name,
            "messages": self._build_messages(prompt, image_b64),
            "temperature": 0.2,
            "max_tokens": max_tokens,
            "stream": True,
        }
        try:
            response = requests.post(
                self.chat_url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
                stream=True,
            )
        except requests.RequestException as e:
            msg = f"LLM request failed: {e}"
            raise LLMError(msg) from e

        try:
            if response.status_code != HTTP_OK:
                msg = f"LLM returned HTTP {response.status_code}"
                raise LLMError(msg)
            for line in response.iter_lines(decode_unicode=True):
                chunk = _parse_sse_line(line)
                if chunk is None:
                    continue
                if chunk == SSE_DONE:
                    break
                yield chunk
        except requests.RequestException as e:
            msg = f"LLM stream interrupted: {e}"
            raise LLMError(msg) from e
        finally:
            response.close()

    def run_task(
        self,
        prompt: str,
        model: str | None = None,
        image_b64: str | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """Run one prompt and return the accumulated response text."""
        text = "".join(
            self.stream_completion(prompt, model=model, image_b64=image_b64, max_tokens=max_tokens),
        )
        logger.debug("LLM response (%d chars)", len(text))
        return text


def _parse_sse_line(line: str | bytes | None) -> str | None:
    """Return the text content carried by one SSE line, ``SSE_DONE``, or None."""
    if not line:
        return None
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    data = line[len(SSE_DATA_PREFIX) :].strip()
    if data == SSE_DONE:
        return SSE_DONE
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        logger.warning("Skipping malformed stream event: %s", data[:80])
        return None
    try:
        content = event["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    return content or None


def create_llm_service(
    base_url: str | None = None,
    model_name: str | None = None,
) -> LLMService:
    """Build the reasoning backend from the environment.

    Required:
    - LLM_URL: OpenAI-compatible base URL (e.g. http://127.0.0.1:1234)
    - LLM_MODEL: model name (e.g. google/gemma-3-4b)

    Optional:
    - LLM_API_KEY: bearer token
    - LLM_TIMEOUT: request timeout in seconds
    """
    resolved_base = base_url or os.getenv("LLM_URL")
    resolved_model = model_name or os.getenv("LLM_MODEL")
    if not resolved_base or not resolved_model:
        msg = "LLM_URL and LLM_MODEL must be set (e.g., in .env.local)."
        raise RuntimeError(msg)
    timeout = float(os.getenv("LLM_TIMEOUT", "60"))
    return LLMService(
        base_url=resolved_base,
        model_name=resolved_model,
        timeout=timeout,
        api_key=os.getenv("LLM_API_KEY") or None,
    )
