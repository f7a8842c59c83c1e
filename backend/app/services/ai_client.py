"""
Generative-AI API client.
Calls a Gemini-style ``generateContent`` endpoint for clinical text generation.
Supports mock mode for development when no provider is configured.
"""
import hashlib
import logging
from typing import Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

MOCK_MODEL = "mock-ai-1.0.0"


class AIServiceError(RuntimeError):
    """The AI provider could not produce a response."""


def _mock_response(prompt: str, system_prompt: Optional[str] = None) -> str:
    """Deterministic canned text so development and tests need no provider."""
    digest = hashlib.sha256(((system_prompt or "") + prompt).encode("utf-8")).hexdigest()[:8]
    first_line = next((line.strip() for line in prompt.splitlines() if line.strip()), "")
    return (
        f"[{MOCK_MODEL} #{digest}] AI provider not configured. "
        f"Request received: {first_line[:160]}"
    )


class AIClient:
    """HTTP client for the generative-AI provider."""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None, **overrides):
        self.base_url = overrides.get("base_url", settings.AI_API_URL)
        self.api_key = overrides.get("api_key", settings.AI_API_KEY)
        self.model = overrides.get("model", settings.AI_MODEL)
        self.timeout = overrides.get("timeout", settings.AI_TIMEOUT)
        self.temperature = overrides.get("temperature", settings.AI_TEMPERATURE)
        self.max_output_tokens = overrides.get("max_output_tokens", settings.AI_MAX_OUTPUT_TOKENS)
        self.mock_mode = overrides.get("mock_mode", settings.AI_MOCK_MODE)
        self.transport = transport

    @property
    def use_mock(self) -> bool:
        return self.mock_mode or not self.base_url or not self.api_key

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self.transport)

    def _model_url(self, suffix: str = "") -> str:
        return f"{self.base_url.rstrip('/')}/models/{self.model}{suffix}"

    def is_available(self) -> bool:
        """Probe the model endpoint."""
        if self.use_mock:
            return True
        try:
            with self._client() as client:
                resp = client.get(self._model_url(), params={"key": self.api_key})
                resp.raise_for_status()
                return True
        except httpx.HTTPError as exc:
            logger.warning("AI provider unavailable: %s", exc)
            return False

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        """
        Send a prompt to the provider and return the generated text.
        Raises AIServiceError on transport, HTTP or payload errors. No retries.
        """
        if self.use_mock:
            logger.debug("Using mock AI response (mock_mode=%s)", self.mock_mode)
            return _mock_response(prompt, system_prompt)

        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": max_output_tokens or self.max_output_tokens,
            },
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        try:
            with self._client() as client:
                resp = client.post(
                    self._model_url(":generateContent"),
                    params={"key": self.api_key},
                    json=body,
                )
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("AI provider returned HTTP %s", exc.response.status_code)
            raise AIServiceError(f"AI provider returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("AI provider request failed: %s", exc)
            raise AIServiceError(f"AI provider request failed: {exc}") from exc
        except ValueError as exc:
            raise AIServiceError("AI provider returned invalid JSON") from exc

        try:
            parts = payload["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts).strip()
        except (KeyError, IndexError, TypeError) as exc:
            raise AIServiceError("AI provider response had no candidates") from exc
        if not text:
            raise AIServiceError("AI provider returned an empty response")
        return text


ai_client = AIClient()
