"""
AI Service
LLM capability over the Gemini API: system prompt and user prompt in, text out.
"""

import asyncio
from typing import Optional

import google.generativeai as genai
import structlog

from .config_service import ConfigService

logger = structlog.get_logger(__name__)

TRANSIENT_ERRORS = (
    'incomplete envelope', 'reset by peer', 'invalid_argument',
    'connection reset', 'deadline exceeded', 'unavailable', '503',
)


class GeminiClient:
    """Async LLM capability backed by Gemini with model fallback and retries."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        models: Optional[list[str]] = None,
        temperature: float = ConfigService.GEMINI_EXTRACTION_TEMPERATURE
    ):
        self.api_key = api_key or ConfigService.get_gemini_api_key()
        self.models = models or list(ConfigService.GEMINI_MODELS)
        self.temperature = temperature
        if self.api_key:
            genai.configure(api_key=self.api_key)

    @property
    def available(self) -> bool:
        return self.api_key is not None

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        """
        Send one prompt and return the response text.

        Tries each configured model in order; transient transport errors are
        retried with exponential back-off before moving on.

        Args:
            system_prompt: System instruction
            user_prompt: User message

        Returns:
            Raw response text

        Raises:
            RuntimeError: If no API key is configured or every model failed
        """
        if not self.available:
            raise RuntimeError("Gemini API key is not configured")

        last_err: Optional[Exception] = None
        for mname in self.models:
            model = genai.GenerativeModel(
                mname,
                system_instruction=system_prompt,
                generation_config={"temperature": self.temperature},
            )
            for attempt in range(ConfigService.GEMINI_RETRY_ATTEMPTS):
                try:
                    resp = await model.generate_content_async(
                        user_prompt,
                        request_options={"timeout": ConfigService.GEMINI_TIMEOUT},
                    )
                    logger.info("Gemini response received", model=mname)
                    return resp.text
                except Exception as e:
                    last_err = e
                    if any(x in str(e).lower() for x in TRANSIENT_ERRORS):
                        delay = ConfigService.GEMINI_RETRY_DELAY_BASE * (2 ** attempt)
                        logger.warning(f"Gemini transient error, retrying in {delay:.1f}s: {e}", model=mname)
                        await asyncio.sleep(delay)
                        continue
                    logger.warning(f"Gemini model failed: {e}", model=mname)
                    break

        raise RuntimeError(f"Gemini API unavailable: {last_err or 'Unknown error'}")


def get_default_llm() -> Optional[GeminiClient]:
    """Gemini client when an API key is configured, else None."""
    if not ConfigService.use_gemini():
        return None
    return GeminiClient()
