"""AI assistant that answers text messages in consultation rooms."""

import asyncio
import logging
from functools import lru_cache

import google.generativeai as genai
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import settings
from app.exceptions.ai import AIConfigurationError, AIRateLimitError, AIServiceError, AITimeoutError


logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are TaxChat, a tax consultation assistant. Ask what you need to understand "
    "the user's situation, then give a short, practical checklist of next steps."
)

EMPTY_PROMPT_REPLY = "How can I help you today?"

FAILURE_REPLY = "The assistant could not answer right now. Please try again in a moment."


def fallback_reply(text: str) -> str:
    """Canned answer used when no AI backend is configured."""
    return (
        f'I can help with "{text}". To give accurate guidance, could you tell me:\n'
        "- whether your business is registered (no / planned / yes)\n"
        "- where you sell (online store, marketplace, social media, offline)\n"
        "- your expected revenue (monthly or yearly, roughly)\n"
    )


class ChatAssistant:
    """Generates assistant replies with Google Gemini, falling back to canned text."""

    def __init__(self, api_key: str | None = None, model_name: str | None = None, timeout: int | None = None):
        """Initialize the assistant.

        Args:
            api_key: Gemini API key, defaults to settings; no key means canned replies only.
            model_name: Gemini model name, defaults to settings.
            timeout: Seconds to wait for a reply, defaults to settings.
        """
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model_name = model_name or settings.gemini_model
        self.timeout = timeout or settings.ai_request_timeout
        self.model = None

        if self.api_key:
            self._initialize_client()

    def _initialize_client(self):
        """Initialize Google Gemini client."""
        try:
            genai.configure(api_key=self.api_key)
            self.model = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=SYSTEM_INSTRUCTION,
                generation_config=genai.types.GenerationConfig(
                    candidate_count=1,
                    max_output_tokens=settings.gemini_max_tokens,
                    temperature=0.5,
                ),
            )
            logger.info(f"Chat assistant initialized with model: {self.model_name}")

        except Exception as e:
            logger.error(f"Failed to initialize Gemini client: {str(e)}")
            raise AIConfigurationError(f"Failed to initialize AI service: {str(e)}") from e

    async def reply(self, text: str) -> str:
        """Answer ``text``. Never raises: AI failures produce a fixed apology."""
        text = (text or "").strip()
        if not text:
            return EMPTY_PROMPT_REPLY

        if not self.model:
            return fallback_reply(text)

        try:
            return await self.generate(text)
        except AIServiceError as e:
            logger.error(f"Assistant reply failed: {e.message}")
            return FAILURE_REPLY

    async def generate(self, prompt: str) -> str:
        """Ask Gemini for a reply within the configured timeout."""
        if not self.model:
            raise AIConfigurationError("AI service not properly initialized")

        try:
            return await asyncio.wait_for(self._generate_content_with_retry(prompt), timeout=self.timeout)
        except TimeoutError:
            raise AITimeoutError("Assistant request timed out") from None

    @retry(
        retry=retry_if_exception_type(AIRateLimitError),
        stop=stop_after_attempt(settings.ai_max_retry_attempts),
        wait=wait_exponential(min=settings.ai_retry_min_wait, max=settings.ai_retry_max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _generate_content_with_retry(self, prompt: str) -> str:
        """Generate content, backing off while the provider rate limits us."""
        return await self._generate_content_async(prompt)

    async def _generate_content_async(self, prompt: str) -> str:
        """Generate content using Gemini API asynchronously."""
        try:
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, lambda: self.model.generate_content(prompt))

            if not response or not response.text:
                raise AIServiceError("Empty response from AI service")

            return response.text.strip()

        except AIServiceError:
            raise
        except Exception as e:
            error_message = str(e)
            if "429" in error_message or "resource exhausted" in error_message.lower():
                raise AIRateLimitError(f"Gemini rate limit: {error_message}") from e
            logger.error(f"Gemini API call failed: {str(e)}")
            raise AIServiceError(f"AI generation failed: {str(e)}") from e


@lru_cache
def get_chat_assistant() -> ChatAssistant:
    """Shared assistant instance, created on first use."""
    return ChatAssistant()
