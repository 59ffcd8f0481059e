"""
Gemini AI client for companion chat and insight generation.
"""
import asyncio
import base64
import json
import re
from typing import Any, Dict, List, NamedTuple, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import HarmBlockThreshold, HarmCategory
from loguru import logger

from ..config import settings
from ..exceptions import AIServiceError
from .game_tabs import tabs_for_genre
from .prompts import build_insights_prompt

DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
}

# finish_reason values that mean the candidate carries no usable answer
BLOCKED_FINISH_REASONS = {2: "SAFETY", 3: "RECITATION", 4: "OTHER"}


class ResponseBlockedError(Exception):
    """The model returned no usable candidate."""
    pass


class AIResponse(NamedTuple):
    text: str
    model: str


def image_part(image: str) -> Dict[str, Any]:
    """Turn a base64 data URL into an inline image part."""
    match = DATA_URL.match(image.strip())
    if not match:
        raise ValueError("Image must be a base64 data URL")
    return {
        "mime_type": match.group("mime"),
        "data": base64.b64decode(match.group("data")),
    }


def classify_error(error: Exception) -> str:
    """Map a failure to an ERROR_MESSAGES key."""
    if isinstance(error, google_exceptions.ResourceExhausted):
        return "rate_limit"
    if isinstance(error, (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded, ConnectionError)):
        return "network"
    message = str(error).lower()
    if "rate limit" in message or "quota" in message:
        return "rate_limit"
    if "network" in message or "timeout" in message:
        return "network"
    return "ai_service"


class GeminiClient:
    """Client for interacting with Google Gemini AI."""

    def __init__(self):
        """Initialize the Gemini client."""
        if settings.GEMINI_API_KEY:
            genai.configure(api_key=settings.GEMINI_API_KEY)

        # Chat model (flash)
        self.model = genai.GenerativeModel(
            model_name=settings.GEMINI_MODEL,
            generation_config={
                "temperature": settings.TEMPERATURE,
                "max_output_tokens": 8192,
            },
            safety_settings=SAFETY_SETTINGS
        )

        # JSON-enforced model for insight generation (pro)
        self.json_model = genai.GenerativeModel(
            model_name=settings.GEMINI_PRO_MODEL,
            generation_config={
                "temperature": settings.TEMPERATURE,
                "max_output_tokens": 8192,
                "response_mime_type": "application/json",
            },
            safety_settings=SAFETY_SETTINGS
        )

    def _clean_json_response(self, text: str) -> str:
        """Clean up JSON response (remove markdown code blocks)."""
        json_text = text.strip()
        if json_text.startswith("```"):
            json_text = re.sub(r"```json?\n?", "", json_text)
            json_text = re.sub(r"```\s*$", "", json_text)
        return json_text.strip()

    def _get_response_text(self, response) -> str:
        """Safely extract text from Gemini response, handling blocked/empty responses."""
        try:
            if not response.candidates:
                raise ResponseBlockedError("No response candidates available")

            candidate = response.candidates[0]

            finish_reason = getattr(candidate, "finish_reason", None)
            if finish_reason in BLOCKED_FINISH_REASONS:
                raise ResponseBlockedError(
                    f"Response blocked: finish_reason={BLOCKED_FINISH_REASONS[finish_reason]}"
                )

            if getattr(candidate, "content", None) and candidate.content.parts:
                text = "".join(getattr(p, "text", "") for p in candidate.content.parts)
            else:
                text = response.text
        except AttributeError:
            # Simple response object
            text = response.text

        if not text or not text.strip():
            raise ResponseBlockedError("Empty response")
        return text

    async def _generate_with_retry(self, model, contents) -> str:
        """
        Call the model, retrying with exponential backoff.

        Raises:
            AIServiceError after ``AI_MAX_RETRIES`` failed attempts
        """
        attempts = max(1, settings.AI_MAX_RETRIES)
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                response = await model.generate_content_async(contents)
                return self._get_response_text(response)
            except Exception as e:
                last_error = e
                if attempt == attempts - 1:
                    break
                delay = settings.AI_RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Gemini call failed, retry {} in {:.1f}s: {}",
                    attempt + 1, delay, e
                )
                await asyncio.sleep(delay)

        kind = classify_error(last_error)
        logger.error("Gemini call failed after {} attempts ({}): {}", attempts, kind, last_error)
        raise AIServiceError(str(last_error), kind=kind) from last_error

    async def chat(self, prompt: str, image: Optional[str] = None) -> AIResponse:
        """
        Generate a chat reply, optionally with a screenshot.

        Raises:
            AIServiceError if the model fails after retries
            ValueError if ``image`` is not a base64 data URL
        """
        contents: List[Any] = [prompt]
        if image:
            contents.append(image_part(image))

        text = await self._generate_with_retry(self.model, contents)
        return AIResponse(text=text, model=settings.GEMINI_MODEL)

    async def generate_insights(self, game_title: str, genre: Optional[str]) -> Dict[str, str]:
        """
        Generate initial insight sub-tab content.

        Returns:
            Dict of tab id to content; empty on any failure
        """
        genre = genre or "Default"
        prompt = build_insights_prompt(game_title, genre, tabs_for_genre(genre))
        try:
            text = await self._generate_with_retry(self.json_model, prompt)
            data = json.loads(self._clean_json_response(text))
        except (AIServiceError, ValueError) as e:
            logger.warning("Insight generation failed game={}: {}", game_title, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Insight generation returned non-object game={}", game_title)
            return {}
        return {str(k): str(v) for k, v in data.items() if v}


# Global instance, created on first use
_gemini_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    global _gemini_client
    if _gemini_client is None:
        _gemini_client = GeminiClient()
    return _gemini_client
