"""Activity name suggestions from an external text-generation API."""

from __future__ import annotations

import json
from typing import Any, Optional

import requests

from facility_planner.utils.config import Settings, get_settings
from facility_planner.utils.logger import get_logger


logger = get_logger(__name__)

_PROMPT_TEMPLATE = (
    "You are a facilities management specialist. Suggest a list of common cleaning "
    'and maintenance activities for a "{environment}". Answer only with a JSON array '
    "of strings, each one a short actionable activity name. For example: "
    '["Clean floors", "Clean windows", "Disinfect surfaces"]. Do not include any '
    "other text or explanation."
)


class SuggestionValidationError(Exception):
    """Raised when the suggestion request itself is invalid."""


def parse_suggestions(payload: dict[str, Any]) -> list[str]:
    """Extract the JSON string array from a generateContent response body."""
    text = payload["candidates"][0]["content"]["parts"][0]["text"]
    suggestions = json.loads(text.strip())
    if isinstance(suggestions, list) and all(isinstance(item, str) for item in suggestions):
        return suggestions
    return []


class ActivitySuggestionService:
    """Single-attempt client; any failure is logged and yields no suggestions."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()

    @property
    def enabled(self) -> bool:
        return bool(self._settings.suggestion_api_key.strip())

    def suggest(self, environment: str) -> list[str]:
        cleaned = (environment or "").strip()
        if not cleaned:
            raise SuggestionValidationError("environment must be non-empty")
        if not self.enabled:
            logger.error("Activity suggestions unavailable | reason=SUGGESTION_API_KEY not set")
            return []

        url = f"{self._settings.suggestion_api_url.rstrip('/')}/{self._settings.suggestion_model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": _PROMPT_TEMPLATE.format(environment=cleaned)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": {"type": "ARRAY", "items": {"type": "STRING"}},
            },
        }
        try:
            response = requests.post(
                url,
                json=body,
                headers={"x-goog-api-key": self._settings.suggestion_api_key},
                timeout=self._settings.suggestion_timeout_seconds,
            )
            response.raise_for_status()
            suggestions = parse_suggestions(response.json())
        except requests.exceptions.RequestException as exc:
            logger.error("Activity suggestion request failed | environment=%s | error=%s", cleaned, exc)
            return []
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.error("Activity suggestion response unreadable | environment=%s | error=%s", cleaned, exc)
            return []

        logger.info("Activity suggestions received | environment=%s | count=%s", cleaned, len(suggestions))
        return suggestions
