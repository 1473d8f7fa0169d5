"""Intent classification boundary."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pydantic import ValidationError

from intent_crawler.contract import IntentVerdict
from intent_crawler.errors import ClassificationError
from intent_crawler.intent.anthropic import AnthropicMessagesClient, MessagesAPIError, extract_json_object

logger = logging.getLogger(__name__)

INTENT_SYSTEM_PROMPT = """You detect sales opportunities in social media text.
Decide whether the text shows HIGH purchase intent. Signals include:
- the author wants to buy a product
- the author asks for product recommendations
- the author describes a problem our products could solve
- the author is frustrated with their current solution

Respond with ONLY a JSON object:
{
  "isHighIntent": boolean,
  "intentScore": number (0-100),
  "topics": string[],
  "relevantProducts": string[],
  "urgency": "low" | "medium" | "high",
  "reasoning": string
}

Mark high intent only when you are confident the author is close to a purchase decision."""


class IntentClassifier(ABC):
    @abstractmethod
    async def classify(self, text: str) -> IntentVerdict:
        """Score ``text`` for purchase intent. Raise ClassificationError on failure."""


def parse_verdict(answer: str) -> IntentVerdict:
    payload = extract_json_object(answer)
    if payload is None:
        raise ClassificationError("classifier answer contained no JSON object")
    try:
        return IntentVerdict.model_validate(payload)
    except ValidationError as exc:
        raise ClassificationError(f"classifier answer failed validation: {exc.error_count()} errors") from exc


class AnthropicIntentClassifier(IntentClassifier):
    def __init__(self, client: AnthropicMessagesClient, *, max_chars: int = 8000) -> None:
        self.client = client
        self.max_chars = max_chars

    async def classify(self, text: str) -> IntentVerdict:
        if not text.strip():
            raise ClassificationError("empty text")
        try:
            answer = await self.client.complete(system=INTENT_SYSTEM_PROMPT, user=text[: self.max_chars], max_tokens=500)
        except MessagesAPIError as exc:
            raise ClassificationError(str(exc)) from exc
        return parse_verdict(answer)
