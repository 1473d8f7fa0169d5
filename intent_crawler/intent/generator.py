"""Reply generation boundary."""

from __future__ import annotations

from abc import ABC, abstractmethod

from intent_crawler.contract import IntentVerdict
from intent_crawler.errors import GenerationError
from intent_crawler.intent.anthropic import AnthropicMessagesClient, MessagesAPIError

REPLY_SYSTEM_PROMPT = """You write short, personal replies to people who are close to a purchase.
Given their post and an intent analysis, write a reply that:
1. sounds conversational, not like an advert
2. acknowledges their specific problem or need
3. gives genuinely useful information first
4. mentions our relevant product only when it clearly fits
5. avoids corporate marketing language
6. stays within two or three short paragraphs

The aim is to start a conversation, not to close a sale."""


class ReplyGenerator(ABC):
    @abstractmethod
    async def generate_reply(self, original_text: str, platform: str, verdict: IntentVerdict | None) -> str:
        """Write a reply. Raise GenerationError on failure."""


class AnthropicReplyGenerator(ReplyGenerator):
    def __init__(self, client: AnthropicMessagesClient) -> None:
        self.client = client

    async def generate_reply(self, original_text: str, platform: str, verdict: IntentVerdict | None) -> str:
        analysis = verdict.model_dump_json(by_alias=True) if verdict is not None else "{}"
        user = (
            f"Original content: {original_text}\n\n"
            f"Platform: {platform}\n\n"
            f"Intent analysis: {analysis}\n\n"
            "Write a helpful, non-pushy reply that could be posted as a response."
        )
        try:
            reply = await self.client.complete(system=REPLY_SYSTEM_PROMPT, user=user)
        except MessagesAPIError as exc:
            raise GenerationError(str(exc)) from exc
        if not reply:
            raise GenerationError("generator returned empty text")
        return reply
