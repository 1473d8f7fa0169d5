"""Intent classification and reply generation collaborators."""

from .classifier import AnthropicIntentClassifier, IntentClassifier, parse_verdict
from .generator import AnthropicReplyGenerator, ReplyGenerator

__all__ = [
    "AnthropicIntentClassifier",
    "AnthropicReplyGenerator",
    "IntentClassifier",
    "ReplyGenerator",
    "parse_verdict",
]
