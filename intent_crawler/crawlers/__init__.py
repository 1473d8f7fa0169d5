"""Platform crawlers and their fetch strategies."""

from .base import FetchStrategy, PlatformCrawler, PollCycleReport, RawItem
from .discord import DiscordStrategy
from .facebook import FacebookGroupStrategy, FacebookPageStrategy
from .reddit import RedditStrategy

__all__ = [
    "DiscordStrategy",
    "FacebookGroupStrategy",
    "FacebookPageStrategy",
    "FetchStrategy",
    "PlatformCrawler",
    "PollCycleReport",
    "RawItem",
    "RedditStrategy",
]
