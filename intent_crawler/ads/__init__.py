"""Ad provisioning and performance tracking."""

from .builder import AdCampaignBuilder, AdCreationJob, AdCreationResult, AdJobState, AdStage
from .insights import AdPerformanceTracker, extract_conversions
from .platform import AdPlatform, MetaAdPlatform

__all__ = [
    "AdCampaignBuilder",
    "AdCreationJob",
    "AdCreationResult",
    "AdJobState",
    "AdPerformanceTracker",
    "AdPlatform",
    "AdStage",
    "MetaAdPlatform",
    "extract_conversions",
]
