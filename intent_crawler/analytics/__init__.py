from intent_crawler.analytics.recorder import AdEntry, AnalyticsRecorder, DetectionEntry, ResponseEntry

__all__ = ["AdEntry", "AnalyticsRecorder", "DetectionEntry", "ResponseEntry"]
