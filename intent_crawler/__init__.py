"""Intent crawler: social polling, intent scoring and reactive dispatch."""

__version__ = "0.1.0"
