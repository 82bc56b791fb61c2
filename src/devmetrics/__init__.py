"""DevMetrics DB - GitHub activity sync and developer productivity metrics."""

__version__ = "0.1.0"
