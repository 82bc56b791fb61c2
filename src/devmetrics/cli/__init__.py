"""Command line interface for DevMetrics DB."""
