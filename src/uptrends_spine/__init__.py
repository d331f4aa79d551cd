"""uptrends-spine — scheduled ingestion of Uptrends monitoring data."""

__version__ = "0.1.0"
