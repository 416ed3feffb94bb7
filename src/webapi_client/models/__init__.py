"""Data models for the Web API client."""

from .api_responses import CallResult, ResponseMetadata

__all__ = ["CallResult", "ResponseMetadata"]
