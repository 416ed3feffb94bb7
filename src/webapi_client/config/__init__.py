"""Configuration for the Web API client."""

from .settings import ClientSettings, RetrySettings

__all__ = ["ClientSettings", "RetrySettings"]
