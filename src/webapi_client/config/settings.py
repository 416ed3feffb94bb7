"""Configuration settings for the Web API client.

Settings are loaded from environment variables (prefix ``WEBAPI_``)
and ``.env`` files. Nested retry settings use a double underscore, e.g.
``WEBAPI_RETRY__MAX_ATTEMPTS=5``. Keyword arguments passed to
:class:`~webapi_client.WebClient` take precedence over both.
"""

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.http.retry import RetryPolicy

DEFAULT_BASE_URL = "https://slack.com/api/"
DEFAULT_PAGE_SIZE = 200


class RetrySettings(BaseModel):
    """Retry policy parameters.

    Defaults match the ``ten_retries_in_about_thirty_minutes`` preset.
    """

    max_attempts: int = Field(11, ge=1, description="Attempts including the first")
    initial_delay: float = Field(1.0, ge=0, description="First backoff in seconds")
    backoff_multiplier: float = Field(1.96821, ge=1, description="Backoff factor")
    max_delay: Optional[float] = Field(None, ge=0, description="Backoff cap in seconds")
    jitter: bool = Field(True, description="Randomize computed backoff")

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            backoff_multiplier=self.backoff_multiplier,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )


class ClientSettings(BaseSettings):
    """Client settings loaded from environment variables.

    :param base_url: Base URL every method name is appended to
    :type base_url: str
    :param token: Bearer token sent with every call
    :type token: Optional[str]
    :param max_request_concurrency: Maximum requests in flight at once
    :type max_request_concurrency: int
    :param reject_rate_limited_calls: Fail rate-limited calls instead of
        waiting and retrying
    :type reject_rate_limited_calls: bool
    :param headers: Extra headers merged into every request
    :type headers: Dict[str, str]
    :param timeout: Per-request timeout in seconds
    :type timeout: float
    :param default_page_size: ``limit`` sent by pagination when the
        caller gives none
    :type default_page_size: int
    :param max_pages: Safety cap on pages fetched per pagination run
    :type max_pages: Optional[int]
    :param log_level: Level applied to the client logger
    :type log_level: Optional[str]
    :param retry: Retry policy parameters
    :type retry: RetrySettings
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBAPI_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = Field(DEFAULT_BASE_URL, description="Web API base URL")
    token: Optional[str] = Field(None, description="Bearer token")
    max_request_concurrency: int = Field(
        3, ge=1, description="Maximum concurrently in-flight requests"
    )
    reject_rate_limited_calls: bool = Field(
        False, description="Reject rate-limited calls immediately"
    )
    headers: Dict[str, str] = Field(
        default_factory=dict, description="Fixed headers for every request"
    )
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")
    default_page_size: int = Field(
        DEFAULT_PAGE_SIZE, ge=1, description="Default pagination page size"
    )
    max_pages: Optional[int] = Field(
        None, ge=1, description="Safety cap on pages per pagination run"
    )
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = (
        Field(None, description="Client logger level")
    )
    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator("base_url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so method names can be appended."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got {v!r}")
        return v if v.endswith("/") else v + "/"

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v
