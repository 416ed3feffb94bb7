"""Pydantic models for Web API call results.

Every Web API method answers with a JSON object carrying an ``ok`` flag,
an ``error`` string when ``ok`` is false, and an optional
``response_metadata`` block. The remaining top-level fields depend on
the method and are kept as extras on the model.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..exceptions import PlatformError

UNKNOWN_ERROR = "unknown_error"


class BaseAPIResponse(BaseModel):
    """Base model for all API responses with common fields.

    Extra fields from the API are allowed and fields may be populated
    either by name or by their wire alias.
    """

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
    )

    @property
    def extras(self) -> Dict[str, Any]:
        """Fields returned by the API that the model does not declare."""
        return dict(self.model_extra or {})


class ResponseMetadata(BaseAPIResponse):
    """The ``response_metadata`` block of a call result.

    :param warnings: Deprecation and usage warnings from the server
    :param next_cursor: Cursor for the next page; absent or empty at the end
    :param scopes: Scopes granted to the token, from ``X-OAuth-Scopes``
    :param accepted_scopes: Scopes the method accepts, from
        ``X-Accepted-OAuth-Scopes``
    :param retry_after: Seconds to wait before retrying, from ``Retry-After``
    :param messages: Informational messages attached by the server
    """

    warnings: Optional[List[str]] = None
    next_cursor: Optional[str] = None
    scopes: Optional[List[str]] = None
    accepted_scopes: Optional[List[str]] = Field(None, alias="acceptedScopes")
    retry_after: Optional[float] = Field(None, alias="retryAfter")
    messages: Optional[List[str]] = None


class CallResult(BaseAPIResponse):
    """Result of a single Web API call.

    :param ok: Whether the call succeeded at the API level
    :param error: Error code reported by the API when ``ok`` is false
    :param warning: Comma separated warning codes, if any
    :param response_metadata: Pagination cursor, scopes and warnings
    """

    ok: bool
    error: Optional[str] = None
    warning: Optional[str] = None
    response_metadata: Optional[ResponseMetadata] = None

    @model_validator(mode="after")
    def _ensure_error_when_not_ok(self) -> "CallResult":
        if not self.ok and not self.error:
            self.error = UNKNOWN_ERROR
        return self

    @property
    def next_cursor(self) -> Optional[str]:
        """The usable next-page cursor, or None when pagination is over."""
        if self.response_metadata is None:
            return None
        return self.response_metadata.next_cursor or None

    def raise_for_error(self) -> "CallResult":
        """Raise :class:`PlatformError` if the call was not ``ok``.

        :return: This result, to allow chaining
        :raises PlatformError: When ``ok`` is false
        """
        if not self.ok:
            raise PlatformError(
                f"An API error occurred: {self.error}",
                result=self,
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Render the result back to its wire form."""
        return self.model_dump(by_alias=True, exclude_none=True)
