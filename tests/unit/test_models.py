"""Tests for the call result models."""

import pytest

from webapi_client.exceptions import PlatformError
from webapi_client.models import CallResult, ResponseMetadata


def test_well_known_fields_and_extras():
    result = CallResult.model_validate(
        {
            "ok": True,
            "channels": [{"id": "C1"}],
            "response_metadata": {"next_cursor": "dGVhbTpD", "warnings": ["superfluous_charset"]},
        }
    )
    assert result.ok
    assert result.channels == [{"id": "C1"}]
    assert result.extras == {"channels": [{"id": "C1"}]}
    assert result.response_metadata.warnings == ["superfluous_charset"]
    assert result.next_cursor == "dGVhbTpD"


def test_empty_cursor_means_no_next_page():
    result = CallResult.model_validate({"ok": True, "response_metadata": {"next_cursor": ""}})
    assert result.next_cursor is None
    assert CallResult(ok=True).next_cursor is None


def test_metadata_aliases():
    metadata = ResponseMetadata.model_validate(
        {"acceptedScopes": ["chat:write"], "retryAfter": 3}
    )
    assert metadata.accepted_scopes == ["chat:write"]
    assert metadata.retry_after == 3.0


def test_not_ok_always_has_error():
    assert CallResult(ok=False).error == "unknown_error"
    assert CallResult(ok=False, error="invalid_auth").error == "invalid_auth"


def test_raise_for_error():
    result = CallResult(ok=False, error="channel_not_found")
    with pytest.raises(PlatformError) as exc_info:
        result.raise_for_error()
    assert exc_info.value.error == "channel_not_found"
    assert exc_info.value.result is result

    ok = CallResult(ok=True)
    assert ok.raise_for_error() is ok


def test_to_dict_round_trips_wire_names():
    payload = {
        "ok": True,
        "ts": "1503435956.000247",
        "response_metadata": {"acceptedScopes": ["chat:write"]},
    }
    assert CallResult.model_validate(payload).to_dict() == payload
