import pytest
from unittest.mock import MagicMock

from error_classifier import (
    RATE_LIMIT_MESSAGE,
    UNSERIALIZABLE_MESSAGE,
    ProviderHTTPError,
    classify_error,
    create_error_action,
    is_rate_limit_error,
)


@pytest.mark.parametrize(
    "error",
    [
        {"status": 429},
        {"code": 429},
        {"error": {"status": "RESOURCE_EXHAUSTED", "message": "quota"}},
        {"error": {"code": 429, "message": "Too many requests"}},
        ProviderHTTPError(429, {"error": {"message": "slow down"}}),
        ProviderHTTPError(None, [{"error": {"code": 429, "status": "RESOURCE_EXHAUSTED"}}]),
    ],
)
def test_rate_limits_get_the_fixed_message(error):
    assert is_rate_limit_error(error)
    assert classify_error(error) == RATE_LIMIT_MESSAGE


def test_plain_string_is_returned_verbatim():
    assert classify_error("Connection reset") == "Connection reset"


def test_nested_envelope_message_and_status():
    error = {"error": {"message": "API key not valid", "status": "INVALID_ARGUMENT"}}

    assert classify_error(error) == "API Error: API key not valid (Status: INVALID_ARGUMENT)"


def test_nested_envelope_without_status():
    assert classify_error({"error": {"message": "Bad model"}}) == "API Error: Bad model (Status: Unknown)"


def test_http_error_status_fills_in_missing_nested_status():
    error = ProviderHTTPError(401, {"error": {"message": "Invalid token"}})

    assert classify_error(error) == "API Error: Invalid token (Status: 401)"


def test_http_error_with_text_body():
    assert classify_error(ProviderHTTPError(502, "Bad Gateway")) == "API Error: Bad Gateway"
    assert classify_error(ProviderHTTPError(500, "")) == "API Error: HTTP 500"


def test_object_with_message_attribute():
    error = MagicMock(spec=["message"])
    error.message = "Model is overloaded"

    assert classify_error(error) == "API Error: Model is overloaded"


def test_generic_exception_uses_its_text():
    assert classify_error(ValueError("bad value")) == "bad value"
    assert classify_error(TimeoutError()) == "TimeoutError"


def test_unknown_serializable_value_is_pretty_printed():
    assert classify_error({"weird": [1, 2]}) == (
        'An unexpected error occurred. Full details:\n{\n  "weird": [\n    1,\n    2\n  ]\n}'
    )


def test_unserializable_value():
    assert classify_error({"obj": object()}) == UNSERIALIZABLE_MESSAGE


def test_from_response_decodes_json_or_falls_back_to_text():
    json_response = MagicMock(status_code=400)
    json_response.json.return_value = {"error": {"message": "nope"}}
    text_response = MagicMock(status_code=503, text="Service Unavailable")
    text_response.json.side_effect = ValueError("not json")

    assert ProviderHTTPError.from_response(json_response).payload == {"error": {"message": "nope"}}
    text_error = ProviderHTTPError.from_response(text_response)
    assert text_error.status == 503
    assert text_error.payload == "Service Unavailable"


def test_create_error_action_wraps_the_message():
    action = create_error_action(RuntimeError("stream broke"))

    assert action.action == "ERROR"
    assert action.message == "stream broke"
