"""
Maps provider failures to the message shown to the user.

Every adapter reports its failures through `create_error_action`, so an SDK
exception, a non-2xx REST response and an error envelope inside a stream all
read the same way once they reach the project state.
"""
import json
from typing import Any, Optional

from data_models import ErrorAction

RATE_LIMIT_MESSAGE = (
    "The API rate limit was exceeded. The request couldn't be completed, even after "
    "automatic retries. Please check your plan and billing details, wait a few minutes, "
    "or try switching to a different provider in the settings."
)
UNSERIALIZABLE_MESSAGE = "An unexpected and un-serializable error occurred."


class ProviderHTTPError(Exception):
    """
    A REST provider answered with a non-success status, or streamed an error
    envelope instead of content.

    Attributes:
        status: The HTTP status code, when known.
        payload: The decoded JSON body, or the raw text if it was not JSON.
    """

    def __init__(self, status: Optional[int], payload: Any = None):
        self.status = status
        self.payload = payload
        super().__init__(f"Provider request failed (HTTP {status if status is not None else 'n/a'}): {payload}")

    @classmethod
    def from_response(cls, response) -> "ProviderHTTPError":
        """Builds the error from a `requests.Response` that was not OK."""
        try:
            payload = response.json()
        except ValueError:
            payload = response.text
        return cls(response.status_code, payload)

    def as_envelope(self) -> Any:
        """The error in the shape the classifier understands."""
        if isinstance(self.payload, dict):
            return {"status": self.status, **self.payload}
        if isinstance(self.payload, list) and self.payload and isinstance(self.payload[0], dict):
            # Gemini REST wraps streamed bodies, errors included, in a JSON array.
            return {"status": self.status, **self.payload[0]}
        message = self.payload if isinstance(self.payload, str) and self.payload.strip() else f"HTTP {self.status}"
        return {"status": self.status, "message": message}


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def is_rate_limit_error(error: Any) -> bool:
    """True for HTTP 429 or a Google-style RESOURCE_EXHAUSTED envelope."""
    if error is None or isinstance(error, (str, int, float, bool)):
        return False
    if isinstance(error, ProviderHTTPError):
        return error.status == 429 or is_rate_limit_error(error.as_envelope())
    if _get(error, "status") == 429 or _get(error, "code") == 429:
        return True
    nested = _get(error, "error")
    if isinstance(nested, dict):
        return nested.get("status") == "RESOURCE_EXHAUSTED" or nested.get("code") == 429
    return False


def classify_error(error: Any) -> str:
    """
    Produces a user-facing message for any failure a provider can raise.

    Precedence: rate limits, plain strings, structured envelopes, objects with
    a message, other exceptions, then a pretty-printed dump.
    """
    if is_rate_limit_error(error):
        return RATE_LIMIT_MESSAGE
    if isinstance(error, str):
        return error
    if isinstance(error, ProviderHTTPError):
        error = error.as_envelope()

    nested = _get(error, "error")
    if isinstance(nested, dict) and nested.get("message"):
        status = nested.get("status") or _get(error, "status") or "Unknown"
        return f"API Error: {nested['message']} (Status: {status})"

    message = _get(error, "message")
    if isinstance(message, str) and message:
        return f"API Error: {message}"
    if isinstance(error, Exception):
        return str(error) or type(error).__name__

    try:
        full_error = json.dumps(error, indent=2)
    except (TypeError, ValueError):
        return UNSERIALIZABLE_MESSAGE
    return f"An unexpected error occurred. Full details:\n{full_error}"


def create_error_action(error: Any) -> ErrorAction:
    """Wraps the classified message in the terminal ERROR record."""
    return ErrorAction(error=classify_error(error))
