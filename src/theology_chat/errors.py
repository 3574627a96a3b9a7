"""Exception types shared across the chat client."""

from typing import Optional

from google.api_core import exceptions


class ConfigurationError(Exception):
    """Raised when required startup configuration is missing or invalid."""
    pass


class IdentityError(Exception):
    """Raised when the session identity cannot be resolved."""
    pass


class SessionNotReady(Exception):
    """Raised when a turn is submitted before identity and store are ready."""
    pass


class TurnInProgress(Exception):
    """Raised when a turn is submitted while another one is pending."""
    pass


class CompletionError(Exception):
    """Base class for terminal completion API failures."""
    pass


class CompletionHTTPError(CompletionError):
    """Non-2xx response from the completion endpoint."""

    def __init__(self, api_error: exceptions.GoogleAPICallError):
        super().__init__(f"API request failed with status: {api_error.code}")
        self.api_error = api_error

    @property
    def status_code(self) -> Optional[int]:
        return self.api_error.code

    @property
    def retryable(self) -> bool:
        return isinstance(self.api_error, exceptions.TooManyRequests)


class CompletionTransportError(CompletionError):
    """The request never produced an HTTP response."""
    pass


class MalformedResponseError(CompletionError):
    """Received empty or malformed response from the model."""
    pass
