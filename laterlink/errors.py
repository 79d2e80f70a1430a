"""
Error taxonomy for LaterLink.

Every failure is caught at the boundary of the operation that produced it
and turned into one user-visible string on the session state.
"""

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration-missing"
    AUTHENTICATION = "authentication-failure"
    SUBSCRIPTION = "subscription-failure"
    VALIDATION = "validation-failure"
    NOT_READY = "not-ready"
    WRITE = "write-failure"
    GENERATION = "generation-failure"


class LaterLinkError(Exception):
    """Base error carrying a kind and the message shown to the user."""

    kind: ErrorKind = ErrorKind.WRITE
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(f"[{self.kind.value}] {self.message}")


class ConfigurationMissing(LaterLinkError):
    kind = ErrorKind.CONFIGURATION
    default_message = "Application configuration is missing. Cannot start."


class AuthenticationFailed(LaterLinkError):
    kind = ErrorKind.AUTHENTICATION
    default_message = "Authentication failed. Please try again later."


class SubscriptionFailed(LaterLinkError):
    kind = ErrorKind.SUBSCRIPTION
    default_message = "Failed to load links. Please check your connection or try again later."


class ValidationFailed(LaterLinkError):
    kind = ErrorKind.VALIDATION
    default_message = "Both URL and Title are required."


class NotReady(LaterLinkError):
    kind = ErrorKind.NOT_READY
    default_message = "Database not ready or user not authenticated."


class WriteFailed(LaterLinkError):
    kind = ErrorKind.WRITE


class GenerationFailed(LaterLinkError):
    kind = ErrorKind.GENERATION
    default_message = "Failed to get summary."


# HTTP status used by the JSON routes for each kind
STATUS_CODES = {
    ErrorKind.CONFIGURATION: 503,
    ErrorKind.AUTHENTICATION: 503,
    ErrorKind.NOT_READY: 503,
    ErrorKind.SUBSCRIPTION: 502,
    ErrorKind.WRITE: 502,
    ErrorKind.GENERATION: 502,
    ErrorKind.VALIDATION: 400,
}
