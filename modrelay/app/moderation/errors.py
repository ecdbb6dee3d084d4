from typing import Optional


class ModerationError(Exception):
    """Base class for relay errors."""


class MalformedPayload(ModerationError):
    """Webhook body could not be decoded or validated."""


class MissingRequiredField(ModerationError):
    """Webhook body decoded but lacks a field the event needs."""

    def __init__(self, field: str):
        super().__init__(f"missing required field: {field}")
        self.field = field


class CollaboratorCallFailure(ModerationError):
    """A call to the chat backend failed.

    ``code`` is the backend's own error code when it returned one, ``status_code``
    the HTTP status. ``retryable`` marks transport errors and 429/5xx responses;
    current policy never retries, callers only log it.
    """

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.retryable = retryable


class PolicyReconciliationFailure(ModerationError):
    """The channel-type blocklist policy could not be applied."""
