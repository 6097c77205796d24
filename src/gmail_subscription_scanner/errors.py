"""Exceptions raised by a subscription scan."""


class ScanError(Exception):
    """Base class for scan failures."""


class AuthExpired(ScanError):
    """The access token cannot be refreshed; the user must consent again."""


class FetchError(ScanError):
    """A mailbox call kept failing after all retry attempts."""


class ExtractionError(ScanError):
    """A single message could not be fetched or parsed."""

    def __init__(self, message_id: str, reason: str) -> None:
        super().__init__(f"message {message_id}: {reason}")
        self.message_id = message_id


class StoreError(ScanError):
    """Writing to the subscription store failed."""
