"""Shared exception types."""


class RetryableError(Exception):
    """An error that says whether the failed operation may be retried."""

    def __init__(self, message: str, should_retry: bool = True):
        super().__init__(message)
        self.should_retry = should_retry
