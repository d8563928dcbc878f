"""Error types raised while reconciling discovery resources."""

from typing import Optional


class RequeueError(Exception):
    """Retryable failure; the controller loop should requeue with backoff."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class MergeError(ValueError):
    """A container override could not be merged into the base list."""


class FingerprintError(ValueError):
    """The pod spec could not be serialized into a stable fingerprint."""


class NotOwnedError(Exception):
    """An existing object is controlled by a different owner."""


def requeue_errorf(fmt: str, *args, cause: Optional[BaseException] = None) -> RequeueError:
    return RequeueError(fmt % args if args else fmt, cause=cause)
