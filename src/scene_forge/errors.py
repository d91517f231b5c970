"""Error taxonomy for remote generation and batch orchestration."""

from typing import Optional


class GenerationError(Exception):
    """Base class for every failure raised by a generation client."""

    #: Whether the retry wrapper may try the same request again.
    transient: bool = False


class TransportError(GenerationError):
    """Network-level failure: connection refused, reset, or timed out."""


class RateLimitedError(GenerationError):
    """The provider rejected the call with a 429 / RESOURCE_EXHAUSTED."""

    transient = True


class ServerError(GenerationError):
    """The provider failed with a 5xx-class status."""

    transient = True


class RequestRejectedError(GenerationError):
    """The provider rejected the request itself (4xx other than 429)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BlockedError(GenerationError):
    """The model stopped abnormally (safety block, length cutoff, ...)."""

    def __init__(self, reason: str):
        super().__init__(f"Generation stopped: {reason}")
        self.reason = reason


class MalformedResponseError(GenerationError):
    """The response did not carry the expected image payload."""

    def __init__(self, message: str, text: Optional[str] = None):
        super().__init__(message)
        self.text = text


class MissingInputError(GenerationError):
    """A dependent step had no previous frame to continue from."""


class SceneError(Exception):
    """Base class for scene tracker misuse."""


class SceneBusyError(SceneError):
    """The scene already has a batch in progress."""


class SceneClosedError(SceneError):
    """The scene is completed and must be reopened before it can change."""


def is_transient(exc: BaseException) -> bool:
    """Return True only for errors worth retrying (rate limits, 5xx)."""
    return isinstance(exc, GenerationError) and exc.transient
