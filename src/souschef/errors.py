"""Error taxonomy for the assistant.

Input rejections (abuse patterns, sanitizer refusals) and tool failures are
not exceptions; they travel as structured results. The exceptions below are
for conditions the caller has to act on.
"""


class SousChefError(Exception):
    """Base error for the assistant.

    Attributes:
        code: Stable machine-readable error code.
        retryable: Whether the caller may retry the same request.
    """

    code = "ERROR"
    retryable = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class UnauthenticatedError(SousChefError):
    """No authenticated user for the request."""

    code = "UNAUTHORIZED"


class NotFoundError(SousChefError):
    """A conversation or message does not exist or belongs to someone else."""

    code = "NOT_FOUND"


class InvalidMessageError(SousChefError):
    """The user message is empty or too long."""

    code = "VALIDATION_ERROR"


class UpstreamModelError(SousChefError):
    """The language model provider failed (network, rate limit, 5xx)."""

    code = "AI_SERVICE_UNAVAILABLE"
    retryable = True


class InvalidCategoryError(SousChefError, ValueError):
    """A memory category outside the closed enum."""

    code = "VALIDATION_ERROR"


class RateLimitError(SousChefError):
    """The user spent the daily request allowance."""

    code = "RATE_LIMIT_EXCEEDED"
    retryable = True
