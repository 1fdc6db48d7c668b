"""
Error Taxonomy
==============

Every failure the core raises derives from PackLeaderError. Each class carries
the HTTP-style status a route layer should answer with, so callers can map
errors without string matching.

- InputValidationError (400): malformed or empty input, rejected before any
  network call
- ReadOnlyViolation (403): write intent on the read-only query path
- BloodHoundAPIError (500): the upstream service rejected a request, or kept
  rate-limiting it until retries ran out
- ToolExecutionError: an analytical tool could not complete its query
- InitializationError: the session bootstrap failed as a whole
- LLMError: the chat model is unavailable or kept failing
"""

from typing import Optional


class PackLeaderError(Exception):
    """Base class for all packleader errors."""
    status_code = 500


class InputValidationError(PackLeaderError, ValueError):
    """Input rejected before reaching the BloodHound service."""
    status_code = 400


class QueryValidationError(InputValidationError):
    """Empty or unusable query / search text."""


class ToolInputError(InputValidationError):
    """Tool arguments failed schema validation, or the tool does not exist."""

    def __init__(self, tool: str, message: str):
        super().__init__(f"Invalid input for tool '{tool}': {message}")
        self.tool = tool


class ReadOnlyViolation(PackLeaderError, PermissionError):
    """A write operation was submitted on the read-only query path."""
    status_code = 403

    def __init__(self, keyword: str):
        super().__init__(f"Write operations are not permitted (found '{keyword}')")
        self.keyword = keyword


class BloodHoundAPIError(PackLeaderError, RuntimeError):
    """Non-success response from the BloodHound API."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        path: Optional[str] = None,
        body: str = ""
    ):
        super().__init__(message)
        self.status = status
        self.path = path
        self.body = body


class LoginError(BloodHoundAPIError):
    """Token acquisition was rejected."""


class MaxRetriesExceeded(BloodHoundAPIError):
    """The service kept answering 429 after every retry."""


class ToolExecutionError(PackLeaderError):
    """An analytical tool failed while talking to BloodHound.

    Attributes:
        tool: Name of the tool that failed
        query: The Cypher query being executed, if any
    """

    def __init__(self, tool: str, message: str, query: Optional[str] = None):
        detail = f"Tool '{tool}' failed: {message}"
        if query:
            detail += f" (query: {query})"
        super().__init__(detail)
        self.tool = tool
        self.query = query


class LiteralShapeError(PackLeaderError):
    """Literal columns of a tabular result have different lengths."""


class InitializationError(PackLeaderError):
    """The session bootstrap failed; no partial snapshot is returned."""


class LLMError(PackLeaderError):
    """The LLM provider failed or is not configured."""
