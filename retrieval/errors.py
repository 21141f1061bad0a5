"""
Exceptions for the retrieval pipeline.
"""

from typing import Optional


class RetrievalError(Exception):
    """Base exception for all retrieval errors."""
    pass


class ConfigurationError(RetrievalError):
    """
    A required setting is missing or blank.

    Raised when:
    - The embedding service credential is not set
    - The document store connection string is not set

    Never retried.
    """
    pass


class TransientNetworkError(RetrievalError):
    """
    Error talking to a remote service.

    Raised when:
    - A request times out
    - The connection fails
    - The service returns a non-2xx response
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DataShapeError(RetrievalError):
    """
    A response body is malformed or lacks an expected field.

    Raised when:
    - The body is not valid JSON
    - The embedding list is missing or not a list of numbers
    """
    pass
