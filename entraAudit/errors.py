"""
Exception types shared across the audit routines
"""


class SourceFetchError(Exception):
    """Raised when a top-level collection cannot be fetched from the directory.

    A run that hits this error is aborted as a whole; callers never receive
    partially assembled results.
    """

    def __init__(self, resource_type: str, cause: Exception = None):
        self.resource_type = resource_type
        self.cause = cause
        message = f"Failed to fetch {resource_type}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class PatternNotRecognizedError(ValueError):
    """Raised when a country pattern matches no entry of the country table."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        super().__init__(f"Country not recognized: '{pattern}'")
