class ChordflowError(Exception):
    """Base exception for chordflow."""


class ConfigurationError(ChordflowError):
    """Raised when a required setting (usually the API key) is missing or invalid."""


class RemoteCallError(ChordflowError):
    """Raised when a request to the knowledge service fails."""

    def __init__(self, operation: str, status_code: int, detail: str = ""):
        self.operation = operation
        self.status_code = status_code
        self.detail = detail
        msg = f"{operation} failed"
        if status_code:
            msg += f" (HTTP {status_code})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ParseError(ChordflowError):
    """Raised when a response arrived but cannot be turned into the expected shape."""

    reason = "unparseable response"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(f"{self.reason}: {detail}" if detail else self.reason)


class EmptyResponseError(ParseError):
    """The service returned no text at all."""

    reason = "no response"


class NoStructuredDataError(ParseError):
    """The response text contains no bracketed JSON value."""

    reason = "no structured data found"


class InvalidStructuredDataError(ParseError):
    """A JSON value was located but does not parse or has the wrong shape."""

    reason = "invalid structured data"


class NotFoundError(ChordflowError):
    """Raised when a well-formed response contains no results."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"Nothing found for {query!r}")


class StorageError(ChordflowError):
    """Raised when the local store cannot be read or written."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Storage error for {key!r}: {reason}")
