"""Error types shared across macfinder."""

from __future__ import annotations


class MacFinderError(Exception):
    """Base class for every error raised by macfinder."""


class InputError(MacFinderError, ValueError):
    """Malformed operator input, rejected before any upstream call."""


class InvalidLengthError(InputError):
    pass


class InvalidCharacterError(InputError):
    pass


class EmptyPatternError(InputError):
    pass


class UnmatchedBracketError(InputError):
    pass


class EmptyBracketError(InputError):
    pass


class InvalidBracketError(InputError):
    pass


class ScopeError(InputError):
    """Organization or network selection did not resolve to a usable scope."""


class UpstreamError(MacFinderError):
    """The dashboard API answered with a non-success status or an unusable payload."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        text = super().__str__()
        if self.status is None:
            return text
        if self.body:
            return f"{text} (status {self.status}: {self.body})"
        return f"{text} (status {self.status})"


class RetryExhaustedError(UpstreamError):
    """Throttling persisted past the configured retry budget."""


class JobError(MacFinderError):
    """A device-side lookup job failed or was abandoned."""

    def __init__(self, serial: str, kind: str, reason: str) -> None:
        super().__init__(f"{kind} job on {serial}: {reason}")
        self.serial = serial
        self.kind = kind
        self.reason = reason


class PartialDataWarning(UserWarning):
    """A network or device contributed nothing during a sweep."""

    def __init__(self, scope: str, reason: str) -> None:
        super().__init__(f"{scope}: {reason}")
        self.scope = scope
        self.reason = reason
