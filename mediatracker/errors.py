from enum import Enum


class MediaTrackerError(Exception):
    """Base class for all errors raised by mediatracker."""


class PollErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    MALFORMED_RESPONSE = "malformed_response"


class PollError(MediaTrackerError):
    """Raised by a status client when a single status query fails."""

    kind: PollErrorKind = PollErrorKind.UNREACHABLE

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class PlayerUnreachableError(PollError):
    """The player is not running, refused the connection or timed out."""

    kind = PollErrorKind.UNREACHABLE


class MalformedResponseError(PollError):
    """The status body could not be parsed as the expected schema."""

    kind = PollErrorKind.MALFORMED_RESPONSE


class StoreError(MediaTrackerError):
    """Base class for watch-state store failures."""


class StoreReadFailure(StoreError):
    pass


class StoreWriteFailure(StoreError):
    pass
