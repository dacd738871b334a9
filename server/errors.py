"""Exception hierarchy for the relay server.

Every failure is scoped to the session that caused it.
"""


class RelayError(Exception):
    """Base class for relay failures."""


class ConfigError(RelayError):
    """The server config file is missing or unusable."""


class InvalidInputError(RelayError):
    """A finalized transcript was empty or whitespace-only."""


class TransportError(RelayError):
    """Sending an event on a session channel failed."""


class CompletionFailure(RelayError):
    """The remote completion model could not produce a reply."""


class UnexpectedServerError(RelayError):
    """Any other failure while handling a client event."""

    def __init__(self, cause: BaseException):
        super().__init__(f"{type(cause).__name__}: {cause}")
        self.cause = cause
