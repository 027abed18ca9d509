class WatchPartyError(Exception):
    """Base class for errors raised inside the coordinator."""


class ValidationError(WatchPartyError):
    """A client event is missing required fields; rejected for the sender only."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class StoreUnavailableError(WatchPartyError):
    """The persistent store could not complete a read or write."""
