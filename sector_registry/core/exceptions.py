class SectorError(Exception):
    """Base class for errors reported to the caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SectorError):
    """Missing required field, disallowed field, or an empty update."""


class NotFound(SectorError):
    """The referenced sector does not exist."""


class TransactionFailure(SectorError):
    """The store rejected the transaction; nothing was committed."""
