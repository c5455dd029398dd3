"""Error taxonomy for stock operations."""


class StockError(Exception):
    """Base class for errors surfaced to the user as a rejected action."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StockError):
    """Raised when input fails a precondition."""

    status_code = 400


class NotFoundError(StockError):
    """Raised when a referenced floor, room, item or assignment is missing."""

    status_code = 404


class ConflictError(StockError):
    """Raised when an operation would break an invariant held by existing data."""

    status_code = 409


class TransientStoreError(StockError):
    """Raised when the data store cannot be reached or drops the connection."""

    status_code = 503
