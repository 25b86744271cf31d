"""Domain error taxonomy shared by repositories, workflows and the API."""


class ERPError(Exception):
    """Base class for every error raised by the ERP layer."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ERPError):
    """A required field is missing or a value is invalid."""


class ConflictError(ERPError):
    """A uniqueness constraint was violated (duplicate SKU, name or link)."""


class NotFoundError(ERPError):
    """A referenced entity (item, supplier, order, ...) does not exist."""


class InvalidOperationError(ERPError):
    """A business precondition failed, e.g. negative stock or a self-link."""


class ExhaustedRetriesError(ERPError):
    """A bounded retry loop ran out of attempts."""


class StoreError(ERPError):
    """The backing store failed or rejected the request (network, schema drift, ...)."""
