"""
Error taxonomy shared by the predicate builder, the analyzer, the entry store
and the routers. Routers translate these into HTTP status codes.
"""

INTERNAL_ERROR_DETAIL = "Internal server error"
NOT_FOUND_DETAIL = "Entry not found"


class ValidationError(Exception):
    """A filter, query or body field is missing or malformed (HTTP 400)."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class NotFoundOrUnauthorized(Exception):
    """Entry is absent or owned by someone else (HTTP 404)."""


class StoreError(Exception):
    """The entry store could not complete a request (HTTP 500)."""
