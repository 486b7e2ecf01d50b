"""Error kinds raised by the catalog core.

Every error carries a human readable message. Errors that originate from a
statement also carry the statement text (never its parameters) so failures
can be diagnosed without leaking data or credentials.
"""
from typing import Optional


class CatalogError(Exception):
    def __init__(self, message: str, statement: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.statement = statement


class ValidationError(CatalogError):
    """Input rejected before any statement was issued."""


class NotFoundError(CatalogError):
    pass


class SchemaCompatibilityError(CatalogError):
    """The store's schema lacks something every fallback needs."""


class IdentifierExhaustionError(CatalogError):
    pass


class QueryTimeoutError(CatalogError):
    pass


class TransportError(CatalogError):
    """Connection-level failure. Safe for the caller to retry; never retried here."""


class AggregationPreconditionError(CatalogError):
    pass


# QueryError.reason values
MISSING_TABLE = "missing_table"
MISSING_COLUMN = "missing_column"
MISSING_DEFAULT = "missing_default"
DUPLICATE_KEY = "duplicate_key"


class QueryError(CatalogError):
    def __init__(self, message: str, statement: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message, statement)
        self.reason = reason
