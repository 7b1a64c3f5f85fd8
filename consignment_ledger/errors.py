from __future__ import annotations


class LedgerError(Exception):
    """Base class for errors surfaced to the operator."""


class ValidationError(LedgerError, ValueError):
    """Missing input or a rule violation; raised before anything is written."""


class NotFoundError(LedgerError, LookupError):
    pass


class StorageError(LedgerError):
    """The database rejected a statement. The surrounding transaction is rolled back."""


class PresentationError(LedgerError):
    """A printable or shareable document could not be produced."""
