"""Exceptions raised by the bill analysis pipeline."""


class BillBuddyError(Exception):
    """Base class for bill analysis errors."""


class InvalidBillError(BillBuddyError, ValueError):
    """A structured bill does not have the shape the validation engine expects."""


class ExtractionError(BillBuddyError):
    """The extraction model returned output that is not a usable structured bill."""
