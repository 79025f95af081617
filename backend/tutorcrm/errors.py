# backend/tutorcrm/errors.py


class ValidationError(ValueError):
    """Missing or malformed input. Always raised before anything is persisted."""


class ReferenceNotFoundError(LookupError):
    """A referenced student, staff member or subscription does not exist."""


class TransactionFailure(RuntimeError):
    """The store rejected the commit; the whole unit of work was rolled back."""
