class ConditioningError(Exception):
    """Base class for errors raised to callers of the conditioning services."""


class UnauthorizedAccessError(ConditioningError):
    """Caller lacks rights over the targeted user or log."""


class NotFoundError(ConditioningError):
    """Referenced entity is absent from the system of record."""


class PersistenceError(ConditioningError):
    """A repository operation failed."""
