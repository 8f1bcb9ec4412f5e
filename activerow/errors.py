from packify import UsageError


class InvalidConfigError(Exception):
    """Raised when a record class or connection is misconfigured, e.g.
        the table does not exist.
    """
    ...


class InvalidArgumentError(ValueError):
    """Raised when a caller-supplied argument is rejected, e.g. a
        condition key that does not name a column.
    """
    ...


class StaleRecordError(Exception):
    """Raised when an optimistic lock check fails."""
    ...


def vert(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a ValueError with the given message."""
    if not condition:
        raise ValueError(error_message)

def tert(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a TypeError with the given message."""
    if not condition:
        raise TypeError(error_message)

def aert(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises an AttributeError with the given
        message.
    """
    if not condition:
        raise AttributeError(error_message)

def tressa(condition: bool, error_message: str = '') -> None:
    """If condition is false, raises a packify.UsageError with the given
        message.
    """
    if not condition:
        raise UsageError(error_message)
