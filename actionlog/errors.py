from __future__ import annotations


class ActionLogError(Exception):
    """Base error for the action log pipeline."""


class PoolError(ActionLogError):
    pass


class PoolInitError(PoolError):
    """The pool could not open its initial connections."""


class PoolTimeoutError(PoolError):
    """No connection became available within the acquisition timeout."""


class PoolClosedError(PoolError):
    pass


class SchemaError(ActionLogError):
    """The database or its tables could not be created."""
