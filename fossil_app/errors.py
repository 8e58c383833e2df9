"""
Exception types raised by the fossil catalog.

Routes translate these into HTTP errors with ``to_http_error`` in
``dependencies.py``. Nothing here is
retried: every failure is terminal for the operation that raised it.
"""

from typing import Optional


class FossilAppError(Exception):
    """Base class for all catalog errors."""


class BackendError(FossilAppError):
    """The remote backend rejected a query or mutation, or was unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(BackendError):
    """Sign-up, sign-in or sign-out was rejected."""


class StorageError(BackendError):
    """An object storage upload, lookup or removal failed."""


class AuthRequiredError(FossilAppError):
    """The operation needs a logged-in user and there is none."""


class FossilNotFoundError(FossilAppError):
    pass


class FossilPermissionError(FossilAppError):
    """The acting user does not own the fossil they tried to modify."""
