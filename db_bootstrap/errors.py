from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import sqlalchemy as sa


class BootstrapError(RuntimeError):
    """Base for every failure that aborts a bootstrap run."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class PermissionDenied(BootstrapError):
    pass


class StoreUnavailable(BootstrapError):
    pass


class DefinitionConflict(BootstrapError):
    pass


class DependencyMissing(BootstrapError):
    pass


class ResourceUnreadable(BootstrapError):
    pass


class StoreError(BootstrapError):
    """A store failure with no more specific classification."""


class DuplicateStep(ValueError):
    """Two steps share an ordinal or a name. Raised before anything runs."""


# Exact SQLSTATE codes first, then whole classes (first two characters).
_SQLSTATE_ERRORS: dict[str, type[BootstrapError]] = {
    "42501": PermissionDenied,  # insufficient_privilege
    "42883": DependencyMissing,  # undefined_function
    "42704": DependencyMissing,  # undefined_object
    "58P01": DependencyMissing,  # undefined_file (extension control file)
    "42P07": DefinitionConflict,  # duplicate_table
    "42710": DefinitionConflict,  # duplicate_object
    "42809": DefinitionConflict,  # wrong_object_type
    "57P01": StoreUnavailable,  # admin_shutdown
    "57P02": StoreUnavailable,  # crash_shutdown
    "57P03": StoreUnavailable,  # cannot_connect_now
}
_SQLSTATE_CLASSES: dict[str, type[BootstrapError]] = {
    "08": StoreUnavailable,  # connection_exception
    "28": PermissionDenied,  # invalid_authorization_specification
}


def classify(exc: sa.exc.DBAPIError, action: str) -> BootstrapError:
    sqlstate = getattr(exc.orig, "sqlstate", None) or ""
    message = f"{action}: {exc.orig if exc.orig is not None else exc}".strip()

    error_cls = _SQLSTATE_ERRORS.get(sqlstate) or _SQLSTATE_CLASSES.get(sqlstate[:2])
    if error_cls is None:
        if exc.connection_invalidated or isinstance(exc, (sa.exc.OperationalError, sa.exc.InterfaceError)):
            error_cls = StoreUnavailable
        else:
            error_cls = StoreError
    return error_cls(message)


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sa.exc.DBAPIError as e:
        raise classify(e, action) from e
