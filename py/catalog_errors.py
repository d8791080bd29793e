"""catalog_errors.py

Failure taxonomy for catalog migration runs.

Run-level (abort before any catalog mutation):
- ConfigurationError, RootNotFound (when resolving the destination root)

Item-level (caught at the per-item boundary, the run continues):
- PathOutsideBase, RootNotFound, TypeMismatch, CloneFailed,
  ConstraintViolation, SchemaMismatch, IdentifierMalformed

An absent optional table/column is not an error; see ReplicateResult.
"""

from __future__ import annotations


class MigrationError(Exception):
    pass


class ConfigurationError(MigrationError):
    pass


class IdentifierMalformed(MigrationError, ValueError):
    pass


InvalidIdentifier = IdentifierMalformed


class PathOutsideBase(MigrationError):
    def __init__(self, base_path: str, target_path: str) -> None:
        super().__init__(f"target path is not under base path: base={base_path!r} target={target_path!r}")
        self.base_path = base_path
        self.target_path = target_path


class RootNotFound(MigrationError):
    pass


class TypeMismatch(MigrationError):
    def __init__(self, path: str, expected: str, actual: str | None) -> None:
        super().__init__(f"path already exists with another item type: path={path!r} expected={expected!r} actual={actual!r}")
        self.path = path
        self.expected = expected
        self.actual = actual


class CloneFailed(MigrationError):
    pass


class ConstraintViolation(MigrationError):
    pass


class SchemaMismatch(MigrationError):
    pass


class MigrationCancelled(MigrationError):
    pass
