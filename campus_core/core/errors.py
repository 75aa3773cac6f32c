"""Error taxonomy shared by the services and the API layer.

Two families:

  Exceptions (AccessDenied, NotFoundError, IntegrityViolation): raised
  where a caller bug or a rejected write has to stop the request.  The API
  layer translates them into HTTPException without exposing schema details.

  AllocationError codes: expected, recoverable license outcomes.  These
  travel inside AllocationResult instead of being raised so batch callers
  can keep going after one student fails.

Scope resolution failures (dangling graph references) are neither: they
are logged and resolve to ``False``.
"""

from __future__ import annotations

from enum import StrEnum


class CampusCoreError(Exception):
    """Base class for errors raised by campus-core services."""


class AccessDenied(CampusCoreError):
    """A scope predicate evaluated false for a write or a direct lookup."""


class NotFoundError(CampusCoreError):
    """A referenced record does not exist (or is invisible to the caller)."""


class IntegrityViolation(CampusCoreError):
    """A write would break a schema invariant; treated as a caller bug."""


class AllocationError(StrEnum):
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    ALREADY_ASSIGNED = "ALREADY_ASSIGNED"
    NOT_FOUND = "NOT_FOUND"
