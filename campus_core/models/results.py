from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from campus_core.core.errors import AllocationError


@dataclass(frozen=True, slots=True)
class AllocationResult:
    """Structured outcome of an allocation operation.

    Mirrors the ``{success, message | error, data}`` envelope the API
    returns; ``success=False`` is an expected outcome, not a fault.
    """

    success: bool
    message: str | None = None
    error: AllocationError | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def ok(message: str, **data: Any) -> AllocationResult:
        return AllocationResult(success=True, message=message, data=data)

    @staticmethod
    def fail(error: AllocationError, message: str, **data: Any) -> AllocationResult:
        return AllocationResult(success=False, error=error, message=message, data=data)
