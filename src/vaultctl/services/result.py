"""What every audit, fix, list, and schema call hands back to the CLI.

Services never raise for bad input.  A missing schema, an unknown type
path, an unparsable ``--where`` or an unknown issue code all come back
as ``ok=False`` with one of :data:`ErrorCode`; the CLI maps that to exit
status 1.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ErrorCode = Literal[
    "SCHEMA_INVALID",
    "UNKNOWN_TYPE",
    "UNKNOWN_ISSUE_CODE",
    "INVALID_WHERE",
    "AUDIT_FAILED",
]


class ServiceError(BaseModel):
    model_config = {"frozen": True}

    code: ErrorCode
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Outcome of one operation.

    ``data`` keeps its payload on failure too: a strict audit that finds
    errors still reports every file.  ``meta`` holds the ``-v`` span tree
    under ``telemetry``.
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(
        cls,
        op: str,
        code: ErrorCode,
        message: str,
        *,
        data: dict[str, Any] | None = None,
        warnings: list[str] | None = None,
        **detail: Any,
    ) -> ServiceResult:
        return cls(
            ok=False,
            op=op,
            data=data or {},
            warnings=warnings or [],
            error=ServiceError(code=code, message=message, detail=detail),
        )

    def with_meta(self, **entries: Any) -> ServiceResult:
        """A copy with *entries* merged into ``meta``."""
        return self.model_copy(update={"meta": {**(self.meta or {}), **entries}})
