"""QueryService — list documents matching a type and where expressions.

Read-only.  Shares document loading with the audit engine but skips the
index and the rules; a query only needs each document's frontmatter.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from vaultctl.domain.expression import ExpressionError, matches_expression
from vaultctl.domain.schema import descendants
from vaultctl.domain.where import collect_frontmatter_keys, combine_where, normalize_where_expressions
from vaultctl.services.audit import validate_filters
from vaultctl.services.base import BaseService
from vaultctl.services.result import ServiceResult
from vaultctl.services.telemetry import annotate, trace_span, traced

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


class QueryService(BaseService):
    """Filtered listing of vault documents."""

    @traced
    def list_documents(
        self,
        *,
        type_path: str | None = None,
        where: Sequence[str] = (),
        fields: Sequence[str] = (),
        paths: bool = False,
    ) -> ServiceResult:
        """List documents of *type_path* (descendants included) matching *where*.

        Args:
            type_path: Restrict to this type and the types beneath it.
            where: Expressions a document must all satisfy.
            fields: Frontmatter fields to include for each document.
            paths: Report vault-relative paths instead of note names.
        """
        schema = self._load_schema("list")
        if isinstance(schema, ServiceResult):
            return schema

        failure = validate_filters("list", schema, type_path, where)
        if failure is not None:
            return failure

        with trace_span("scan"):
            records, failures = self._read_records(schema)
        warnings = [f"Could not read {f.path}: {f.failure}" for f in failures]

        if type_path is not None:
            wanted = {type_path, *descendants(schema, type_path)}
            records = [r for r in records if r.type_path in wanted]

        expression = None
        if where:
            keys = collect_frontmatter_keys(r.frontmatter for r in records)
            expression = combine_where(normalize_where_expressions(where, keys))

        items: list[dict[str, Any]] = []
        with trace_span("filter"):
            for record in sorted(records, key=lambda r: r.rel_path):
                if expression is not None:
                    try:
                        if not matches_expression(expression, record.eval_context()):
                            continue
                    except ExpressionError as exc:
                        warnings.append(f"{record.rel_path}: {exc}")
                        continue
                item: dict[str, Any] = {
                    "name": record.rel_path if paths else record.name,
                    "path": record.rel_path,
                    "type": record.type_path,
                }
                if fields:
                    item["fields"] = {f: record.frontmatter.get(f) for f in fields}
                items.append(item)
            annotate("matched", len(items))

        logger.debug("list matched %d of %d documents", len(items), len(records))
        return ServiceResult(
            ok=True,
            op="list",
            data={"items": items, "count": len(items)},
            warnings=warnings,
        )
