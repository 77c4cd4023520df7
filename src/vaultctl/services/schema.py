"""SchemaService — inspect the vault schema."""

from __future__ import annotations

from typing import Any

from vaultctl.domain.schema import SchemaError, VaultSchema, resolve, type_names
from vaultctl.services.base import BaseService
from vaultctl.services.result import ServiceResult
from vaultctl.services.telemetry import traced


class SchemaService(BaseService):
    """Read-only views of the loaded schema."""

    @traced
    def show(self) -> ServiceResult:
        """Type paths, enums, and dynamic sources."""
        schema = self._load_schema("schema_show")
        if isinstance(schema, ServiceResult):
            return schema
        return ServiceResult(
            ok=True,
            op="schema_show",
            data={
                "schema_path": str(self._vault.schema_path()),
                "types": [self._type_summary(schema, name) for name in type_names(schema)],
                "enums": {name: list(values) for name, values in schema.enums.items()},
                "dynamic_sources": {
                    name: source.model_dump(exclude_none=True, by_alias=True)
                    for name, source in schema.dynamic_sources.items()
                },
                "link_format": schema.config.link_format,
            },
        )

    @traced
    def resolve_type(self, type_path: str) -> ServiceResult:
        """Effective fields of *type_path*, inherited fields included."""
        schema = self._load_schema("schema_resolve")
        if isinstance(schema, ServiceResult):
            return schema
        try:
            resolved = resolve(schema, type_path)
        except SchemaError as exc:
            return ServiceResult.failure(
                "schema_resolve", "UNKNOWN_TYPE", str(exc), type_path=type_path, valid=type_names(schema)
            )
        fields = []
        for name in resolved.field_order:
            field = resolved.fields[name]
            fields.append(
                {
                    "name": name,
                    "shape": field.shape,
                    "required": field.required,
                    "default": field.default,
                    "options": field.options,
                    "enum": field.enum,
                    "source": field.source,
                    "inherited": name not in resolved.own_fields,
                }
            )
        return ServiceResult(
            ok=True,
            op="schema_resolve",
            data={
                "type_path": resolved.type_path,
                "output_dir": resolved.output_dir,
                "dir_mode": resolved.dir_mode,
                "recursive": resolved.recursive,
                "ancestors": list(resolved.ancestors),
                "fields": fields,
            },
        )

    @staticmethod
    def _type_summary(schema: VaultSchema, type_path: str) -> dict[str, Any]:
        resolved = resolve(schema, type_path)
        return {
            "type_path": type_path,
            "output_dir": resolved.output_dir,
            "fields": len(resolved.fields),
            "required": resolved.required_fields,
        }
