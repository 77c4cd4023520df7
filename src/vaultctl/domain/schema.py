"""Vault schema — type definitions, inheritance, and type-path resolution.

A schema maps type names to :class:`TypeDef` trees.  Types inherit in two
ways that compose freely:

- ``extends``: single inheritance between root types (``task`` extends
  ``objective``).  ``meta`` is the implicit root of every chain.
- ``subtypes``: nested definitions addressed by a slash-separated type
  path (``objective/milestone``) and selected in frontmatter through the
  ``type`` / ``<parent>-type`` discriminator keys.

Resolution walks the extends chain of the root segment, then each subtype
segment.  Fields merge ancestor-first (the descendant wins on a name
clash) and the last ``output_dir`` seen along the walk wins.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

META_TYPE = "meta"

# Keys any document may carry regardless of its type.
NATIVE_FIELDS = ("tags", "aliases", "cssclasses", "publish")

FieldPrompt = Literal["text", "select", "date", "list", "relation", "boolean", "number"]
DirMode = Literal["pooled", "instance-grouped"]


class SchemaError(Exception):
    """The schema cannot be loaded or a type path does not resolve."""


# ---------------------------------------------------------------------------
# Schema models
# ---------------------------------------------------------------------------


class FilterCondition(BaseModel):
    """One dynamic-source filter on a frontmatter field."""

    model_config = {"frozen": True, "populate_by_name": True}

    equals: Any = None
    not_equals: Any = None
    in_: list[Any] | None = Field(default=None, alias="in")
    not_in: list[Any] | None = None

    def matches(self, value: Any) -> bool:
        text = None if value is None else str(value)
        if self.equals is not None and text != str(self.equals):
            return False
        if self.not_equals is not None and text == str(self.not_equals):
            return False
        if self.in_ is not None and text not in {str(v) for v in self.in_}:
            return False
        if self.not_in is not None and text in {str(v) for v in self.not_in}:
            return False
        return True


class FieldDef(BaseModel):
    """A frontmatter field declared on a type."""

    model_config = {"frozen": True}

    prompt: FieldPrompt | None = None
    value: Any = None
    options: list[str] | None = None
    enum: str | None = None
    source: str | list[str] | None = None
    required: bool = False
    default: Any = None
    list_format: str | None = None
    label: str | None = None
    multiple: bool = False
    owned: bool = False
    format: Literal["wikilink", "markdown", "plain"] | None = None

    @property
    def shape(self) -> str:
        """``fixed-value`` for constant fields, else the prompt (``text`` by default)."""
        if self.value is not None:
            return "fixed-value"
        return self.prompt or "text"

    @property
    def sources(self) -> list[str]:
        if self.source is None:
            return []
        return [self.source] if isinstance(self.source, str) else list(self.source)


class TypeDef(BaseModel):
    """A type, or a subtype nested under one."""

    model_config = {"frozen": True}

    extends: str | None = None
    output_dir: str | None = None
    dir_mode: DirMode = "pooled"
    fields: dict[str, FieldDef] = Field(default_factory=dict)
    field_order: list[str] | None = None
    subtypes: dict[str, TypeDef] = Field(default_factory=dict)
    filename: str | None = None
    recursive: bool = False
    plural: str | None = None


class DynamicSource(BaseModel):
    """A directory plus filters resolving to a live list of note names."""

    model_config = {"frozen": True}

    dir: str
    filter: dict[str, FilterCondition] = Field(default_factory=dict)
    where: str | None = None

    def matches(self, frontmatter: dict[str, Any]) -> bool:
        return all(cond.matches(frontmatter.get(key)) for key, cond in self.filter.items())


class SchemaConfig(BaseModel):
    """``config`` block of the schema."""

    model_config = {"frozen": True}

    link_format: Literal["wikilink", "markdown"] = "wikilink"


class AuditSchemaConfig(BaseModel):
    """``audit`` block of the schema."""

    model_config = {"frozen": True}

    allowed_extra_fields: list[str] = Field(default_factory=list)
    ignored_directories: list[str] = Field(default_factory=list)


class VaultSchema(BaseModel):
    """Root schema document."""

    model_config = {"frozen": True}

    version: int | str = 1
    enums: dict[str, list[str]] = Field(default_factory=dict)
    types: dict[str, TypeDef] = Field(default_factory=dict)
    dynamic_sources: dict[str, DynamicSource] = Field(default_factory=dict)
    config: SchemaConfig = Field(default_factory=SchemaConfig)
    audit: AuditSchemaConfig = Field(default_factory=AuditSchemaConfig)


TypeDef.model_rebuild()


@dataclass(frozen=True)
class ResolvedType:
    """Effective definition of one type path."""

    type_path: str
    segments: tuple[str, ...]
    fields: dict[str, FieldDef]
    own_fields: dict[str, FieldDef]
    field_order: tuple[str, ...]
    output_dir: str
    dir_mode: DirMode
    filename: str | None
    recursive: bool
    ancestors: tuple[str, ...]  # extends chain of the root segment, root-most first

    @property
    def name(self) -> str:
        return self.segments[-1]

    @property
    def required_fields(self) -> list[str]:
        return [name for name in self.field_order if self.fields[name].required]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _check_inheritance(schema: VaultSchema) -> None:
    for name, typedef in schema.types.items():
        seen = {name}
        parent = typedef.extends
        while parent is not None and parent != META_TYPE:
            if parent not in schema.types:
                raise SchemaError(f"Type '{name}' extends unknown type '{parent}'")
            if parent in seen:
                raise SchemaError(f"Inheritance cycle detected at type '{name}'")
            seen.add(parent)
            parent = schema.types[parent].extends


def _check_enum_references(schema: VaultSchema) -> None:
    def walk(path: str, typedef: TypeDef) -> None:
        for field_name, field in typedef.fields.items():
            if field.enum is not None and field.enum not in schema.enums:
                raise SchemaError(
                    f"Field '{field_name}' on '{path}' references unknown enum '{field.enum}'"
                )
        for sub_name, sub in typedef.subtypes.items():
            walk(f"{path}/{sub_name}", sub)

    for name, typedef in schema.types.items():
        walk(name, typedef)


def _check_field_names(schema: VaultSchema) -> None:
    """No declared field may shadow a ``type`` / ``<parent>-type`` key."""
    reserved = {discriminator_key(None)}

    def walk(name: str, typedef: TypeDef) -> None:
        if typedef.subtypes:
            reserved.add(discriminator_key(name))
        for sub_name, sub in typedef.subtypes.items():
            walk(sub_name, sub)

    for name, typedef in schema.types.items():
        walk(name, typedef)
    clashes = sorted(all_own_field_names(schema) & reserved)
    if clashes:
        raise SchemaError(f"Field '{clashes[0]}' collides with a type discriminator key")


def parse_schema(data: Any) -> VaultSchema:
    """Validate a raw schema mapping, raising :class:`SchemaError`."""
    if not isinstance(data, dict):
        raise SchemaError("Schema must be a mapping")
    try:
        schema = VaultSchema.model_validate(data)
    except ValidationError as exc:
        raise SchemaError(f"Invalid schema: {exc}") from exc
    _check_inheritance(schema)
    _check_enum_references(schema)
    _check_field_names(schema)
    return schema


def load_schema(path: Path) -> VaultSchema:
    """Load a YAML (or JSON) schema file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SchemaError(f"Cannot read schema {path}: {exc}") from exc
    try:
        data = YAML(typ="safe", pure=True).load(text)
    except YAMLError as exc:
        raise SchemaError(f"Schema {path} is not valid YAML: {exc}") from exc
    return parse_schema(data)


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------


def pluralize(name: str) -> str:
    """``task`` -> ``tasks``, ``entry`` -> ``entries``, ``box`` -> ``boxes``."""
    if not name:
        return name
    lower = name.lower()
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return name + "es"
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        return name[:-1] + "ies"
    return name + "s"


def split_type_path(type_path: str) -> list[str]:
    return [segment for segment in type_path.strip("/").split("/") if segment]


def discriminator_key(parent: str | None) -> str:
    return "type" if parent is None else f"{parent}-type"


def discriminator_fields(type_path: str) -> dict[str, str]:
    """Frontmatter keys that select *type_path*, in order."""
    segments = split_type_path(type_path)
    fields: dict[str, str] = {}
    parent: str | None = None
    for segment in segments:
        fields[discriminator_key(parent)] = segment
        parent = segment
    return fields


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _extends_chain(schema: VaultSchema, name: str) -> list[str]:
    """Ancestor names of root type *name*, root-most first, meta excluded."""
    chain: list[str] = []
    parent = schema.types[name].extends
    while parent is not None and parent != META_TYPE and parent in schema.types:
        chain.append(parent)
        parent = schema.types[parent].extends
    if META_TYPE in schema.types and name != META_TYPE:
        chain.append(META_TYPE)
    return list(reversed(chain))


def _definition_chain(schema: VaultSchema, segments: list[str]) -> list[tuple[str, TypeDef]]:
    root = segments[0]
    if root not in schema.types:
        raise SchemaError(f"Unknown type '{root}'")
    chain = [(name, schema.types[name]) for name in _extends_chain(schema, root)]
    current = schema.types[root]
    chain.append((root, current))
    for segment in segments[1:]:
        if segment not in current.subtypes:
            raise SchemaError(f"Unknown subtype '{segment}' in type path '{'/'.join(segments)}'")
        current = current.subtypes[segment]
        chain.append((segment, current))
    return chain


def default_output_dir(names: list[str], plurals: dict[str, str | None] | None = None) -> str:
    """Pluralized type names joined into a directory path, meta excluded."""
    overrides = plurals or {}
    return "/".join(overrides.get(n) or pluralize(n) for n in names if n != META_TYPE)


def resolve(schema: VaultSchema, type_path: str) -> ResolvedType:
    """Resolve the effective definition of *type_path*.

    Raises:
        SchemaError: if any segment of the path is not declared.
    """
    segments = split_type_path(type_path)
    if not segments:
        raise SchemaError("Empty type path")
    chain = _definition_chain(schema, segments)

    fields: dict[str, FieldDef] = {}
    order: list[str] = []
    output_dir: str | None = None
    for _, typedef in chain:
        fields.update(typedef.fields)
        for name in typedef.field_order or list(typedef.fields):
            if name not in order:
                order.append(name)
        if typedef.output_dir:
            output_dir = typedef.output_dir

    final = chain[-1][1]
    canonical = "/".join(segments)
    if final.recursive and "parent" not in fields:
        fields["parent"] = FieldDef(prompt="relation", source=canonical, format="wikilink")

    order = [name for name in order if name in fields]
    order.extend(name for name in fields if name not in order)

    if output_dir is None:
        plurals = {name: typedef.plural for name, typedef in chain}
        output_dir = default_output_dir([name for name, _ in chain], plurals)

    return ResolvedType(
        type_path=canonical,
        segments=tuple(segments),
        fields=fields,
        own_fields=dict(final.fields),
        field_order=tuple(order),
        output_dir=output_dir.strip("/"),
        dir_mode=final.dir_mode,
        filename=final.filename,
        recursive=final.recursive,
        ancestors=tuple(name for name, _ in chain[: -len(segments)] if name != META_TYPE),
    )


def try_resolve(schema: VaultSchema, type_path: str) -> ResolvedType | None:
    try:
        return resolve(schema, type_path)
    except SchemaError:
        return None


@dataclass(frozen=True)
class TypeResolution:
    """Outcome of reading the discriminator keys of a document."""

    type_path: str | None
    invalid_key: str | None = None
    invalid_value: str | None = None
    options: tuple[str, ...] = ()


def resolve_type_from_frontmatter(schema: VaultSchema, frontmatter: dict[str, Any]) -> TypeResolution:
    """Follow ``type`` then ``<parent>-type`` keys down the subtype tree."""
    declared = frontmatter.get("type")
    if not isinstance(declared, str) or not declared.strip():
        return TypeResolution(type_path=None)
    declared = declared.strip()
    if declared not in schema.types:
        return TypeResolution(
            type_path=None,
            invalid_key="type",
            invalid_value=declared,
            options=tuple(type_names(schema)),
        )
    path = [declared]
    current = schema.types[declared]
    while current.subtypes:
        key = discriminator_key(path[-1])
        selected = frontmatter.get(key)
        if not isinstance(selected, str) or not selected.strip():
            break
        selected = selected.strip()
        if selected not in current.subtypes:
            return TypeResolution(
                type_path=None,
                invalid_key=key,
                invalid_value=selected,
                options=tuple(current.subtypes),
            )
        path.append(selected)
        current = current.subtypes[selected]
    return TypeResolution(type_path="/".join(path))


# ---------------------------------------------------------------------------
# Listings and lookups
# ---------------------------------------------------------------------------


def type_names(schema: VaultSchema) -> list[str]:
    """Every resolvable type path, ``meta`` excluded."""
    names: list[str] = []

    def walk(prefix: str, typedef: TypeDef) -> None:
        names.append(prefix)
        for sub_name, sub in typedef.subtypes.items():
            walk(f"{prefix}/{sub_name}", sub)

    for name, typedef in schema.types.items():
        if name != META_TYPE:
            walk(name, typedef)
    return names


def type_families(schema: VaultSchema) -> list[str]:
    """Root types that do not extend another type, ``meta`` excluded."""
    return [
        name
        for name, typedef in schema.types.items()
        if name != META_TYPE and typedef.extends in (None, META_TYPE)
    ]


def all_own_field_names(schema: VaultSchema) -> set[str]:
    """Field names declared anywhere in the schema, without inheritance."""
    names: set[str] = set()

    def walk(typedef: TypeDef) -> None:
        names.update(typedef.fields)
        for sub in typedef.subtypes.values():
            walk(sub)

    for typedef in schema.types.values():
        walk(typedef)
    return names


def descendants(schema: VaultSchema, type_path: str) -> list[str]:
    """Types that extend *type_path* or nest beneath it, transitively."""
    found: list[str] = []
    segments = split_type_path(type_path)
    for name in type_names(schema):
        if name.startswith(type_path + "/"):
            found.append(name)
    if len(segments) == 1:
        pending = [segments[0]]
        while pending:
            parent = pending.pop()
            for name, typedef in schema.types.items():
                if typedef.extends == parent and name not in found:
                    found.append(name)
                    pending.append(name)
                    found.extend(
                        n for n in type_names(schema) if n.startswith(name + "/") and n not in found
                    )
    return found


def enum_for_field(
    schema: VaultSchema, type_path: str, field_name: str
) -> tuple[str, list[str]] | None:
    """The declared enum backing *field_name* on *type_path*, if any."""
    resolved = try_resolve(schema, type_path)
    if resolved is None:
        return None
    field = resolved.fields.get(field_name)
    if field is None or field.enum is None:
        return None
    return field.enum, list(schema.enums.get(field.enum, []))


def field_options(schema: VaultSchema, field: FieldDef) -> list[str] | None:
    """Finite value set of a field: explicit options, else its enum."""
    if field.options is not None:
        return list(field.options)
    if field.enum is not None:
        return list(schema.enums.get(field.enum, []))
    return None


def is_instance_grouped(schema: VaultSchema, type_path: str) -> bool:
    """True for a subtype whose parent keeps one folder per instance."""
    segments = split_type_path(type_path)
    if len(segments) < 2:
        return False
    parent = try_resolve(schema, "/".join(segments[:-1]))
    return parent is not None and parent.dir_mode == "instance-grouped"


def owned_fields(schema: VaultSchema, type_path: str) -> dict[str, str]:
    """Fields of *type_path* declared ``owned``, mapped to the owned child type."""
    resolved = try_resolve(schema, type_path)
    if resolved is None:
        return {}
    return {
        name: field.sources[0]
        for name, field in resolved.fields.items()
        if field.owned and field.sources
    }


def infer_type_for_document(schema: VaultSchema, rel_path: str) -> str | None:
    """Guess a document's type from where it lives in the vault.

    The type whose output directory holds the document wins, the deepest
    directory first.  When several types share that directory, their common
    ancestor path is returned; unrelated types sharing it are ambiguous.
    """
    directory = posixpath.dirname(rel_path)
    stem = posixpath.splitext(posixpath.basename(rel_path))[0]
    matches: list[str] = []
    best_depth = -1
    for name in type_names(schema):
        resolved = resolve(schema, name)
        out = resolved.output_dir
        candidate: str | None = None
        if directory == out:
            candidate = name
        elif resolved.dir_mode == "instance-grouped" and posixpath.dirname(directory) == out:
            subtypes = [n for n in type_names(schema) if n.startswith(name + "/")]
            if stem == posixpath.basename(directory):
                candidate = name
            elif len(subtypes) == 1:
                candidate = subtypes[0]
        if candidate is None:
            continue
        depth = out.count("/") + (0 if directory == out else 1)
        if depth > best_depth:
            matches, best_depth = [candidate], depth
        elif depth == best_depth and candidate not in matches:
            matches.append(candidate)
    if not matches:
        return None
    for candidate in matches:
        family = {candidate, *descendants(schema, candidate)}
        if all(m in family for m in matches):
            return candidate
    return None
