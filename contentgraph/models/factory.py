"""
contentgraph/models/factory.py -- Type registry and dynamic scalar models.

Reads the JSON Schema type definitions (one file per entity type) and
answers the structural questions the rest of the package asks about a
type: its inherited properties, its parent chain, whether it is versioned
or a content-area container.  It also generates Pydantic v2 models for the
scalar fields of each type so the store can validate values on save.

Key design decisions:
    - JSON Schema files remain the single source of truth for field and
      relation declarations.  Relations are properties annotated with
      ``x-relation``; everything else is a scalar field.
    - ``extends`` names a parent type.  Properties are inherited and a
      child may override them.
    - Generated models use ``extra='forbid'`` so that unknown scalar fields
      are caught at validation time.
    - Schemas and models are cached so each type is processed once per
      factory lifetime.

Usage::

    from contentgraph.models.factory import ModelFactory

    factory = ModelFactory("/srv/site/types")
    factory.is_subtype("ExternalLink", "Link")            # True
    result = factory.validate_fields("ElementContent", {"Title": "Hi"})
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import jsonschema
from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from contentgraph.utils import safe_read_json as _safe_read_json

logger = logging.getLogger(__name__)

RELATION_KEY = "x-relation"


class ScalarFields(BaseModel):
    """Base class for generated per-type scalar field models."""

    model_config = ConfigDict(extra="forbid")


# ------------------------------------------------------------------
# Type mapping: JSON Schema type -> Python type annotation
# ------------------------------------------------------------------

def _json_type_to_python(prop: dict) -> Any:
    """Convert a JSON Schema property definition to a Python type annotation.

    Every annotation is Optional: a field explicitly cleared to ``None``
    is always valid.
    """
    if "enum" in prop:
        return Optional[Any]

    json_type = prop.get("type", "string")

    if json_type == "string":
        return Optional[str]
    elif json_type == "integer":
        return Optional[int]
    elif json_type == "number":
        return Optional[float]
    elif json_type == "boolean":
        return Optional[bool]
    elif json_type == "array":
        item_type = _json_type_to_python_inner(prop.get("items", {}))
        return Optional[list[item_type]]  # type: ignore[valid-type]
    elif json_type == "object":
        return Optional[dict[str, Any]]
    else:
        return Optional[Any]


def _json_type_to_python_inner(prop: dict) -> Any:
    """Inner type (for array items) -- not Optional-wrapped."""
    if not isinstance(prop, dict):
        return Any

    json_type = prop.get("type", "string")

    if json_type == "string":
        return str
    elif json_type == "integer":
        return int
    elif json_type == "number":
        return float
    elif json_type == "boolean":
        return bool
    elif json_type == "object":
        return dict[str, Any]
    else:
        return Any


# ------------------------------------------------------------------
# ModelFactory
# ------------------------------------------------------------------

class ModelFactory:
    """Loads type definitions and generates scalar-field models.

    Parameters
    ----------
    types_dir : str or Path
        Directory scanned (recursively) for ``*.json`` type definitions.
    registry_path : str or Path, optional
        A ``type_registry.json`` mapping type IDs to schema files.  Types
        listed there are loaded from the given file; the directory scan
        picks up the rest.
    """

    def __init__(self, types_dir, registry_path=None):
        self.types_dir = Path(types_dir)
        self.registry_path = Path(registry_path) if registry_path else None

        # Cache: type_id -> raw schema dict, as loaded or registered
        self._raw: dict[str, dict] | None = None

        # Cache: type_id -> schema with inherited properties merged in
        self._merged: dict[str, dict] = {}

        # Cache: type_id -> generated scalar model
        self._model_cache: dict[str, type[ScalarFields]] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, dict]:
        """Load every type definition once."""
        if self._raw is not None:
            return self._raw
        self._raw = {}

        if self.registry_path is not None:
            data = _safe_read_json(str(self.registry_path), default={})
            types = data.get("types", {})
            if isinstance(types, list):
                types = {t["id"]: t for t in types if "id" in t}
            for type_id, entry in types.items():
                rel_path = entry.get("file", "") if isinstance(entry, dict) else ""
                if not rel_path:
                    continue
                schema = _safe_read_json(str(self.types_dir / rel_path))
                if schema:
                    schema.setdefault("$id", type_id)
                    self._add(schema, source=rel_path)

        if self.types_dir.exists():
            for json_path in sorted(self.types_dir.rglob("*.json")):
                if self.registry_path is not None and json_path == self.registry_path:
                    continue
                schema = _safe_read_json(str(json_path))
                if not schema or not schema.get("$id"):
                    continue
                if schema["$id"] in self._raw:
                    continue
                self._add(schema, source=str(json_path))

        return self._raw

    def _add(self, schema: dict, source: str = "<memory>") -> bool:
        try:
            jsonschema.Draft7Validator.check_schema(_strip_extensions(schema))
        except jsonschema.SchemaError as exc:
            logger.warning("Ignoring invalid type definition %s: %s", source, exc.message)
            return False
        self._raw[schema["$id"]] = schema
        return True

    def register_schema(self, schema: dict) -> None:
        """Add (or replace) a type definition at runtime.

        Raises ``ValueError`` if the schema has no ``$id`` or is not a
        valid JSON Schema document.
        """
        if not schema.get("$id"):
            raise ValueError("A type definition needs a '$id' naming the type.")
        self._load()
        if not self._add(dict(schema)):
            raise ValueError(f"Type definition '{schema['$id']}' is not a valid JSON Schema.")
        self._merged.clear()
        self._model_cache.clear()

    def get_type_ids(self) -> list[str]:
        """Return all known type IDs."""
        return sorted(self._load().keys())

    def has_type(self, type_id: str) -> bool:
        return type_id in self._load()

    # ------------------------------------------------------------------
    # Inheritance
    # ------------------------------------------------------------------

    def parent_of(self, type_id: str) -> str | None:
        raw = self._load().get(type_id)
        if raw is None:
            return None
        return raw.get("extends") or None

    def ancestors(self, type_id: str) -> list[str]:
        """Return ``[type_id, parent, grandparent, ...]``."""
        chain: list[str] = []
        current: str | None = type_id
        while current and current not in chain and self.has_type(current):
            chain.append(current)
            current = self.parent_of(current)
        return chain

    def is_subtype(self, type_id: str, base_id: str) -> bool:
        """True if *type_id* is *base_id* or inherits from it."""
        return base_id in self.ancestors(type_id)

    def subtypes_of(self, base_id: str) -> list[str]:
        """All known types that are *base_id* or inherit from it."""
        return [t for t in self.get_type_ids() if self.is_subtype(t, base_id)]

    def get_schema(self, type_id: str) -> dict | None:
        """Return the schema for *type_id* with inherited properties merged.

        Returns ``None`` if the type is unknown.
        """
        if type_id in self._merged:
            return self._merged[type_id]
        if not self.has_type(type_id):
            return None

        chain = self.ancestors(type_id)
        merged: dict[str, Any] = {}
        properties: dict[str, Any] = {}
        for ancestor in reversed(chain):
            raw = self._load()[ancestor]
            for key, value in raw.items():
                if key != "properties":
                    merged[key] = value
            properties.update(raw.get("properties", {}))
        merged["$id"] = type_id
        merged["properties"] = properties
        self._merged[type_id] = merged
        return merged

    def is_versioned(self, type_id: str) -> bool:
        schema = self.get_schema(type_id) or {}
        return bool(schema.get("versioned", False))

    def is_content_area(self, type_id: str) -> bool:
        schema = self.get_schema(type_id) or {}
        return bool(schema.get("x-content-area", False))

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def scalar_properties(self, type_id: str) -> dict[str, dict]:
        """Property definitions that are plain fields, not relations."""
        schema = self.get_schema(type_id) or {}
        return {
            name: prop
            for name, prop in schema.get("properties", {}).items()
            if isinstance(prop, dict) and RELATION_KEY not in prop
        }

    def relation_properties(self, type_id: str) -> dict[str, dict]:
        """``name -> x-relation annotation`` for every declared relation."""
        schema = self.get_schema(type_id) or {}
        return {
            name: prop[RELATION_KEY]
            for name, prop in schema.get("properties", {}).items()
            if isinstance(prop, dict) and RELATION_KEY in prop
        }

    def field_default(self, type_id: str, field: str) -> Any:
        """The schema ``default`` of a scalar field, or ``None``."""
        return self.scalar_properties(type_id).get(field, {}).get("default")

    # ------------------------------------------------------------------
    # Model generation
    # ------------------------------------------------------------------

    def get_model(self, type_id: str) -> type[ScalarFields] | None:
        """Return a Pydantic model class for the scalar fields of a type.

        Returns ``None`` if the type is unknown.
        """
        if type_id in self._model_cache:
            return self._model_cache[type_id]

        if not self.has_type(type_id):
            logger.warning("Type definition not found for '%s'", type_id)
            return None

        model = self._build_model(type_id)
        self._model_cache[type_id] = model
        return model

    def _build_model(self, type_id: str) -> type[ScalarFields]:
        field_definitions: dict[str, Any] = {}
        for prop_name, prop_def in self.scalar_properties(type_id).items():
            kwargs: dict[str, Any] = {"default": None}
            if prop_def.get("description"):
                kwargs["description"] = prop_def["description"]
            field_definitions[prop_name] = (
                _json_type_to_python(prop_def),
                Field(**kwargs),
            )

        class_name = "".join(
            part[:1].upper() + part[1:]
            for part in type_id.replace("-", "_").split("_")
            if part
        ) + "Fields"

        model = create_model(
            class_name,
            __base__=ScalarFields,
            __module__="contentgraph.models.factory",
            **field_definitions,
        )
        model._type_id = type_id  # type: ignore[attr-defined]
        return model

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def validate_fields(self, type_id: str, data: dict[str, Any]) -> "ValidationResult":
        """Validate scalar field values against the type's generated model."""
        model = self.get_model(type_id)
        if model is None:
            return ValidationResult(
                passed=False,
                errors=[f"Unknown entity type '{type_id}'."],
            )
        try:
            model.model_validate(data)
        except ValidationError as exc:
            errors = [_humanize_pydantic_error(err, type_id) for err in exc.errors()]
            return ValidationResult(passed=False, errors=errors)
        return ValidationResult(passed=True, errors=[])


# ------------------------------------------------------------------
# Validation result
# ------------------------------------------------------------------

class ValidationResult:
    """Result of validating scalar fields against a generated model.

    Attributes
    ----------
    passed : bool
        Whether validation succeeded.
    errors : list[str]
        Human-readable error messages (empty if passed).
    """

    __slots__ = ("passed", "errors")

    def __init__(self, passed: bool, errors: list[str]):
        self.passed = passed
        self.errors = errors

    def to_dict(self) -> dict[str, Any]:
        return {"passed": self.passed, "errors": self.errors}


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

_EXTENSION_KEYS = frozenset({"extends", "versioned", "x-content-area"})


def _strip_extensions(schema: dict) -> dict:
    """Copy of *schema* without the type-definition extension keys."""
    clean = {k: v for k, v in schema.items() if k not in _EXTENSION_KEYS}
    props = clean.get("properties")
    if isinstance(props, dict):
        clean["properties"] = {
            name: {k: v for k, v in prop.items() if k != RELATION_KEY}
            if isinstance(prop, dict) else prop
            for name, prop in props.items()
        }
    return clean


def _humanize_pydantic_error(err: dict, type_id: str) -> str:
    """Convert a single Pydantic error dict to a human-friendly message."""
    loc = err.get("loc", ())
    msg = err.get("msg", "Validation error")
    err_type = err.get("type", "")

    field_path = " -> ".join(str(part) for part in loc) or "(root)"

    if err_type == "extra_forbidden":
        return f"'{field_path}' is not a declared field of {type_id}."
    elif "type" in err_type or "parsing" in err_type:
        return f"The field '{field_path}' of {type_id} has the wrong type. {msg}."
    else:
        return f"Field '{field_path}' of {type_id}: {msg}."
