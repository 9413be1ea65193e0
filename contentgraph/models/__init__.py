"""
contentgraph/models/ -- Pydantic v2 models and the type registry.

Submodules:
    base        Value types (EntityMeta, Entity, RelationInfo, Outcome, ...).
    factory     Type registry and dynamic scalar-field models generated
                from JSON Schema type definitions.
"""

from contentgraph.models.base import (
    ApplyResult,
    Entity,
    EntityMeta,
    Outcome,
    RelationInfo,
    RelationKind,
)

__all__ = [
    "ApplyResult",
    "Entity",
    "EntityMeta",
    "Outcome",
    "RelationInfo",
    "RelationKind",
]
