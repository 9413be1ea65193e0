"""
contentgraph/models/base.py -- Core value types.

``Entity`` is the in-memory form of one stored record: scalar field values
in ``data``, singular relation targets in ``refs`` and collection members
in ``members``.  Relations hold target IDs only; the store resolves them.

An entity without ``meta`` is *transient*: it has never been saved and has
no identity yet.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class RelationKind(str, Enum):
    """Static classification of an edge between two entity types."""

    SINGULAR = "singular"
    ORDERED = "ordered"
    UNORDERED = "unordered"

    @property
    def is_collection(self) -> bool:
        return self is not RelationKind.SINGULAR


class RelationInfo(BaseModel):
    """One declared relation of an entity type."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: RelationKind
    target_type: str
    owned: bool = False


class EntityMeta(BaseModel):
    """Store-managed bookkeeping attached to every saved entity."""

    id: str
    entity_type: str
    status: str = "draft"
    version: int = 1
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    file_path: str = ""


class Entity(BaseModel):
    """A typed record with scalar fields and relations to other entities."""

    type_name: str
    meta: Optional[EntityMeta] = None
    data: dict[str, Any] = Field(default_factory=dict)
    refs: dict[str, Optional[str]] = Field(default_factory=dict)
    members: dict[str, list[str]] = Field(default_factory=dict)

    # Per-instance flags for the next save; never written to disk.
    skip_populate: bool = Field(default=False, exclude=True)
    reset_fields: Set[str] = Field(default_factory=set, exclude=True)

    @property
    def id(self) -> str | None:
        return self.meta.id if self.meta is not None else None

    def exists(self) -> bool:
        """True once the entity has been durably saved."""
        return self.meta is not None

    def label(self) -> str:
        """Short ``Type#id`` string for log messages."""
        return f"{self.type_name}#{self.id or 'transient'}"

    # -- scalar fields -------------------------------------------------

    def get(self, field: str, default: Any = None) -> Any:
        return self.data.get(field, default)

    def set(self, field: str, value: Any) -> None:
        self.data[field] = value

    # -- relations -----------------------------------------------------

    def ref(self, relation: str) -> str | None:
        return self.refs.get(relation)

    def member_ids(self, relation: str) -> list[str]:
        return list(self.members.get(relation, []))

    # -- serialisation -------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """Return the flat JSON document written by the store."""
        doc: dict[str, Any] = dict(self.data)
        doc.update(self.refs)
        for name, ids in self.members.items():
            doc[name] = list(ids)
        if self.meta is not None:
            doc["id"] = self.meta.id
            doc["_meta"] = self.meta.model_dump()
        return doc

    @classmethod
    def from_document(
        cls,
        doc: dict[str, Any],
        relations: dict[str, RelationInfo],
    ) -> "Entity":
        """Rebuild an entity from a stored document.

        *relations* maps relation name to its ``RelationInfo`` so that
        relation values can be separated from scalar fields.
        """
        meta = EntityMeta.model_validate(doc["_meta"])
        data: dict[str, Any] = {}
        refs: dict[str, Optional[str]] = {}
        members: dict[str, list[str]] = {}
        for key, value in doc.items():
            if key in ("id", "_meta"):
                continue
            info = relations.get(key)
            if info is None:
                data[key] = value
            elif info.kind.is_collection:
                members[key] = list(value or [])
            else:
                refs[key] = value
        return cls(
            type_name=meta.entity_type,
            meta=meta,
            data=data,
            refs=refs,
            members=members,
        )


# ------------------------------------------------------------------
# Result types
# ------------------------------------------------------------------

class Outcome:
    """Result of processing one configuration branch.

    Attributes
    ----------
    status : str
        ``"ok"``, ``"skipped"`` or ``"failed"``.
    path : str
        Dotted location of the branch, e.g. ``"Items[1].Image"``.
    reason : str
        Human-readable explanation (empty for plain successes).
    entity : Entity | None
        The entity produced or reused by the branch, when there is one.
    """

    __slots__ = ("status", "path", "reason", "entity")

    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"

    def __init__(
        self,
        status: str,
        path: str,
        reason: str = "",
        entity: Entity | None = None,
    ):
        self.status = status
        self.path = path
        self.reason = reason
        self.entity = entity

    @classmethod
    def ok(cls, path: str, entity: Entity | None = None, reason: str = "") -> "Outcome":
        return cls(cls.OK, path, reason, entity)

    @classmethod
    def skipped(cls, path: str, reason: str) -> "Outcome":
        return cls(cls.SKIPPED, path, reason)

    @classmethod
    def failed(cls, path: str, reason: str) -> "Outcome":
        return cls(cls.FAILED, path, reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "path": self.path,
            "reason": self.reason,
            "entity_id": self.entity.id if self.entity is not None else None,
        }

    def __repr__(self) -> str:
        return f"Outcome({self.status!r}, {self.path!r}, {self.reason!r})"


class ApplyResult(BaseModel):
    """Outcome of applying a template to a destination entity."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message}
