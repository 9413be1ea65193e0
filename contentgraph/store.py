"""
contentgraph/store.py -- File-backed Entity Store

Handles entity creation, reading, saving, search, relation bookkeeping,
deep copies, draft promotion and publishing.  Every other component calls
the EntityStore rather than reading or writing entity files directly.

Entities are JSON documents under ``<entities_dir>/<type>/<id>.json``; an
index in ``state.json`` maps each ID to its type, status and file path.
Scalar fields are validated against the type's generated Pydantic model on
every save.

Usage:
    from contentgraph.settings import load_settings
    from contentgraph.store import EntityStore

    store = EntityStore(load_settings("/srv/site"))
    block = store.create("ElementContent", Title="Welcome")
    store.save(block)
    same = store.get(block.id)
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Callable

import networkx as nx

from contentgraph.models.base import Entity, EntityMeta, RelationKind
from contentgraph.models.factory import ModelFactory
from contentgraph.relations import RelationClassifier
from contentgraph.settings import Settings
from contentgraph.utils import (
    generate_id,
    now_iso,
    now_stamp,
    safe_read_json as _safe_read_json,
    safe_write_bytes as _safe_write_bytes,
    safe_write_json as _safe_write_json,
)

logger = logging.getLogger(__name__)

SaveHook = Callable[[Entity, bool], None]


class EntityNotFoundError(LookupError):
    """No stored entity has the requested ID (or it has the wrong type)."""


class EntityValidationError(ValueError):
    """An entity's field values do not satisfy its type definition."""


class EntityStore:
    """Central manager for all entity persistence.

    Parameters
    ----------
    settings : Settings
        Project configuration; determines where entities, assets and
        revision snapshots live.
    factory : ModelFactory, optional
        Type registry.  Built from ``settings.types_dir`` when omitted.
    """

    def __init__(self, settings: Settings, factory: ModelFactory | None = None):
        self.settings = settings
        self.root = settings.root
        self.factory = factory or ModelFactory(
            settings.path(settings.types_dir),
            settings.path(settings.registry_file),
        )
        self.classifier = RelationClassifier(self.factory)

        self.entities_dir = settings.path(settings.entities_dir)
        self.state_path = settings.path(settings.state_file)
        self.assets_dir = settings.path(settings.assets_dir)
        self.snapshots_dir = settings.path(settings.snapshots_dir)

        self._state: dict = self._load_state()
        self._hooks: list[SaveHook] = []

    # ------------------------------------------------------------------
    # Internal loaders
    # ------------------------------------------------------------------

    def _load_state(self) -> dict:
        state = _safe_read_json(str(self.state_path), default={"entity_index": {}})
        if "entity_index" not in state:
            state["entity_index"] = {}
        return state

    def _save_state(self) -> None:
        _safe_write_json(str(self.state_path), self._state)

    def _relative(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.root)).replace("\\", "/")
        except ValueError:
            return str(path)

    def _entity_file(self, entity_id: str) -> Path | None:
        entry = self._state["entity_index"].get(entity_id)
        if not entry:
            return None
        path = Path(entry.get("file_path", ""))
        return path if path.is_absolute() else self.root / path

    def _read(self, entity_id: str) -> Entity:
        path = self._entity_file(entity_id)
        doc = _safe_read_json(str(path)) if path is not None else None
        if not doc or "_meta" not in doc:
            raise EntityNotFoundError(
                f"Could not find entity '{entity_id}'. "
                f"It may have been deleted or the ID may be incorrect."
            )
        relations = self.classifier.all_relations(doc["_meta"]["entity_type"])
        return Entity.from_document(doc, relations)

    def _write(self, entity: Entity) -> None:
        path = self.root / entity.meta.file_path
        _safe_write_json(str(path), entity.to_document())
        self._state["entity_index"][entity.id] = {
            "entity_type": entity.type_name,
            "title": entity.get("Title") or entity.get("Name") or "",
            "status": entity.meta.status,
            "file_path": entity.meta.file_path,
            "created_at": entity.meta.created_at,
            "updated_at": entity.meta.updated_at,
        }
        self._save_state()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def add_before_save_hook(self, hook: SaveHook) -> None:
        """Register *hook(entity, is_new)* to run at the start of every save."""
        if hook not in self._hooks:
            self._hooks.append(hook)

    def remove_before_save_hook(self, hook: SaveHook) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def relations_of(self, type_id: str):
        """Declared relations of *type_id* grouped by kind."""
        return self.classifier.relations_of(type_id)

    def create(self, type_id: str, **fields: Any) -> Entity:
        """Return a new transient entity of *type_id*.

        Raises ``EntityValidationError`` if the type is unknown.
        """
        if not self.factory.has_type(type_id):
            raise EntityValidationError(
                f"Unknown entity type '{type_id}'. Check that a type definition "
                f"with that '$id' exists in {self.settings.types_dir}/."
            )
        entity = Entity(type_name=type_id)
        for field, value in fields.items():
            entity.set(field, value)
        return entity

    def get(self, entity_id: str, type_id: str | None = None) -> Entity:
        """Load a stored entity by ID.

        When *type_id* is given the entity must be of that type or one of
        its subtypes.

        Raises
        ------
        EntityNotFoundError
            If no entity with that ID (and type) exists.
        """
        entity = self._read(entity_id)
        if type_id and not self.factory.is_subtype(entity.type_name, type_id):
            raise EntityNotFoundError(
                f"Entity '{entity_id}' is a {entity.type_name}, not a {type_id}."
            )
        return entity

    def exists(self, entity_id: str | None) -> bool:
        return bool(entity_id) and entity_id in self._state["entity_index"]

    def save(self, entity: Entity) -> Entity:
        """Validate and durably write *entity*, assigning an ID if transient.

        Before-save hooks run first, then any ``reset_fields`` are reset to
        their type defaults.

        Raises
        ------
        EntityValidationError
            If the scalar field values do not match the type definition.
        """
        is_new = not entity.exists()
        for hook in list(self._hooks):
            hook(entity, is_new)

        for field in sorted(entity.reset_fields):
            entity.set(field, self.factory.field_default(entity.type_name, field))
        entity.reset_fields.clear()

        result = self.factory.validate_fields(entity.type_name, entity.data)
        if not result.passed:
            raise EntityValidationError(
                f"Cannot save {entity.label()}:\n" + "\n".join(f"  - {e}" for e in result.errors)
            )

        now = now_iso()
        if is_new:
            name = entity.get("Title") or entity.get("Name") or entity.type_name
            entity_id = generate_id(str(name))
            while self.exists(entity_id):
                entity_id = generate_id(str(name))
            path = self.entities_dir / entity.type_name / f"{entity_id}.json"
            entity.meta = EntityMeta(
                id=entity_id,
                entity_type=entity.type_name,
                created_at=now,
                updated_at=now,
                file_path=self._relative(path),
            )
            logger.debug("Created %s", entity.label())
        else:
            entity.meta.updated_at = now

        self._write(entity)
        entity.skip_populate = False
        return entity

    def list_entities(self, type_id: str | None = None, include_subtypes: bool = False) -> list[Entity]:
        """Return stored entities, optionally filtered by type."""
        results = []
        for entity_id, entry in list(self._state["entity_index"].items()):
            etype = entry.get("entity_type", "")
            if type_id:
                if include_subtypes:
                    if not self.factory.is_subtype(etype, type_id):
                        continue
                elif etype != type_id:
                    continue
            try:
                results.append(self._read(entity_id))
            except EntityNotFoundError:
                logger.warning("Index lists '%s' but its file is missing", entity_id)
        return results

    def find(self, type_id: str, criteria: dict[str, Any]) -> list[Entity]:
        """Entities of exactly *type_id* whose fields equal every criterion.

        A field absent from a stored entity never matches, so partial
        matches are non-matches.
        """
        if not criteria:
            return []
        matches = []
        for entity in self.list_entities(type_id):
            if all(key in entity.data and entity.data[key] == value for key, value in criteria.items()):
                matches.append(entity)
        return matches

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def resolve_ref(self, entity: Entity, relation: str) -> Entity | None:
        """Load the target of a singular relation, or ``None`` if unset."""
        self.classifier.require(entity.type_name, relation, collection=False)
        target_id = entity.ref(relation)
        if not target_id:
            return None
        try:
            return self.get(target_id)
        except EntityNotFoundError:
            logger.warning("%s.%s points at missing entity '%s'", entity.label(), relation, target_id)
            return None

    def set_ref(self, entity: Entity, relation: str, target: Entity | None) -> None:
        """Point a singular relation at a saved *target* (or clear it)."""
        self.classifier.require(entity.type_name, relation, collection=False)
        if target is not None and not target.exists():
            raise EntityValidationError(
                f"Cannot reference transient {target.type_name} from {entity.label()}.{relation}; save it first."
            )
        entity.refs[relation] = target.id if target is not None else None

    def resolve_members(self, entity: Entity, relation: str) -> list[Entity]:
        """Load the members of a collection relation, skipping dangling IDs."""
        self.classifier.require(entity.type_name, relation, collection=True)
        members = []
        for member_id in entity.member_ids(relation):
            try:
                members.append(self.get(member_id))
            except EntityNotFoundError:
                logger.warning("%s.%s lists missing entity '%s'", entity.label(), relation, member_id)
        return members

    def attach(self, entity: Entity, relation: str, child: Entity) -> bool:
        """Add a saved *child* to a collection relation.

        Returns ``False`` if it was already a member.
        """
        self.classifier.require(entity.type_name, relation, collection=True)
        if not child.exists():
            raise EntityValidationError(
                f"Cannot attach transient {child.type_name} to {entity.label()}.{relation}; save it first."
            )
        ids = entity.members.setdefault(relation, [])
        if child.id in ids:
            return False
        ids.append(child.id)
        return True

    def _owned_children(self, entity: Entity) -> list[tuple[str, str]]:
        """``(relation, child_id)`` for every owned relation target."""
        children = []
        for info in self.classifier.all_relations(entity.type_name).values():
            if not info.owned:
                continue
            if info.kind is RelationKind.SINGULAR:
                if entity.ref(info.name):
                    children.append((info.name, entity.ref(info.name)))
            else:
                for child_id in entity.member_ids(info.name):
                    children.append((info.name, child_id))
        return children

    def ownership_graph(self, entity: Entity) -> tuple[nx.DiGraph, dict[str, Entity]]:
        """Graph of *entity* and everything it owns, plus the loaded entities.

        The root node key is the entity's ID, or ``"__root__"`` when it is
        transient.
        """
        root_key = entity.id or "__root__"
        graph = nx.DiGraph()
        graph.add_node(root_key)
        loaded = {root_key: entity}
        stack = [root_key]
        while stack:
            key = stack.pop()
            for relation, child_id in self._owned_children(loaded[key]):
                if child_id not in loaded:
                    try:
                        loaded[child_id] = self.get(child_id)
                    except EntityNotFoundError:
                        logger.warning(
                            "%s.%s owns missing entity '%s'; not copied",
                            loaded[key].label(), relation, child_id,
                        )
                        continue
                    stack.append(child_id)
                graph.add_edge(key, child_id, relation=relation)
        return graph, loaded

    def find_owner(self, entity: Entity) -> Entity | None:
        """Return the stored entity that owns *entity*, if any."""
        if not entity.exists():
            return None
        for candidate in self.list_entities():
            if any(child_id == entity.id for _, child_id in self._owned_children(candidate)):
                return candidate
        return None

    # ------------------------------------------------------------------
    # Copying, versioning, publishing
    # ------------------------------------------------------------------

    def deep_copy(self, entity: Entity) -> Entity:
        """Structurally copy *entity* and everything it owns.

        Owned descendants are cloned and saved children-first so that
        every clone has an identity before its parent refers to it.
        Shared relations (unordered collections, non-owned singular
        references) keep pointing at the original targets.  The returned
        root clone is transient; the caller saves it.

        Raises ``EntityValidationError`` if ownership is cyclic.
        """
        graph, loaded = self.ownership_graph(entity)
        if not nx.is_directed_acyclic_graph(graph):
            raise EntityValidationError(f"Ownership of {entity.label()} is cyclic; cannot copy it.")

        root_key = entity.id or "__root__"
        clones: dict[str, Entity] = {}
        for key in reversed(list(nx.topological_sort(graph))):
            source = loaded[key]
            clone = Entity(type_name=source.type_name, data=copy.deepcopy(source.data))
            for info in self.classifier.all_relations(source.type_name).values():
                if info.kind is RelationKind.SINGULAR:
                    target_id = source.ref(info.name)
                    if info.owned and target_id:
                        clone.refs[info.name] = clones[target_id].id if target_id in clones else None
                    elif info.name in source.refs:
                        clone.refs[info.name] = target_id
                elif info.owned:
                    clone.members[info.name] = [
                        clones[i].id for i in source.member_ids(info.name) if i in clones
                    ]
                elif info.name in source.members:
                    clone.members[info.name] = source.member_ids(info.name)
            clone.skip_populate = True
            if key == root_key:
                return clone
            self.save(clone)
            clones[key] = clone
            logger.debug("Copied %s to %s", source.label(), clone.label())

        raise AssertionError("root node missing from ownership graph")  # pragma: no cover

    def promote_to_draft(self, entity: Entity) -> bool:
        """Write a new draft revision of a versioned entity.

        The previous document is snapshotted first.  Returns ``False`` (and
        does nothing) for unversioned types.
        """
        if not self.factory.is_versioned(entity.type_name):
            return False
        if not entity.exists():
            raise EntityValidationError(f"Cannot promote transient {entity.type_name}; save it first.")
        self._save_revision_snapshot(entity)
        entity.meta.version += 1
        entity.meta.status = "draft"
        entity.meta.updated_at = now_iso()
        self._write(entity)
        return True

    def publish(self, entity: Entity) -> int:
        """Mark *entity* and everything it owns as published.

        Returns the number of entities whose status changed.
        """
        graph, loaded = self.ownership_graph(entity)
        changed = 0
        for key in graph.nodes:
            target = loaded[key]
            if not target.exists() or target.meta.status == "published":
                continue
            target.meta.status = "published"
            target.meta.updated_at = now_iso()
            self._write(target)
            changed += 1
        return changed

    def _save_revision_snapshot(self, entity: Entity) -> str:
        """Save a timestamped copy of the stored document before it changes."""
        path = self._entity_file(entity.id)
        current = _safe_read_json(str(path)) if path is not None else None
        if current is None:
            current = entity.to_document()
        snapshot_path = self.snapshots_dir / f"{entity.id}_v{entity.meta.version}_{now_stamp()}.json"
        _safe_write_json(str(snapshot_path), current)
        return str(snapshot_path)

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def store_asset(self, relative_path: str, data: bytes) -> str:
        """Write asset bytes under the assets directory.

        Returns the path relative to the assets directory.
        """
        target = (self.assets_dir / relative_path).resolve()
        if os.path.commonpath([str(target), str(self.assets_dir.resolve())]) != str(self.assets_dir.resolve()):
            raise EntityValidationError(f"Asset path '{relative_path}' escapes the assets directory.")
        _safe_write_bytes(str(target), data)
        return relative_path

    def asset_path(self, relative_path: str) -> Path:
        return self.assets_dir / relative_path
