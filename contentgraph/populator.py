"""
contentgraph/populator.py -- Graph Populator

Turns a nested population spec into a live entity graph.  For every key of
the spec the populator decides whether it is a scalar field, a singular
relation or a collection relation (via the Relation Classifier) and either
sets the field, resolves an asset or link, or recursively builds a related
entity.

Guarantees:
    - Idempotent re-runs: a singular relation that already has a target
      and a collection that already holds at least as many members as the
      spec lists are left alone; ``DuplicateCheck`` fields let a member be
      found and reused instead of created twice.
    - Bounded recursion: nesting deeper than ``max_depth`` is cut off for
      that subtree only.
    - Isolation: every key produces its own ``Outcome``.  A failed branch
      is logged and reported; its siblings are still processed.

Usage:
    populator = GraphPopulator(store, FileConfigSource("fixtures/populate.yml"))
    populator.install()                   # populate new entities on first save
    report = populator.populate_from_config(block)
"""

import logging
from typing import Any

from contentgraph.assets import AssetResolver
from contentgraph.config_source import ConfigSource, config_source_from_settings
from contentgraph.links import LinkResolver
from contentgraph.models.base import Entity, Outcome, RelationInfo, RelationKind
from contentgraph.settings import Settings
from contentgraph.store import EntityNotFoundError, EntityStore, EntityValidationError

logger = logging.getLogger(__name__)

# Data errors that fail one branch; anything else is a store or programming fault
_BRANCH_ERRORS = (EntityValidationError, EntityNotFoundError)


class PopulateReport:
    """Every branch outcome of one ``populate_from_config`` run."""

    __slots__ = ("entity", "outcomes")

    def __init__(self, entity: Entity, outcomes: list[Outcome] | None = None):
        self.entity = entity
        self.outcomes = outcomes or []

    def _with_status(self, status: str) -> list[Outcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def ok(self) -> list[Outcome]:
        return self._with_status(Outcome.OK)

    @property
    def skipped(self) -> list[Outcome]:
        return self._with_status(Outcome.SKIPPED)

    @property
    def failed(self) -> list[Outcome]:
        return self._with_status(Outcome.FAILED)

    def find(self, path: str) -> list[Outcome]:
        return [o for o in self.outcomes if o.path == path]

    def summary(self) -> str:
        return f"{len(self.ok)} ok, {len(self.skipped)} skipped, {len(self.failed)} failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity.id,
            "entity_type": self.entity.type_name,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class GraphPopulator:
    """Recursive, configuration-driven constructor of entity graphs.

    Parameters
    ----------
    store : EntityStore
        Entity persistence and relation bookkeeping.
    config_source : ConfigSource, optional
        Population specs by type name.  Defaults to the file named by
        ``settings.fixtures``.
    assets, links : optional
        Resolvers for asset and link relation targets.
    settings : Settings, optional
        Defaults to the store's settings.
    """

    def __init__(
        self,
        store: EntityStore,
        config_source: ConfigSource | None = None,
        assets: AssetResolver | None = None,
        links: LinkResolver | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.settings = settings or store.settings
        self.config_source = config_source or config_source_from_settings(self.settings)
        self.assets = assets or AssetResolver(store, self.settings)
        self.links = links or LinkResolver(store, self.settings)
        self.factory = store.factory
        self.classifier = store.classifier

    # ------------------------------------------------------------------
    # Save hook
    # ------------------------------------------------------------------

    def install(self) -> None:
        """Populate every new entity from configuration on its first save."""
        self.store.add_before_save_hook(self._on_before_save)

    def uninstall(self) -> None:
        self.store.remove_before_save_hook(self._on_before_save)

    def _on_before_save(self, entity: Entity, is_new: bool) -> None:
        if not is_new or entity.skip_populate:
            return
        self.populate_from_config(entity)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def populate_from_config(self, entity: Entity) -> PopulateReport:
        """Apply the configured spec for *entity*'s type.

        Does nothing (beyond a log line) when no spec exists for the type.
        The caller saves *entity* afterwards; related entities are saved
        as they are built.
        """
        report = PopulateReport(entity)
        spec = self.config_source.populate_spec_for(entity.type_name)
        if not spec:
            logger.info("No population config for %s", entity.type_name)
            return report

        logger.debug("Populating %s from config", entity.label())
        report.outcomes = self.populate(entity, spec)
        if report.failed:
            logger.warning("Populated %s with problems: %s", entity.label(), report.summary())
        else:
            logger.info("Populated %s: %s", entity.label(), report.summary())
        return report

    def populate(
        self,
        entity: Entity,
        config: dict[str, Any],
        depth: int = 0,
        path: str = "",
    ) -> list[Outcome]:
        """Apply *config* to *entity*, building related entities as needed.

        Returns the outcome of every branch, nested branches included.
        """
        if depth > self.settings.max_depth:
            logger.warning(
                "%s: maximum population depth %d exceeded; %s left unpopulated",
                path or entity.type_name, self.settings.max_depth, entity.label(),
            )
            return [Outcome.skipped(path or entity.type_name, f"maximum depth {self.settings.max_depth} exceeded")]

        outcomes: list[Outcome] = []
        reserved = self.settings.reserved_keys
        for key, value in config.items():
            if key in reserved:
                continue
            key_path = f"{path}.{key}" if path else key
            try:
                self._apply(entity, key, value, depth, key_path, outcomes)
            except _BRANCH_ERRORS as exc:
                logger.warning("%s: could not populate %s: %s", key_path, entity.label(), exc)
                outcomes.append(Outcome.failed(key_path, str(exc)))
        return outcomes

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _apply(
        self,
        entity: Entity,
        key: str,
        value: Any,
        depth: int,
        path: str,
        sink: list[Outcome],
    ) -> None:
        type_id = entity.type_name
        is_field = self.classifier.is_scalar_field(type_id, key)
        info = self.classifier.classify(type_id, key)

        if isinstance(value, str) and value == "":
            if is_field:
                entity.set(key, None)
                logger.debug("%s: cleared field %s", path, key)
                sink.append(Outcome.ok(path, reason="cleared"))
            elif info is not None and info.kind is RelationKind.SINGULAR:
                entity.refs[key] = None
                sink.append(Outcome.ok(path, reason="cleared"))
            else:
                logger.warning("%s: cannot clear '%s' on %s", path, key, type_id)
                sink.append(Outcome.skipped(path, "not a field or singular relation"))
            return

        if is_field:
            entity.set(key, value)
            logger.debug("%s: set %s.%s", path, type_id, key)
            sink.append(Outcome.ok(path))
            return

        if info is None:
            logger.warning("%s: '%s' is not a field or relation of %s; ignored", path, key, type_id)
            sink.append(Outcome.skipped(path, "not a field or relation"))
            return

        if info.kind is RelationKind.SINGULAR:
            sink.append(self._populate_singular(entity, info, value, depth, path, sink))
        else:
            self._populate_collection(entity, info, value, depth, path, sink)

    def _populate_singular(
        self,
        entity: Entity,
        info: RelationInfo,
        value: Any,
        depth: int,
        path: str,
        sink: list[Outcome],
    ) -> Outcome:
        if entity.ref(info.name):
            return Outcome.skipped(path, "relation already set")
        if not isinstance(value, dict):
            logger.warning("%s: expected a mapping for relation %s", path, info.name)
            return Outcome.failed(path, "expected a mapping for a singular relation")

        outcome = self._build_related(info.target_type, value, depth, path, sink)
        if outcome.status == Outcome.OK:
            self.store.set_ref(entity, info.name, outcome.entity)
            logger.debug("%s: %s.%s -> %s", path, entity.type_name, info.name, outcome.entity.label())
        return outcome

    def _populate_collection(
        self,
        entity: Entity,
        info: RelationInfo,
        value: Any,
        depth: int,
        path: str,
        sink: list[Outcome],
    ) -> None:
        if isinstance(value, dict):
            value = [value]
        if not isinstance(value, list):
            logger.warning("%s: expected a list for collection %s", path, info.name)
            sink.append(Outcome.failed(path, "expected a list for a collection relation"))
            return

        existing = entity.member_ids(info.name)
        if len(existing) >= len(value):
            sink.append(Outcome.skipped(path, f"already has {len(existing)} members"))
            return

        for index, member_spec in enumerate(value):
            member_path = f"{path}[{index}]"
            if not isinstance(member_spec, dict):
                sink.append(Outcome.failed(member_path, "expected a mapping for a collection member"))
                continue
            try:
                outcome = self._build_related(info.target_type, member_spec, depth, member_path, sink)
                if outcome.status == Outcome.OK and not self.store.attach(entity, info.name, outcome.entity):
                    outcome = Outcome.skipped(member_path, "already a member")
            except _BRANCH_ERRORS as exc:
                logger.warning("%s: could not build member: %s", member_path, exc)
                outcome = Outcome.failed(member_path, str(exc))
            sink.append(outcome)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _build_related(
        self,
        target_type: str,
        spec: dict[str, Any],
        depth: int,
        path: str,
        sink: list[Outcome],
    ) -> Outcome:
        """Create (or reuse) one related entity described by *spec*."""
        concrete = spec.get(self.settings.discriminator_key) or target_type
        if not isinstance(concrete, str):
            logger.warning("%s: %s must name a type, got %r", path, self.settings.discriminator_key, concrete)
            return Outcome.failed(path, f"{self.settings.discriminator_key} must be a type name")
        if not self.factory.has_type(concrete):
            logger.warning("%s: unknown type '%s'", path, concrete)
            return Outcome.failed(path, f"unknown type '{concrete}'")
        if not self.factory.is_subtype(concrete, target_type):
            logger.warning("%s: '%s' is not a %s", path, concrete, target_type)
            return Outcome.failed(path, f"'{concrete}' is not a {target_type}")

        if self.assets.is_asset_type(concrete):
            return self.assets.resolve(spec, path, type_id=concrete)
        if self.links.is_link_type(concrete):
            return self.links.resolve(spec, path, type_id=target_type)

        duplicate = self._find_duplicate(concrete, spec, path)
        if duplicate is not None:
            logger.debug("%s: reusing %s", path, duplicate.label())
            return Outcome.ok(path, duplicate, reason="reused duplicate")

        child = self.store.create(concrete)
        child.skip_populate = True
        sink.extend(self.populate(child, spec, depth + 1, path))
        self.store.save(child)
        logger.debug("%s: created %s", path, child.label())
        return Outcome.ok(path, child)

    def _duplicate_fields(self, spec: dict[str, Any], path: str) -> list[str]:
        for key in self.settings.duplicate_check_keys:
            if key in spec:
                fields = spec[key]
                if isinstance(fields, str):
                    return [fields]
                if not isinstance(fields, list):
                    logger.warning("%s: %s must be a field name or list; ignored", path, key)
                    return []
                return [f for f in fields if isinstance(f, str)]
        return []

    def _find_duplicate(self, type_id: str, spec: dict[str, Any], path: str) -> Entity | None:
        fields = self._duplicate_fields(spec, path)
        if not fields:
            return None
        missing = [f for f in fields if f not in spec]
        if missing:
            logger.warning("%s: duplicate check fields %s missing from spec; creating new", path, missing)
            return None
        matches = self.store.find(type_id, {f: spec[f] for f in fields})
        return matches[0] if matches else None
