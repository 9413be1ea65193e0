"""
contentgraph/duplicator.py -- Graph Duplicator

Copies every content node of one content area into another.  Each node is
deep-copied by the store (its owned relation graph comes along), marked so
that configuration-driven population does not run on the copy, has its
transient flags (``AvailableGlobally`` by default) reset to the type
default, is saved, promoted to a draft revision when its type is
versioned, and is finally attached to the destination area.

A node that cannot be copied is logged with its ID and skipped; the
remaining nodes are still duplicated.
"""

import logging
from typing import Any

from contentgraph.models.base import Entity
from contentgraph.settings import Settings
from contentgraph.store import EntityNotFoundError, EntityStore, EntityValidationError

logger = logging.getLogger(__name__)


class DuplicationReport:
    """Pairs of ``(source_id, copy_id)`` plus the nodes that failed."""

    __slots__ = ("copies", "failures")

    def __init__(self):
        self.copies: list[tuple[str, str]] = []
        self.failures: list[tuple[str, str]] = []

    @property
    def copied_ids(self) -> list[str]:
        return [copy_id for _, copy_id in self.copies]

    def to_dict(self) -> dict[str, Any]:
        return {
            "copies": [{"source": s, "copy": c} for s, c in self.copies],
            "failures": [{"source": s, "error": e} for s, e in self.failures],
        }


class GraphDuplicator:
    """Duplicates content nodes between content areas.

    Parameters
    ----------
    store : EntityStore
        Provides deep copies, persistence and draft promotion.
    settings : Settings, optional
        Defaults to the store's settings.
    """

    def __init__(self, store: EntityStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or store.settings
        self.classifier = store.classifier

    def content_area_of(self, container: Entity) -> Entity | None:
        """Return *container* itself if it is a content area, else the area it owns."""
        if self.store.factory.is_content_area(container.type_name):
            return container
        info = self.classifier.content_area_relation(container.type_name)
        if info is None:
            return None
        return self.store.resolve_ref(container, info.name)

    def _nodes_relation(self, area: Entity) -> str:
        info = self.classifier.nodes_relation(area.type_name)
        if info is None:
            raise EntityValidationError(f"{area.type_name} declares no ordered collection of content nodes.")
        return info.name

    def duplicate(self, source_container: Entity, destination_container: Entity) -> DuplicationReport:
        """Copy every node directly inside the source area into the destination area.

        Both arguments may be content areas or entities that own one.  The
        destination area is saved afterwards.
        """
        report = DuplicationReport()
        source_area = self.content_area_of(source_container)
        destination_area = self.content_area_of(destination_container)
        if source_area is None or destination_area is None:
            missing = source_container if source_area is None else destination_container
            logger.error("%s has no content area; nothing duplicated", missing.label())
            return report

        try:
            source_relation = self._nodes_relation(source_area)
            destination_relation = self._nodes_relation(destination_area)
        except EntityValidationError as exc:
            logger.error("Nothing duplicated: %s", exc)
            return report

        for node_id in source_area.member_ids(source_relation):
            try:
                node = self.store.get(node_id)
                copy = self.store.deep_copy(node)
                copy.skip_populate = True
                copy.reset_fields.update(
                    f for f in self.settings.reset_fields
                    if self.classifier.is_scalar_field(copy.type_name, f)
                )
                self.store.save(copy)
                if self.store.promote_to_draft(copy):
                    logger.debug("Promoted %s to draft", copy.label())
                self.store.attach(destination_area, destination_relation, copy)
                report.copies.append((node_id, copy.id))
                logger.debug("Duplicated node (ID: %s) to new node (ID: %s)", node_id, copy.id)
            except (EntityNotFoundError, EntityValidationError) as exc:
                logger.error("Error duplicating node (ID: %s): %s", node_id, exc)
                report.failures.append((node_id, str(exc)))

        self.store.save(destination_area)
        logger.info(
            "Duplicated %d of %d nodes from %s into %s",
            len(report.copies), len(report.copies) + len(report.failures),
            source_area.label(), destination_area.label(),
        )
        return report
