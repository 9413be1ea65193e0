"""
contentgraph/tasks.py -- Maintenance tasks over stored templates.

Each task walks every stored template (``settings.template_type``) and
returns a small dict of counts for the CLI to print.

    publish_templates          write a fresh draft of every unpublished
                               template, then publish it with everything
                               it owns
    populate_templates         re-run configuration population on every
                               content node inside a template
    reset_global_availability  clear ``AvailableGlobally`` on every
                               content node inside a template
"""

import logging

from contentgraph.duplicator import GraphDuplicator
from contentgraph.models.base import Entity
from contentgraph.populator import GraphPopulator
from contentgraph.store import EntityStore

logger = logging.getLogger(__name__)

AVAILABLE_GLOBALLY = "AvailableGlobally"


def _templates(store: EntityStore) -> list[Entity]:
    return store.list_entities(store.settings.template_type, include_subtypes=True)


def _template_nodes(store: EntityStore, template: Entity) -> list[Entity]:
    duplicator = GraphDuplicator(store)
    area = duplicator.content_area_of(template)
    if area is None:
        return []
    info = store.classifier.nodes_relation(area.type_name)
    if info is None:
        return []
    return store.resolve_members(area, info.name)


def publish_templates(store: EntityStore) -> dict[str, int]:
    """Publish every template that is not already published."""
    counts = {"templates": 0, "published": 0}
    for template in _templates(store):
        if template.meta.status == "published":
            continue
        store.promote_to_draft(template)
        counts["published"] += store.publish(template)
        counts["templates"] += 1
        logger.info("Published %s", template.label())
    return counts


def populate_templates(store: EntityStore, populator: GraphPopulator | None = None) -> dict[str, int]:
    """Populate every template content node from configuration."""
    populator = populator or GraphPopulator(store)
    counts = {"nodes": 0, "failed": 0}
    for template in _templates(store):
        for node in _template_nodes(store, template):
            report = populator.populate_from_config(node)
            store.save(node)
            store.promote_to_draft(node)
            counts["nodes"] += 1
            counts["failed"] += len(report.failed)
    logger.info("Populated %d template nodes", counts["nodes"])
    return counts


def reset_global_availability(store: EntityStore) -> dict[str, int]:
    """Set ``AvailableGlobally`` to false on every template content node."""
    counts = {"nodes": 0, "updated": 0}
    for template in _templates(store):
        for node in _template_nodes(store, template):
            counts["nodes"] += 1
            if not store.classifier.is_scalar_field(node.type_name, AVAILABLE_GLOBALLY):
                continue
            if node.get(AVAILABLE_GLOBALLY) is False:
                continue
            node.set(AVAILABLE_GLOBALLY, False)
            store.save(node)
            counts["updated"] += 1
    logger.info("Reset global availability on %d of %d template nodes", counts["updated"], counts["nodes"])
    return counts
