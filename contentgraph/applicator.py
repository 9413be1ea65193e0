"""
contentgraph/applicator.py -- Template Applicator

Applies a template to a destination record: the nodes of the template's
content area are duplicated into the record's content area, which is
created on demand.  Every precondition failure comes back as an
``ApplyResult`` with a message naming the offending ID; nothing is raised
for the expected "wrong input" cases.

Also converts in the other two directions: a new template from an
existing record, and a new record from a template.

Usage:
    from contentgraph.applicator import TemplateApplicator

    applicator = TemplateApplicator(store)
    result = applicator.apply_template(template, page)
    print(result.message)
"""

import logging
from typing import Any

from contentgraph.duplicator import GraphDuplicator
from contentgraph.models.base import ApplyResult, Entity
from contentgraph.permissions import AllowAll, Authorizer
from contentgraph.settings import Settings
from contentgraph.store import EntityStore

logger = logging.getLogger(__name__)


class TemplateApplicator:
    """Applies templates to records and builds templates from records.

    Parameters
    ----------
    store : EntityStore
        Persistence and relation bookkeeping.
    duplicator : GraphDuplicator, optional
        Node copier.  Built from *store* when omitted.
    authorizer : Authorizer, optional
        Consulted before anything is written.  Defaults to ``AllowAll``.
    settings : Settings, optional
        Defaults to the store's settings.
    """

    def __init__(
        self,
        store: EntityStore,
        duplicator: GraphDuplicator | None = None,
        authorizer: Authorizer | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.settings = settings or store.settings
        self.duplicator = duplicator or GraphDuplicator(store, self.settings)
        self.authorizer = authorizer or AllowAll()

    # ------------------------------------------------------------------
    # Content areas
    # ------------------------------------------------------------------

    def ensure_content_area(self, entity: Entity) -> Entity | None:
        """Return the content area of *entity*, creating it if unset.

        Returns ``None`` when the entity's type has no content-area
        relation.  A newly created area is saved and linked; a stored
        *entity* is saved again so the link persists.
        """
        if self.store.factory.is_content_area(entity.type_name):
            return entity
        info = self.store.classifier.content_area_relation(entity.type_name)
        if info is None:
            return None
        area = self.store.resolve_ref(entity, info.name)
        if area is not None:
            return area

        area = self.store.create(info.target_type)
        area.skip_populate = True
        self.store.save(area)
        self.store.set_ref(entity, info.name, area)
        if entity.exists():
            self.store.save(entity)
        logger.debug("Created %s for %s", area.label(), entity.label())
        return area

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply_template(
        self,
        template: Entity | None,
        destination: Entity,
        actor: Any = None,
    ) -> ApplyResult:
        """Duplicate the template's content nodes into *destination*.

        Preconditions are checked in order: the template exists, it has
        a content area, the destination supports content areas, and the
        destination's area can be resolved or created.
        """
        template_id = template.id if template is not None else None
        if template is None or not self.store.exists(template_id):
            return self._fail(f"Template with ID {template_id} does not exist.")

        template_area = self.duplicator.content_area_of(template)
        if template_area is None or not template_area.exists() or not self._holds_nodes(template_area):
            return self._fail(f"Template with ID {template_id} does not have a content area.")

        if (
            not self.store.factory.is_content_area(destination.type_name)
            and self.store.classifier.content_area_relation(destination.type_name) is None
        ):
            return self._fail(f"Record ID {destination.id} does not support content areas.")

        if not self.authorizer.can_edit(actor, destination):
            return self._fail(f"You do not have permission to edit record ID {destination.id}.")

        destination_area = self.ensure_content_area(destination)
        if destination_area is None or not self._holds_nodes(destination_area):
            return self._fail(f"Record ID {destination.id} does not have a content area.")

        report = self.duplicator.duplicate(template_area, destination_area)
        self.store.save(destination)

        message = f"Template (ID: {template_id}) applied to record ID {destination.id} successfully."
        if report.failures:
            message += f" {len(report.failures)} node(s) could not be copied."
        logger.info(message)
        return ApplyResult(success=True, message=message)

    def _holds_nodes(self, area: Entity) -> bool:
        return self.store.classifier.nodes_relation(area.type_name) is not None

    def _fail(self, message: str) -> ApplyResult:
        logger.warning(message)
        return ApplyResult(success=False, message=message)

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def create_template_from_record(
        self,
        record: Entity,
        title: str | None = None,
        actor: Any = None,
    ) -> Entity | None:
        """Save a new template holding copies of *record*'s content nodes.

        The template is titled ``"Template from <record title>"`` unless
        *title* is given, and remembers the record's type as its page
        type.  Returns ``None`` if *actor* may not create templates.
        """
        if not self.authorizer.can_create(actor, None):
            logger.warning("Not permitted to create a template from %s", record.label())
            return None

        template_type = self.settings.template_type
        template = self.store.create(template_type)
        record_title = record.get("Title") or record.id
        if self.store.classifier.is_scalar_field(template_type, "Title"):
            template.set("Title", title or f"Template from {record_title}")
        if self.store.classifier.is_scalar_field(template_type, "PageType"):
            template.set("PageType", record.type_name)
        template.skip_populate = True
        self.store.save(template)

        area = self.ensure_content_area(template)
        if area is not None and self.duplicator.content_area_of(record) is not None:
            self.duplicator.duplicate(record, area)
        logger.info("Created %s from %s", template.label(), record.label())
        return template

    def create_record_from_template(
        self,
        template: Entity,
        record_type: str | None = None,
        title: str | None = None,
        actor: Any = None,
    ) -> tuple[Entity | None, ApplyResult]:
        """Save a new record of the template's page type and apply the template to it.

        *record_type* overrides the template's ``PageType``.
        """
        record_type = record_type or template.get("PageType")
        if not record_type or not self.store.factory.has_type(record_type):
            return None, self._fail(
                f"Template with ID {template.id} does not name a known record type."
            )

        record = self.store.create(record_type)
        if title and self.store.classifier.is_scalar_field(record_type, "Title"):
            record.set("Title", title)
        record.skip_populate = True
        self.store.save(record)
        return record, self.apply_template(template, record, actor)
