"""
contentgraph/links.py -- Typed-Link Resolver

Creates polymorphic link entities.  The concrete link type is chosen by the
discriminator key of the link spec (``ClassName`` by default) and must be the
link base type or one of its registered subtypes; without a discriminator
the declared relation target (or the base type) is used.

Usage:
    resolver = LinkResolver(store)
    outcome = resolver.resolve({"ClassName": "ExternalLink",
                                "Title": "Docs",
                                "ExternalUrl": "https://example.com"})
"""

import logging
from typing import Any

from contentgraph.models.base import Outcome
from contentgraph.settings import Settings
from contentgraph.store import EntityStore

logger = logging.getLogger(__name__)


class LinkResolver:
    """Resolves link specs to saved link entities.

    Parameters
    ----------
    store : EntityStore
        Where link entities are persisted.
    settings : Settings, optional
        Defaults to the store's settings.
    """

    def __init__(self, store: EntityStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or store.settings

    @property
    def base_type(self) -> str:
        return self.settings.link_base_type

    def is_link_type(self, type_id: str) -> bool:
        return self.store.factory.is_subtype(type_id, self.base_type)

    def variants(self) -> list[str]:
        """Every registered link type (the base type and its subtypes)."""
        return self.store.factory.subtypes_of(self.base_type)

    def resolve(self, spec: Any, path: str = "link", type_id: str | None = None) -> Outcome:
        """Create the link described by *spec*.

        Non-discriminator scalar values are copied onto the new link;
        keys the link type does not declare and nested mappings are
        logged and skipped.
        """
        key = self.settings.discriminator_key
        if not isinstance(spec, dict):
            return Outcome.failed(path, f"expected a mapping for a link, got {type(spec).__name__}")

        declared_type = type_id or self.base_type
        link_type = spec.get(key) or declared_type
        if link_type not in self.variants():
            logger.warning("%s: '%s' is not a recognised %s type", path, link_type, self.base_type)
            return Outcome.failed(path, f"'{link_type}' is not a recognised {self.base_type} type")
        if not self.store.factory.is_subtype(link_type, declared_type):
            return Outcome.failed(path, f"'{link_type}' is not a {declared_type}")

        link = self.store.create(link_type)
        fields = self.store.factory.scalar_properties(link_type)
        for field, value in spec.items():
            if field == key or field in self.settings.duplicate_check_keys:
                continue
            if field not in fields:
                logger.warning("%s: %s has no field '%s'; skipped", path, link_type, field)
                continue
            if isinstance(value, (dict, list)) and fields[field].get("type") not in ("object", "array"):
                logger.warning("%s: nested value for %s.%s skipped", path, link_type, field)
                continue
            link.set(field, None if value == "" else value)

        link.skip_populate = True
        self.store.save(link)
        logger.debug("Created %s", link.label())
        return Outcome.ok(path, link)
