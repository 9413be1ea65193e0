"""
contentgraph/config_source.py -- Population configuration sources.

A configuration source answers one question: "what is the population spec
for entity type X?".  The file-backed source reads a YAML (or JSON) file
whose top-level keys are type names::

    ElementContent:
      Title: Content Block Title
      HTML: <p>Lorem ipsum dolor sit amet.</p>
      AvailableGlobally: false

    ElementCarousel:
      Title: Carousel
      Slides:
        - Title: First slide
          DuplicateCheck: [Title]
          Image:
            PopulateFileFrom: fixtures/placeholder.png
            Filename: slide-1.png
            Folder: Placeholder
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from contentgraph.settings import Settings

logger = logging.getLogger(__name__)

# Every top-level entry must itself be a mapping
_FILE_SHAPE = {
    "type": "object",
    "additionalProperties": {"type": "object"},
}


class ConfigSource(ABC):
    """Base class: a lookup of population specs keyed by type name."""

    @abstractmethod
    def populate_spec_for(self, type_name: str) -> dict[str, Any] | None:
        """Return the spec for *type_name*, or ``None`` if there is none."""

    def type_names(self) -> list[str]:
        return []


class MappingConfigSource(ConfigSource):
    """Configuration held in an already-parsed mapping."""

    def __init__(self, mapping: dict[str, Any] | None = None):
        self._mapping = dict(mapping or {})

    def populate_spec_for(self, type_name: str) -> dict[str, Any] | None:
        spec = self._mapping.get(type_name)
        return spec if isinstance(spec, dict) and spec else None

    def type_names(self) -> list[str]:
        return sorted(self._mapping)


class FileConfigSource(ConfigSource):
    """Configuration read once from a YAML or JSON file.

    A missing, unparsable or malformed file is logged and behaves as an
    empty configuration.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        self._data = {}

        if not self.path.exists():
            logger.warning("Population config file does not exist: %s", self.path)
            return self._data

        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                if self.path.suffix.lower() == ".json":
                    data = json.load(fh)
                else:
                    data = yaml.safe_load(fh)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
            logger.error("Error parsing population config %s: %s", self.path, exc)
            return self._data

        if data is None:
            return self._data
        validator = jsonschema.Draft7Validator(_FILE_SHAPE)
        bad_keys = set()
        for error in validator.iter_errors(data):
            if not error.path:
                logger.error("Population config %s must be a mapping of type names", self.path)
                return self._data
            bad_keys.add(error.path[0])
            logger.warning(
                "Population config entry '%s' in %s is not a mapping; ignored",
                error.path[0], self.path,
            )
        self._data = {k: v for k, v in data.items() if k not in bad_keys}
        logger.debug("Loaded population config for %d types from %s", len(self._data), self.path)
        return self._data

    def reload(self) -> None:
        self._data = None

    def populate_spec_for(self, type_name: str) -> dict[str, Any] | None:
        spec = self._load().get(type_name)
        return spec or None

    def type_names(self) -> list[str]:
        return sorted(self._load())


def config_source_from_settings(settings: Settings) -> FileConfigSource:
    return FileConfigSource(settings.path(settings.fixtures))
