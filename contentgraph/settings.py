"""
contentgraph/settings.py -- Project configuration.

Settings live in ``<project_root>/contentgraph.json``.  Every key is
optional; a missing or unreadable file yields the defaults below.  Relative
paths are resolved against the project root by the ``*_path`` helpers.

Example ``contentgraph.json``::

    {
        "fixtures": "config/populate.yml",
        "max_depth": 4,
        "reset_fields": ["AvailableGlobally"]
    }
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from contentgraph.utils import safe_read_json as _safe_read_json

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "contentgraph.json"


class Settings(BaseModel):
    """Configuration shared by the store, resolvers and engines."""

    model_config = ConfigDict(extra="ignore")

    project_root: str = "."

    # Storage layout
    types_dir: str = "types"
    registry_file: str = "types/type_registry.json"
    entities_dir: str = "data/entities"
    state_file: str = "data/state.json"
    assets_dir: str = "data/assets"
    snapshots_dir: str = "data/revisions"

    # Population
    fixtures: str = "fixtures/populate.yml"
    max_depth: int = Field(default=5, ge=0)
    discriminator_key: str = "ClassName"
    duplicate_check_key: str = "DuplicateCheck"
    duplicate_check_aliases: list[str] = Field(default_factory=lambda: ["duplicate-check"])

    # Assets
    asset_base_dir: str = "."
    asset_source_key: str = "PopulateFileFrom"
    asset_filename_key: str = "Filename"
    asset_folder_key: str = "Folder"
    asset_base_type: str = "File"
    default_asset_type: str = "Image"
    fetch_timeout: float = Field(default=10.0, gt=0)
    user_agent: str = "contentgraph/1.0"

    # Links
    link_base_type: str = "Link"

    # Duplication / templates
    reset_fields: list[str] = Field(default_factory=lambda: ["AvailableGlobally"])
    template_type: str = "Template"

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        return Path(self.project_root).resolve()

    def path(self, value: str) -> Path:
        """Resolve *value* against the project root unless it is absolute."""
        candidate = Path(value)
        if candidate.is_absolute():
            return candidate
        return self.root / candidate

    @property
    def duplicate_check_keys(self) -> tuple[str, ...]:
        return (self.duplicate_check_key, *self.duplicate_check_aliases)

    @property
    def reserved_keys(self) -> frozenset[str]:
        """Configuration keys that steer population rather than set fields."""
        return frozenset({self.discriminator_key, *self.duplicate_check_keys})


def load_settings(project_root: str, **overrides) -> Settings:
    """Load ``contentgraph.json`` from *project_root*, applying *overrides*.

    Invalid values in the file are logged and the defaults used instead.
    """
    root = Path(project_root).resolve()
    data = _safe_read_json(str(root / SETTINGS_FILENAME), default={})
    if not isinstance(data, dict):
        logger.warning("%s is not a JSON object; using defaults", SETTINGS_FILENAME)
        data = {}
    data.update(overrides)
    data["project_root"] = str(root)
    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        logger.warning("Invalid settings in %s, using defaults: %s", root / SETTINGS_FILENAME, exc)
        return Settings.model_validate({"project_root": str(root), **overrides})
