"""
contentgraph/assets.py -- Asset Resolver

Creates file-backed entities (images and other files) from a local path or
a remote URL.  Bytes are stored under a content-addressed directory
(``<Folder>/<hash10>/<Filename>``) in the store's assets directory and the
resulting asset entity records the logical filename, hash, MIME type and
size.

A missing local file or a failed download is never raised: ``resolve()``
returns a failed ``Outcome`` and the caller leaves the relation empty.

Asset specs use the same keys as population configuration::

    Image:
      PopulateFileFrom: https://placehold.co/600x400.png   # or a local path
      Filename: hero                                       # extension inferred
      Folder: Placeholder
"""

from __future__ import annotations

import hashlib
import logging
import os
import posixpath
import urllib.error
import urllib.request
from typing import Any
from urllib.parse import urlparse

from contentgraph.models.base import Entity, Outcome
from contentgraph.settings import Settings
from contentgraph.store import EntityStore
from contentgraph.utils import sanitize_filename, sanitize_folder

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# MIME detection
# ---------------------------------------------------------------------------

_MIME_SIGNATURES: list[tuple[bytes, str]] = [
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
]

_MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}

DEFAULT_EXTENSION = "jpg"


def sniff_mime(data: bytes, declared: str | None = None) -> str | None:
    """Detect a MIME type from magic bytes, falling back to *declared*.

    *declared* is typically the HTTP ``Content-Type`` header; parameters
    such as ``; charset=...`` are dropped.
    """
    for signature, mime in _MIME_SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    head = data[:512].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "image/svg+xml"
    if declared:
        return declared.split(";", 1)[0].strip().lower() or None
    return None


def extension_for(mime: str | None) -> str:
    """File extension for *mime*; unknown types default to ``jpg``."""
    return _MIME_EXTENSIONS.get(mime or "", DEFAULT_EXTENSION)


def is_url(source: str) -> bool:
    parsed = urlparse(source)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class AssetUnavailable(Exception):
    """Internal signal: the source bytes could not be obtained."""


# ---------------------------------------------------------------------------
# AssetResolver
# ---------------------------------------------------------------------------

class AssetResolver:
    """Builds asset entities from population specs.

    Parameters
    ----------
    store : EntityStore
        Where asset entities and their bytes are persisted.
    settings : Settings, optional
        Defaults to the store's settings.
    """

    # Fields the resolver manages itself; never copied from the asset spec
    _MANAGED_FIELDS = frozenset({"Filename", "Name", "FileHash", "MimeType", "Size", "StoragePath"})

    def __init__(self, store: EntityStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or store.settings
        self.base_dir = self.settings.path(self.settings.asset_base_dir)

    def is_asset_type(self, type_id: str) -> bool:
        return self.store.factory.is_subtype(type_id, self.settings.asset_base_type)

    # ------------------------------------------------------------------
    # Source loading
    # ------------------------------------------------------------------

    def fetch(self, url: str) -> tuple[bytes, str | None]:
        """Download *url*, returning ``(bytes, content_type)``.

        Raises ``AssetUnavailable`` with a descriptive message on failure.
        """
        req = urllib.request.Request(url, headers={"User-Agent": self.settings.user_agent})
        try:
            with urllib.request.urlopen(req, timeout=self.settings.fetch_timeout) as resp:
                data = resp.read()
                content_type = resp.headers.get("Content-Type") if resp.headers else None
        except urllib.error.HTTPError as exc:
            raise AssetUnavailable(f"Download of {url} failed with HTTP {exc.code}.") from exc
        except urllib.error.URLError as exc:
            raise AssetUnavailable(f"Could not download {url}: {exc.reason}.") from exc
        except (OSError, ValueError) as exc:
            raise AssetUnavailable(f"Could not download {url}: {exc}.") from exc
        if not data:
            raise AssetUnavailable(f"Download of {url} returned no data.")
        return data, content_type

    def read_local(self, source: str) -> bytes:
        """Read a file relative to the asset base directory.

        Raises ``AssetUnavailable`` if it is missing or unreadable.
        """
        path = (self.base_dir / source.lstrip("/\\")).resolve()
        if not path.is_relative_to(self.base_dir.resolve()):
            raise AssetUnavailable(f"Asset file is outside the asset directory: {source}")
        if not path.is_file():
            raise AssetUnavailable(f"Asset file does not exist: {path}")
        if not os.access(path, os.R_OK):
            raise AssetUnavailable(f"Asset file is not readable: {path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise AssetUnavailable(f"Could not read asset file {path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, spec: Any, path: str = "asset", type_id: str | None = None) -> Outcome:
        """Create (or reuse) the asset entity described by *spec*.

        Parameters
        ----------
        spec : dict
            Asset spec with source, filename and folder keys.
        path : str
            Location of the spec in the configuration, for diagnostics.
        type_id : str, optional
            Declared target type of the relation being filled; a
            ``ClassName`` in the asset spec may narrow it.
        """
        s = self.settings
        if not isinstance(spec, dict):
            return Outcome.failed(path, f"expected a mapping for an asset, got {type(spec).__name__}")

        asset_type = spec.get(s.discriminator_key) or type_id or s.default_asset_type
        if not isinstance(asset_type, str):
            return Outcome.failed(path, f"{s.discriminator_key} must be a type name")
        if not self.store.factory.has_type(asset_type) or not self.is_asset_type(asset_type):
            return Outcome.failed(path, f"'{asset_type}' is not a known {s.asset_base_type} type")

        source = spec.get(s.asset_source_key) or spec.get(s.asset_filename_key)
        if not source or not isinstance(source, str):
            return Outcome.failed(path, f"asset spec has no '{s.asset_source_key}' source")

        try:
            if is_url(source):
                logger.debug("Fetching asset from %s", source)
                data, declared_mime = self.fetch(source)
            else:
                data, declared_mime = self.read_local(source), None
        except AssetUnavailable as exc:
            logger.warning("%s: %s", path, exc)
            return Outcome.failed(path, str(exc))

        mime = sniff_mime(data, declared_mime)
        raw_name = spec.get(s.asset_filename_key) or posixpath.basename(urlparse(source).path)
        filename = sanitize_filename(str(raw_name))
        if not os.path.splitext(filename)[1]:
            filename = f"{filename}.{extension_for(mime)}"
        folder = sanitize_folder(str(spec.get(s.asset_folder_key) or ""))
        logical_name = f"{folder}/{filename}" if folder else filename
        digest = hashlib.sha256(data).hexdigest()

        existing = self.store.find(asset_type, {"Filename": logical_name, "FileHash": digest})
        if existing:
            logger.debug("Reusing %s for %s", existing[0].label(), logical_name)
            return Outcome.ok(path, existing[0], reason="reused identical asset")

        storage_path = "/".join(p for p in (folder, digest[:10], filename) if p)
        self.store.store_asset(storage_path, data)

        asset = self.store.create(asset_type)
        declared = self.store.factory.scalar_properties(asset_type)
        values = {
            "Filename": logical_name,
            "Name": filename,
            "FileHash": digest,
            "MimeType": mime,
            "Size": len(data),
            "StoragePath": storage_path,
        }
        for field, value in spec.items():
            if field in declared and field not in self._MANAGED_FIELDS and field not in s.reserved_keys:
                if not isinstance(value, (dict, list)):
                    values[field] = value
        if "Title" in declared and "Title" not in values:
            values["Title"] = os.path.splitext(filename)[0]
        _set_declared(asset, values, declared)
        asset.skip_populate = True
        self.store.save(asset)

        logger.debug("Created %s for %s (%s, %d bytes)", asset.label(), logical_name, mime, len(data))
        return Outcome.ok(path, asset)


def _set_declared(entity: Entity, values: dict[str, Any], declared: dict) -> None:
    for field, value in values.items():
        if field in declared:
            entity.set(field, value)
