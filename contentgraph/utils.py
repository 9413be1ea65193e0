"""
Shared utility functions for the contentgraph package.

Consolidates the JSON I/O, ID generation and filename helpers used by the
entity store, the asset resolver and the maintenance tasks.

All JSON writes use atomic temp-file-then-os.replace() to prevent
data corruption from crashes or concurrent access.
"""

import json
import logging
import os
import re
import secrets
import tempfile
import unicodedata
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# JSON I/O (atomic writes)
# ---------------------------------------------------------------------------

def safe_read_json(path, default=None):
    """Read a JSON file, returning *default* if the file is missing or corrupt.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the JSON file.
    default
        Value returned when the file cannot be read (default ``None``).

    Returns
    -------
    object
        Parsed JSON content, or *default* on failure.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return default


def safe_write_json(path, data, *, indent=2):
    """Atomically write *data* as JSON to *path*.

    Uses a temporary file in the same directory followed by
    ``os.replace()`` so that readers never see a partially-written file.
    Parent directories are created if they do not exist.
    """
    path = str(path)
    parent = os.path.dirname(path)
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def safe_write_bytes(path, data: bytes) -> None:
    """Atomically write raw bytes to *path* (same strategy as JSON writes)."""
    path = str(path)
    parent = os.path.dirname(path)
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# Identifiers and names
# ---------------------------------------------------------------------------

def slugify(text: str) -> str:
    """Convert a human-readable name to a URL-friendly slug.

    Examples:
        "Content Block"       -> "content-block"
        "Mira's Haven"        -> "mira-s-haven"
    """
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = re.sub(r"-+", "-", text).strip("-")
    return text


def generate_id(name: str) -> str:
    """Generate a unique entity ID in the format: slugified-name-XXXXXXXX."""
    slug = slugify(name)
    if not slug:
        slug = "entity"
    return f"{slug}-{secrets.token_hex(4)}"


def now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def now_stamp() -> str:
    """Return a filesystem-safe UTC timestamp for filenames."""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(name: str) -> str:
    """Reduce *name* to a safe ``[A-Za-z0-9._-]`` subset.

    Path separators are stripped first so the result is always a single
    path segment.  Runs of unsafe characters collapse to one hyphen.
    """
    name = os.path.basename(name.replace("\\", "/"))
    name = unicodedata.normalize("NFKD", name)
    name = name.encode("ascii", "ignore").decode("ascii")
    name = _UNSAFE_FILENAME_CHARS.sub("-", name)
    name = re.sub(r"-+", "-", name).strip("-.")
    return name or "file"


def sanitize_folder(folder: str) -> str:
    """Sanitize every segment of a relative folder path."""
    parts = [p for p in folder.replace("\\", "/").split("/") if p and p not in (".", "..")]
    return "/".join(sanitize_filename(p) for p in parts)
