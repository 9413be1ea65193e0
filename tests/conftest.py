"""
Shared pytest fixtures for the contentgraph test suite.

Provides:
    - type_definitions: the JSON Schema type definitions used by every test
    - project: a temporary project root with types/, fixtures/populate.yml
      and a placeholder PNG
    - settings / store / populator / duplicator / applicator: components
      wired to the temporary project
    - make_area_with_nodes: helper building a content area holding N nodes
    - bare_area: a content area with nowhere to keep nodes
"""

import json
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure contentgraph/ is importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from contentgraph.applicator import TemplateApplicator  # noqa: E402
from contentgraph.duplicator import GraphDuplicator  # noqa: E402
from contentgraph.populator import GraphPopulator  # noqa: E402
from contentgraph.settings import load_settings  # noqa: E402
from contentgraph.store import EntityStore  # noqa: E402


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 24


def _rel(kind, target, owned=None):
    decl = {"kind": kind, "target": target}
    if owned is not None:
        decl["owned"] = owned
    return {"x-relation": decl}


TYPE_DEFINITIONS = {
    "BaseElement": {
        "$id": "BaseElement",
        "type": "object",
        "versioned": True,
        "properties": {
            "Title": {"type": "string"},
            "AvailableGlobally": {"type": "boolean", "default": True},
            "Parent": _rel("singular", "ContentArea"),
        },
    },
    "ElementContent": {
        "$id": "ElementContent",
        "extends": "BaseElement",
        "type": "object",
        "properties": {
            "HTML": {"type": "string"},
            "Content": {"type": "string"},
        },
    },
    "ElementCarousel": {
        "$id": "ElementCarousel",
        "extends": "BaseElement",
        "type": "object",
        "properties": {
            "Image": _rel("singular", "Image"),
            "Links": _rel("unordered", "Link"),
            "Slides": _rel("ordered", "Slide"),
        },
    },
    "Slide": {
        "$id": "Slide",
        "type": "object",
        "properties": {
            "Title": {"type": "string"},
            "Content": {"type": "string"},
            "Image": _rel("singular", "Image"),
        },
    },
    "File": {
        "$id": "File",
        "type": "object",
        "properties": {
            "Title": {"type": "string"},
            "Filename": {"type": "string"},
            "Name": {"type": "string"},
            "FileHash": {"type": "string"},
            "MimeType": {"type": "string"},
            "Size": {"type": "integer"},
            "StoragePath": {"type": "string"},
        },
    },
    "Image": {
        "$id": "Image",
        "extends": "File",
        "type": "object",
        "properties": {
            "AltText": {"type": "string"},
        },
    },
    "Link": {
        "$id": "Link",
        "type": "object",
        "properties": {
            "Title": {"type": "string"},
            "OpenInNew": {"type": "boolean", "default": False},
        },
    },
    "ExternalLink": {
        "$id": "ExternalLink",
        "extends": "Link",
        "type": "object",
        "properties": {"ExternalUrl": {"type": "string"}},
    },
    "EmailLink": {
        "$id": "EmailLink",
        "extends": "Link",
        "type": "object",
        "properties": {"Email": {"type": "string"}},
    },
    "ContentArea": {
        "$id": "ContentArea",
        "type": "object",
        "x-content-area": True,
        "properties": {
            "Elements": _rel("ordered", "BaseElement"),
        },
    },
    "Template": {
        "$id": "Template",
        "type": "object",
        "versioned": True,
        "properties": {
            "Title": {"type": "string"},
            "PageType": {"type": "string"},
            "Elements": _rel("singular", "ContentArea", owned=True),
            "LayoutImage": _rel("singular", "Image"),
        },
    },
    "Page": {
        "$id": "Page",
        "type": "object",
        "versioned": True,
        "properties": {
            "Title": {"type": "string"},
            "Content": {"type": "string"},
            "ElementalArea": _rel("singular", "ContentArea", owned=True),
        },
    },
    "Nest": {
        "$id": "Nest",
        "type": "object",
        "properties": {
            "Marker": {"type": "string"},
            "Child": _rel("singular", "Nest", owned=True),
        },
    },
}


POPULATE_YAML = """\
ElementContent:
  Title: Content Block Title
  HTML: "<p>Lorem ipsum dolor sit amet.</p>"
  AvailableGlobally: false

ElementCarousel:
  Title: Carousel
  NotAField: ignored
  Image:
    PopulateFileFrom: fixtures/placeholder.png
    Filename: hero
    Folder: Placeholder
  Links:
    - ClassName: ExternalLink
      Title: Docs
      ExternalUrl: https://example.com/docs
    - ClassName: EmailLink
      Title: Contact
      Email: hello@example.com
  Slides:
    - Title: First slide
      Content: One
      DuplicateCheck: [Title, Content]
      Image:
        PopulateFileFrom: fixtures/placeholder.png
        Filename: slide.png
        Folder: Placeholder
    - Title: Second slide
      Content: Two
      DuplicateCheck: [Title, Content]

Page:
  Title: Home
  ElementalArea:
    Elements:
      - ClassName: ElementContent
        Title: Welcome
        HTML: "<p>Hi</p>"

Template:
  Title: Landing template
  PageType: Page
  Elements:
    Elements:
      - ClassName: ElementContent
        Title: Template Content Element
"""


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def type_definitions():
    """Return a fresh copy of the test type definitions."""
    return json.loads(json.dumps(TYPE_DEFINITIONS))


@pytest.fixture
def project(tmp_path, type_definitions):
    """Create a temporary project tree.

    Includes:
        - types/<Type>.json for every test type
        - fixtures/populate.yml
        - fixtures/placeholder.png (PNG signature followed by padding)

    Returns the path to the temporary project root.
    """
    root = tmp_path / "site"
    types_dir = root / "types"
    types_dir.mkdir(parents=True)
    for type_id, schema in type_definitions.items():
        with open(types_dir / f"{type_id}.json", "w", encoding="utf-8") as fh:
            json.dump(schema, fh, indent=2)

    fixtures_dir = root / "fixtures"
    fixtures_dir.mkdir()
    (fixtures_dir / "populate.yml").write_text(POPULATE_YAML, encoding="utf-8")
    (fixtures_dir / "placeholder.png").write_bytes(PNG_BYTES)
    return root


@pytest.fixture
def settings(project):
    return load_settings(str(project))


@pytest.fixture
def store(settings):
    return EntityStore(settings)


@pytest.fixture
def populator(store):
    return GraphPopulator(store)


@pytest.fixture
def duplicator(store):
    return GraphDuplicator(store)


@pytest.fixture
def applicator(store):
    return TemplateApplicator(store)


@pytest.fixture
def make_area_with_nodes(store):
    """Return ``make(titles, owner_type=None)`` building a saved area of ElementContent nodes.

    When *owner_type* is given the area is attached to a new saved entity
    of that type, which is returned instead of the area.
    """

    def make(titles, owner_type=None):
        area = store.create("ContentArea")
        store.save(area)
        for title in titles:
            node = store.create("ElementContent", Title=title, AvailableGlobally=True)
            store.save(node)
            store.attach(area, "Elements", node)
        store.save(area)
        if owner_type is None:
            return area
        owner = store.create(owner_type, Title=f"{owner_type} owner")
        relation = store.classifier.content_area_relation(owner_type).name
        store.set_ref(owner, relation, area)
        store.save(owner)
        return owner

    return make


@pytest.fixture
def bare_area(store):
    """A saved content area whose type declares no ordered node collection."""
    store.factory.register_schema({
        "$id": "BareArea",
        "type": "object",
        "x-content-area": True,
        "properties": {"Title": {"type": "string"}},
    })
    return store.save(store.create("BareArea", Title="Bare"))
