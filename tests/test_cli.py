"""
Tests for contentgraph/cli.py -- command-line entry point.

Each test runs main() against the temporary project with a fresh store,
then re-opens the project to check what was written.
"""

import json

import pytest

from contentgraph.cli import main
from contentgraph.store import EntityStore


def _run(project, *args):
    return main(["--root", str(project), "--quiet", *args])


class TestCli:
    """Tests for the contentgraph subcommands."""

    def test_requires_command(self, project):
        with pytest.raises(SystemExit):
            main(["--root", str(project)])

    def test_publish_templates(self, project, settings, make_area_with_nodes, capsys):
        template = make_area_with_nodes(["One"], owner_type="Template")
        assert _run(project, "publish-templates") == 0
        assert "templates: 1" in capsys.readouterr().out
        assert EntityStore(settings).get(template.id).meta.status == "published"

    def test_reset_global_availability(self, project, settings, make_area_with_nodes, capsys):
        make_area_with_nodes(["One"], owner_type="Template")
        assert _run(project, "reset-global-availability") == 0
        assert "updated: 1" in capsys.readouterr().out

    def test_populate_templates(self, project, make_area_with_nodes, capsys):
        make_area_with_nodes(["One"], owner_type="Template")
        assert _run(project, "populate-templates") == 0
        assert "nodes: 1" in capsys.readouterr().out

    def test_populate_entity(self, project, settings, store, capsys):
        block = store.save(store.create("ElementContent", Title="Old"))
        assert _run(project, "populate", block.id) == 0
        assert "0 failed" in capsys.readouterr().out
        assert EntityStore(settings).get(block.id).get("Title") == "Content Block Title"

    def test_populate_json_report(self, project, store, capsys):
        block = store.save(store.create("ElementContent", Title="Old"))
        assert _run(project, "populate", block.id, "--json") == 0
        report = json.loads(capsys.readouterr().out)
        assert report["entity_id"] == block.id
        assert {o["path"] for o in report["outcomes"]} >= {"Title", "HTML"}

    def test_populate_missing_entity(self, project, capsys):
        assert _run(project, "populate", "nope-0000") == 1
        assert "Could not find entity" in capsys.readouterr().err

    def test_apply_template(self, project, settings, make_area_with_nodes, capsys):
        template = make_area_with_nodes(["One"], owner_type="Template")
        page = make_area_with_nodes([], owner_type="Page")
        assert _run(project, "apply-template", template.id, page.id) == 0
        assert "successfully" in capsys.readouterr().out
        fresh = EntityStore(settings)
        area = fresh.resolve_ref(fresh.get(page.id), "ElementalArea")
        assert len(area.member_ids("Elements")) == 1

    def test_apply_missing_template(self, project, make_area_with_nodes, capsys):
        page = make_area_with_nodes([], owner_type="Page")
        assert _run(project, "apply-template", "nope-0000", page.id) == 1
        assert "Template with ID nope-0000 does not exist." in capsys.readouterr().out

    def test_apply_unsupported_destination(self, project, store, make_area_with_nodes, capsys):
        template = make_area_with_nodes(["One"], owner_type="Template")
        slide = store.save(store.create("Slide", Title="S"))
        assert _run(project, "apply-template", template.id, slide.id) == 1
        assert "does not support content areas" in capsys.readouterr().out

    def test_create_template(self, project, settings, make_area_with_nodes, capsys):
        page = make_area_with_nodes(["One"], owner_type="Page")
        assert _run(project, "create-template", page.id, "--title", "From CLI") == 0
        assert "Created Template#" in capsys.readouterr().out
        templates = EntityStore(settings).list_entities("Template")
        assert [t.get("Title") for t in templates] == ["From CLI"]
