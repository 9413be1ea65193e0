"""
contentgraph/cli.py -- Command-line entry point.

Usage:
    contentgraph --root /srv/site publish-templates
    contentgraph populate-templates
    contentgraph reset-global-availability
    contentgraph populate <entity-id>
    contentgraph apply-template <template-id> <record-id>
    contentgraph create-template <record-id> [--title TITLE]
"""

import argparse
import json
import logging
import sys

from contentgraph import __version__
from contentgraph.applicator import TemplateApplicator
from contentgraph.populator import GraphPopulator
from contentgraph.settings import load_settings
from contentgraph.store import EntityNotFoundError, EntityStore, EntityValidationError
from contentgraph.tasks import populate_templates, publish_templates, reset_global_availability

logger = logging.getLogger("contentgraph")


def _setup_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contentgraph",
        description="Populate, duplicate and template content entity graphs",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--root", default=".", help="Project root holding contentgraph.json")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("publish-templates", help="Publish every unpublished template")
    sub.add_parser("populate-templates", help="Populate template content nodes from configuration")
    sub.add_parser("reset-global-availability", help="Clear AvailableGlobally on template content nodes")

    populate = sub.add_parser("populate", help="Populate one stored entity from configuration")
    populate.add_argument("entity_id")
    populate.add_argument("--json", action="store_true", help="Print the outcome report as JSON")

    apply = sub.add_parser("apply-template", help="Copy a template's content into a record")
    apply.add_argument("template_id")
    apply.add_argument("record_id")

    create = sub.add_parser("create-template", help="Create a template from a record's content")
    create.add_argument("record_id")
    create.add_argument("--title", default=None, help="Template title")
    return parser


def _print_counts(counts: dict[str, int]) -> None:
    print(", ".join(f"{key}: {value}" for key, value in counts.items()))


def _run(args: argparse.Namespace, store: EntityStore) -> int:
    if args.command == "publish-templates":
        _print_counts(publish_templates(store))
        return 0

    if args.command == "populate-templates":
        counts = populate_templates(store)
        _print_counts(counts)
        return 1 if counts["failed"] else 0

    if args.command == "reset-global-availability":
        _print_counts(reset_global_availability(store))
        return 0

    if args.command == "populate":
        entity = store.get(args.entity_id)
        report = GraphPopulator(store).populate_from_config(entity)
        store.save(entity)
        if args.json:
            print(json.dumps(report.to_dict(), indent=2))
        else:
            print(f"{entity.label()}: {report.summary()}")
            for outcome in report.failed:
                print(f"  FAILED {outcome.path}: {outcome.reason}")
        return 1 if report.failed else 0

    applicator = TemplateApplicator(store)
    if args.command == "apply-template":
        if not store.exists(args.template_id):
            print(f"Template with ID {args.template_id} does not exist.")
            return 1
        result = applicator.apply_template(store.get(args.template_id), store.get(args.record_id))
        print(result.message)
        return 0 if result.success else 1

    if args.command == "create-template":
        template = applicator.create_template_from_record(store.get(args.record_id), title=args.title)
        if template is None:
            print("Not permitted to create templates.")
            return 1
        print(f"Created {template.label()}")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """Run the ``contentgraph`` command line."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.quiet)

    store = EntityStore(load_settings(args.root))
    try:
        return _run(args, store)
    except (EntityNotFoundError, EntityValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
