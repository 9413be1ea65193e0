"""
contentgraph/relations.py -- Relation Classifier

Exposes the declared relations of every entity type, partitioned by kind
(singular / ordered / unordered).  The table for a type is built once from
its type definition and cached, so relations can be queried without ever
instantiating an entity.

Also builds a NetworkX graph of types and their relation edges, used to
find the content-area relation of a type and to report relation cycles
that population depth limiting has to cut.

Usage:
    from contentgraph.relations import RelationClassifier

    rc = RelationClassifier(factory)
    info = rc.classify("ElementCarousel", "Slides")   # RelationInfo or None
    table = rc.relations_of("Template")
"""

import logging

import networkx as nx

from contentgraph.models.base import RelationInfo, RelationKind
from contentgraph.models.factory import ModelFactory

logger = logging.getLogger(__name__)


class RelationKindError(TypeError):
    """A relation was used as the wrong kind (e.g. a singular as a list)."""


class RelationClassifier:
    """Static capability table of relations per entity type.

    Parameters
    ----------
    factory : ModelFactory
        Source of the type definitions.
    """

    # Back-reference relation names never treated as an owned content area
    _BACK_REFERENCES = frozenset({"Parent"})

    def __init__(self, factory: ModelFactory):
        self.factory = factory
        self._tables: dict[str, dict[str, RelationInfo]] = {}
        self._graph: nx.MultiDiGraph | None = None

    # ------------------------------------------------------------------
    # Table construction
    # ------------------------------------------------------------------

    def _table(self, type_id: str) -> dict[str, RelationInfo]:
        if type_id in self._tables:
            return self._tables[type_id]

        table: dict[str, RelationInfo] = {}
        for name, decl in self.factory.relation_properties(type_id).items():
            try:
                kind = RelationKind(decl.get("kind", ""))
            except ValueError:
                logger.warning(
                    "Relation %s.%s has unknown kind %r; ignoring it",
                    type_id, name, decl.get("kind"),
                )
                continue
            target = decl.get("target", "")
            if not target:
                logger.warning("Relation %s.%s has no target type; ignoring it", type_id, name)
                continue
            if kind is RelationKind.ORDERED:
                owned = decl.get("owned", True)
            elif kind is RelationKind.UNORDERED:
                owned = False
            else:
                owned = decl.get("owned", False)
            table[name] = RelationInfo(
                name=name, kind=kind, target_type=target, owned=bool(owned),
            )

        self._tables[type_id] = table
        return table

    def reset(self) -> None:
        """Drop cached tables (after registering new type definitions)."""
        self._tables.clear()
        self._graph = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def classify(self, type_id: str, relation_name: str) -> RelationInfo | None:
        """Return the relation declaration, or ``None`` if it is not a relation.

        ``None`` means "maybe a scalar field, maybe an invalid key" and is
        never an error in itself.
        """
        return self._table(type_id).get(relation_name)

    def relations_of(self, type_id: str) -> dict[str, list[RelationInfo]]:
        """Relations of *type_id* grouped by kind value."""
        grouped: dict[str, list[RelationInfo]] = {kind.value: [] for kind in RelationKind}
        for info in self._table(type_id).values():
            grouped[info.kind.value].append(info)
        return grouped

    def all_relations(self, type_id: str) -> dict[str, RelationInfo]:
        return dict(self._table(type_id))

    def is_scalar_field(self, type_id: str, name: str) -> bool:
        return name in self.factory.scalar_properties(type_id)

    def require(self, type_id: str, relation_name: str, collection: bool) -> RelationInfo:
        """Return the relation, raising ``RelationKindError`` on a kind mismatch."""
        info = self.classify(type_id, relation_name)
        if info is None:
            raise RelationKindError(f"{type_id} declares no relation named '{relation_name}'.")
        if info.kind.is_collection != collection:
            expected = "collection" if collection else "singular"
            raise RelationKindError(
                f"{type_id}.{relation_name} is {info.kind.value}, not a {expected} relation."
            )
        return info

    def content_area_relation(self, type_id: str) -> RelationInfo | None:
        """The singular relation through which *type_id* owns its content area.

        Identified by the target being a content-area type, not by name.
        """
        for info in self._table(type_id).values():
            if info.kind is not RelationKind.SINGULAR:
                continue
            if info.name in self._BACK_REFERENCES:
                continue
            if self.factory.is_content_area(info.target_type):
                return info
        return None

    def nodes_relation(self, area_type: str) -> RelationInfo | None:
        """The ordered collection of a content-area type holding its nodes."""
        for info in self._table(area_type).values():
            if info.kind is RelationKind.ORDERED:
                return info
        return None

    # ------------------------------------------------------------------
    # Type graph
    # ------------------------------------------------------------------

    def type_graph(self) -> nx.MultiDiGraph:
        """Directed multigraph: one node per type, one edge per relation."""
        if self._graph is not None:
            return self._graph
        graph = nx.MultiDiGraph()
        for type_id in self.factory.get_type_ids():
            graph.add_node(
                type_id,
                parent=self.factory.parent_of(type_id),
                versioned=self.factory.is_versioned(type_id),
            )
            for info in self._table(type_id).values():
                graph.add_edge(
                    type_id, info.target_type, key=info.name,
                    kind=info.kind.value, owned=info.owned,
                )
        self._graph = graph
        return graph

    def relation_cycles(self) -> list[list[str]]:
        """Type-level relation cycles (population of these is depth-limited)."""
        simple = nx.DiGraph(self.type_graph())
        return [cycle for cycle in nx.simple_cycles(simple)]
